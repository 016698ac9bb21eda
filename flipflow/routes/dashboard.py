import logging

from flask import Blueprint, flash, jsonify, redirect, render_template, url_for
from flask_login import current_user, login_required

from flipflow.errors import FlipFlowError, PlanLimitError, ValidationError, classify_error
from flipflow.forms import FlipbookUploadForm
from flipflow.services import current_services
from flipflow.services.permissions import flipbook_permissions
from flipflow.services.plan_manager import PlanAction, PlanManager
from flipflow.utils.decorators import wants_json
from flipflow.utils.messages import FLIPBOOK_CREATED, FLIPBOOK_DELETED, LINK_READY

bp = Blueprint("dashboard", __name__, url_prefix="/dashboard")
logger = logging.getLogger(__name__)


def _render_dashboard(form):
    services = current_services()
    context = services.flipbooks.plan_context(current_user)
    flipbooks = services.flipbooks.list_for_user(current_user.id, token=current_user.access_token)
    usage = PlanManager.get_usage_summary(context)
    prompt = None
    if usage['is_at_limit']:
        prompt = PlanManager.get_upgrade_prompt(PlanManager.resolve_plan(context.profile),
                                                PlanAction.CREATE_FLIPBOOK)
    return render_template(
        "dashboard.html",
        title='Dashboard',
        form=form,
        flipbooks=flipbooks,
        permissions={f.id: flipbook_permissions(f, current_user) for f in flipbooks},
        usage=usage,
        upgrade_prompt=prompt,
        stats=services.analytics.get_user_stats(current_user.id, token=current_user.access_token),
    )


@bp.route("/")
@login_required
def index():
    return _render_dashboard(FlipbookUploadForm())


@bp.route("/upload", methods=['GET', 'POST'])
@login_required
def upload():
    form = FlipbookUploadForm()
    if form.validate_on_submit():
        draft = {
            'title': form.title.data.strip(),
            'description': (form.description.data or '').strip() or None,
            'is_public': bool(form.is_public.data),
        }
        try:
            flipbook = current_services().flipbooks.create_from_upload(current_user, form.pdf.data, draft)
        except PlanLimitError:
            plan = current_services().profiles.get_plan(current_user.id, token=current_user.access_token)
            flash(PlanManager.get_upgrade_prompt(plan, PlanAction.CREATE_FLIPBOOK).message, 'warning')
            return redirect(url_for('main.pricing'))
        except ValidationError as e:
            flash(e.message or classify_error(e).user_message, 'danger')
        except FlipFlowError as e:
            logger.warning(f"Flipbook creation failed for {current_user.id}: {e}")
            flash(classify_error(e).user_message, 'danger')
        else:
            flash(FLIPBOOK_CREATED % {'title': flipbook.title}, 'success')
            return redirect(url_for('dashboard.index'))
    elif form.is_submitted():
        for errors in form.errors.values():
            for error in errors:
                flash(error, 'danger')

    return _render_dashboard(form)


@bp.route("/flipbooks/<flipbook_id>/delete", methods=['POST'])
@login_required
def delete(flipbook_id):
    try:
        current_services().flipbooks.delete(current_user, flipbook_id)
    except FlipFlowError as e:
        logger.warning(f"Delete of {flipbook_id} failed: {e}")
        message = classify_error(e).user_message
        if wants_json():
            return jsonify({'error': str(message)}), e.status_code
        flash(message, 'danger')
    else:
        if wants_json():
            return jsonify({'deleted': flipbook_id})
        flash(FLIPBOOK_DELETED, 'success')
    return redirect(url_for('dashboard.index'))


@bp.route("/flipbooks/<flipbook_id>/share")
@login_required
def share(flipbook_id):
    flipbook = current_services().flipbooks.get(flipbook_id, token=current_user.access_token)
    url = current_services().flipbooks.share_url(flipbook.id)
    if wants_json():
        return jsonify({'url': url, 'is_public': flipbook.is_public})
    flash(LINK_READY % {'url': url}, 'info')
    return redirect(url_for('dashboard.index'))
