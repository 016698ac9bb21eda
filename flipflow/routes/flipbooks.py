import logging
from dataclasses import asdict

from flask import Blueprint, current_app, flash, jsonify, redirect, render_template, request, url_for
from flask_login import current_user, login_required

from flipflow.errors import (
    FlipFlowError, PDFLoadError, PermissionDeniedError, ValidationError, classify_error,
)
from flipflow.forms import FlipbookEditForm
from flipflow.services import current_services, query_keys
from flipflow.services.permissions import (
    PermissionContext, PermissionValidator, ResourceType, flipbook_permissions,
)
from flipflow.services.plan_manager import PlanAction, PlanContext, PlanManager
from flipflow.services.query_client import QueryOptions
from flipflow.utils.decorators import plan_action_required
from flipflow.utils.messages import FLIPBOOK_UPDATED, UPLOAD_PDF_UNREADABLE

bp = Blueprint("flipbooks", __name__, url_prefix="/flipbook")
logger = logging.getLogger(__name__)


def _token():
    return current_user.access_token if current_user.is_authenticated else None


def _load(flipbook_id, action='view', resource=ResourceType.FLIPBOOK):
    """Fetch a flipbook and check ``action`` on it; raises PermissionDeniedError."""
    flipbook = current_services().flipbooks.get(flipbook_id, token=_token())
    result = PermissionValidator.validate_permission(
        resource, action, PermissionContext(user=current_user, flipbook=flipbook))
    if not result.allowed:
        raise PermissionDeniedError(result.reason, result=result)
    return flipbook


@bp.route("/<flipbook_id>")
def view(flipbook_id):
    flipbook = _load(flipbook_id)
    current_services().analytics.track_view(flipbook.id, request.user_agent.string, token=_token())

    profile = None
    if current_user.is_authenticated:
        profile = current_services().profiles.get_profile(current_user.id, token=_token())
    advanced = PlanManager.validate_action(PlanAction.ADVANCED_FEATURES, PlanContext(profile=profile))

    return render_template(
        "flipbooks/view.html",
        title=flipbook.title,
        flipbook=flipbook,
        permissions=flipbook_permissions(flipbook, current_user),
        advanced_features=advanced.allowed,
        pages_url=url_for('flipbooks.pages', flipbook_id=flipbook.id),
    )


@bp.route("/<flipbook_id>/pages")
def pages(flipbook_id):
    """Rendered page images for the page-flip widget."""
    flipbook = _load(flipbook_id)
    timeout = current_app.config['CACHE_PAGES_TIMEOUT']
    services = current_services()

    def _render():
        with services.pdf_processor() as processor:
            document = processor.load_pdf(flipbook.pdf_url)
        return asdict(document)

    try:
        document = services.queries.fetch_query(
            query_keys.flipbook_pages(flipbook.id), _render,
            QueryOptions(stale_time=timeout, gc_time=timeout, retry=0))
    except PDFLoadError as e:
        logger.warning(f"Could not render flipbook {flipbook.id}: {e}")
        return jsonify({'error': str(UPLOAD_PDF_UNREADABLE), 'type': e.error_type.value}), e.status_code

    return jsonify(document)


@bp.route("/<flipbook_id>/edit", methods=['GET', 'POST'])
@login_required
def edit(flipbook_id):
    services = current_services()
    flipbook = _load(flipbook_id, action='edit')
    form = FlipbookEditForm(obj=flipbook)

    if form.validate_on_submit():
        updates = form.updates()
        try:
            if form.logo.data:
                context = services.flipbooks.plan_context(current_user)
                branding = PlanManager.validate_action(PlanAction.CUSTOM_BRANDING, context)
                if branding.allowed:
                    updates['logo_url'] = services.storage.upload_asset(
                        form.logo.data, current_user.id, 'logo', token=current_user.access_token)
                else:
                    prompt = PlanManager.get_upgrade_prompt(
                        PlanManager.resolve_plan(context.profile), PlanAction.CUSTOM_BRANDING)
                    flash(prompt.message, 'warning')
            if form.cover_image.data:
                updates['cover_image_url'] = services.storage.upload_asset(
                    form.cover_image.data, current_user.id, 'cover', token=current_user.access_token)

            services.flipbooks.update(current_user, flipbook.id, updates)
        except FlipFlowError as e:
            logger.warning(f"Update of flipbook {flipbook.id} failed: {e}")
            flash(e.message if isinstance(e, ValidationError) and e.message
                  else classify_error(e).user_message, 'danger')
        else:
            flash(FLIPBOOK_UPDATED, 'success')
            return redirect(url_for('flipbooks.edit', flipbook_id=flipbook.id))

    return render_template("flipbooks/edit.html", title='Edit Flipbook', form=form, flipbook=flipbook)


@bp.route("/<flipbook_id>/analytics")
@login_required
@plan_action_required(PlanAction.ACCESS_ANALYTICS)
def analytics(flipbook_id):
    flipbook = _load(flipbook_id, action='view', resource=ResourceType.FLIPBOOK_VIEW)
    stats = current_services().analytics.get_flipbook_stats(flipbook.id, token=current_user.access_token)
    return render_template("flipbooks/analytics.html", title='Analytics', flipbook=flipbook, stats=stats)
