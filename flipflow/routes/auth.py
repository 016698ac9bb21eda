import logging

from flask import Blueprint, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required, login_user, logout_user

from flipflow.auth import SessionUser, forget_user, remember_user
from flipflow.errors import AuthError, FlipFlowError, classify_error
from flipflow.forms import LoginForm, RegistrationForm
from flipflow.services import current_services, query_keys
from flipflow.utils.messages import (
    AUTH_INVALID_CREDENTIALS, AUTH_LOGIN_SUCCESS, AUTH_LOGOUT_SUCCESS, AUTH_REGISTRATION_SUCCESS,
)

bp = Blueprint("auth", __name__, url_prefix="/auth")
logger = logging.getLogger(__name__)


def _safe_next(target):
    if target and target.startswith('/') and not target.startswith('//'):
        return target
    return None


@bp.route("/login", methods=['GET', 'POST'])
def login():
    if current_user.is_authenticated:
        return redirect(url_for('dashboard.index'))

    form = LoginForm()
    if form.validate_on_submit():
        try:
            data = current_services().platform.sign_in(form.email.data.strip(), form.password.data)
        except FlipFlowError as e:
            logger.info(f"Failed login for {form.email.data}: {e}")
            if isinstance(e, AuthError) or e.status_code in (400, 401):
                flash(AUTH_INVALID_CREDENTIALS, 'danger')
            else:
                flash(classify_error(e).user_message, 'danger')
        else:
            user = SessionUser.from_auth_response(data)
            remember_user(user)
            login_user(user)
            logger.info(f"User {user.id} signed in")
            flash(AUTH_LOGIN_SUCCESS, 'success')
            return redirect(_safe_next(request.args.get('next')) or url_for('dashboard.index'))

    return render_template("auth/login.html", form=form, title='Sign In')


@bp.route("/register", methods=['GET', 'POST'])
def register():
    if current_user.is_authenticated:
        return redirect(url_for('dashboard.index'))

    form = RegistrationForm()
    if form.validate_on_submit():
        try:
            data = current_services().platform.sign_up(
                form.email.data.strip(), form.password.data,
                metadata={'full_name': (form.full_name.data or '').strip()})
        except FlipFlowError as e:
            logger.info(f"Registration failed for {form.email.data}: {e}")
            flash(e.message or classify_error(e).user_message, 'danger')
        else:
            # Sign-up returns a session only when email confirmation is disabled
            if data and data.get('access_token'):
                user = SessionUser.from_auth_response(data)
                remember_user(user)
                login_user(user)
                return redirect(url_for('dashboard.index'))
            flash(AUTH_REGISTRATION_SUCCESS, 'success')
            return redirect(url_for('auth.login'))

    return render_template("auth/register.html", form=form, title='Create Account')


@bp.route("/logout", methods=['GET', 'POST'])
@login_required
def logout():
    token = current_user.access_token
    try:
        current_services().platform.sign_out(token)
    except FlipFlowError as e:
        logger.info(f"Platform sign-out failed, clearing local session anyway: {e}")
    for key in (query_keys.flipbooks_by_user(current_user.id), query_keys.user_profile(current_user.id)):
        current_services().queries.remove_queries(key)
    logout_user()
    forget_user()
    flash(AUTH_LOGOUT_SUCCESS, 'info')
    return redirect(url_for('auth.login'))
