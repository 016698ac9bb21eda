"""
Top-level error boundary.

Every unhandled error is classified, logged with a generated error id and
rendered as a recovery page (bounded retry, home, bug report draft) or as a
JSON body for API and XHR requests.
"""

import logging
from datetime import datetime, timezone
from urllib.parse import quote, urlencode

from flask import current_app, flash, jsonify, redirect, render_template, request, url_for
from flask_login import current_user, logout_user
from werkzeug.exceptions import HTTPException

from flipflow.auth import forget_user
from flipflow.errors import (
    AuthError, FlipFlowError, NotFoundError, PermissionDeniedError, PlanLimitError,
    ErrorHandler, ServerError, SessionExpiredError, ValidationError, classify_error,
)
from flipflow.services.permissions import PermissionValidator
from flipflow.services.plan_manager import PlanAction, PlanManager
from flipflow.utils.decorators import wants_json
from flipflow.utils.messages import ERROR_SESSION_EXPIRED

logger = logging.getLogger(__name__)

RETRY_PARAM = '_retry'

_HTTP_ERRORS = {
    400: ValidationError,
    401: AuthError,
    403: PermissionDeniedError,
    404: NotFoundError,
    413: ValidationError,
    422: ValidationError,
}


def bug_report_link(error_id, message):
    subject = f'Bug Report - Error ID: {error_id}'
    body = (f"Error ID: {error_id}\n"
            f"Context: {request.endpoint or 'Unknown'}\n"
            f"Error Message: {message or 'Unknown error'}\n"
            f"URL: {request.url}\n"
            f"Timestamp: {datetime.now(timezone.utc).isoformat()}\n\n"
            f"Please describe what you were doing when this error occurred:\n"
            f"[Your description here]\n")
    return (f"mailto:{current_app.config['SUPPORT_EMAIL']}"
            f"?subject={quote(subject)}&body={quote(body)}")


def _reload_url():
    args = {k: v for k, v in request.args.items() if k != RETRY_PARAM}
    return f"{request.base_url}?{urlencode(args)}" if args else request.base_url


def _retry_state(should_retry):
    max_retries = current_app.config['ERROR_BOUNDARY_MAX_RETRIES']
    attempt = request.args.get(RETRY_PARAM, 0, type=int)
    if not should_retry or request.method != 'GET' or attempt >= max_retries:
        return None, max(0, max_retries - attempt)
    args = request.args.to_dict()
    args[RETRY_PARAM] = attempt + 1
    return f"{request.base_url}?{urlencode(args)}", max_retries - attempt


def render_error(error, status):
    context = {'path': request.path, 'method': request.method, 'endpoint': request.endpoint}
    if current_user.is_authenticated:
        context['user_id'] = current_user.id
    report = ErrorHandler.handle_error(error, context=context)
    classification = classify_error(error)

    if wants_json():
        return jsonify({
            'error': str(classification.user_message),
            'error_id': report.id,
            'type': report.type.value,
            'retryable': classification.should_retry,
        }), status

    retry_url, attempts_left = _retry_state(classification.should_retry)
    return render_template(
        "errors/error.html",
        title='Something went wrong',
        status=status,
        error_id=report.id,
        error_type=report.type.value,
        message=classification.user_message,
        retry_url=retry_url,
        reload_url=_reload_url(),
        attempts_left=attempts_left,
        report_url=bug_report_link(report.id, classification.technical_message),
    ), status


def register_error_handlers(app):

    @app.errorhandler(SessionExpiredError)
    def session_expired(error):
        logger.info(f"Session expired on {request.path}")
        logout_user()
        forget_user()
        if wants_json():
            return jsonify({'error': str(ERROR_SESSION_EXPIRED), 'type': 'auth'}), 401
        flash(ERROR_SESSION_EXPIRED, 'warning')
        return redirect(url_for('auth.login', next=request.path))

    @app.errorhandler(PlanLimitError)
    def plan_limit(error):
        validation = error.validation
        prompt = PlanManager.get_upgrade_prompt('free', PlanAction.CREATE_FLIPBOOK)
        if wants_json():
            return jsonify({
                'error': error.message,
                'upgrade_required': bool(validation and validation.upgrade_required),
                'title': prompt.title,
                'message': prompt.message,
            }), error.status_code
        flash(prompt.message, 'warning')
        return redirect(url_for('main.pricing'))

    @app.errorhandler(PermissionDeniedError)
    def permission_denied(error):
        result = error.result
        if result is not None and result.requires_auth and not wants_json():
            flash(PermissionValidator.get_permission_error_message(result), 'info')
            return redirect(url_for('auth.login', next=request.path))
        return render_error(error, error.status_code)

    @app.errorhandler(FlipFlowError)
    def flipflow_error(error):
        return render_error(error, error.status_code)

    @app.errorhandler(HTTPException)
    def http_error(error):
        if error.code is None or error.code < 400:
            return error
        wrapped = _HTTP_ERRORS.get(error.code, ServerError if error.code >= 500 else FlipFlowError)
        return render_error(wrapped(error.description or error.name), error.code)

    @app.errorhandler(Exception)
    def unhandled(error):
        return render_error(error, 500)
