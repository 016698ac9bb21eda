from functools import wraps

from flask import flash, jsonify, redirect, request, url_for
from flask_login import current_user

from flipflow.services.plan_manager import PlanManager


def wants_json():
    return request.is_json or request.path.startswith('/api/') or \
        request.accept_mimetypes.best == 'application/json'


def plan_action_required(action):
    """Decorator to require a plan that allows ``action`` (see PlanAction)."""
    def wrapper(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            from flipflow.services import current_services

            context = current_services().flipbooks.plan_context(current_user)
            result = PlanManager.validate_action(action, context)
            if not result.allowed:
                prompt = PlanManager.get_upgrade_prompt(PlanManager.resolve_plan(context.profile), action)
                if wants_json():
                    return jsonify({'error': result.reason, 'upgrade_required': result.upgrade_required,
                                    'title': prompt.title, 'message': prompt.message}), 402
                flash(prompt.message, 'warning')
                return redirect(url_for('main.pricing'))
            return f(*args, **kwargs)
        return decorated_function
    return wrapper
