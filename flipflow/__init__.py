import logging

from flask import Flask, current_app, request, session
from flask_babel import Babel
from flask_caching import Cache
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect

from flipflow.config import Config

login_manager = LoginManager()
login_manager.login_view = 'auth.login'
babel = Babel()
csrf = CSRFProtect()
cache = Cache()

logger = logging.getLogger(__name__)


def create_app(config=None, platform_client=None):
    """
    Application factory.

    Args:
        config: A ``Config`` instance; read from the environment when omitted
        platform_client: Replacement for the hosted platform client (tests)
    """
    app = Flask(__name__)
    config = config if config is not None else Config()
    app.config.update(config.model_dump())

    from flipflow.utils.logging import configure_logging
    configure_logging(app)

    login_manager.init_app(app)
    csrf.init_app(app)
    cache.init_app(app)

    def get_locale():
        lang = request.cookies.get("language")
        if lang and lang in app.config["LANGUAGES"]:
            return lang
        lang = session.get("language")
        if lang and lang in app.config["LANGUAGES"]:
            return lang
        return request.accept_languages.best_match(app.config["LANGUAGES"])

    babel.init_app(app, locale_selector=get_locale)

    from flipflow.services import init_services
    init_services(app, cache, platform_client=platform_client)

    from flipflow.routes import register_blueprints
    register_blueprints(app)

    from flipflow.routes.errors import register_error_handlers
    register_error_handlers(app)

    from flipflow.policies import policies_cli
    app.cli.add_command(policies_cli)

    @app.context_processor
    def inject_globals():
        return {
            'support_email': current_app.config['SUPPORT_EMAIL'],
            'razorpay_key_id': current_app.config.get('RAZORPAY_KEY_ID'),
        }

    logger.info(f"FlipFlow started (env={app.config['APP_ENV']})")
    return app


@login_manager.user_loader
def load_user(user_id):
    from flipflow.auth import load_session_user
    return load_session_user(user_id)
