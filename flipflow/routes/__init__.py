from flipflow.routes.main import bp as main_bp
from flipflow.routes.auth import bp as auth_bp
from flipflow.routes.dashboard import bp as dashboard_bp
from flipflow.routes.flipbooks import bp as flipbooks_bp
from flipflow.routes.payments import bp as payments_bp


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(flipbooks_bp)
    app.register_blueprint(payments_bp)
