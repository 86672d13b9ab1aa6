"""Flask application factory."""
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from pos_cart.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize Sentry for error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Setup Prometheus metrics instrumentation
    from pos_cart.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database, then the cart snapshot backend (the SQL backend needs the session)
    init_db(app)

    from pos_cart.services.persistence_service import init_cart_storage
    init_cart_storage(app)

    # Error Handlers
    from pos_cart.exceptions import CartError

    @app.errorhandler(CartError)
    def handle_cart_error(error):
        """Handle custom application exceptions."""
        app.logger.warning(f"CartError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'status': 'error', 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from pos_cart.blueprints.cart import cart_bp
    from pos_cart.blueprints.metrics import metrics_bp

    app.register_blueprint(cart_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from pos_cart.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"TAX_RATE={app.config.get('TAX_RATE')}")
    app.logger.info(f"CART_BACKEND={app.config.get('CART_BACKEND')}")

    return app
