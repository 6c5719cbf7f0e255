"""Flask application factory."""
from flask import Flask, jsonify, request
from flask_wtf.csrf import CSRFProtect, CSRFError
from werkzeug.exceptions import HTTPException
from shopdesk.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize CSRF protection
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'La sesión ha expirado. Recarga la página.'}), 400

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache (sales summaries)
    from shopdesk.services.cache_service import init_cache
    init_cache(app)

    # Catalog snapshot shared by the POS endpoints
    from shopdesk.services.catalog_service import init_catalog
    init_catalog(app)

    # Prometheus metrics instrumentation
    from shopdesk.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Formatting filters for receipts and exports
    from shopdesk.utils.formatters import money_mx, qty_mx, date_mx, datetime_mx
    app.jinja_env.filters['money_mx'] = money_mx
    app.jinja_env.filters['qty_mx'] = qty_mx
    app.jinja_env.filters['date_mx'] = date_mx
    app.jinja_env.filters['datetime_mx'] = datetime_mx

    # Operator context for each request
    from shopdesk.middleware import load_operator

    @app.before_request
    def before_request_handler():
        """Load the logged-in operator for each request."""
        load_operator()

    # Error Handlers
    from shopdesk.exceptions import ShopError
    from shopdesk.blueprints.metrics import shop_errors_total

    @app.errorhandler(ShopError)
    def handle_shop_error(error):
        """Handle custom application exceptions."""
        shop_errors_total.labels(error=type(error).__name__).inc()
        if error.status_code >= 500:
            app.logger.error(f"ShopError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"ShopError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            return jsonify({'status': 'error', 'message': error.name}), error.code
        app.logger.exception(f"Unhandled Exception on {request.path}: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from shopdesk.blueprints.auth import auth_bp
    from shopdesk.blueprints.catalog import catalog_bp
    from shopdesk.blueprints.pos import pos_bp
    from shopdesk.blueprints.sales import sales_bp
    from shopdesk.blueprints.metrics import metrics_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(pos_bp)
    app.register_blueprint(sales_bp)

    # Scraped by Prometheus, which sends no CSRF token
    csrf.exempt(metrics_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from shopdesk.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
