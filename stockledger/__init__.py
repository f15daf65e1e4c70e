"""Flask application factory."""
import logging
import os

from flask import Flask, jsonify, request
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from stockledger.database import init_db, get_session


def _configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    logging.getLogger('stockledger').setLevel(level)
    app.logger.setLevel(level)


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.json.sort_keys = False

    _configure_logging(app)

    # Error tracking in production
    if app.config.get('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get('ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache
    from stockledger.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from stockledger.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust X-Forwarded-* from one reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    init_db(app)

    # Multi-Tenant: load user and tenant context before each request
    from stockledger.middleware import load_user_and_tenant

    @app.before_request
    def before_request_handler():
        load_user_and_tenant()

    # Error Handlers
    from stockledger.exceptions import AppError

    @app.errorhandler(AppError)
    def handle_app_error(error):
        """Domain errors -> {error, code, ...} with the error's status."""
        log = app.logger.warning if error.status_code < 500 else app.logger.error
        log(f"{error.__class__.__name__} [{error.status_code}] {request.method} {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error):
        get_session().rollback()
        app.logger.warning(f"IntegrityError on {request.method} {request.path}: {error.orig}")
        return jsonify({
            'error': 'The request conflicts with existing data',
            'code': 'CONFLICT',
        }), 409

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({
            'error': error.description,
            'code': error.name.upper().replace(' ', '_'),
        }), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.error(f"Unhandled exception on {request.method} {request.path}: {error}", exc_info=error)
        return jsonify({'error': 'Internal Server Error', 'code': 'INTERNAL_ERROR'}), 500

    # Register blueprints
    from stockledger.blueprints.auth import auth_bp
    from stockledger.blueprints.main import main_bp
    from stockledger.blueprints.products import products_bp
    from stockledger.blueprints.warehouses import warehouses_bp
    from stockledger.blueprints.alerts import alerts_bp
    from stockledger.blueprints.metrics import metrics_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(main_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(warehouses_bp)
    app.register_blueprint(alerts_bp)
    app.register_blueprint(metrics_bp)

    # CLI commands
    from stockledger.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
