"""Flask application factory."""
from flask import Flask, render_template, request, jsonify
from flask_wtf.csrf import CSRFProtect
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from app.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize CSRF protection
    csrf = CSRFProtect(app)

    from flask_wtf.csrf import CSRFError
    from app.middleware import wants_json

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'Your session has expired. Reload the page.'}), 400

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            send_default_pii=False,  # request headers carry session tokens
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Flask-Mail for verification codes
    from app.services.email_service import init_mail
    init_mail(app)

    # Redis rate limiting (RATE_LIMIT_BACKEND=redis)
    from app.services.rate_limit_service import init_rate_limiter
    init_rate_limiter(app)

    # Prometheus metrics instrumentation
    from app.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=1,      # Trust X-Forwarded-For with 1 proxy
            x_proto=1,    # Trust X-Forwarded-Proto
            x_host=1,     # Trust X-Forwarded-Host
            x_port=1,     # Trust X-Forwarded-Port
            x_prefix=0    # No prefix (not behind a URL prefix)
        )

    # Initialize database
    init_db(app)

    # Resolve caller identity and tenant once per request
    from app.middleware import load_auth_context

    @app.before_request
    def before_request_handler():
        """Load auth context for each request."""
        load_auth_context()

    # Error Handlers
    from app.exceptions import SaasError, UpstreamError

    def _error_response(error):
        if wants_json():
            return jsonify(error.to_dict()), error.status_code, error.headers()
        template = 'restricted.html' if error.status_code in (401, 403) else 'errors/error.html'
        return render_template(template, message=error.message), error.status_code, error.headers()

    @app.errorhandler(SaasError)
    def handle_saas_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"SaaSError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"SaaSError [{error.status_code}]: {error.message} ({request.method} {request.path})")
        return _error_response(error)

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        """Database failures: roll back, log with context, answer generically."""
        from app.database import get_session
        db_session = get_session()
        if db_session is not None:
            db_session.rollback()
        app.logger.exception(f"Database error on {request.method} {request.path}")
        return _error_response(UpstreamError())

    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            if wants_json():
                return jsonify({'status': 'error', 'message': error.name}), error.code
            return error

        app.logger.exception(f"Unhandled Exception on {request.method} {request.path}: {error}")

        if wants_json():
            return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500
        return render_template('errors/error.html', message='Internal Server Error'), 500

    # Register blueprints
    from app.blueprints.auth import auth_bp
    from app.blueprints.portal import portal_bp
    from app.blueprints.public import public_bp
    from app.blueprints.contracts import contracts_bp
    from app.blueprints.cron import cron_bp
    from app.blueprints.metrics import metrics_bp

    # JSON APIs authenticate with headers or SameSite session cookies, not form tokens
    for blueprint in (auth_bp, portal_bp, public_bp, cron_bp):
        csrf.exempt(blueprint)

    app.register_blueprint(auth_bp)
    app.register_blueprint(portal_bp)
    app.register_blueprint(public_bp)
    app.register_blueprint(contracts_bp)
    app.register_blueprint(cron_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from app.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"MAIL_SERVER={app.config.get('MAIL_SERVER')}")
    app.logger.info(f"RATE_LIMIT_BACKEND={app.config.get('RATE_LIMIT_BACKEND')}")

    return app
