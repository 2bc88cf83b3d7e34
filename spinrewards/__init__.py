"""
Spin Rewards loyalty app for Shopify
Flask application factory
"""
import os
import re
import logging
from flask import Flask
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from .extensions import init_database, check_database_health
from .config import get_config, validate_config
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()

    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    # Database binding and (dev/test) table creation happen here, never lazily
    init_database(app)

    # Embedded admin and storefront widget origins
    cors_origins = [
        'http://localhost:5173',
        'http://127.0.0.1:5173',
        'https://admin.shopify.com',
        re.compile(r'https://.*\.myshopify\.com'),
    ]
    CORS(app, origins=cors_origins, supports_credentials=True,
         allow_headers=['Content-Type', 'Authorization', 'X-Shop-Domain'])

    register_blueprints(app)

    from .commands import init_app as init_commands
    init_commands(app)

    register_error_handlers(app)

    @app.route('/health')
    def health_check():
        database = check_database_health()
        status = 200 if database['status'] == 'connected' else 503
        return {
            'status': 'healthy' if status == 200 else 'unhealthy',
            'service': 'spinrewards',
            'database': database,
        }, status

    logger.info(f'Spin Rewards app created ({config_name})')
    return app


def register_blueprints(app: Flask) -> None:
    """Register API and webhook blueprints."""
    from .api.points import points_bp
    from .api.spin import spin_bp
    from .webhooks import orders_webhook_bp, privacy_webhook_bp

    app.register_blueprint(points_bp, url_prefix='/api/points')
    app.register_blueprint(spin_bp, url_prefix='/api/spin')

    app.register_blueprint(orders_webhook_bp, url_prefix='/webhook')
    app.register_blueprint(privacy_webhook_bp, url_prefix='/webhook')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from .utils.errors import ErrorCode, error_response, internal_error
    from .utils.exceptions import LoyaltyError

    @app.errorhandler(LoyaltyError)
    def handle_loyalty_error(error):
        if error.status_code >= 500:
            app.logger.error(f'{error.code}: {error.message}')
            return internal_error()
        return error_response(
            error.message,
            error.code,
            error.status_code,
            log_error=False,
            extra=error.details or None,
        )

    @app.errorhandler(400)
    def bad_request(error):
        return error_response('Bad request', ErrorCode.INVALID_REQUEST, 400, log_error=False)

    @app.errorhandler(404)
    def not_found(error):
        return error_response('Not found', ErrorCode.NOT_FOUND, 404, log_error=False)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response('Method not allowed', ErrorCode.INVALID_REQUEST, 405, log_error=False)

    @app.errorhandler(Exception)
    def unhandled_exception(error):
        if isinstance(error, HTTPException):
            return error
        app.logger.exception(f'Unhandled exception: {error}')
        from .extensions import db
        db.session.rollback()
        return internal_error()
