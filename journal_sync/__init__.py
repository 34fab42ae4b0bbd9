"""
Flask Application Factory

This module creates and configures the local journal API.
"""
import time

from flask import Flask, g, jsonify, request
from flask_cors import CORS

from .api import entries_bp, sync_bp
from .cli import register_cli
from .components import EXTENSION_KEY, SyncComponents, build_components
from .config import get_config
from .utils.logger import get_logger, setup_logger


def create_app(config_class=None, components: SyncComponents = None):
    """Create and configure the Flask application.

    Args:
        config_class: Configuration class to use. If None, auto-detect from environment.
        components: Pre-built components (tests). If None, built from the config.

    Returns:
        Configured Flask application instance
    """
    if config_class is None:
        config_class = get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    # Ensure data directories exist
    config_class.init_paths()

    # Initialize logging
    setup_logger(
        log_level=app.config.get('LOG_LEVEL', 'INFO'),
        log_file=app.config.get('LOG_FILE')
    )

    logger = get_logger('app')

    # Initialize CORS
    CORS(app, resources={r"/api/*": config_class.get_cors_config()})

    # Build and register the sync components
    if components is None:
        components = build_components(app.config)
    app.extensions[EXTENSION_KEY] = components

    _register_blueprints(app)

    # Tables only; the startup sweep and the scheduler belong to the
    # long-running server process (see start_services)
    _prepare_database(components, logger)

    # Register handlers and hooks
    _register_error_handlers(app)
    _register_request_hooks(app)
    _register_health_check(app)
    register_cli(app)

    logger.info(f"Application initialized, database: {components.database.url}")

    return app


def _register_blueprints(app):
    """Register API blueprints under /api."""
    app.register_blueprint(entries_bp, url_prefix='/api')
    app.register_blueprint(sync_bp, url_prefix='/api')


def _prepare_database(components, logger):
    """Create tables."""
    try:
        components.prepare()
    except Exception as e:
        logger.error(f"Database setup failed: {e}")
        raise


def _register_error_handlers(app):
    """Register global error handlers."""
    from .utils.responses import ApiResponse

    @app.errorhandler(400)
    def bad_request(error):
        msg = str(error.description) if hasattr(error, 'description') else 'Bad request'
        return ApiResponse.error(msg, 400, 'BAD_REQUEST')

    @app.errorhandler(404)
    def not_found(error):
        msg = str(error.description) if hasattr(error, 'description') else 'Resource not found'
        return ApiResponse.not_found(msg)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return ApiResponse.error('Method not allowed', 405, 'METHOD_NOT_ALLOWED')

    @app.errorhandler(500)
    def internal_error(error):
        logger = get_logger('error')
        logger.exception(error)
        return ApiResponse.server_error('Internal server error')


def _register_request_hooks(app):
    """Register request timing hooks."""

    @app.before_request
    def before_request():
        g.start_time = time.time()

    @app.after_request
    def after_request(response):
        if hasattr(g, 'start_time'):
            duration = (time.time() - g.start_time) * 1000
            if duration > 1000:  # Log slow requests
                logger = get_logger('slow_request')
                logger.warning(f"Slow request: {request.method} {request.path} took {duration:.2f}ms")
        return response


def _register_health_check(app):
    """Register health check endpoint."""

    @app.route('/api/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'journal-sync'
        })
