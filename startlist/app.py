"""
Startlist Flask Application.

Main entry point for the web application. Initializes:
- Database schema
- Device registry refresh
- State tracker and launch classification scheduler
- Ingestion pipeline
- API routes

Usage:
    python -m startlist.app

Or with gunicorn:
    gunicorn "startlist.app:create_app()"
"""

import atexit
import logging
import os
from typing import Optional

from flask import Flask
from flask_cors import CORS

from startlist.config import AppConfig, config
from startlist.models import create_db_engine, create_session_factory, init_db
from startlist.api import flights_bp, metrics_bp
from startlist.ingestion import AprsClient, DeviceLookup, IngestionPipeline, ReplayClient, refresh_device_db
from startlist.observability import ErrorSink
from startlist.store import SqlStore
from startlist.tracking import StateTracker

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger(__name__)


def create_app(start_ingestion: bool = True, app_config: Optional[AppConfig] = None) -> Flask:
    """
    Application factory for Flask.

    Args:
        start_ingestion: Whether to start the background ingestion pipeline
                        and classification scheduler. Set to False for testing.
        app_config: Configuration to use instead of the environment one.

    Returns:
        Configured Flask application instance.
    """
    settings = app_config or config

    app = Flask(__name__)

    # Configuration
    app.config['SECRET_KEY'] = settings.secret_key

    # Enable CORS for API endpoints
    CORS(app, resources={r'/api/*': {'origins': '*'}})

    # Initialize database
    logger.info('Initializing database...')
    engine = create_db_engine(settings.database.url, echo=settings.debug)
    init_db(engine)
    session_factory = create_session_factory(engine)

    store = SqlStore(session_factory)
    sink = ErrorSink()
    tracker = StateTracker(store, settings.tracker, sink=sink)

    app.config['STORE'] = store
    app.config['TRACKER'] = tracker
    app.config['INGESTION_PIPELINE'] = None

    # Register API blueprints
    app.register_blueprint(flights_bp)
    app.register_blueprint(metrics_bp)

    if start_ingestion:
        tracker.scheduler.start()

        if settings.aprs.replay_file:
            client = ReplayClient(settings.aprs.replay_file)
        else:
            client = AprsClient.from_config(
                settings.aprs,
                settings.tracker.home_latitude,
                settings.tracker.home_longitude,
            )

        pipeline = IngestionPipeline(
            client,
            tracker,
            DeviceLookup(session_factory),
            sink=sink,
            retention_hours=settings.retention.hours,
            cleanup_interval_minutes=settings.retention.cleanup_interval_minutes,
            reconnect_seconds=settings.aprs.reconnect_seconds,
            purge=store.purge_positions,
            refresh_devices=lambda: refresh_device_db(
                session_factory, settings.ddb.url, timeout=settings.ddb.timeout_seconds,
            ),
            device_refresh_hours=settings.ddb.refresh_hours,
        )
        pipeline.start_background(reconnect=not settings.aprs.replay_file)
        app.config['INGESTION_PIPELINE'] = pipeline

        def shutdown():
            pipeline.stop()
            tracker.scheduler.shutdown(drain=True, timeout=30)

        atexit.register(shutdown)

        logger.info(
            f'Tracking airfield at ({settings.tracker.home_latitude}, {settings.tracker.home_longitude}) '
            f'with radius {settings.tracker.distance_threshold_km}km'
        )

    @app.route('/health')
    def health():
        """Simple health check endpoint."""
        return {'status': 'ok'}

    # -------------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------------

    @app.errorhandler(404)
    def not_found(e):
        return {'error': 'Not found'}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f'Server error: {e}')
        return {'error': 'Internal server error'}, 500

    return app


def run_development_server():
    """Run the development server."""
    app = create_app()

    port = int(os.environ.get('PORT', 5000))

    logger.info(f'Starting Startlist on http://localhost:{port}')

    app.run(
        host='0.0.0.0',
        port=port,
        debug=config.debug,
        use_reloader=False,  # Disable reloader to prevent duplicate pipeline threads
    )


if __name__ == '__main__':
    run_development_server()
