"""
Metrics and status API endpoints.

Provides endpoints for:
- GET /api/metrics/status - System status and health
- GET /api/metrics/day - Statistics of one day's startlist
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, jsonify, request, current_app

from startlist.analytics import compute_day_statistics
from startlist.api.flights import parse_day
from startlist.errors import StoreUnavailable

logger = logging.getLogger(__name__)

metrics_bp = Blueprint('metrics', __name__, url_prefix='/api/metrics')


@metrics_bp.route('/status', methods=['GET'])
def get_system_status():
    """
    Get system health and status information.

    Returns:
    - Database connectivity
    - Ingestion pipeline status
    - Tracker and classification scheduler statistics
    - Failure counters
    - Airfield configuration
    """
    start_time = time.perf_counter()

    store = current_app.config['STORE']
    tracker = current_app.config['TRACKER']
    pipeline = current_app.config.get('INGESTION_PIPELINE')
    pipeline_stats = pipeline.stats if pipeline else {'running': False}

    db_ok = True
    try:
        store.ping()
    except StoreUnavailable as e:
        db_ok = False
        logger.error(f'Database health check failed: {e}')

    settings = tracker.config

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'status': 'healthy' if (db_ok and pipeline_stats.get('running')) else 'degraded',
        'database': {
            'connected': db_ok,
        },
        'ingestion': pipeline_stats,
        'tracker': tracker.stats,
        'classification': tracker.scheduler.stats,
        'failures': tracker.sink.stats,
        'airfield': {
            'latitude': settings.home_latitude,
            'longitude': settings.home_longitude,
            'elevation_m': settings.home_elevation_m,
            'distance_threshold_km': settings.distance_threshold_km,
        },
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })


@metrics_bp.route('/day', methods=['GET'])
def get_day_metrics():
    """
    Aggregate statistics for one day's startlist.

    Query parameters:
    - date: YYYY-MM-DD, UTC day (default today)
    """
    start_time = time.perf_counter()

    try:
        day = parse_day(request.args.get('date'))
    except ValueError:
        return jsonify({'error': 'date must be YYYY-MM-DD'}), 400

    store = current_app.config['STORE']
    try:
        flights = store.list_flights(day)
    except StoreUnavailable as e:
        logger.error(f'Day statistics query failed: {e}')
        return jsonify({'error': 'Store unavailable'}), 503

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'date': day.isoformat(),
        'statistics': compute_day_statistics(flights),
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })
