"""
Startlist API endpoints.

Provides endpoints for:
- GET /api/flights - The startlist of one day
- GET /api/flights/active - Flights currently in the air
- GET /api/flights/<aircraft_id> - Flights and recent positions of one aircraft
"""

import logging
import time
from datetime import date, datetime, timezone
from typing import Optional

from flask import Blueprint, jsonify, request, current_app

from startlist.errors import StoreUnavailable
from startlist.tracking.types import FlightRecord, PositionState

logger = logging.getLogger(__name__)

flights_bp = Blueprint('flights', __name__, url_prefix='/api/flights')


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def flight_to_dict(flight: FlightRecord) -> dict:
    """Convert a flight to a JSON-serializable dict."""
    duration_minutes = None
    if flight.start_time and flight.landing_time:
        duration_minutes = round((flight.landing_time - flight.start_time).total_seconds() / 60.0, 1)

    return {
        'aircraft_id': flight.aircraft_id,
        'callsign': flight.callsign.strip() or flight.aircraft_id,
        'start_time': _isoformat(flight.start_time),
        'landing_time': _isoformat(flight.landing_time),
        'landing_inferred': flight.landing_inferred,
        'duration_minutes': duration_minutes,
        'launch_type': flight.launch_type.value,
        'tow_partner_id': flight.tow_partner_id,
        'in_air': flight.is_open,
    }


def position_to_dict(position: PositionState) -> dict:
    return {
        'timestamp': _isoformat(position.timestamp),
        'latitude': position.latitude,
        'longitude': position.longitude,
        'altitude_m': position.altitude_m,
        'climb_rate_mps': position.climb_rate_mps,
        'label': position.label.value,
    }


def parse_day(value: Optional[str]) -> date:
    """Parse a YYYY-MM-DD query parameter, defaulting to today (UTC)."""
    if not value:
        return datetime.now(timezone.utc).date()
    return date.fromisoformat(value)


@flights_bp.route('', methods=['GET'])
def list_flights():
    """
    The startlist of one day.

    Query parameters:
    - date: YYYY-MM-DD, UTC day (default today)

    Response includes query timing for latency awareness.
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
        logger.error(f'Startlist query failed: {e}')
        return jsonify({'error': 'Store unavailable'}), 503

    query_time_ms = (time.perf_counter() - start_time) * 1000

    return jsonify({
        'date': day.isoformat(),
        'flights': [flight_to_dict(f) for f in flights],
        'count': len(flights),
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'query_time_ms': round(query_time_ms, 2),
    })


@flights_bp.route('/active', methods=['GET'])
def active_flights():
    """Flights with a start and no landing yet."""
    store = current_app.config['STORE']
    try:
        flights = store.list_open_flights()
    except StoreUnavailable as e:
        logger.error(f'Active flights query failed: {e}')
        return jsonify({'error': 'Store unavailable'}), 503

    return jsonify({
        'flights': [flight_to_dict(f) for f in flights],
        'count': len(flights),
        'timestamp': datetime.now(timezone.utc).isoformat(),
    })


@flights_bp.route('/<aircraft_id>', methods=['GET'])
def get_aircraft(aircraft_id: str):
    """
    Flights and recent positions of one aircraft.

    Query parameters:
    - positions: int, number of recent positions (default 50, max 500)
    """
    aircraft_id = aircraft_id.upper()
    try:
        limit = min(int(request.args.get('positions', 50)), 500)
    except ValueError:
        return jsonify({'error': 'positions must be an integer'}), 400

    store = current_app.config['STORE']
    try:
        flights = store.flights_for_aircraft(aircraft_id)
        positions = store.recent_positions(aircraft_id, limit=limit)
    except StoreUnavailable as e:
        logger.error(f'Aircraft query failed: {e}')
        return jsonify({'error': 'Store unavailable'}), 503

    if not flights and not positions:
        return jsonify({'error': 'Aircraft not found', 'aircraft_id': aircraft_id}), 404

    return jsonify({
        'aircraft_id': aircraft_id,
        'flights': [flight_to_dict(f) for f in flights],
        'positions': [position_to_dict(p) for p in positions],
        'timestamp': datetime.now(timezone.utc).isoformat(),
    })
