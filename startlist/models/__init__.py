"""
Database models for Startlist.

Schema designed for a small time-series workload:
1. Append-only position history with ground/air labels
2. Windowed per-aircraft queries (last label, max/avg altitude)
3. One flight row per start/landing pair
"""

from startlist.models.base import (
    Base,
    create_db_engine,
    create_session_factory,
    init_db,
    session_scope,
)
from startlist.models.device import Device
from startlist.models.flight_log import FlightLog
from startlist.models.position_history import PositionHistory

__all__ = [
    'Base',
    'create_db_engine',
    'create_session_factory',
    'init_db',
    'session_scope',
    'Device',
    'FlightLog',
    'PositionHistory',
]
