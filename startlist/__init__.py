"""
Startlist Package.

Automatic glider startlist: tracks FLARM beacons relayed by the Open
Glider Network around one airfield, detects starts and landings, and
classifies each start as winch, aerotow or self-launch.

Modules:
    tracking/        state tracker, launch classifier, classification scheduler
    store.py         store contract and SQLAlchemy implementation
    models/          SQLAlchemy ORM models (PositionHistory, FlightLog, Device)
    ingestion/       APRS-IS client, beacon parsing, device registry, pipeline
    api/             REST endpoints for the startlist and system status
    analytics/       NumPy-based daily flight statistics
    observability.py failure reporting sink
    config.py        centralized configuration from environment variables
"""

__version__ = '1.0.0'
