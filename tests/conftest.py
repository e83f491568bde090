"""
Shared fixtures for the Startlist test suite.

Run with: pytest tests/ -v
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from startlist.config import TrackerConfig
from startlist.errors import StoreUnavailable
from startlist.models import create_db_engine, create_session_factory, init_db
from startlist.observability import ErrorSink
from startlist.store import SqlStore, Store
from startlist.tracking import (
    ClassificationScheduler,
    FlightRecord,
    GroundAirLabel,
    LaunchClassifier,
    PositionReport,
    PositionState,
    StateTracker,
)

HOME_LAT = 47.0
HOME_LON = 8.0
HOME_ELEV = 500.0

T0 = datetime(2024, 6, 1, 10, 0, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    """T0 plus an offset in seconds."""
    return T0 + timedelta(seconds=seconds)


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MemoryStore(Store):
    """List-backed Store with the same matching rules as SqlStore."""

    def __init__(self):
        self.positions: List[PositionState] = []
        self.flights: List[FlightRecord] = []
        self._lock = threading.RLock()

    def get_last_confirmed_label(self, aircraft_id, before_time, lookback):
        with self._lock:
            found = None
            for p in self.positions:
                if (
                    p.aircraft_id == aircraft_id
                    and p.label.is_confirmed
                    and before_time - lookback < p.timestamp <= before_time
                    and (found is None or p.timestamp >= found.timestamp)
                ):
                    found = p
            return found.label if found else None

    def _altitudes(self, aircraft_id, start, end):
        return [
            p.altitude_m for p in self.positions
            if p.aircraft_id == aircraft_id and start <= p.timestamp <= end
        ]

    def get_max_altitude(self, aircraft_id, start, end):
        with self._lock:
            values = self._altitudes(aircraft_id, start, end)
            return max(values) if values else None

    def get_avg_altitude(self, aircraft_id, start, end):
        with self._lock:
            values = self._altitudes(aircraft_id, start, end)
            return sum(values) / len(values) if values else None

    def get_parallel_start(self, aircraft_id, start, end):
        with self._lock:
            center = start + (end - start) / 2
            candidates = [
                f for f in self.flights
                if f.aircraft_id != aircraft_id
                and f.start_time is not None
                and start <= f.start_time <= end
            ]
            if not candidates:
                return None
            best = min(
                candidates,
                key=lambda f: (abs((f.start_time - center).total_seconds()), f.aircraft_id),
            )
            return best.aircraft_id

    def get_open_flight(self, aircraft_id):
        with self._lock:
            open_flights = [f for f in self.flights if f.aircraft_id == aircraft_id and f.is_open]
            return open_flights[-1] if open_flights else None

    def get_flight(self, aircraft_id, start_time):
        with self._lock:
            for f in reversed(self.flights):
                if f.aircraft_id == aircraft_id and f.start_time == start_time:
                    return f
            return None

    def get_last_position_time(self, aircraft_id, before_time):
        with self._lock:
            times = [
                p.timestamp for p in self.positions
                if p.aircraft_id == aircraft_id and p.timestamp <= before_time
            ]
            return max(times) if times else None

    def insert_position(self, position):
        with self._lock:
            self.positions.append(position)

    def insert_or_update_flight(self, flight):
        with self._lock:
            for i, existing in enumerate(self.flights):
                if existing.aircraft_id != flight.aircraft_id:
                    continue
                if flight.start_time is not None and existing.start_time == flight.start_time:
                    self.flights[i] = flight
                    return
                if (
                    flight.start_time is None
                    and existing.start_time is None
                    and existing.landing_time == flight.landing_time
                ):
                    self.flights[i] = flight
                    return
            self.flights.append(flight)

    def record_transition(self, position, flights=()):
        with self._lock:
            super().record_transition(position, flights)


class UnavailableStore(MemoryStore):
    """Raises StoreUnavailable from the named methods until `failures` runs out."""

    def __init__(self, methods=('get_last_confirmed_label',), failures: Optional[int] = None):
        super().__init__()
        self.failing_methods = set(methods)
        self.failures = failures

    def _maybe_fail(self, name):
        if name not in self.failing_methods:
            return
        if self.failures is None:
            raise StoreUnavailable(f'{name}: connection refused')
        if self.failures > 0:
            self.failures -= 1
            raise StoreUnavailable(f'{name}: connection refused')

    def get_last_confirmed_label(self, aircraft_id, before_time, lookback):
        self._maybe_fail('get_last_confirmed_label')
        return super().get_last_confirmed_label(aircraft_id, before_time, lookback)

    def get_max_altitude(self, aircraft_id, start, end):
        self._maybe_fail('get_max_altitude')
        return super().get_max_altitude(aircraft_id, start, end)

    def record_transition(self, position, flights=()):
        self._maybe_fail('record_transition')
        super().record_transition(position, flights)


@pytest.fixture
def tracker_config():
    return TrackerConfig(
        home_latitude=HOME_LAT,
        home_longitude=HOME_LON,
        home_elevation_m=HOME_ELEV,
        distance_threshold_km=0.5,
        elevation_threshold_m=20.0,
        winch_height_threshold_m=200.0,
        tow_altitude_diff_threshold_m=20.0,
        classification_delay_s=20.0,
        parallel_start_window_s=30.0,
        altitude_window_s=30.0,
        confirmed_state_lookback_s=300.0,
        classification_max_retries=3,
        classification_retry_delay_s=10.0,
        classifier_workers=2,
    )


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f'sqlite:///{tmp_path / "startlist.db"}')
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlStore(session_factory)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    return ErrorSink()


@pytest.fixture
def scheduler(store, tracker_config, clock, sink):
    return ClassificationScheduler(
        LaunchClassifier(store, tracker_config),
        delay_s=tracker_config.classification_delay_s,
        max_retries=tracker_config.classification_max_retries,
        retry_delay_s=tracker_config.classification_retry_delay_s,
        sink=sink,
        clock=clock,
    )


@pytest.fixture
def tracker(store, tracker_config, scheduler, sink):
    return StateTracker(store, tracker_config, scheduler=scheduler, sink=sink)


@pytest.fixture
def make_report():
    """
    Build reports relative to the home point.

    ground: on the field at field elevation
    air: about 5.5 km north, 300 m above the field
    ambiguous: on the field, 300 m above it
    """
    def factory(aircraft_id='DD4711', seconds=0.0, where='ground', altitude_m=None, callsign=''):
        if where == 'ground':
            lat, alt = HOME_LAT, HOME_ELEV
        elif where == 'air':
            lat, alt = HOME_LAT + 0.05, HOME_ELEV + 300.0
        elif where == 'ambiguous':
            lat, alt = HOME_LAT, HOME_ELEV + 300.0
        else:
            raise ValueError(where)
        return PositionReport(
            aircraft_id=aircraft_id,
            callsign=callsign,
            timestamp=at(seconds),
            latitude=lat,
            longitude=HOME_LON,
            altitude_m=alt if altitude_m is None else altitude_m,
        )
    return factory


@pytest.fixture
def add_position(store):
    """Write a labeled position straight into the SQL store."""
    def factory(aircraft_id, seconds, altitude_m, label=GroundAirLabel.AIR):
        store.insert_position(PositionState(
            aircraft_id=aircraft_id,
            callsign='',
            timestamp=at(seconds),
            latitude=HOME_LAT + 0.05,
            longitude=HOME_LON,
            altitude_m=altitude_m,
            climb_rate_mps=0.0,
            label=label,
        ))
    return factory
