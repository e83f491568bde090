"""
Store contract and its SQLAlchemy implementation.

The tracker and the launch classifier only talk to the abstract Store:
windowed queries in, single records out. Every method distinguishes
"nothing recorded" (None) from "the store failed" (StoreUnavailable).

Timestamps cross this boundary as timezone-aware UTC datetimes and are
stored as naive UTC, which both SQLite and PostgreSQL compare correctly.
"""

import abc
import logging
from datetime import date, datetime, timedelta, timezone
from functools import wraps
from typing import Iterable, List, Optional

from sqlalchemy import select, func, delete, update, or_, and_, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from startlist.errors import StoreUnavailable
from startlist.models import FlightLog, PositionHistory, session_scope
from startlist.tracking.types import (
    FlightRecord,
    GroundAirLabel,
    LaunchType,
    PositionState,
)

logger = logging.getLogger(__name__)

CONFIRMED_LABELS = (GroundAirLabel.GROUND.value, GroundAirLabel.AIR.value)


class Store(abc.ABC):
    """Query/command interface the tracking core depends on."""

    @abc.abstractmethod
    def get_last_confirmed_label(
        self,
        aircraft_id: str,
        before_time: datetime,
        lookback: timedelta,
    ) -> Optional[GroundAirLabel]:
        """
        Most recent GROUND/AIR label in (before_time - lookback, before_time].

        None means the aircraft has no confirmed state in the window.
        """

    @abc.abstractmethod
    def get_max_altitude(self, aircraft_id: str, start: datetime, end: datetime) -> Optional[float]:
        """Maximum altitude in [start, end], None without positions."""

    @abc.abstractmethod
    def get_avg_altitude(self, aircraft_id: str, start: datetime, end: datetime) -> Optional[float]:
        """Average altitude in [start, end], None without positions."""

    @abc.abstractmethod
    def get_parallel_start(self, aircraft_id: str, start: datetime, end: datetime) -> Optional[str]:
        """Another aircraft whose start lies in [start, end], nearest to the window center."""

    @abc.abstractmethod
    def get_open_flight(self, aircraft_id: str) -> Optional[FlightRecord]:
        """The flight of this aircraft without landing time, if any."""

    @abc.abstractmethod
    def get_flight(self, aircraft_id: str, start_time: datetime) -> Optional[FlightRecord]:
        """The flight of this aircraft that started at start_time."""

    @abc.abstractmethod
    def get_last_position_time(self, aircraft_id: str, before_time: datetime) -> Optional[datetime]:
        """Timestamp of the latest stored position at or before before_time."""

    @abc.abstractmethod
    def insert_position(self, position: PositionState) -> None:
        """Append a position."""

    @abc.abstractmethod
    def insert_or_update_flight(self, flight: FlightRecord) -> None:
        """
        Insert a flight or update it in place.

        A started flight is matched by (aircraft_id, start_time), a
        landing-only one by (aircraft_id, landing_time).
        """

    def update_launch(
        self,
        aircraft_id: str,
        start_time: datetime,
        launch_type: LaunchType,
        tow_partner_id: Optional[str],
        classified_at: Optional[datetime],
    ) -> bool:
        """
        Set the launch fields of a started flight, leaving the rest alone.

        Returns False when no such flight exists. The default reads and
        rewrites the record; implementations should update in place so a
        concurrent landing is not lost.
        """
        flight = self.get_flight(aircraft_id, start_time)
        if flight is None:
            return False
        self.insert_or_update_flight(flight.classified(launch_type, tow_partner_id, classified_at))
        return True

    def record_transition(self, position: PositionState, flights: Iterable[FlightRecord] = ()) -> None:
        """
        Write a position and the flights its transition touched.

        Implementations should make this atomic; the default does not.
        """
        for flight in flights:
            self.insert_or_update_flight(flight)
        self.insert_position(position)


def _to_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc)


def _flight_from_row(row: FlightLog) -> FlightRecord:
    return FlightRecord(
        aircraft_id=row.aircraft_id,
        callsign=row.callsign or '',
        start_time=_from_db(row.start_time),
        landing_time=_from_db(row.landing_time),
        launch_type=LaunchType(row.launch_type),
        tow_partner_id=row.tow_partner_id,
        landing_inferred=bool(row.landing_inferred),
        classified_at=_from_db(row.classified_at),
    )


def _store_operation(method):
    """Translate database errors into StoreUnavailable."""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f'Store operation {method.__name__} failed: {e}')
            raise StoreUnavailable(f'{method.__name__}: {e}') from e
    return wrapper


class SqlStore(Store):
    """
    Store backed by the relational schema in startlist.models.

    Each call runs in its own session; record_transition writes the
    position and its flights in one transaction.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # -------------------------------------------------------------------------
    # Tracking queries
    # -------------------------------------------------------------------------

    @_store_operation
    def get_last_confirmed_label(
        self,
        aircraft_id: str,
        before_time: datetime,
        lookback: timedelta,
    ) -> Optional[GroundAirLabel]:
        end = _to_db(before_time)
        stmt = (
            select(PositionHistory.label)
            .where(PositionHistory.aircraft_id == aircraft_id)
            .where(PositionHistory.timestamp <= end)
            .where(PositionHistory.timestamp > end - lookback)
            .where(PositionHistory.label.in_(CONFIRMED_LABELS))
            .order_by(PositionHistory.timestamp.desc(), PositionHistory.id.desc())
            .limit(1)
        )
        with self.session_factory() as session:
            label = session.execute(stmt).scalar_one_or_none()
        return GroundAirLabel(label) if label is not None else None

    @_store_operation
    def get_max_altitude(self, aircraft_id: str, start: datetime, end: datetime) -> Optional[float]:
        return self._aggregate_altitude(func.max, aircraft_id, start, end)

    @_store_operation
    def get_avg_altitude(self, aircraft_id: str, start: datetime, end: datetime) -> Optional[float]:
        return self._aggregate_altitude(func.avg, aircraft_id, start, end)

    def _aggregate_altitude(self, aggregate, aircraft_id: str, start: datetime, end: datetime) -> Optional[float]:
        stmt = (
            select(aggregate(PositionHistory.altitude))
            .where(PositionHistory.aircraft_id == aircraft_id)
            .where(PositionHistory.timestamp >= _to_db(start))
            .where(PositionHistory.timestamp <= _to_db(end))
        )
        with self.session_factory() as session:
            value = session.execute(stmt).scalar_one_or_none()
        return float(value) if value is not None else None

    @_store_operation
    def get_parallel_start(self, aircraft_id: str, start: datetime, end: datetime) -> Optional[str]:
        stmt = (
            select(FlightLog.aircraft_id, FlightLog.start_time)
            .where(FlightLog.aircraft_id != aircraft_id)
            .where(FlightLog.start_time >= _to_db(start))
            .where(FlightLog.start_time <= _to_db(end))
        )
        with self.session_factory() as session:
            candidates = session.execute(stmt).all()
        if not candidates:
            return None

        # Nearest to the window center, ties broken by id for repeatable results.
        # Only that one candidate is returned, so a closer start in the window
        # (a winch launch next to the tow) hides the actual tow plane.
        center = _to_db(start) + (_to_db(end) - _to_db(start)) / 2
        best = min(
            candidates,
            key=lambda c: (abs((c.start_time - center).total_seconds()), c.aircraft_id),
        )
        return best.aircraft_id

    @_store_operation
    def get_open_flight(self, aircraft_id: str) -> Optional[FlightRecord]:
        with self.session_factory() as session:
            row = self._open_flight_row(session, aircraft_id)
        return _flight_from_row(row) if row is not None else None

    @_store_operation
    def get_flight(self, aircraft_id: str, start_time: datetime) -> Optional[FlightRecord]:
        stmt = (
            select(FlightLog)
            .where(FlightLog.aircraft_id == aircraft_id)
            .where(FlightLog.start_time == _to_db(start_time))
            .order_by(FlightLog.id.desc())
            .limit(1)
        )
        with self.session_factory() as session:
            row = session.execute(stmt).scalar_one_or_none()
        return _flight_from_row(row) if row is not None else None

    @_store_operation
    def get_last_position_time(self, aircraft_id: str, before_time: datetime) -> Optional[datetime]:
        stmt = (
            select(func.max(PositionHistory.timestamp))
            .where(PositionHistory.aircraft_id == aircraft_id)
            .where(PositionHistory.timestamp <= _to_db(before_time))
        )
        with self.session_factory() as session:
            value = session.execute(stmt).scalar_one_or_none()
        return _from_db(value)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @_store_operation
    def insert_position(self, position: PositionState) -> None:
        with session_scope(self.session_factory) as session:
            session.add(self._position_row(position))

    @_store_operation
    def insert_or_update_flight(self, flight: FlightRecord) -> None:
        with session_scope(self.session_factory) as session:
            self._upsert_flight(session, flight)

    @_store_operation
    def update_launch(
        self,
        aircraft_id: str,
        start_time: datetime,
        launch_type: LaunchType,
        tow_partner_id: Optional[str],
        classified_at: Optional[datetime],
    ) -> bool:
        with session_scope(self.session_factory) as session:
            result = session.execute(
                update(FlightLog)
                .where(FlightLog.aircraft_id == aircraft_id)
                .where(FlightLog.start_time == _to_db(start_time))
                .values(
                    launch_type=launch_type.value,
                    tow_partner_id=tow_partner_id,
                    classified_at=_to_db(classified_at),
                )
            )
            updated = result.rowcount
        return updated > 0

    @_store_operation
    def record_transition(self, position: PositionState, flights: Iterable[FlightRecord] = ()) -> None:
        with session_scope(self.session_factory) as session:
            for flight in flights:
                self._upsert_flight(session, flight)
                # Later flights in the batch must see earlier ones
                session.flush()
            session.add(self._position_row(position))

    @staticmethod
    def _position_row(position: PositionState) -> PositionHistory:
        return PositionHistory(
            aircraft_id=position.aircraft_id,
            callsign=position.callsign or None,
            timestamp=_to_db(position.timestamp),
            latitude=position.latitude,
            longitude=position.longitude,
            altitude=position.altitude_m,
            climb_rate=position.climb_rate_mps,
            label=position.label.value,
        )

    @staticmethod
    def _open_flight_row(session, aircraft_id: str) -> Optional[FlightLog]:
        stmt = (
            select(FlightLog)
            .where(FlightLog.aircraft_id == aircraft_id)
            .where(FlightLog.landing_time.is_(None))
            .order_by(FlightLog.start_time.desc(), FlightLog.id.desc())
            .limit(1)
        )
        return session.execute(stmt).scalar_one_or_none()

    def _upsert_flight(self, session, flight: FlightRecord) -> None:
        row = None
        if flight.start_time is not None:
            row = session.execute(
                select(FlightLog)
                .where(FlightLog.aircraft_id == flight.aircraft_id)
                .where(FlightLog.start_time == _to_db(flight.start_time))
                .order_by(FlightLog.id.desc())
                .limit(1)
            ).scalar_one_or_none()
        elif flight.landing_time is not None:
            row = session.execute(
                select(FlightLog)
                .where(FlightLog.aircraft_id == flight.aircraft_id)
                .where(FlightLog.start_time.is_(None))
                .where(FlightLog.landing_time == _to_db(flight.landing_time))
                .limit(1)
            ).scalar_one_or_none()

        if row is None:
            row = FlightLog(aircraft_id=flight.aircraft_id)
            session.add(row)

        row.callsign = flight.callsign or None
        row.start_time = _to_db(flight.start_time)
        row.landing_time = _to_db(flight.landing_time)
        row.landing_inferred = flight.landing_inferred
        row.launch_type = flight.launch_type.value
        row.tow_partner_id = flight.tow_partner_id
        row.classified_at = _to_db(flight.classified_at)

    # -------------------------------------------------------------------------
    # Read helpers for the API and maintenance
    # -------------------------------------------------------------------------

    @_store_operation
    def list_flights(self, day: date) -> List[FlightRecord]:
        """Flights that started or landed on the given UTC day, by start time."""
        day_start = datetime(day.year, day.month, day.day)
        day_end = day_start + timedelta(days=1)
        stmt = (
            select(FlightLog)
            .where(or_(
                and_(FlightLog.start_time >= day_start, FlightLog.start_time < day_end),
                and_(FlightLog.landing_time >= day_start, FlightLog.landing_time < day_end),
            ))
            .order_by(func.coalesce(FlightLog.start_time, FlightLog.landing_time).asc())
        )
        with self.session_factory() as session:
            rows = session.execute(stmt).scalars().all()
        return [_flight_from_row(row) for row in rows]

    @_store_operation
    def list_open_flights(self) -> List[FlightRecord]:
        stmt = (
            select(FlightLog)
            .where(FlightLog.landing_time.is_(None))
            .order_by(FlightLog.start_time.asc())
        )
        with self.session_factory() as session:
            rows = session.execute(stmt).scalars().all()
        return [_flight_from_row(row) for row in rows]

    @_store_operation
    def flights_for_aircraft(self, aircraft_id: str, limit: int = 50) -> List[FlightRecord]:
        stmt = (
            select(FlightLog)
            .where(FlightLog.aircraft_id == aircraft_id)
            .order_by(func.coalesce(FlightLog.start_time, FlightLog.landing_time).desc())
            .limit(limit)
        )
        with self.session_factory() as session:
            rows = session.execute(stmt).scalars().all()
        return [_flight_from_row(row) for row in rows]

    @_store_operation
    def recent_positions(self, aircraft_id: str, limit: int = 100) -> List[PositionState]:
        """Latest positions of an aircraft, oldest first."""
        stmt = (
            select(PositionHistory)
            .where(PositionHistory.aircraft_id == aircraft_id)
            .order_by(PositionHistory.timestamp.desc(), PositionHistory.id.desc())
            .limit(limit)
        )
        with self.session_factory() as session:
            rows = session.execute(stmt).scalars().all()
        return [
            PositionState(
                aircraft_id=row.aircraft_id,
                callsign=row.callsign or '',
                timestamp=_from_db(row.timestamp),
                latitude=row.latitude,
                longitude=row.longitude,
                altitude_m=row.altitude,
                climb_rate_mps=row.climb_rate or 0.0,
                label=GroundAirLabel(row.label),
            )
            for row in reversed(rows)
        ]

    @_store_operation
    def purge_positions(self, before: datetime) -> int:
        """Delete positions older than the cutoff. Returns count deleted."""
        with session_scope(self.session_factory) as session:
            result = session.execute(
                delete(PositionHistory).where(PositionHistory.timestamp < _to_db(before))
            )
            deleted = result.rowcount
        if deleted:
            logger.info(f'Cleanup: removed {deleted} old position records')
        return deleted

    @_store_operation
    def ping(self) -> None:
        with self.session_factory() as session:
            session.execute(text('SELECT 1'))
