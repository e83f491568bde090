"""
Domain types for the flight lifecycle tracker.

These are plain dataclasses independent of the database layer; the
store maps them to and from rows.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from startlist.errors import InvalidReport


class GroundAirLabel(str, Enum):
    """
    Instantaneous position class of a single report.

    AMBIGUOUS reports are stored but never drive a transition.
    """
    GROUND = 'ground'
    AIR = 'air'
    AMBIGUOUS = 'ambiguous'

    @property
    def is_confirmed(self) -> bool:
        return self is not GroundAirLabel.AMBIGUOUS


class LaunchType(str, Enum):
    """Launch method of a start."""
    WINCH = 'winch'
    AEROTOW = 'aerotow'
    SELF_LAUNCH = 'self_launch'
    UNKNOWN = 'unknown'


class EventKind(str, Enum):
    START = 'start'
    LANDING = 'landing'


@dataclass(frozen=True)
class PositionReport:
    """A decoded position report for one aircraft."""
    aircraft_id: str
    callsign: str
    timestamp: datetime
    latitude: float
    longitude: float
    altitude_m: float
    climb_rate_mps: float = 0.0

    def validate(self) -> None:
        """Raise InvalidReport if any field is unusable."""
        if not self.aircraft_id:
            raise InvalidReport('report without aircraft id')
        if not isinstance(self.timestamp, datetime):
            raise InvalidReport(f'{self.aircraft_id}: missing timestamp')
        if self.timestamp.tzinfo is None:
            raise InvalidReport(f'{self.aircraft_id}: timestamp must be timezone-aware')
        for name in ('latitude', 'longitude', 'altitude_m', 'climb_rate_mps'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InvalidReport(f'{self.aircraft_id}: invalid {name} {value!r}')
        if not -90.0 <= self.latitude <= 90.0:
            raise InvalidReport(f'{self.aircraft_id}: latitude out of range {self.latitude}')
        if not -180.0 <= self.longitude <= 180.0:
            raise InvalidReport(f'{self.aircraft_id}: longitude out of range {self.longitude}')


@dataclass(frozen=True)
class PositionState:
    """A report together with its derived ground/air label."""
    aircraft_id: str
    callsign: str
    timestamp: datetime
    latitude: float
    longitude: float
    altitude_m: float
    climb_rate_mps: float
    label: GroundAirLabel

    @classmethod
    def from_report(cls, report: PositionReport, label: GroundAirLabel) -> 'PositionState':
        return cls(
            aircraft_id=report.aircraft_id,
            callsign=report.callsign,
            timestamp=report.timestamp,
            latitude=report.latitude,
            longitude=report.longitude,
            altitude_m=report.altitude_m,
            climb_rate_mps=report.climb_rate_mps,
            label=label,
        )


@dataclass(frozen=True)
class FlightRecord:
    """
    One flight of one aircraft.

    start_time is None for a landing whose start was not observed;
    landing_time is None while the flight is open.
    """
    aircraft_id: str
    callsign: str
    start_time: Optional[datetime]
    landing_time: Optional[datetime] = None
    launch_type: LaunchType = LaunchType.UNKNOWN
    tow_partner_id: Optional[str] = None
    landing_inferred: bool = False
    classified_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.landing_time is None

    def closed(self, landing_time: datetime, inferred: bool = False) -> 'FlightRecord':
        return replace(self, landing_time=landing_time, landing_inferred=inferred)

    def classified(
        self,
        launch_type: LaunchType,
        tow_partner_id: Optional[str],
        classified_at: Optional[datetime],
    ) -> 'FlightRecord':
        return replace(
            self,
            launch_type=launch_type,
            tow_partner_id=tow_partner_id,
            classified_at=classified_at,
        )


@dataclass(frozen=True)
class FlightEvent:
    """A confirmed start or landing."""
    kind: EventKind
    aircraft_id: str
    time: datetime
    callsign: str


@dataclass(frozen=True)
class LaunchDecision:
    """Outcome of a launch classification and the evidence behind it."""
    aircraft_id: str
    start_time: datetime
    launch_type: LaunchType
    tow_partner_id: Optional[str] = None
    max_altitude_m: Optional[float] = None
    avg_altitude_m: Optional[float] = None
    partner_avg_altitude_m: Optional[float] = None
