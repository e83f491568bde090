"""
FlightLog model - the startlist itself.

One row per flight: created when a start is confirmed, closed when the
landing is confirmed, and given its launch type once by the classifier.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Integer, DateTime, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column

from startlist.models.base import Base


class FlightLog(Base):
    """
    A flight from start to landing.

    start_time is null for a landing whose start was never observed.
    landing_time is null while the flight is open; at most one open row
    exists per aircraft.
    """

    __tablename__ = 'flights'

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    aircraft_id: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment='FLARM/OGN device id'
    )

    callsign: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
    )

    start_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment='Confirmed start (UTC)'
    )

    landing_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        comment='Confirmed landing (UTC)'
    )

    landing_inferred: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment='Landing time taken from last contact, not observed'
    )

    launch_type: Mapped[str] = mapped_column(
        String(12),
        default='unknown',
        comment='winch / aerotow / self_launch / unknown'
    )

    tow_partner_id: Mapped[Optional[str]] = mapped_column(
        String(16),
        nullable=True,
        comment='Device id of the tow partner'
    )

    classified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index('ix_flights_aircraft_start', 'aircraft_id', 'start_time'),
        # Parallel start lookups and the daily startlist
        Index('ix_flights_start_time', 'start_time'),
        Index('ix_flights_landing_time', 'landing_time'),
    )

    def __repr__(self) -> str:
        return f'<FlightLog {self.aircraft_id} {self.start_time} - {self.landing_time} {self.launch_type}>'
