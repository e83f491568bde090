"""
PositionHistory model - one row per received position report.

Every report is appended here together with its ground/air label. This
is where the tracker looks up the previous confirmed state and where the
launch classifier gets its windowed altitude aggregates from.

Schema optimized for:
- Fast appends (never updated)
- Time-range queries per aircraft
- Retention cleanup
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Float, Integer, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column

from startlist.models.base import Base


class PositionHistory(Base):
    """
    Historical position records with their derived ground/air label.

    Timestamps are stored as naive UTC datetimes; the store converts at
    the boundary.
    """

    __tablename__ = 'positions'

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment='Surrogate key'
    )

    aircraft_id: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment='FLARM/OGN device id'
    )

    # Denormalized callsign for query convenience
    callsign: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
        comment='Callsign at time of observation'
    )

    timestamp: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        comment='Report time (UTC)'
    )

    latitude: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment='Latitude in decimal degrees'
    )

    longitude: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment='Longitude in decimal degrees'
    )

    altitude: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment='Altitude in meters'
    )

    climb_rate: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
        comment='Climb rate in m/s (positive=climb)'
    )

    label: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment='ground / air / ambiguous'
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        comment='Record creation time'
    )

    __table_args__ = (
        # Last confirmed label and windowed aggregates per aircraft
        Index('ix_positions_aircraft_time', 'aircraft_id', 'timestamp'),
        # Retention cleanup
        Index('ix_positions_timestamp', 'timestamp'),
    )

    def __repr__(self) -> str:
        return f'<PositionHistory {self.aircraft_id} {self.label} @ {self.timestamp}>'
