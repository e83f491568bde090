"""
Device model - OGN device database (DDB) entries.

Maps FLARM/OGN device ids to registration and competition number.
This data comes from the glidernet registry and is relatively static.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, DateTime, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from startlist.models.base import Base


class Device(Base):
    """
    Registry entry keyed by device id.

    Fields:
        device_id: 6-character hex address (e.g., 'DD4711')
        device_type: F (FLARM), O (OGN tracker) or I (ICAO)
        model: Aircraft model (e.g., 'ASK-21')
        registration: Registration (e.g., 'D-1234')
        competition_number: Contest id painted on the tail (e.g., 'XY')
        tracked: Owner allows tracking
        identified: Owner allows identification
    """

    __tablename__ = 'devices'

    device_id: Mapped[str] = mapped_column(
        String(6),
        primary_key=True,
        comment='Device hex address (uppercase)'
    )

    device_type: Mapped[Optional[str]] = mapped_column(String(1), nullable=True)

    model: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    registration: Mapped[Optional[str]] = mapped_column(
        String(16),
        nullable=True,
        index=True,
    )

    competition_number: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)

    tracked: Mapped[bool] = mapped_column(Boolean, default=True)

    identified: Mapped[bool] = mapped_column(Boolean, default=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f'<Device {self.device_id} {self.registration or "?"} {self.model or "?"}>'
