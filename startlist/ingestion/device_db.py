"""
OGN device database loader and lookup utilities.

Maps FLARM/OGN device addresses to registration and competition number.
The registry is published by glidernet as CSV:

    #DEVICE_TYPE,DEVICE_ID,AIRCRAFT_MODEL,REGISTRATION,CN,TRACKED,IDENTIFIED
    'F','DD4711','ASK-21','D-1234','XY','Y','Y'

Usage:
    from startlist.ingestion.device_db import DeviceLookup, refresh_device_db

    refresh_device_db(session_factory, url)
    lookup = DeviceLookup(session_factory)
    lookup.callsign('DD4711')  # ' D-1234 (XY)'
"""

import csv
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import requests
from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import sessionmaker

from startlist.models import Device, session_scope

logger = logging.getLogger(__name__)


@dataclass
class DeviceInfo:
    """Registry information for one device."""
    device_id: str
    device_type: Optional[str] = None
    model: Optional[str] = None
    registration: Optional[str] = None
    competition_number: Optional[str] = None
    tracked: bool = True
    identified: bool = True

    @property
    def callsign(self) -> str:
        """Registration and competition number, e.g. ' D-1234 (XY)'."""
        return '%7s (%2s)' % (self.registration or '', self.competition_number or '')


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip().strip("'").strip() or None


def parse_device_csv(lines: Iterable[str]) -> List[DeviceInfo]:
    """
    Parse registry CSV lines.

    Values are wrapped in single quotes and the header row starts with
    '#'. Rows without a device id are skipped.
    """
    lines = list(lines)
    if lines and lines[0].startswith('#'):
        lines[0] = lines[0][1:]

    devices = []
    for row in csv.DictReader(lines):
        device_id = _clean(row.get('DEVICE_ID'))
        if not device_id:
            continue
        devices.append(DeviceInfo(
            device_id=device_id.upper(),
            device_type=_clean(row.get('DEVICE_TYPE')),
            model=_clean(row.get('AIRCRAFT_MODEL')),
            registration=_clean(row.get('REGISTRATION')),
            competition_number=_clean(row.get('CN')),
            tracked=(_clean(row.get('TRACKED')) or 'Y').upper() == 'Y',
            identified=(_clean(row.get('IDENTIFIED')) or 'Y').upper() == 'Y',
        ))
    return devices


def download_device_db(url: str, timeout: int = 30) -> List[DeviceInfo]:
    """
    Download and parse the registry.

    Raises:
        requests.RequestException on network/HTTP errors
    """
    logger.info(f'Downloading device database from {url}')
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()
    devices = parse_device_csv(response.text.splitlines())
    logger.info(f'Received {len(devices)} device records')
    return devices


def store_devices(session_factory: sessionmaker, devices: List[DeviceInfo], batch_size: int = 5000) -> int:
    """Upsert registry records. Returns count of records written."""
    written = 0
    for i in range(0, len(devices), batch_size):
        batch = devices[i:i + batch_size]
        with session_scope(session_factory) as session:
            for info in batch:
                stmt = sqlite_insert(Device).values(
                    device_id=info.device_id,
                    device_type=info.device_type,
                    model=info.model,
                    registration=info.registration,
                    competition_number=info.competition_number,
                    tracked=info.tracked,
                    identified=info.identified,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=['device_id'],
                    set_={
                        'device_type': stmt.excluded.device_type,
                        'model': stmt.excluded.model,
                        'registration': stmt.excluded.registration,
                        'competition_number': stmt.excluded.competition_number,
                        'tracked': stmt.excluded.tracked,
                        'identified': stmt.excluded.identified,
                    }
                )
                session.execute(stmt)
        written += len(batch)
    logger.info(f'Stored {written} device records')
    return written


def refresh_device_db(session_factory: sessionmaker, url: str, timeout: int = 30) -> int:
    """Download the registry and store it. Returns count of records stored."""
    return store_devices(session_factory, download_device_db(url, timeout=timeout))


class DeviceLookup:
    """
    In-memory device lookup with database backing.

    Maintains a cache of recently looked-up devices, including misses,
    since most beacons come from the same few aircraft.
    """

    def __init__(self, session_factory: sessionmaker, cache_size: int = 1000):
        self.session_factory = session_factory
        self._cache: Dict[str, Optional[DeviceInfo]] = {}
        self._cache_size = cache_size
        self._lock = threading.Lock()

    def get(self, device_id: str) -> Optional[DeviceInfo]:
        """Look up a device by address. Returns None if unknown."""
        device_id = device_id.upper()

        with self._lock:
            if device_id in self._cache:
                return self._cache[device_id]

        with self.session_factory() as session:
            device = session.execute(
                select(Device).where(Device.device_id == device_id)
            ).scalar_one_or_none()

            info = None
            if device:
                info = DeviceInfo(
                    device_id=device.device_id,
                    device_type=device.device_type,
                    model=device.model,
                    registration=device.registration,
                    competition_number=device.competition_number,
                    tracked=device.tracked,
                    identified=device.identified,
                )

        with self._lock:
            if len(self._cache) >= self._cache_size:
                # Simple cache eviction: clear oldest half
                keys = list(self._cache.keys())
                for key in keys[:len(keys) // 2]:
                    del self._cache[key]
            self._cache[device_id] = info

        return info

    def callsign(self, device_id: str) -> Optional[str]:
        """
        Display callsign of a device that may be tracked.

        Returns None for unknown devices and for owners who opted out of
        tracking.
        """
        info = self.get(device_id)
        if info is None or not info.tracked:
            return None
        if not info.identified:
            return ''
        return info.callsign

    def clear_cache(self) -> None:
        """Clear the lookup cache (after a registry refresh)."""
        with self._lock:
            self._cache.clear()
