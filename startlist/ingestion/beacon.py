"""
OGN aircraft beacon parsing.

Turns one APRS-IS line relayed by the Open Glider Network into a
PositionReport. Only aircraft beacons are handled (path contains qAS);
receiver status and ground station beacons are ignored by the caller.

Example line:
    FLRDDA5BA>APRS,qAS,LFMX:/165829h4415.41N/00600.03E'342/049/A=005524
    !W52! id0ADDA5BA -454fpm -1.1rot 8.8dB 0e +51.2kHz gps4x5

Field layout:
    FLRDDA5BA        source call (prefix + device address)
    /165829h         time of fix, hhmmss UTC, no date
    4415.41N         latitude, degrees + decimal minutes
    00600.03E        longitude, degrees + decimal minutes
    342/049          course / ground speed (knots)
    /A=005524        altitude in feet
    !W52!            one more decimal for lat and lon minutes
    id0ADDA5BA       flags byte (0A) + 24-bit device address (DDA5BA)
    -454fpm          climb rate in feet per minute
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from startlist.errors import InvalidReport
from startlist.tracking.types import PositionReport

FEET_TO_METERS = 0.3048
FPM_TO_MPS = 0.00508

# A fix time this far in the future belongs to the previous day
FUTURE_TOLERANCE = timedelta(minutes=5)

LINE_RE = re.compile(
    r'^(?P<source>[A-Za-z0-9-]+)>(?P<destination>[A-Za-z0-9-]+),(?P<path>[^:]+):(?P<body>.*)$'
)

POSITION_RE = re.compile(
    r'^[/@]'
    r'(?P<time>\d{6})h'
    r'(?P<lat>\d{4}\.\d{2})(?P<lat_hemisphere>[NS])'
    r'.'
    r'(?P<lon>\d{5}\.\d{2})(?P<lon_hemisphere>[EW])'
    r'.'
    r'(?:(?P<course>\d{3})/(?P<speed>\d{3}))?'
    r'(?:/A=(?P<altitude>-?\d{5,6}))?'
    r'\s*(?P<comment>.*)$'
)

PRECISION_RE = re.compile(r'!W(?P<lat_extra>\d)(?P<lon_extra>\d)!')
DEVICE_RE = re.compile(r'\bid(?P<flags>[0-9A-Fa-f]{2})(?P<address>[0-9A-Fa-f]{6})\b')
CLIMB_RATE_RE = re.compile(r'(?P<fpm>[+-]\d+)fpm')


def is_aircraft_beacon(line: str) -> bool:
    """Aircraft beacons are relayed by a receiver (qAS); others are not tracked."""
    if not line or line.startswith('#'):
        return False
    header = line.split(':', 1)[0]
    return ',qAS' in header


def packet_time(hhmmss: str, now: datetime) -> datetime:
    """
    Combine a date-less fix time with today's UTC date.

    Beacons received just after midnight can carry a fix time from just
    before it; any time more than a few minutes ahead of `now` is taken
    to be from the previous day.
    """
    hour, minute, second = int(hhmmss[0:2]), int(hhmmss[2:4]), int(hhmmss[4:6])
    if hour > 23 or minute > 59 or second > 59:
        raise InvalidReport(f'invalid time {hhmmss}')

    now = now.astimezone(timezone.utc)
    stamp = now.replace(hour=hour, minute=minute, second=second, microsecond=0)
    if stamp - now > FUTURE_TOLERANCE:
        stamp -= timedelta(days=1)
    return stamp


def _degrees(value: str, degree_digits: int, extra: Optional[str], hemisphere: str) -> float:
    degrees = int(value[:degree_digits])
    minutes = float(value[degree_digits:] + (extra or ''))
    result = degrees + minutes / 60.0
    if hemisphere in ('S', 'W'):
        result = -result
    return result


def parse_beacon(line: str, now: Optional[datetime] = None) -> PositionReport:
    """
    Parse an OGN aircraft beacon line.

    The callsign is left empty; the registry fills it in.

    Raises:
        InvalidReport: the line is not a parseable aircraft position.
    """
    now = now or datetime.now(timezone.utc)
    line = line.strip()

    header = LINE_RE.match(line)
    if not header:
        raise InvalidReport(f'not an APRS line: {line[:80]!r}')

    position = POSITION_RE.match(header.group('body'))
    if not position:
        raise InvalidReport(f'no position in beacon from {header.group("source")}')

    if position.group('altitude') is None:
        raise InvalidReport(f'no altitude in beacon from {header.group("source")}')

    comment = position.group('comment')

    device = DEVICE_RE.search(comment)
    if not device:
        raise InvalidReport(f'no device id in beacon from {header.group("source")}')

    precision = PRECISION_RE.search(comment)
    lat_extra = precision.group('lat_extra') if precision else None
    lon_extra = precision.group('lon_extra') if precision else None

    climb = CLIMB_RATE_RE.search(comment)
    climb_rate = int(climb.group('fpm')) * FPM_TO_MPS if climb else 0.0

    return PositionReport(
        aircraft_id=device.group('address').upper(),
        callsign='',
        timestamp=packet_time(position.group('time'), now),
        latitude=_degrees(position.group('lat'), 2, lat_extra, position.group('lat_hemisphere')),
        longitude=_degrees(position.group('lon'), 3, lon_extra, position.group('lon_hemisphere')),
        altitude_m=int(position.group('altitude')) * FEET_TO_METERS,
        climb_rate_mps=climb_rate,
    )
