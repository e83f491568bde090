"""
Configuration management for Startlist.

Loads settings from environment variables with sensible defaults.
All configuration is centralized here to avoid magic numbers scattered
throughout the codebase. The tracker thresholds live in one frozen
TrackerConfig that is passed explicitly to the tracking components.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    return float(value)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    return int(value)


@dataclass(frozen=True)
class TrackerConfig:
    """
    Airfield reference point and flight detection thresholds.

    Fields:
        home_latitude: Airfield reference latitude in decimal degrees.
        home_longitude: Airfield reference longitude in decimal degrees.
        home_elevation_m: Airfield elevation in meters (same datum as the
            reported altitudes).
        distance_threshold_km: Radius of the airfield geofence in km. A report
            inside this radius satisfies the position half of the ground test.
        elevation_threshold_m: Half-width of the ground altitude band in
            meters. FLARM altitude is noisy, so the band must tolerate a few
            tens of meters.
        winch_height_threshold_m: Height gain above the field (meters) within
            the observation delay beyond which a lone start counts as a winch
            launch. Cable length bounds what a winch can deliver, but no
            self-launcher climbs this fast.
        tow_altitude_diff_threshold_m: Two aircraft starting together whose
            average altitudes differ by less than this (meters) are a glider
            and its tow plane.
        classification_delay_s: Seconds between a start and its launch
            classification. Long enough to gather height gain, short enough
            that a tow pair is still together.
        parallel_start_window_s: Two starts within this many seconds of each
            other are parallel start candidates.
        altitude_window_s: Length in seconds of the trailing window used for
            average altitudes.
        confirmed_state_lookback_s: How far back (seconds) the previous
            confirmed GROUND/AIR label is searched for.
        classification_max_retries: Retries of a classification after the
            store was unavailable.
        classification_retry_delay_s: Seconds between those retries.
        classifier_workers: Worker threads running classifications.
    """
    home_latitude: float = _env_float('AF_LAT', 0.0)
    home_longitude: float = _env_float('AF_LNG', 0.0)
    home_elevation_m: float = _env_float('AF_ELEVATION', 0.0)

    distance_threshold_km: float = _env_float('DISTANCE_THRESHOLD_KM', 0.5)
    elevation_threshold_m: float = _env_float('ELEVATION_THRESHOLD_M', 20.0)

    winch_height_threshold_m: float = _env_float('WINCH_HEIGHT_THRESHOLD_M', 200.0)
    tow_altitude_diff_threshold_m: float = _env_float('TOW_ALTITUDE_DIFF_THRESHOLD_M', 20.0)

    classification_delay_s: float = _env_float('CLASSIFICATION_DELAY_S', 20.0)
    parallel_start_window_s: float = _env_float('PARALLEL_START_WINDOW_S', 30.0)
    altitude_window_s: float = _env_float('ALTITUDE_WINDOW_S', 30.0)
    confirmed_state_lookback_s: float = _env_float('CONFIRMED_STATE_LOOKBACK_S', 300.0)

    classification_max_retries: int = _env_int('CLASSIFICATION_MAX_RETRIES', 3)
    classification_retry_delay_s: float = _env_float('CLASSIFICATION_RETRY_DELAY_S', 10.0)
    classifier_workers: int = _env_int('CLASSIFIER_WORKERS', 4)


@dataclass(frozen=True)
class DatabaseConfig:
    """Database configuration."""
    url: str = os.getenv('DATABASE_URL', 'sqlite:///startlist.db')

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith('sqlite')


@dataclass(frozen=True)
class AprsConfig:
    """APRS-IS (Open Glider Network) connection settings."""
    host: str = os.getenv('APRS_HOST', 'aprs.glidernet.org')
    port: int = _env_int('APRS_PORT', 14580)
    user: str = os.getenv('APRS_USER', 'startlist')
    radius_km: float = _env_float('APRS_RADIUS', 20.0)
    keepalive_seconds: int = 30
    reconnect_seconds: int = 5
    # Replay a captured APRS stream instead of connecting
    replay_file: Optional[str] = os.getenv('APRS_REPLAY_FILE') or None


@dataclass(frozen=True)
class DeviceDbConfig:
    """OGN device database (registry) settings."""
    url: str = os.getenv('DDB_URL', 'https://ddb.glidernet.org/download/')
    refresh_hours: int = _env_int('DDB_REFRESH_HOURS', 24)
    timeout_seconds: int = 30


@dataclass(frozen=True)
class RetentionConfig:
    """Data retention policy for raw positions."""
    hours: int = _env_int('RETENTION_HOURS', 72)
    cleanup_interval_minutes: int = 30


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    tracker: TrackerConfig
    database: DatabaseConfig
    aprs: AprsConfig
    ddb: DeviceDbConfig
    retention: RetentionConfig

    # Flask settings
    secret_key: str
    debug: bool


def load_config() -> AppConfig:
    """Load and validate all configuration."""
    return AppConfig(
        tracker=TrackerConfig(),
        database=DatabaseConfig(),
        aprs=AprsConfig(),
        ddb=DeviceDbConfig(),
        retention=RetentionConfig(),
        secret_key=os.getenv('SECRET_KEY', 'dev-key-change-in-prod'),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    )


# Singleton instance
config = load_config()
