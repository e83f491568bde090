"""
Ingestion pipeline - orchestrates data flow from OGN to the tracker.

Pipeline stages per received line:
1. Filter: only aircraft beacons are considered
2. Parse: beacon line -> PositionReport
3. Identify: device registry gives the callsign (untracked devices dropped)
4. Track: the state tracker stores the position and detects starts/landings
5. Cleanup: old positions are removed per retention policy
6. Registry: the device registry is downloaded again every few hours

Malformed beacons and store failures are reported to the error sink and
never stop the loop: one bad report must not end tracking for the rest.
"""

import logging
import threading
import time
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import requests
from sqlalchemy.exc import SQLAlchemyError

from startlist.errors import InvalidReport, StoreUnavailable
from startlist.ingestion.beacon import is_aircraft_beacon, parse_beacon
from startlist.ingestion.device_db import DeviceLookup
from startlist.observability import ErrorSink
from startlist.tracking import FlightEvent, StateTracker

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """
    Manages the beacon ingestion lifecycle.

    Coordinates the APRS client, the device registry and the tracker.
    Can run as a background thread for continuous ingestion.
    """

    def __init__(
        self,
        client,
        tracker: StateTracker,
        devices: DeviceLookup,
        sink: Optional[ErrorSink] = None,
        retention_hours: int = 72,
        cleanup_interval_minutes: int = 30,
        reconnect_seconds: int = 5,
        purge: Optional[Callable[[datetime], int]] = None,
        refresh_devices: Optional[Callable[[], int]] = None,
        device_refresh_hours: int = 24,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        """
        Initialize the ingestion pipeline.

        Args:
            client: AprsClient or ReplayClient
            tracker: state tracker receiving the reports
            devices: registry lookup for callsigns
            sink: failure reporting (tracker's sink if None)
            retention_hours: positions older than this are purged
            cleanup_interval_minutes: how often to purge
            reconnect_seconds: pause before reconnecting a live stream
            purge: callable deleting positions before a cutoff
            refresh_devices: callable reloading the device registry, returns
                the number of records stored
            device_refresh_hours: how often to reload the registry
            clock: current UTC time, used for date-less beacon times
        """
        self.client = client
        self.tracker = tracker
        self.devices = devices
        self.sink = sink or tracker.sink
        self.retention = timedelta(hours=retention_hours)
        self.cleanup_interval = timedelta(minutes=cleanup_interval_minutes)
        self.reconnect_seconds = reconnect_seconds
        self.purge = purge
        self.refresh_devices = refresh_devices
        self.device_refresh_interval = timedelta(hours=device_refresh_hours)
        self.clock = clock

        # State tracking
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._last_cleanup: Optional[datetime] = None
        self._last_device_refresh: Optional[datetime] = None
        self._device_refresh_count = 0
        self._line_count = 0
        self._beacon_count = 0
        self._untracked_count = 0
        self._error_count = 0
        self._last_beacon_time: float = 0

    def handle_line(self, line: str) -> Optional[FlightEvent]:
        """
        Process one line from the stream.

        Returns the start or landing it caused, if any.
        """
        self._line_count += 1
        if not is_aircraft_beacon(line):
            return None

        try:
            report = parse_beacon(line, now=self.clock())
        except InvalidReport as e:
            self._error_count += 1
            self.sink.report('invalid_report', str(e))
            return None

        callsign = self.devices.callsign(report.aircraft_id)
        if callsign is None:
            # Unknown device or owner opted out of tracking
            self._untracked_count += 1
            return None
        report = replace(report, callsign=callsign)

        self._beacon_count += 1
        self._last_beacon_time = time.time()

        try:
            return self.tracker.process(report)
        except InvalidReport as e:
            self._error_count += 1
            self.sink.report('invalid_report', str(e), aircraft_id=report.aircraft_id)
        except StoreUnavailable as e:
            self._error_count += 1
            self.sink.report('store_unavailable', f'report at {report.timestamp} dropped: {e}',
                             aircraft_id=report.aircraft_id)
        return None

    def cleanup(self, now: Optional[datetime] = None) -> int:
        """Purge positions older than the retention period. Returns count deleted."""
        if self.purge is None:
            return 0
        now = now or self.clock()
        self._last_cleanup = now
        try:
            return self.purge(now - self.retention)
        except StoreUnavailable as e:
            self.sink.report('store_unavailable', f'retention cleanup failed: {e}')
            return 0

    def _maybe_cleanup(self) -> None:
        now = self.clock()
        if self._last_cleanup is None or now - self._last_cleanup >= self.cleanup_interval:
            self.cleanup(now)

    def refresh_registry(self, now: Optional[datetime] = None) -> int:
        """
        Reload the device registry and drop cached lookups.

        On failure the cached registry stays in use until the next
        refresh. Returns count of records stored.
        """
        if self.refresh_devices is None:
            return 0
        self._last_device_refresh = now or self.clock()
        try:
            count = self.refresh_devices()
        except requests.RequestException as e:
            logger.warning(f'Device database download failed, keeping current registry: {e}')
            return 0
        except SQLAlchemyError as e:
            self.sink.report('store_unavailable', f'device registry refresh failed: {e}')
            return 0

        self.devices.clear_cache()
        self._device_refresh_count += 1
        logger.info(f'Device registry refreshed: {count} records')
        return count

    def _maybe_refresh_devices(self) -> None:
        now = self.clock()
        if (
            self._last_device_refresh is None
            or now - self._last_device_refresh >= self.device_refresh_interval
        ):
            self.refresh_registry(now)

    def run_once(self) -> None:
        """Connect and consume the stream until it ends."""
        self._maybe_refresh_devices()
        self.client.connect()
        try:
            for line in self.client.lines():
                if not self._running:
                    break
                self.handle_line(line)
                self._maybe_cleanup()
                self._maybe_refresh_devices()
        finally:
            self.client.close()

    def run_continuous(self, reconnect: bool = True) -> None:
        """
        Run ingestion until stopped, reconnecting after a dropped stream.

        This method blocks - use start_background() for non-blocking.
        """
        self._running = True
        logger.info('Starting continuous ingestion')

        while self._running:
            try:
                self.run_once()
            except OSError as e:
                self._error_count += 1
                logger.error(f'Ingestion connection error: {e}')

            if not reconnect:
                break
            if self._running:
                logger.info(f'Reconnecting in {self.reconnect_seconds}s')
                time.sleep(self.reconnect_seconds)

        self._running = False
        logger.info('Ingestion stopped')

    def start_background(self, reconnect: bool = True) -> None:
        """Start ingestion in background thread."""
        if self._thread and self._thread.is_alive():
            logger.warning('Ingestion already running')
            return

        self._running = True
        self._thread = threading.Thread(
            target=self.run_continuous,
            args=(reconnect,),
            name='ingestion',
            daemon=True,
        )
        self._thread.start()
        logger.info('Background ingestion started')

    def stop(self) -> None:
        """Stop background ingestion."""
        self._running = False
        self.client.close()
        if self._thread:
            self._thread.join(timeout=5)
        logger.info('Ingestion stopped')

    @property
    def stats(self) -> dict:
        """Get ingestion statistics."""
        return {
            'lines': self._line_count,
            'beacons': self._beacon_count,
            'untracked': self._untracked_count,
            'error_count': self._error_count,
            'device_refreshes': self._device_refresh_count,
            'last_beacon_time': self._last_beacon_time,
            'running': self._running,
        }
