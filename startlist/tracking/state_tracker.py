"""
Flight lifecycle state tracker.

Turns the stream of position reports into confirmed starts and landings:

1. Label: each report is GROUND, AIR or AMBIGUOUS (see geofence.py)
2. Lookup: the aircraft's last confirmed label within the lookback window
3. Transition: GROUND/none -> AIR is a start, AIR -> GROUND a landing;
   AIR after a gap with a flight still open continues that flight
4. Record: the position and any flight change are written together
5. Schedule: every start gets one delayed launch classification

Reports of one aircraft are processed one at a time; different aircraft
may be processed from several threads in parallel.
"""

import logging
import threading
from datetime import timedelta
from typing import Callable, Dict, List, Optional, TYPE_CHECKING

from startlist.config import TrackerConfig
from startlist.observability import ErrorSink
from startlist.tracking.geofence import Geofence
from startlist.tracking.launch_classifier import LaunchClassifier
from startlist.tracking.scheduler import ClassificationScheduler
from startlist.tracking.types import (
    EventKind,
    FlightEvent,
    FlightRecord,
    GroundAirLabel,
    PositionReport,
    PositionState,
)

if TYPE_CHECKING:
    from startlist.store import Store

logger = logging.getLogger(__name__)


class StateTracker:
    """
    Ground/air state machine per aircraft.

    The tracker owns the classification scheduler; pass one in to control
    its clock or worker pool (tests do), otherwise one is built from the
    configuration.
    """

    def __init__(
        self,
        store: 'Store',
        config: TrackerConfig,
        scheduler: Optional[ClassificationScheduler] = None,
        sink: Optional[ErrorSink] = None,
    ):
        self.store = store
        self.config = config
        self.geofence = Geofence(config)
        self.sink = sink or ErrorSink()
        self.lookback = timedelta(seconds=config.confirmed_state_lookback_s)

        if scheduler is None:
            scheduler = ClassificationScheduler(
                LaunchClassifier(store, config),
                delay_s=config.classification_delay_s,
                max_retries=config.classification_max_retries,
                retry_delay_s=config.classification_retry_delay_s,
                max_workers=config.classifier_workers,
                sink=self.sink,
            )
        self.scheduler = scheduler

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._stats_lock = threading.Lock()

        self._event_callbacks: List[Callable[[FlightEvent], None]] = []

        # Statistics
        self._processed = 0
        self._starts = 0
        self._landings = 0
        self._ambiguous = 0

    def add_event_callback(self, callback: Callable[[FlightEvent], None]) -> None:
        """Register a callback invoked with every start and landing."""
        self._event_callbacks.append(callback)

    def _lock_for(self, aircraft_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(aircraft_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[aircraft_id] = lock
            return lock

    def classify(self, report: PositionReport) -> GroundAirLabel:
        """Instantaneous ground/air label of a report."""
        return self.geofence.classify(report.latitude, report.longitude, report.altitude_m)

    def process(self, report: PositionReport) -> Optional[FlightEvent]:
        """
        Track one position report.

        Returns the start or landing it confirmed, or None.

        Raises:
            InvalidReport: the report is malformed; nothing is written.
            StoreUnavailable: the store failed; nothing is written and the
                report can be retried.
        """
        report.validate()
        label = self.classify(report)
        position = PositionState.from_report(report, label)

        with self._lock_for(report.aircraft_id):
            event = None
            flights: List[FlightRecord] = []

            if label.is_confirmed:
                last = self.store.get_last_confirmed_label(
                    report.aircraft_id, report.timestamp, self.lookback,
                )
                if label is GroundAirLabel.AIR and last in (GroundAirLabel.GROUND, None):
                    event, flights = self._start(report, last)
                elif label is GroundAirLabel.GROUND and last is GroundAirLabel.AIR:
                    event, flights = self._landing(report)

            self.store.record_transition(position, flights)

        with self._stats_lock:
            self._processed += 1
            if label is GroundAirLabel.AMBIGUOUS:
                self._ambiguous += 1

        if event is not None:
            self._dispatch(event)
        return event

    def _start(self, report: PositionReport, last: Optional[GroundAirLabel]):
        flights = []

        stale = self.store.get_open_flight(report.aircraft_id)
        if stale is not None and last is None:
            # Back in range during a flight that is already recorded
            logger.info(
                f'{report.aircraft_id} back in range, continuing flight started {stale.start_time}'
            )
            return None, []

        if stale is not None:
            # Seen on the ground since, but the landing itself was never seen
            last_contact = self.store.get_last_position_time(report.aircraft_id, report.timestamp)
            landing_time = last_contact or stale.start_time or report.timestamp
            logger.warning(
                f'{report.aircraft_id} started with an open flight from {stale.start_time}, '
                f'closing it at last contact {landing_time}'
            )
            flights.append(stale.closed(landing_time, inferred=True))

        flights.append(FlightRecord(
            aircraft_id=report.aircraft_id,
            callsign=report.callsign,
            start_time=report.timestamp,
        ))

        event = FlightEvent(
            kind=EventKind.START,
            aircraft_id=report.aircraft_id,
            time=report.timestamp,
            callsign=report.callsign,
        )
        return event, flights

    def _landing(self, report: PositionReport):
        flight = self.store.get_open_flight(report.aircraft_id)
        if flight is None:
            logger.info(f'{report.aircraft_id} landed without a recorded start')
            flight = FlightRecord(
                aircraft_id=report.aircraft_id,
                callsign=report.callsign,
                start_time=None,
            )

        event = FlightEvent(
            kind=EventKind.LANDING,
            aircraft_id=report.aircraft_id,
            time=report.timestamp,
            callsign=report.callsign,
        )
        return event, [flight.closed(report.timestamp)]

    def _dispatch(self, event: FlightEvent) -> None:
        if event.kind is EventKind.START:
            with self._stats_lock:
                self._starts += 1
            logger.info(f'*** {event.callsign or event.aircraft_id} started at {event.time}')
            self.scheduler.schedule(event.aircraft_id, event.time)
        else:
            with self._stats_lock:
                self._landings += 1
            logger.info(f'*** {event.callsign or event.aircraft_id} landed at {event.time}')

        for callback in self._event_callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f'Event callback error: {e}')

    @property
    def stats(self) -> dict:
        """
        Get tracking statistics.

        tracked_aircraft counts every aircraft seen since startup; their
        locks are kept for the life of the tracker.
        """
        return {
            'processed': self._processed,
            'starts': self._starts,
            'landings': self._landings,
            'ambiguous': self._ambiguous,
            'tracked_aircraft': len(self._locks),
        }
