"""
Launch method classification.

Runs once per start, a fixed delay after it, and decides from the
altitude record how the aircraft got airborne. Rules are evaluated in
order, first match wins:

1. Aerotow: another aircraft started within the parallel start window
   and both flew at nearly the same average altitude since. Checked
   first so a long tow climbing past the winch bound stays a tow.
2. Winch: the aircraft gained more height over the field than a
   self-launcher can in the observation delay.
3. Self-launch: everything else.

Without any altitude data the start stays UNKNOWN rather than being
guessed as a self-launch.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional, TYPE_CHECKING

from startlist.config import TrackerConfig
from startlist.tracking.types import LaunchDecision, LaunchType

if TYPE_CHECKING:
    from startlist.store import Store

logger = logging.getLogger(__name__)


class LaunchClassifier:
    """
    Assigns a launch type to a start and writes it to the flight record.

    Classification only reads windows that end at start + delay, so
    running it again for the same start gives the same record.
    """

    def __init__(self, store: 'Store', config: TrackerConfig):
        self.store = store
        self.home_elevation_m = config.home_elevation_m
        self.winch_height_threshold_m = config.winch_height_threshold_m
        self.tow_altitude_diff_threshold_m = config.tow_altitude_diff_threshold_m
        self.delay = timedelta(seconds=config.classification_delay_s)
        self.altitude_window = timedelta(seconds=config.altitude_window_s)
        self.parallel_start_window = timedelta(seconds=config.parallel_start_window_s)

    def decide(self, aircraft_id: str, start_time: datetime) -> LaunchDecision:
        """
        Query the evidence and decide, without writing anything.

        Raises:
            StoreUnavailable: any query failed.
        """
        observed_until = start_time + self.delay
        window_start = observed_until - self.altitude_window

        max_altitude = self.store.get_max_altitude(aircraft_id, start_time, observed_until)
        avg_altitude = self.store.get_avg_altitude(aircraft_id, window_start, observed_until)

        partner_id = self.store.get_parallel_start(
            aircraft_id,
            start_time - self.parallel_start_window,
            start_time + self.parallel_start_window,
        )
        partner_avg: Optional[float] = None
        if partner_id is not None:
            partner_avg = self.store.get_avg_altitude(partner_id, window_start, observed_until)

        decision = LaunchDecision(
            aircraft_id=aircraft_id,
            start_time=start_time,
            launch_type=LaunchType.UNKNOWN,
            max_altitude_m=max_altitude,
            avg_altitude_m=avg_altitude,
            partner_avg_altitude_m=partner_avg,
        )

        if (
            partner_id is not None
            and avg_altitude is not None
            and partner_avg is not None
            and abs(avg_altitude - partner_avg) < self.tow_altitude_diff_threshold_m
        ):
            return replace(decision, launch_type=LaunchType.AEROTOW, tow_partner_id=partner_id)

        if max_altitude is None:
            return decision

        if max_altitude - self.home_elevation_m > self.winch_height_threshold_m:
            return replace(decision, launch_type=LaunchType.WINCH)

        return replace(decision, launch_type=LaunchType.SELF_LAUNCH)

    def classify(self, aircraft_id: str, start_time: datetime) -> LaunchDecision:
        """
        Decide the launch type and store it on the flight record.

        Raises:
            StoreUnavailable: a query or the update failed.
        """
        decision = self.decide(aircraft_id, start_time)

        stored = self.store.update_launch(
            aircraft_id,
            start_time,
            decision.launch_type,
            decision.tow_partner_id,
            classified_at=start_time + self.delay,
        )
        if not stored:
            logger.warning(f'No flight record for {aircraft_id} started {start_time}, launch not stored')
            return decision

        if decision.launch_type is LaunchType.UNKNOWN:
            logger.warning(f'{aircraft_id} started {start_time}: no altitude data, launch unknown')
        else:
            logger.info(
                f'{aircraft_id} started {start_time}: {decision.launch_type.value} '
                f'(max {decision.max_altitude_m}m, avg {decision.avg_altitude_m}m'
                + (f', partner {decision.tow_partner_id})' if decision.tow_partner_id else ')')
            )
        return decision
