"""
Daily flight statistics using NumPy.

Summarizes one day's startlist: starts and landings, launch method mix,
flight durations and the busiest hour for launches.
"""

import logging
from collections import Counter
from typing import List

import numpy as np

from startlist.tracking.types import FlightRecord, LaunchType

logger = logging.getLogger(__name__)


def _duration_stats(durations: np.ndarray) -> dict:
    if durations.size == 0:
        return {
            'count': 0,
            'mean_minutes': None,
            'median_minutes': None,
            'max_minutes': None,
            'total_hours': 0.0,
        }
    minutes = durations / 60.0
    return {
        'count': int(durations.size),
        'mean_minutes': round(float(np.mean(minutes)), 1),
        'median_minutes': round(float(np.median(minutes)), 1),
        'max_minutes': round(float(np.max(minutes)), 1),
        'total_hours': round(float(np.sum(minutes)) / 60.0, 2),
    }


def compute_day_statistics(flights: List[FlightRecord]) -> dict:
    """
    Compute aggregate statistics for a list of flights.

    Durations only count flights with both an observed start and an
    observed landing; inferred landings are excluded.
    """
    starts = [f for f in flights if f.start_time is not None]
    landings = [f for f in flights if f.landing_time is not None and not f.landing_inferred]

    by_launch = Counter(f.launch_type.value for f in starts)
    for launch_type in LaunchType:
        by_launch.setdefault(launch_type.value, 0)

    durations = np.array([
        (f.landing_time - f.start_time).total_seconds()
        for f in flights
        if f.start_time is not None and f.landing_time is not None and not f.landing_inferred
    ], dtype=np.float64)

    by_launch_duration = {}
    for launch_type in LaunchType:
        subset = np.array([
            (f.landing_time - f.start_time).total_seconds()
            for f in flights
            if f.launch_type is launch_type
            and f.start_time is not None
            and f.landing_time is not None
            and not f.landing_inferred
        ], dtype=np.float64)
        by_launch_duration[launch_type.value] = _duration_stats(subset)

    busiest_hour = None
    if starts:
        hours = np.array([f.start_time.hour for f in starts], dtype=np.int64)
        counts = np.bincount(hours, minlength=24)
        busiest_hour = {'hour': int(np.argmax(counts)), 'starts': int(np.max(counts))}

    return {
        'starts': len(starts),
        'landings': len(landings),
        'open': sum(1 for f in flights if f.is_open),
        'aircraft': len({f.aircraft_id for f in flights}),
        'by_launch_type': dict(by_launch),
        'duration': _duration_stats(durations),
        'duration_by_launch_type': by_launch_duration,
        'busiest_hour': busiest_hour,
    }
