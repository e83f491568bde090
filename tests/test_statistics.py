"""
Daily statistics tests.

Run with: pytest tests/test_statistics.py -v
"""

from startlist.analytics import compute_day_statistics
from startlist.tracking import FlightRecord, LaunchType

from conftest import at


def flight(aircraft_id, start, landing=None, launch_type=LaunchType.UNKNOWN, inferred=False):
    return FlightRecord(
        aircraft_id=aircraft_id,
        callsign='',
        start_time=at(start) if start is not None else None,
        landing_time=at(landing) if landing is not None else None,
        launch_type=launch_type,
        landing_inferred=inferred,
    )


class TestDayStatistics:

    def test_empty_day(self):
        stats = compute_day_statistics([])

        assert stats['starts'] == 0
        assert stats['duration']['count'] == 0
        assert stats['duration']['mean_minutes'] is None
        assert stats['busiest_hour'] is None
        assert stats['by_launch_type'] == {'winch': 0, 'aerotow': 0, 'self_launch': 0, 'unknown': 0}

    def test_mixed_day(self):
        flights = [
            flight('AAAAAA', 0, 600, LaunchType.WINCH),
            flight('BBBBBB', 60, 3660, LaunchType.AEROTOW),
            flight('CCCCCC', 120, None, LaunchType.AEROTOW),
            flight('DDDDDD', None, 900),
            flight('EEEEEE', 3600, 7200, LaunchType.SELF_LAUNCH, inferred=True),
        ]

        stats = compute_day_statistics(flights)

        assert stats['starts'] == 4
        assert stats['landings'] == 3
        assert stats['open'] == 1
        assert stats['aircraft'] == 5
        assert stats['by_launch_type']['aerotow'] == 2
        assert stats['duration']['count'] == 2
        assert stats['duration']['mean_minutes'] == 35.0
        assert stats['duration']['max_minutes'] == 60.0
        assert stats['duration_by_launch_type']['winch']['mean_minutes'] == 10.0
        assert stats['duration_by_launch_type']['self_launch']['count'] == 0
        assert stats['busiest_hour'] == {'hour': 10, 'starts': 3}

