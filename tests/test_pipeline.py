"""
Ingestion pipeline tests: beacon line to tracker.

Run with: pytest tests/test_pipeline.py -v
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
import requests
from sqlalchemy.exc import OperationalError

from startlist.errors import StoreUnavailable
from startlist.ingestion import IngestionPipeline, ReplayClient
from startlist.tracking import ClassificationScheduler, EventKind, LaunchClassifier, StateTracker

from conftest import UnavailableStore

NOW = datetime(2024, 6, 1, 17, 0, 0, tzinfo=timezone.utc)

GROUND_LINE = (
    "FLRDDA5BA>APRS,qAS,LFMX:/165829h4415.41N/00600.03E'342/000/A=005524 "
    "!W52! id0ADDA5BA +000fpm"
)
AIR_LINE = (
    "FLRDDA5BA>APRS,qAS,LFMX:/165900h4425.00N/00600.03E'342/049/A=008000 "
    "!W52! id0ADDA5BA +800fpm"
)
UNTRACKED_LINE = (
    "FLR123456>APRS,qAS,LFMX:/165900h4425.00N/00600.03E'342/049/A=008000 "
    "id06123456 +800fpm"
)
RECEIVER_LINE = (
    "LFMX>APRS,TCPIP*,qAC,GLIDERN1:/165803h4415.07NI00559.87E&/A=001772 "
    "v0.2.7.RPI-GPU CPU:0.8"
)


class FakeDevices:
    """Registry double: only DDA5BA is tracked."""

    def __init__(self):
        self.cleared = 0

    def callsign(self, device_id):
        return {'DDA5BA': ' D-1234 (XY)'}.get(device_id)

    def clear_cache(self):
        self.cleared += 1


class NullClient:

    def connect(self):
        pass

    def lines(self):
        return iter(())

    def close(self):
        pass


@pytest.fixture
def field_config(tracker_config):
    return replace(
        tracker_config,
        home_latitude=44.2569,
        home_longitude=6.0005,
        home_elevation_m=1683.0,
    )


def build_tracker(store, config, clock, sink):
    scheduler = ClassificationScheduler(LaunchClassifier(store, config), clock=clock, sink=sink)
    return StateTracker(store, config, scheduler=scheduler, sink=sink)


@pytest.fixture
def pipeline(memory_store, field_config, clock, sink):
    tracker = build_tracker(memory_store, field_config, clock, sink)
    return IngestionPipeline(NullClient(), tracker, FakeDevices(), sink=sink, clock=lambda: NOW)


class TestHandleLine:

    def test_start_from_beacons(self, pipeline):
        assert pipeline.handle_line(GROUND_LINE) is None

        event = pipeline.handle_line(AIR_LINE)

        assert event.kind is EventKind.START
        assert event.aircraft_id == 'DDA5BA'
        assert event.callsign == ' D-1234 (XY)'
        assert event.time == datetime(2024, 6, 1, 16, 59, 0, tzinfo=timezone.utc)
        assert pipeline.stats['beacons'] == 2

    def test_untracked_device_is_skipped(self, pipeline, memory_store):
        assert pipeline.handle_line(UNTRACKED_LINE) is None

        assert pipeline.stats['untracked'] == 1
        assert memory_store.positions == []

    def test_receiver_beacon_is_ignored(self, pipeline, sink):
        assert pipeline.handle_line(RECEIVER_LINE) is None

        assert pipeline.stats['lines'] == 1
        assert pipeline.stats['beacons'] == 0
        assert sink.stats == {}

    def test_malformed_beacon_is_reported(self, pipeline, sink):
        line = "FLRDDA5BA>APRS,qAS,LFMX:/165829h4415.41N/00600.03E'342/049 id0ADDA5BA"

        assert pipeline.handle_line(line) is None
        assert sink.count('invalid_report') == 1

        # Next beacon still processed
        pipeline.handle_line(GROUND_LINE)
        assert pipeline.stats['beacons'] == 1

    def test_store_failure_is_reported_and_loop_continues(self, field_config, clock, sink):
        store = UnavailableStore(methods=('get_last_confirmed_label',))
        tracker = build_tracker(store, field_config, clock, sink)
        pipeline = IngestionPipeline(NullClient(), tracker, FakeDevices(), clock=lambda: NOW)

        assert pipeline.handle_line(GROUND_LINE) is None
        assert pipeline.handle_line(AIR_LINE) is None

        assert sink.count('store_unavailable') == 2
        assert pipeline.stats['error_count'] == 2


class TestCleanup:

    def test_purges_before_retention_cutoff(self, pipeline):
        cutoffs = []
        pipeline.purge = lambda before: cutoffs.append(before) or 7

        assert pipeline.cleanup(NOW) == 7
        assert cutoffs == [NOW - timedelta(hours=72)]

    def test_purge_failure_is_reported(self, pipeline, sink):
        def failing(before):
            raise StoreUnavailable('disk full')

        pipeline.purge = failing

        assert pipeline.cleanup(NOW) == 0
        assert sink.count('store_unavailable') == 1

    def test_without_purge_nothing_happens(self, pipeline):
        assert pipeline.cleanup(NOW) == 0


class TestReplay:

    def test_replay_file(self, tmp_path, memory_store, field_config, clock, sink):
        capture = tmp_path / 'capture.txt'
        capture.write_text('\n'.join([
            '# aprsc 2.1.4',
            RECEIVER_LINE,
            GROUND_LINE,
            AIR_LINE,
        ]) + '\n')

        tracker = build_tracker(memory_store, field_config, clock, sink)
        pipeline = IngestionPipeline(ReplayClient(str(capture)), tracker, FakeDevices(), clock=lambda: NOW)

        pipeline.run_continuous(reconnect=False)

        assert pipeline.stats['lines'] == 4
        assert pipeline.stats['beacons'] == 2
        assert not pipeline.stats['running']
        assert tracker.stats['starts'] == 1
        assert len(memory_store.flights) == 1


class TestRegistryRefresh:

    def test_refresh_clears_lookup_cache(self, pipeline):
        pipeline.refresh_devices = lambda: 42

        assert pipeline.refresh_registry(NOW) == 42
        assert pipeline.devices.cleared == 1
        assert pipeline.stats['device_refreshes'] == 1

    def test_refreshed_on_interval(self, memory_store, field_config, clock, sink):
        now = [NOW]
        calls = []
        tracker = build_tracker(memory_store, field_config, clock, sink)
        pipeline = IngestionPipeline(
            NullClient(), tracker, FakeDevices(), sink=sink,
            refresh_devices=lambda: calls.append(now[0]) or 10,
            device_refresh_hours=24,
            clock=lambda: now[0],
        )

        # First check always refreshes
        pipeline._maybe_refresh_devices()
        now[0] = NOW + timedelta(hours=23)
        pipeline._maybe_refresh_devices()
        now[0] = NOW + timedelta(hours=24)
        pipeline._maybe_refresh_devices()

        assert calls == [NOW, NOW + timedelta(hours=24)]
        assert pipeline.devices.cleared == 2

    def test_download_failure_keeps_cache(self, pipeline, sink):
        def failing():
            raise requests.ConnectionError('ddb.glidernet.org unreachable')

        pipeline.refresh_devices = failing

        assert pipeline.refresh_registry(NOW) == 0
        assert pipeline.devices.cleared == 0
        assert sink.stats == {}
        # Not retried on every line
        pipeline._maybe_refresh_devices()
        assert pipeline.stats['device_refreshes'] == 0

    def test_store_failure_is_reported(self, pipeline, sink):
        def failing():
            raise OperationalError('INSERT INTO devices', {}, Exception('database is locked'))

        pipeline.refresh_devices = failing

        assert pipeline.refresh_registry(NOW) == 0
        assert pipeline.devices.cleared == 0
        assert sink.count('store_unavailable') == 1

    def test_replay_refreshes_before_first_beacon(self, tmp_path, memory_store, field_config, clock, sink):
        capture = tmp_path / 'capture.txt'
        capture.write_text(GROUND_LINE + '\n')
        order = []

        class OrderedDevices(FakeDevices):
            def callsign(self, device_id):
                order.append('lookup')
                return super().callsign(device_id)

        tracker = build_tracker(memory_store, field_config, clock, sink)
        pipeline = IngestionPipeline(
            ReplayClient(str(capture)), tracker, OrderedDevices(),
            refresh_devices=lambda: order.append('refresh') or 1,
            clock=lambda: NOW,
        )

        pipeline.run_continuous(reconnect=False)

        assert order == ['refresh', 'lookup']
