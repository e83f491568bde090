"""
HTTP API tests using the Flask test client.

Run with: pytest tests/test_api.py -v
"""

from dataclasses import replace

import pytest

from startlist.app import create_app
from startlist.config import DatabaseConfig, config
from startlist.tracking import FlightRecord, GroundAirLabel, LaunchType, PositionState

from conftest import HOME_LAT, HOME_LON, at


@pytest.fixture
def app(tmp_path, tracker_config):
    app_config = replace(
        config,
        tracker=tracker_config,
        database=DatabaseConfig(url=f'sqlite:///{tmp_path / "api.db"}'),
    )
    app = create_app(start_ingestion=False, app_config=app_config)
    app.config['TESTING'] = True

    store = app.config['STORE']
    store.insert_or_update_flight(FlightRecord(
        aircraft_id='DD4711',
        callsign=' D-1234 (XY)',
        start_time=at(0),
        landing_time=at(1800),
        launch_type=LaunchType.WINCH,
        classified_at=at(20),
    ))
    store.insert_or_update_flight(FlightRecord(
        aircraft_id='DD0815',
        callsign='',
        start_time=at(600),
        launch_type=LaunchType.AEROTOW,
        tow_partner_id='DDAAAA',
    ))
    store.insert_position(PositionState(
        aircraft_id='DD0815',
        callsign='',
        timestamp=at(700),
        latitude=HOME_LAT + 0.05,
        longitude=HOME_LON,
        altitude_m=1200.0,
        climb_rate_mps=2.5,
        label=GroundAirLabel.AIR,
    ))
    return app


@pytest.fixture
def client(app):
    return app.test_client()


class TestFlightsApi:

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json() == {'status': 'ok'}

    def test_startlist_of_day(self, client):
        response = client.get('/api/flights?date=2024-06-01')
        data = response.get_json()

        assert response.status_code == 200
        assert data['count'] == 2
        first, second = data['flights']
        assert first['aircraft_id'] == 'DD4711'
        assert first['callsign'] == 'D-1234 (XY)'
        assert first['launch_type'] == 'winch'
        assert first['duration_minutes'] == 30.0
        assert not first['in_air']
        assert second['tow_partner_id'] == 'DDAAAA'
        assert second['in_air']

    def test_other_day_is_empty(self, client):
        data = client.get('/api/flights?date=2024-06-02').get_json()
        assert data['count'] == 0

    def test_bad_date(self, client):
        assert client.get('/api/flights?date=yesterday').status_code == 400

    def test_active_flights(self, client):
        data = client.get('/api/flights/active').get_json()

        assert data['count'] == 1
        assert data['flights'][0]['aircraft_id'] == 'DD0815'

    def test_aircraft_detail(self, client):
        data = client.get('/api/flights/dd0815').get_json()

        assert data['aircraft_id'] == 'DD0815'
        assert len(data['flights']) == 1
        assert data['positions'][0]['label'] == 'air'
        assert data['positions'][0]['altitude_m'] == 1200.0

    def test_unknown_aircraft(self, client):
        assert client.get('/api/flights/ABCDEF').status_code == 404

    def test_unknown_route(self, client):
        response = client.get('/api/nothing-here')
        assert response.status_code == 404
        assert response.get_json() == {'error': 'Not found'}


class TestMetricsApi:

    def test_status(self, client):
        data = client.get('/api/metrics/status').get_json()

        assert data['database']['connected']
        # No ingestion in tests
        assert data['status'] == 'degraded'
        assert data['ingestion'] == {'running': False}
        assert data['classification']['pending'] == 0
        assert data['airfield']['distance_threshold_km'] == 0.5

    def test_day_statistics(self, client):
        data = client.get('/api/metrics/day?date=2024-06-01').get_json()
        stats = data['statistics']

        assert stats['starts'] == 2
        assert stats['landings'] == 1
        assert stats['open'] == 1
        assert stats['by_launch_type']['winch'] == 1
        assert stats['by_launch_type']['aerotow'] == 1
        assert stats['duration']['mean_minutes'] == 30.0
