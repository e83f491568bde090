"""
Device registry tests.

Run with: pytest tests/test_device_db.py -v
"""

import pytest
import requests

from startlist.ingestion import device_db
from startlist.ingestion.device_db import (
    DeviceInfo,
    DeviceLookup,
    download_device_db,
    parse_device_csv,
    store_devices,
)

REGISTRY_CSV = """#DEVICE_TYPE,DEVICE_ID,AIRCRAFT_MODEL,REGISTRATION,CN,TRACKED,IDENTIFIED
'F','DD4711','ASK-21','D-1234','XY','Y','Y'
'F','dd0815','LS-4','D-5678','','Y','N'
'O','123456','Discus','D-9999','99','N','Y'
'F','','broken','','','Y','Y'
"""


class FakeResponse:

    def __init__(self, text, status_code=200):
        self.text = text
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f'{self.status_code} error')


class TestParseRegistry:

    def test_parse_rows(self):
        devices = parse_device_csv(REGISTRY_CSV.splitlines())

        assert [d.device_id for d in devices] == ['DD4711', 'DD0815', '123456']
        ask = devices[0]
        assert ask.model == 'ASK-21'
        assert ask.registration == 'D-1234'
        assert ask.competition_number == 'XY'
        assert ask.tracked and ask.identified

    def test_flags(self):
        devices = {d.device_id: d for d in parse_device_csv(REGISTRY_CSV.splitlines())}

        assert devices['DD0815'].tracked
        assert not devices['DD0815'].identified
        assert not devices['123456'].tracked
        assert devices['DD0815'].competition_number is None

    def test_callsign_format(self):
        assert DeviceInfo('DD4711', registration='D-1234', competition_number='XY').callsign == ' D-1234 (XY)'
        assert DeviceInfo('DD4711', registration='D-KABC').callsign == ' D-KABC (  )'


class TestDownload:

    def test_download(self, monkeypatch):
        monkeypatch.setattr(device_db.requests, 'get', lambda url, timeout: FakeResponse(REGISTRY_CSV))

        devices = download_device_db('https://ddb.example/download/')

        assert len(devices) == 3

    def test_http_error_propagates(self, monkeypatch):
        monkeypatch.setattr(device_db.requests, 'get', lambda url, timeout: FakeResponse('', 503))

        with pytest.raises(requests.HTTPError):
            download_device_db('https://ddb.example/download/')


class TestDeviceLookup:

    @pytest.fixture
    def lookup(self, session_factory):
        store_devices(session_factory, parse_device_csv(REGISTRY_CSV.splitlines()))
        return DeviceLookup(session_factory)

    def test_tracked_and_identified(self, lookup):
        assert lookup.callsign('DD4711') == ' D-1234 (XY)'
        assert lookup.callsign('dd4711') == ' D-1234 (XY)'

    def test_tracked_not_identified_is_anonymous(self, lookup):
        assert lookup.callsign('DD0815') == ''

    def test_untracked_is_none(self, lookup):
        assert lookup.callsign('123456') is None

    def test_unknown_is_none(self, lookup):
        assert lookup.get('ABCDEF') is None
        assert lookup.callsign('ABCDEF') is None

    def test_refresh_updates_existing(self, lookup, session_factory):
        store_devices(session_factory, [DeviceInfo('DD4711', registration='D-4321', competition_number='AB')])
        lookup.clear_cache()

        assert lookup.callsign('DD4711') == ' D-4321 (AB)'
