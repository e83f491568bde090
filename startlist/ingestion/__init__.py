"""
Data ingestion module for Startlist.

Handles the OGN APRS stream, parsing aircraft beacons, resolving device
ids against the glidernet registry and feeding the state tracker.
"""

from startlist.ingestion.aprs_client import AprsClient, ReplayClient
from startlist.ingestion.device_db import DeviceLookup, refresh_device_db
from startlist.ingestion.pipeline import IngestionPipeline

__all__ = ['AprsClient', 'ReplayClient', 'DeviceLookup', 'refresh_device_db', 'IngestionPipeline']
