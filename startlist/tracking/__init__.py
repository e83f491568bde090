"""
Flight lifecycle tracking for Startlist.

Turns position reports into confirmed starts and landings and
classifies each start by launch method:
    types.py              PositionReport, FlightRecord, labels and events
    geofence.py           ground/air/ambiguous classification
    state_tracker.py      per-aircraft transition detection
    launch_classifier.py  winch / aerotow / self-launch decision
    scheduler.py          delayed, retryable classification tasks
"""

from startlist.tracking.types import (
    EventKind,
    FlightEvent,
    FlightRecord,
    GroundAirLabel,
    LaunchDecision,
    LaunchType,
    PositionReport,
    PositionState,
)
from startlist.tracking.geofence import Geofence, haversine_distance
from startlist.tracking.launch_classifier import LaunchClassifier
from startlist.tracking.scheduler import ClassificationScheduler, PendingClassification
from startlist.tracking.state_tracker import StateTracker

__all__ = [
    'EventKind',
    'FlightEvent',
    'FlightRecord',
    'GroundAirLabel',
    'LaunchDecision',
    'LaunchType',
    'PositionReport',
    'PositionState',
    'Geofence',
    'haversine_distance',
    'LaunchClassifier',
    'ClassificationScheduler',
    'PendingClassification',
    'StateTracker',
]
