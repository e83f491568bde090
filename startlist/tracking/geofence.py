"""
Airfield geofence and altitude band tests.

A report counts as on the ground only when it is both close to the field
and close to field elevation. When the two tests disagree the report is
ambiguous: FLARM altitude is sometimes off (e.g. while the device boots),
and a single stale field must not fake a start or a landing.
"""

import math

from startlist.config import TrackerConfig
from startlist.tracking.types import GroundAirLabel

EARTH_RADIUS_KM = 6371.0


def haversine_distance(
    lat1: float, lon1: float,
    lat2: float, lon2: float
) -> float:
    """
    Calculate great-circle distance between two points in kilometers.

    Uses the Haversine formula for accuracy over short to medium distances.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) *
        math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


class Geofence:
    """Ground/air classification around the configured home point."""

    def __init__(self, config: TrackerConfig):
        self.home_latitude = config.home_latitude
        self.home_longitude = config.home_longitude
        self.home_elevation_m = config.home_elevation_m
        self.distance_threshold_km = config.distance_threshold_km
        self.elevation_threshold_m = config.elevation_threshold_m

    def distance_km(self, latitude: float, longitude: float) -> float:
        return haversine_distance(
            self.home_latitude, self.home_longitude,
            latitude, longitude,
        )

    def near_home(self, latitude: float, longitude: float) -> bool:
        return self.distance_km(latitude, longitude) <= self.distance_threshold_km

    def altitude_in_band(self, altitude_m: float) -> bool:
        return abs(altitude_m - self.home_elevation_m) <= self.elevation_threshold_m

    def classify(self, latitude: float, longitude: float, altitude_m: float) -> GroundAirLabel:
        near = self.near_home(latitude, longitude)
        low = self.altitude_in_band(altitude_m)

        if near and low:
            return GroundAirLabel.GROUND
        if not near and not low:
            return GroundAirLabel.AIR
        return GroundAirLabel.AMBIGUOUS
