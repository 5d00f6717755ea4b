# routing/services.py
import math
import logging
from dataclasses import dataclass

from geopy.distance import geodesic

from rides.conf import dispatch_setting

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6371000


@dataclass(frozen=True, order=True)
class Coordinate:
    lat: float
    lng: float

    def __post_init__(self):
        if self.lat is None or self.lng is None:
            raise ValueError('Coordinate requires both latitude and longitude')
        if not -90 <= self.lat <= 90:
            raise ValueError(f'Latitude {self.lat} out of range [-90, 90]')
        if not -180 <= self.lng <= 180:
            raise ValueError(f'Longitude {self.lng} out of range [-180, 180]')

    @classmethod
    def of(cls, lat, lng):
        return cls(float(lat), float(lng))


def haversine_distance(a, b):
    """Great-circle distance in meters on a sphere of radius 6,371 km"""
    lat1, lon1, lat2, lon2 = map(math.radians, [a.lat, a.lng, b.lat, b.lng])

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_METERS * c


def geodesic_distance(a, b):
    """Ellipsoidal (WGS-84) distance in meters"""
    return geodesic((a.lat, a.lng), (b.lat, b.lng)).meters


class DistanceEstimator:
    """
    Pickup-to-driver distance with two interchangeable strategies.

    The geodesic strategy degrades to haversine on any failure; the caller
    always gets a number.
    """
    STRATEGY_GEODESIC = 'geodesic'
    STRATEGY_HAVERSINE = 'haversine'

    def __init__(self, strategy=None):
        self.strategy = strategy or dispatch_setting('DISTANCE_STRATEGY')
        if self.strategy not in (self.STRATEGY_GEODESIC, self.STRATEGY_HAVERSINE):
            raise ValueError(f'Unknown distance strategy: {self.strategy}')

    def distance(self, a, b):
        if a == b:
            return 0.0

        # Canonical order keeps distance(a, b) == distance(b, a) bit for bit
        first, second = (a, b) if a <= b else (b, a)

        if self.strategy == self.STRATEGY_GEODESIC:
            try:
                return abs(geodesic_distance(first, second))
            except (ValueError, TypeError, ArithmeticError) as e:
                logger.warning(
                    f"Geodesic distance unavailable ({e}); falling back to haversine "
                    f"for {first} -> {second}"
                )

        return haversine_distance(first, second)
