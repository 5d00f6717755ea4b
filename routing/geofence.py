# routing/geofence.py
"""
Point-in-zone resolution per station.

Each worker process keeps one read-only snapshot of a station's zone
polygons, tagged with a version held in the shared Django cache. Zone edits
bump the version, so every process rebuilds on its next lookup.

Tie rule: a point on a zone boundary (exterior or hole ring) is inside.
Overlapping zones resolve to the first zone in creation order.
"""
import logging
import math
import uuid

from django.core.cache import cache
from shapely import STRtree
from shapely.errors import GEOSException
from shapely.geometry import Point, Polygon

from rides.conf import dispatch_setting
from rides.models import Zone

logger = logging.getLogger(__name__)

# Degrees; points this close to a ring count as on the boundary (under 1 mm)
BOUNDARY_EPSILON = 1e-9


class GeofenceUnavailable(Exception):
    """The accelerated spatial path cannot answer for this station."""


def polygon_rings(geometry):
    """
    Return the rings of a GeoJSON Polygon as lists of (lng, lat) tuples,
    each ring closed. Raises ValueError on malformed input.
    """
    if not isinstance(geometry, dict) or geometry.get('type') != 'Polygon':
        raise ValueError('Zone geometry must be a GeoJSON Polygon')

    coordinates = geometry.get('coordinates')
    if not coordinates:
        raise ValueError('Polygon has no rings')

    rings = []
    for raw_ring in coordinates:
        ring = [(float(position[0]), float(position[1])) for position in raw_ring]
        if ring and ring[0] != ring[-1]:
            ring.append(ring[0])
        if len(set(ring)) < 3:
            raise ValueError('Polygon ring needs at least 3 distinct points')
        rings.append(ring)
    return rings


def _segment_distance(x, y, ax, ay, bx, by):
    dx, dy = bx - ax, by - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return math.hypot(x - ax, y - ay)
    t = max(0.0, min(1.0, ((x - ax) * dx + (y - ay) * dy) / length_sq))
    return math.hypot(x - (ax + t * dx), y - (ay + t * dy))


def _on_segment(x, y, ax, ay, bx, by):
    return _segment_distance(x, y, ax, ay, bx, by) <= BOUNDARY_EPSILON


def _ring_position(x, y, ring):
    """'boundary', 'inside' or 'outside' for a closed ring (crossing number)."""
    inside = False
    for (ax, ay), (bx, by) in zip(ring, ring[1:]):
        if _on_segment(x, y, ax, ay, bx, by):
            return 'boundary'
        if (ay > y) != (by > y):
            x_cross = (bx - ax) * (y - ay) / (by - ay) + ax
            if x < x_cross:
                inside = not inside
    return 'inside' if inside else 'outside'


def point_in_polygon(lng, lat, rings):
    """Ray-casting containment with holes; boundaries count as inside."""
    exterior, holes = rings[0], rings[1:]

    position = _ring_position(lng, lat, exterior)
    if position == 'outside':
        return False
    if position == 'boundary':
        return True

    for hole in holes:
        position = _ring_position(lng, lat, hole)
        if position == 'boundary':
            return True
        if position == 'inside':
            return False
    return True


class StationZones:
    """Immutable snapshot of one station's zones in resolution order."""

    def __init__(self, version, zones):
        self.version = version
        self.zone_ids = []
        self.rings = []

        for zone_id, geometry in zones:
            try:
                rings = polygon_rings(geometry)
            except (ValueError, TypeError, IndexError) as e:
                logger.warning(f"Skipping zone {zone_id} with malformed geometry: {e}")
                continue
            self.zone_ids.append(zone_id)
            self.rings.append(rings)

        self.tree = None
        self.polygons = []
        try:
            self.polygons = [Polygon(rings[0], rings[1:]) for rings in self.rings]
            self.tree = STRtree(self.polygons) if self.polygons else None
        except (GEOSException, ValueError, TypeError) as e:
            logger.warning(f"Spatial index build failed, using ray casting only: {e}")
            self.tree = None

    def __len__(self):
        return len(self.zone_ids)

    def locate_indexed(self, lng, lat):
        if self.tree is None:
            raise GeofenceUnavailable('No spatial index for this station')
        hits = self.tree.query(Point(lng, lat), predicate='dwithin', distance=BOUNDARY_EPSILON)
        if len(hits) == 0:
            return None
        return self.zone_ids[int(min(hits))]

    def locate_scan(self, lng, lat):
        for zone_id, rings in zip(self.zone_ids, self.rings):
            if point_in_polygon(lng, lat, rings):
                return zone_id
        return None


class GeofenceIndex:
    BACKEND_STRTREE = 'strtree'
    BACKEND_RAYCAST = 'raycast'

    def __init__(self):
        self._snapshots = {}

    def _version_key(self, station_id):
        return f"{dispatch_setting('GEOFENCE_CACHE_PREFIX')}:{station_id}"

    def current_version(self, station_id):
        key = self._version_key(station_id)
        version = cache.get(key)
        if version is None:
            # A lost key must force a rebuild everywhere, never look unchanged
            cache.add(key, uuid.uuid4().hex, timeout=None)
            version = cache.get(key)
        return version

    def invalidate(self, station_id):
        """Drop the station's zone snapshot in every worker process."""
        cache.set(self._version_key(station_id), uuid.uuid4().hex, timeout=None)
        self._snapshots.pop(str(station_id), None)
        logger.info(f"Geofence index invalidated for station {station_id}")

    def snapshot(self, station_id):
        version = self.current_version(station_id)
        snapshot = self._snapshots.get(str(station_id))
        if snapshot is None or snapshot.version != version:
            zones = Zone.objects.filter(station_id=station_id).order_by(
                'created_at', 'id'
            ).values_list('id', 'geometry')
            snapshot = StationZones(version, list(zones))
            self._snapshots[str(station_id)] = snapshot
            logger.info(f"Geofence index built for station {station_id} with {len(snapshot)} zones")
        return snapshot

    def zone_for(self, station_id, lat, lng):
        """Id of the first zone of ``station_id`` containing the point, or None."""
        if station_id is None or lat is None or lng is None:
            return None

        snapshot = self.snapshot(station_id)
        if not len(snapshot):
            return None

        lat, lng = float(lat), float(lng)
        if dispatch_setting('GEOFENCE_BACKEND') == self.BACKEND_STRTREE:
            try:
                return snapshot.locate_indexed(lng, lat)
            except (GeofenceUnavailable, GEOSException, ValueError, TypeError) as e:
                logger.warning(f"Accelerated geofence lookup degraded for station {station_id}: {e}")

        return snapshot.locate_scan(lng, lat)


geofence_index = GeofenceIndex()
