from unittest import mock

from django.test import SimpleTestCase, TestCase, override_settings

from rides.tests.factories import make_station, make_zone, square
from routing.geofence import StationZones, geofence_index, point_in_polygon, polygon_rings

DONUT = square(0, 0, 10, 10, holes=[[[4, 4], [6, 4], [6, 6], [4, 6], [4, 4]]])

SAMPLE_POINTS = [
    ((2, 2), True),      # interior
    ((5, 5), False),     # inside the hole
    ((4, 5), True),      # on the hole ring
    ((6, 6), True),      # hole corner
    ((0, 5), True),      # on the exterior ring
    ((10, 10), True),    # exterior corner
    ((10.0001, 5), False),
    ((-3, -3), False),
]


class PolygonRingsTests(SimpleTestCase):
    def test_closes_open_rings(self):
        rings = polygon_rings({'type': 'Polygon', 'coordinates': [[[0, 0], [1, 0], [1, 1]]]})
        self.assertEqual(rings[0][0], rings[0][-1])

    def test_rejects_non_polygons(self):
        with self.assertRaises(ValueError):
            polygon_rings({'type': 'Point', 'coordinates': [0, 0]})
        with self.assertRaises(ValueError):
            polygon_rings({'type': 'Polygon', 'coordinates': [[[0, 0], [1, 1], [0, 0]]]})


class StationZonesTests(SimpleTestCase):
    def test_ray_casting_handles_holes_and_boundaries(self):
        rings = polygon_rings(DONUT)
        for (lng, lat), expected in SAMPLE_POINTS:
            self.assertEqual(point_in_polygon(lng, lat, rings), expected, (lng, lat))

    def test_indexed_and_scan_paths_agree(self):
        zones = StationZones('v1', [('donut', DONUT), ('far', square(20, 20, 30, 30))])
        self.assertIsNotNone(zones.tree)

        points = [point for point, _ in SAMPLE_POINTS] + [(25, 25), (20, 25), (15, 15)]
        for lng, lat in points:
            self.assertEqual(zones.locate_indexed(lng, lat), zones.locate_scan(lng, lat), (lng, lat))

    def test_paths_agree_along_slanted_edges(self):
        pentagon = [[35.05, 32.90], [35.13, 32.91], [35.15, 32.96], [35.09, 32.99], [35.04, 32.95], [35.05, 32.90]]
        triangle = [[35.08, 32.93], [35.11, 32.935], [35.095, 32.96], [35.08, 32.93]]
        zones = StationZones('v1', [('z', {'type': 'Polygon', 'coordinates': [pentagon, triangle]})])

        for ring in (pentagon, triangle):
            for (ax, ay), (bx, by) in zip(ring, ring[1:]):
                for step in range(1, 50):
                    t = step / 50
                    lng, lat = ax + t * (bx - ax), ay + t * (by - ay)
                    self.assertEqual(zones.locate_indexed(lng, lat), 'z', (lng, lat))
                    self.assertEqual(zones.locate_scan(lng, lat), 'z', (lng, lat))

        for lng, lat in [(35.095, 32.94), (35.03, 32.95), (35.10, 32.92)]:
            self.assertEqual(zones.locate_indexed(lng, lat), zones.locate_scan(lng, lat), (lng, lat))
        self.assertIsNone(zones.locate_scan(35.095, 32.94))
        self.assertEqual(zones.locate_scan(35.10, 32.92), 'z')

    def test_overlap_resolves_to_first_zone(self):
        zones = StationZones('v1', [('first', square(0, 0, 10, 10)), ('second', square(5, 5, 15, 15))])
        self.assertEqual(zones.locate_indexed(7, 7), 'first')
        self.assertEqual(zones.locate_scan(7, 7), 'first')
        self.assertEqual(zones.locate_indexed(12, 12), 'second')

    def test_malformed_zone_is_skipped(self):
        zones = StationZones('v1', [('broken', {'type': 'Polygon', 'coordinates': []}),
                                    ('ok', square(0, 0, 1, 1))])
        self.assertEqual(zones.zone_ids, ['ok'])


class GeofenceIndexTests(TestCase):
    def setUp(self):
        self.station = make_station()
        self.zone = make_zone(self.station, square(35.07, 32.91, 35.10, 32.94))

    def test_zone_for_point_in_zone(self):
        self.assertEqual(geofence_index.zone_for(self.station.id, 32.9270, 35.0830), self.zone.id)

    def test_unzoned_point_returns_none(self):
        self.assertIsNone(geofence_index.zone_for(self.station.id, 31.0, 34.0))

    def test_zones_of_other_stations_are_ignored(self):
        other = make_station()
        self.assertIsNone(geofence_index.zone_for(other.id, 32.9270, 35.0830))

    def test_zone_changes_are_visible_on_next_lookup(self):
        self.assertIsNone(geofence_index.zone_for(self.station.id, 31.5, 34.5))

        added = make_zone(self.station, square(34.0, 31.0, 35.0, 32.0))
        self.assertEqual(geofence_index.zone_for(self.station.id, 31.5, 34.5), added.id)

        added.delete()
        self.assertIsNone(geofence_index.zone_for(self.station.id, 31.5, 34.5))

    def test_snapshot_rebuilt_when_shared_version_changes(self):
        first = geofence_index.snapshot(self.station.id)
        self.assertIs(geofence_index.snapshot(self.station.id), first)

        geofence_index.invalidate(self.station.id)
        self.assertIsNot(geofence_index.snapshot(self.station.id), first)

    @override_settings(DISPATCH_SETTINGS={'GEOFENCE_BACKEND': 'raycast'})
    def test_raycast_backend(self):
        self.assertEqual(geofence_index.zone_for(self.station.id, 32.9270, 35.0830), self.zone.id)

    def test_spatial_index_failure_falls_back_to_ray_casting(self):
        with mock.patch.object(StationZones, 'locate_indexed', side_effect=ValueError('geos down')):
            with self.assertLogs('routing.geofence', level='WARNING'):
                zone_id = geofence_index.zone_for(self.station.id, 32.9270, 35.0830)
        self.assertEqual(zone_id, self.zone.id)
