import uuid
from unittest import mock

from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import serializers

from rides.models import Trip
from rides.outcomes import Outcome
from rides.services import DirectInvocation, RecordChangeEvent, TripIntakeService, parse_dispatch_payload
from rides.tests.factories import PICKUP, make_station, make_zone


class ParseDispatchPayloadTests(SimpleTestCase):
    def test_direct_invocation(self):
        trip_id = uuid.uuid4()
        payload = parse_dispatch_payload({'trip_id': str(trip_id)})
        self.assertEqual(payload, DirectInvocation(trip_id=trip_id))

    def test_direct_invocation_with_widening(self):
        payload = parse_dispatch_payload({'trip_id': str(uuid.uuid4()), 'widen_zone': True})
        self.assertTrue(payload.widen_zone)

    def test_record_change_event(self):
        trip_id = uuid.uuid4()
        payload = parse_dispatch_payload({
            'type': 'INSERT',
            'table': 'trips',
            'schema': 'public',
            'record': {'id': str(trip_id), 'status': 'pending'},
            'old_record': None,
        })
        self.assertIsInstance(payload, RecordChangeEvent)
        self.assertEqual(payload.trip_id, trip_id)
        self.assertEqual(payload.record['status'], 'pending')

    def test_record_without_envelope_fields(self):
        trip_id = uuid.uuid4()
        payload = parse_dispatch_payload({'record': {'id': str(trip_id)}, 'old_record': None})
        self.assertEqual(payload.trip_id, trip_id)

    def test_rejects_ambiguous_and_unknown_shapes(self):
        bad_bodies = [
            {'trip_id': str(uuid.uuid4()), 'record': {'id': str(uuid.uuid4())}},
            {'id': str(uuid.uuid4())},
            {},
            ['trip_id'],
            'trip_id',
            {'trip_id': 'not-a-uuid'},
            {'record': {}},
            {'type': 'DELETE', 'table': 'trips', 'record': {'id': str(uuid.uuid4())}},
            {'type': 'INSERT', 'table': 'drivers', 'record': {'id': str(uuid.uuid4())}},
        ]
        for body in bad_bodies:
            with self.assertRaises(serializers.ValidationError, msg=body):
                parse_dispatch_payload(body)


class TripIntakeServiceTests(TestCase):
    def setUp(self):
        self.station = make_station()
        self.zone = make_zone(self.station)
        self.service = TripIntakeService()

    def payload(self, **overrides):
        data = {
            'station': str(self.station.id),
            'pickup_lat': PICKUP[0],
            'pickup_lng': PICKUP[1],
            'pickup_address': 'Main St 1',
            'customer_phone': '+972500000000',
        }
        data.update(overrides)
        return {k: v for k, v in data.items() if v is not None}

    def test_creates_pending_trip_tagged_with_zone(self):
        result = self.service.create_trip(self.payload())

        self.assertEqual(result.outcome, Outcome.OK)
        trip = result.trip
        self.assertEqual(trip.status, Trip.STATUS_PENDING)
        self.assertIsNone(trip.driver_id)
        self.assertEqual(trip.zone_id, self.zone.id)

    def test_unzoned_pickup(self):
        result = self.service.create_trip(self.payload(pickup_lat=31.0, pickup_lng=34.0))
        self.assertIsNone(result.trip.zone_id)

    def test_missing_pickup_is_rejected(self):
        result = self.service.create_trip(self.payload(pickup_lat=None))
        self.assertEqual(result.outcome, Outcome.INVALID_INPUT)
        self.assertIn('pickup_lat', result.errors)
        self.assertFalse(Trip.objects.exists())

    def test_out_of_range_pickup_is_rejected(self):
        result = self.service.create_trip(self.payload(pickup_lng=200))
        self.assertEqual(result.outcome, Outcome.INVALID_INPUT)

    def test_unknown_or_missing_station_is_rejected(self):
        self.assertEqual(
            self.service.create_trip(self.payload(station=str(uuid.uuid4()))).outcome,
            Outcome.INVALID_INPUT,
        )
        self.assertEqual(
            self.service.create_trip(self.payload(station=None)).outcome,
            Outcome.INVALID_INPUT,
        )

    def test_inactive_station_is_rejected(self):
        self.station.is_active = False
        self.station.save()
        self.assertEqual(self.service.create_trip(self.payload()).outcome, Outcome.INVALID_INPUT)

    def test_destination_needs_both_coordinates(self):
        result = self.service.create_trip(self.payload(destination_lat=32.8))
        self.assertEqual(result.outcome, Outcome.INVALID_INPUT)

        result = self.service.create_trip(self.payload(destination_lat=32.8, destination_lng=35.0))
        self.assertEqual(result.outcome, Outcome.OK)

    def test_zone_of_another_station_is_rejected(self):
        foreign_zone = make_zone(make_station())
        result = self.service.create_trip(self.payload(zone=str(foreign_zone.id)))
        self.assertEqual(result.outcome, Outcome.INVALID_INPUT)

    def test_operator_station_wins(self):
        other = make_station()
        result = self.service.create_trip(self.payload(station=str(other.id)), station=self.station)
        self.assertEqual(result.trip.station, self.station)

    @override_settings(DISPATCH_SETTINGS={'AUTO_DISPATCH_ON_CREATE': True})
    def test_auto_dispatch_queued_after_commit(self):
        with mock.patch('matching.tasks.dispatch_trip.delay') as delay:
            with self.captureOnCommitCallbacks(execute=True):
                result = self.service.create_trip(self.payload())

        delay.assert_called_once_with(str(result.trip.id))
