from unittest import mock

from django.test import TestCase, override_settings

from drivers.services import AssignmentService, DriverPresenceService
from rides.models import Trip, TripAssignment
from rides.outcomes import Outcome
from rides.tests.factories import (
    make_driver_north_of_pickup,
    make_station,
    make_trip,
    make_zone,
    square,
)


class AssignmentServiceTests(TestCase):
    def setUp(self):
        self.station = make_station()
        self.service = AssignmentService()

    def test_competing_assignments_bind_exactly_one_driver(self):
        trip = make_trip(self.station)
        drivers = [make_driver_north_of_pickup(self.station, 50 * (i + 1)) for i in range(5)]
        # Every dispatcher read the trip while it was still unassigned
        snapshots = [Trip.objects.get(pk=trip.pk) for _ in drivers]

        results = [
            self.service.assign(snapshot, driver)
            for snapshot, driver in zip(snapshots, drivers)
        ]

        outcomes = [r.outcome for r in results]
        self.assertEqual(outcomes.count(Outcome.ASSIGNED), 1)
        self.assertEqual(outcomes.count(Outcome.CONFLICT), len(drivers) - 1)

        trip.refresh_from_db()
        winner = results[outcomes.index(Outcome.ASSIGNED)].driver
        self.assertEqual(trip.driver, winner)
        self.assertEqual(TripAssignment.objects.filter(trip=trip).count(), 1)

    def test_same_driver_retrying_is_a_conflict(self):
        trip = make_trip(self.station)
        driver = make_driver_north_of_pickup(self.station, 50)
        stale = Trip.objects.get(pk=trip.pk)

        self.assertEqual(self.service.assign(trip, driver).outcome, Outcome.ASSIGNED)
        self.assertEqual(self.service.assign(stale, driver).outcome, Outcome.CONFLICT)

    def test_driver_with_an_open_trip_cannot_be_double_booked(self):
        driver = make_driver_north_of_pickup(self.station, 50)
        first = make_trip(self.station)
        second = make_trip(self.station)

        self.assertEqual(self.service.assign(first, driver).outcome, Outcome.ASSIGNED)
        result = self.service.assign(second, driver)

        self.assertEqual(result.outcome, Outcome.CONFLICT)
        second.refresh_from_db()
        self.assertIsNone(second.driver_id)
        self.assertFalse(TripAssignment.objects.filter(trip=second).exists())

    def test_cross_station_assignment_is_forbidden(self):
        trip = make_trip(self.station)
        stranger = make_driver_north_of_pickup(make_station(), 50)

        with self.assertLogs('drivers.services', level='WARNING'):
            result = self.service.assign(trip, stranger)

        self.assertEqual(result.outcome, Outcome.FORBIDDEN)
        trip.refresh_from_db()
        self.assertIsNone(trip.driver_id)

    def test_resolved_trip_is_not_reassigned(self):
        trip = make_trip(self.station, status=Trip.STATUS_COMPLETED)
        driver = make_driver_north_of_pickup(self.station, 50)
        self.assertEqual(self.service.assign(trip, driver).outcome, Outcome.CONFLICT)

    def test_notification_is_queued_after_commit(self):
        trip = make_trip(self.station)
        driver = make_driver_north_of_pickup(self.station, 50)

        with mock.patch('matching.tasks.notify_driver_of_assignment.delay') as delay:
            with self.captureOnCommitCallbacks(execute=True):
                self.service.assign(trip, driver, distance_meters=50.0)

        delay.assert_called_once_with(str(trip.id), str(driver.id))

    def test_notification_failure_keeps_the_assignment(self):
        trip = make_trip(self.station)
        driver = make_driver_north_of_pickup(self.station, 50)

        with mock.patch('matching.tasks.notify_driver_of_assignment.delay',
                        side_effect=ConnectionError('broker down')):
            with self.assertLogs('drivers.services', level='ERROR'):
                with self.captureOnCommitCallbacks(execute=True):
                    result = self.service.assign(trip, driver)

        self.assertEqual(result.outcome, Outcome.ASSIGNED)
        trip.refresh_from_db()
        self.assertEqual(trip.driver, driver)

    @override_settings(DISPATCH_SETTINGS={'ACCEPT_TIMEOUT_SECONDS': 45})
    def test_acceptance_timeout_is_scheduled(self):
        trip = make_trip(self.station)
        driver = make_driver_north_of_pickup(self.station, 50)

        with mock.patch('matching.tasks.notify_driver_of_assignment.delay'), \
                mock.patch('matching.tasks.expire_unaccepted_assignment.apply_async') as apply_async:
            with self.captureOnCommitCallbacks(execute=True):
                self.service.assign(trip, driver)

        apply_async.assert_called_once()
        self.assertEqual(apply_async.call_args.kwargs['countdown'], 45)
        self.assertEqual(apply_async.call_args.kwargs['args'][:2], [str(trip.id), str(driver.id)])


class DriverPresenceServiceTests(TestCase):
    def setUp(self):
        self.station = make_station()
        self.zone = make_zone(self.station, square(35.07, 32.91, 35.10, 32.94))
        self.driver = make_driver_north_of_pickup(self.station, 50, is_online=False)
        self.service = DriverPresenceService()

    def test_location_update_derives_zone(self):
        self.service.update_location(self.driver, 32.9280, 35.0840)
        self.driver.refresh_from_db()
        self.assertEqual(self.driver.current_zone, self.zone)
        self.assertIsNotNone(self.driver.location_updated_at)

        self.service.update_location(self.driver, 31.0, 34.0)
        self.driver.refresh_from_db()
        self.assertIsNone(self.driver.current_zone)

    def test_location_update_rejects_bad_coordinates(self):
        with self.assertRaises(ValueError):
            self.service.update_location(self.driver, 95, 35)

    def test_availability_toggle(self):
        self.service.set_availability(self.driver, True)
        self.driver.refresh_from_db()
        self.assertTrue(self.driver.is_online)
