import uuid
from unittest import mock

from django.test import TestCase, override_settings

from drivers.services import AssignmentService
from rides.lifecycle import trip_lifecycle
from rides.models import Trip, TripAssignment
from rides.outcomes import Outcome
from rides.tests.factories import (
    make_driver_north_of_pickup,
    make_operator,
    make_station,
    make_trip,
)


class TripLifecycleTests(TestCase):
    def setUp(self):
        self.station = make_station()
        self.driver = make_driver_north_of_pickup(self.station, 50)
        self.other = make_driver_north_of_pickup(self.station, 80)
        self.trip = make_trip(self.station)
        AssignmentService().assign(self.trip, self.driver)

    def test_full_happy_path(self):
        self.assertEqual(trip_lifecycle.accept(self.trip.id, self.driver).outcome, Outcome.OK)
        self.trip.refresh_from_db()
        self.assertEqual(self.trip.status, Trip.STATUS_ACTIVE)
        self.assertIsNotNone(self.trip.accepted_at)

        self.assertEqual(trip_lifecycle.complete(self.trip.id, self.driver).outcome, Outcome.OK)
        self.trip.refresh_from_db()
        self.assertEqual(self.trip.status, Trip.STATUS_COMPLETED)
        self.assertIsNotNone(self.trip.completed_at)

    def test_stranger_accepting_is_forbidden(self):
        with self.assertLogs('rides.lifecycle', level='WARNING'):
            result = trip_lifecycle.accept(self.trip.id, self.other)

        self.assertEqual(result.outcome, Outcome.FORBIDDEN)
        self.trip.refresh_from_db()
        self.assertEqual(self.trip.status, Trip.STATUS_PENDING)
        self.assertEqual(self.trip.driver, self.driver)

    def test_driver_from_another_station_is_forbidden(self):
        outsider = make_driver_north_of_pickup(make_station(), 10)
        self.assertEqual(trip_lifecycle.accept(self.trip.id, outsider).outcome, Outcome.FORBIDDEN)

    def test_former_driver_accepting_after_reassignment_is_a_conflict(self):
        trip_lifecycle.decline(self.trip.id, self.driver)
        AssignmentService().assign(Trip.objects.get(pk=self.trip.pk), self.other)

        result = trip_lifecycle.accept(self.trip.id, self.driver)

        self.assertEqual(result.outcome, Outcome.CONFLICT)
        self.trip.refresh_from_db()
        self.assertEqual(self.trip.driver, self.other)

    def test_former_driver_accepting_after_unassign_is_a_conflict(self):
        trip_lifecycle.unassign(self.trip.id)
        self.assertEqual(trip_lifecycle.accept(self.trip.id, self.driver).outcome, Outcome.CONFLICT)

    def test_cannot_skip_acceptance(self):
        self.assertEqual(trip_lifecycle.complete(self.trip.id, self.driver).outcome, Outcome.CONFLICT)

    def test_accepting_twice_is_a_conflict(self):
        trip_lifecycle.accept(self.trip.id, self.driver)
        self.assertEqual(trip_lifecycle.accept(self.trip.id, self.driver).outcome, Outcome.CONFLICT)

    def test_completed_is_terminal(self):
        trip_lifecycle.accept(self.trip.id, self.driver)
        trip_lifecycle.complete(self.trip.id, self.driver)

        for event in (trip_lifecycle.accept, trip_lifecycle.complete, trip_lifecycle.decline):
            self.assertEqual(event(self.trip.id, self.driver).outcome, Outcome.CONFLICT)
        self.assertEqual(trip_lifecycle.unassign(self.trip.id).outcome, Outcome.CONFLICT)

        self.trip.refresh_from_db()
        self.assertEqual(self.trip.status, Trip.STATUS_COMPLETED)

    def test_stranger_on_completed_trip_is_forbidden(self):
        trip_lifecycle.accept(self.trip.id, self.driver)
        trip_lifecycle.complete(self.trip.id, self.driver)

        for event in (trip_lifecycle.accept, trip_lifecycle.complete, trip_lifecycle.decline):
            with self.assertLogs('rides.lifecycle', level='WARNING'):
                result = event(self.trip.id, self.other)
            self.assertEqual(result.outcome, Outcome.FORBIDDEN)

    def test_former_driver_on_completed_trip_is_a_conflict(self):
        trip_lifecycle.decline(self.trip.id, self.driver)
        AssignmentService().assign(Trip.objects.get(pk=self.trip.pk), self.other)
        trip_lifecycle.accept(self.trip.id, self.other)
        trip_lifecycle.complete(self.trip.id, self.other)

        self.assertEqual(trip_lifecycle.complete(self.trip.id, self.driver).outcome, Outcome.CONFLICT)

    def test_decline_releases_trip_and_ledger_row(self):
        result = trip_lifecycle.decline(self.trip.id, self.driver)

        self.assertEqual(result.outcome, Outcome.OK)
        self.trip.refresh_from_db()
        self.assertEqual(self.trip.status, Trip.STATUS_PENDING)
        self.assertIsNone(self.trip.driver_id)
        self.assertIsNone(self.trip.assigned_at)

        row = TripAssignment.objects.get(trip=self.trip, driver=self.driver)
        self.assertIsNotNone(row.released_at)
        self.assertEqual(row.release_reason, TripAssignment.REASON_DECLINED)

    def test_decline_from_active(self):
        trip_lifecycle.accept(self.trip.id, self.driver)
        self.assertEqual(trip_lifecycle.decline(self.trip.id, self.driver).outcome, Outcome.OK)
        self.trip.refresh_from_db()
        self.assertIsNone(self.trip.accepted_at)

    def test_advance_maps_target_status(self):
        self.assertEqual(trip_lifecycle.advance(self.trip.id, self.driver, 'active').outcome, Outcome.OK)
        self.assertEqual(trip_lifecycle.advance(self.trip.id, self.driver, 'completed').outcome, Outcome.OK)

    def test_advance_rejects_unknown_status(self):
        result = trip_lifecycle.advance(self.trip.id, self.driver, 'cancelled')
        self.assertEqual(result.outcome, Outcome.INVALID_INPUT)

    def test_unknown_trip(self):
        self.assertEqual(trip_lifecycle.accept(uuid.uuid4(), self.driver).outcome, Outcome.NOT_FOUND)

    def test_operator_of_another_station_cannot_unassign(self):
        operator = make_operator(make_station())
        self.assertEqual(trip_lifecycle.unassign(self.trip.id, operator=operator).outcome, Outcome.FORBIDDEN)

    def test_unassign_notifies_released_driver(self):
        operator = make_operator(self.station)
        with mock.patch('drivers.services.send_to_group') as send:
            with self.captureOnCommitCallbacks(execute=True):
                result = trip_lifecycle.unassign(self.trip.id, operator=operator)

        self.assertEqual(result.outcome, Outcome.OK)
        groups = [c.args[0] for c in send.call_args_list]
        self.assertIn(f'driver_{self.driver.id}', groups)
        self.assertIn(f'station_{self.station.id}', groups)
        self.assertEqual(
            TripAssignment.objects.get(trip=self.trip).release_reason,
            TripAssignment.REASON_UNASSIGNED,
        )


class AcceptanceTimeoutTests(TestCase):
    def setUp(self):
        self.station = make_station()
        self.driver = make_driver_north_of_pickup(self.station, 50)
        self.trip = make_trip(self.station)
        AssignmentService().assign(self.trip, self.driver)

    def test_expire_frees_unaccepted_trip(self):
        result = trip_lifecycle.expire(self.trip.id, self.driver.id)

        self.assertEqual(result.outcome, Outcome.OK)
        self.trip.refresh_from_db()
        self.assertIsNone(self.trip.driver_id)
        self.assertEqual(
            TripAssignment.objects.get(trip=self.trip).release_reason,
            TripAssignment.REASON_TIMEOUT,
        )

    def test_expire_after_acceptance_is_a_noop(self):
        trip_lifecycle.accept(self.trip.id, self.driver)
        self.assertEqual(trip_lifecycle.expire(self.trip.id, self.driver.id).outcome, Outcome.CONFLICT)
        self.trip.refresh_from_db()
        self.assertEqual(self.trip.status, Trip.STATUS_ACTIVE)

    @override_settings(DISPATCH_SETTINGS={'REDISPATCH_ON_DECLINE': True})
    def test_decline_queues_redispatch(self):
        with mock.patch('matching.tasks.dispatch_trip.delay') as delay:
            with self.captureOnCommitCallbacks(execute=True):
                trip_lifecycle.decline(self.trip.id, self.driver)

        delay.assert_called_once_with(str(self.trip.id))

    @override_settings(DISPATCH_SETTINGS={'REDISPATCH_ON_DECLINE': False})
    def test_redispatch_can_be_disabled(self):
        with mock.patch('matching.tasks.dispatch_trip.delay') as delay:
            with self.captureOnCommitCallbacks(execute=True):
                trip_lifecycle.decline(self.trip.id, self.driver)

        delay.assert_not_called()
