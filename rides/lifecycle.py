# rides/lifecycle.py
"""
Trip status transitions.

    pending (no driver) --assign--> pending (driver) --accept--> active --complete--> completed
    pending (driver) / active --decline | unassign | timeout--> pending (no driver)

Each transition is one conditional UPDATE whose WHERE clause carries the
expected prior state and, for driver actions, ``driver = caller``. Zero
affected rows means somebody else got there first.
"""
import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from .conf import dispatch_setting
from .models import Trip, TripAssignment
from .outcomes import Result, Outcome, conflict, forbidden, invalid, not_found

logger = logging.getLogger(__name__)


def load_trip(trip_id):
    try:
        return Trip.objects.get(pk=trip_id)
    except (Trip.DoesNotExist, ValueError, ValidationError):
        return None


class TripLifecycle:
    EVENT_ACCEPT = 'accept'
    EVENT_COMPLETE = 'complete'
    EVENT_DECLINE = 'decline'
    EVENT_UNASSIGN = 'unassign'
    EVENT_TIMEOUT = 'timeout'

    def _reject_caller(self, trip, driver, event):
        """FORBIDDEN for strangers, CONFLICT for drivers who once held the trip."""
        if driver.station_id != trip.station_id:
            logger.warning(
                f"Driver {driver.id} from station {driver.station_id} attempted {event} "
                f"on trip {trip.id} of station {trip.station_id}"
            )
            return forbidden('Trip belongs to another station', trip=trip, driver=driver)

        if TripAssignment.objects.filter(trip=trip, driver=driver).exists():
            return conflict('Trip is no longer assigned to you', trip=trip, driver=driver)

        logger.warning(f"Driver {driver.id} attempted {event} on trip {trip.id} not assigned to them")
        return forbidden('Trip is not assigned to you', trip=trip, driver=driver)

    def _driver_transition(self, trip_id, driver, event, from_statuses, changes):
        trip = load_trip(trip_id)
        if trip is None:
            return not_found(f'Trip {trip_id} not found')

        if driver.station_id != trip.station_id or trip.driver_id != driver.id:
            return self._reject_caller(trip, driver, event)
        if trip.status == Trip.STATUS_COMPLETED:
            return conflict('Trip is already completed', trip=trip, driver=driver)
        if trip.status not in from_statuses:
            return conflict(f'Cannot {event} a trip that is {trip.status}', trip=trip, driver=driver)

        now = timezone.now()
        with transaction.atomic():
            updated = Trip.objects.filter(
                pk=trip.pk, driver=driver, status__in=from_statuses
            ).update(updated_at=now, **changes(now))
            if not updated:
                logger.info(f"Lost race on {event} for trip {trip.id} by driver {driver.id}")
                trip.refresh_from_db()
                return conflict(f'Trip changed before {event} could apply', trip=trip, driver=driver)

            if event == self.EVENT_DECLINE:
                self._release(trip, driver.id, TripAssignment.REASON_DECLINED, now)

        trip.refresh_from_db()
        logger.info(f"Trip {trip.id}: driver {driver.id} {event} -> {trip.status}")
        self._after_commit(trip, event, released_driver_id=driver.id if event == self.EVENT_DECLINE else None)
        return Result(Outcome.OK, trip=trip, driver=driver)

    def accept(self, trip_id, driver):
        return self._driver_transition(
            trip_id, driver, self.EVENT_ACCEPT,
            (Trip.STATUS_PENDING,),
            lambda now: {'status': Trip.STATUS_ACTIVE, 'accepted_at': now},
        )

    def complete(self, trip_id, driver):
        return self._driver_transition(
            trip_id, driver, self.EVENT_COMPLETE,
            (Trip.STATUS_ACTIVE,),
            lambda now: {'status': Trip.STATUS_COMPLETED, 'completed_at': now},
        )

    def decline(self, trip_id, driver):
        return self._driver_transition(
            trip_id, driver, self.EVENT_DECLINE,
            Trip.OPEN_STATUSES,
            lambda now: {
                'status': Trip.STATUS_PENDING, 'driver': None,
                'assigned_at': None, 'accepted_at': None,
            },
        )

    def advance(self, trip_id, driver, target_status):
        """Move the caller's trip to ``target_status`` through the matching event."""
        handlers = {
            Trip.STATUS_ACTIVE: self.accept,
            Trip.STATUS_COMPLETED: self.complete,
            Trip.STATUS_PENDING: self.decline,
        }
        handler = handlers.get(target_status)
        if handler is None:
            return invalid(f'Unknown target status: {target_status!r}')
        return handler(trip_id, driver)

    def unassign(self, trip_id, operator=None):
        """Operator takes the trip away from its driver; ``operator=None`` is a trusted system call."""
        trip = load_trip(trip_id)
        if trip is None:
            return not_found(f'Trip {trip_id} not found')

        if operator is not None and operator.station_id != trip.station_id:
            logger.warning(f"Operator {operator.pk} attempted unassign on trip {trip.id} of another station")
            return forbidden('Trip belongs to another station', trip=trip)
        if trip.status == Trip.STATUS_COMPLETED:
            return conflict('Trip is already completed', trip=trip)
        if trip.driver_id is None:
            return conflict('Trip has no driver', trip=trip)

        return self._release_driver(trip, trip.driver_id, TripAssignment.REASON_UNASSIGNED,
                                    Trip.OPEN_STATUSES, self.EVENT_UNASSIGN)

    def expire(self, trip_id, driver_id):
        """Acceptance window elapsed: free the trip if ``driver_id`` still has not accepted."""
        trip = load_trip(trip_id)
        if trip is None:
            return not_found(f'Trip {trip_id} not found')
        if trip.status != Trip.STATUS_PENDING or str(trip.driver_id) != str(driver_id):
            return conflict('Assignment was already accepted or released', trip=trip)

        return self._release_driver(trip, driver_id, TripAssignment.REASON_TIMEOUT,
                                    (Trip.STATUS_PENDING,), self.EVENT_TIMEOUT)

    def _release_driver(self, trip, driver_id, reason, from_statuses, event):
        now = timezone.now()
        with transaction.atomic():
            updated = Trip.objects.filter(
                pk=trip.pk, driver_id=driver_id, status__in=from_statuses
            ).update(
                status=Trip.STATUS_PENDING, driver=None, assigned_at=None,
                accepted_at=None, updated_at=now,
            )
            if not updated:
                trip.refresh_from_db()
                return conflict(f'Trip changed before {event} could apply', trip=trip)
            self._release(trip, driver_id, reason, now)

        trip.refresh_from_db()
        logger.info(f"Trip {trip.id}: driver {driver_id} released ({reason})")
        self._after_commit(trip, event, released_driver_id=driver_id)
        return Result(Outcome.OK, trip=trip)

    def _release(self, trip, driver_id, reason, now):
        TripAssignment.objects.filter(
            trip=trip, driver_id=driver_id, released_at__isnull=True
        ).update(released_at=now, release_reason=reason)

    def _after_commit(self, trip, event, released_driver_id=None):
        from drivers.services import broadcast_trip_update, notify_driver_unassigned

        redispatch = (
            event in (self.EVENT_DECLINE, self.EVENT_TIMEOUT)
            and dispatch_setting('REDISPATCH_ON_DECLINE')
        )

        def side_effects():
            broadcast_trip_update(trip, event)
            if released_driver_id is not None and event != self.EVENT_DECLINE:
                notify_driver_unassigned(trip.id, released_driver_id, event)
            if redispatch:
                queue_dispatch(trip.id)

        transaction.on_commit(side_effects)


def queue_dispatch(trip_id, **kwargs):
    """Hand the trip to a dispatch worker; enqueue failures are logged only."""
    from matching.tasks import dispatch_trip

    try:
        dispatch_trip.delay(str(trip_id), **kwargs)
    except Exception:
        logger.error(f"Could not queue dispatch for trip {trip_id}", exc_info=True)
        return False
    return True


trip_lifecycle = TripLifecycle()
