# drivers/services.py
import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import IntegrityError, transaction
from django.utils import timezone

from rides.conf import dispatch_setting
from rides.models import Trip, TripAssignment
from rides.outcomes import Outcome, Result, conflict, forbidden
from routing.geofence import geofence_index
from routing.services import Coordinate

logger = logging.getLogger(__name__)


def driver_group(driver_id):
    return f'driver_{driver_id}'


def station_group(station_id):
    return f'station_{station_id}'


def send_to_group(group, message):
    """Best-effort channel layer push; returns False when nothing was sent."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False
    try:
        async_to_sync(channel_layer.group_send)(group, message)
    except Exception:
        logger.error(f"Channel layer send to {group} failed", exc_info=True)
        return False
    return True


def trip_event_payload(trip):
    return {
        'trip_id': str(trip.id),
        'status': trip.status,
        'driver_id': str(trip.driver_id) if trip.driver_id else None,
        'zone_id': str(trip.zone_id) if trip.zone_id else None,
        'pickup_address': trip.pickup_address,
        'destination_address': trip.destination_address,
        'pickup_lat': trip.pickup_lat,
        'pickup_lng': trip.pickup_lng,
    }


def broadcast_trip_update(trip, event):
    """Tell the station's operators that ``trip`` changed."""
    payload = trip_event_payload(trip)
    payload.update({'type': 'trip_update', 'event': event})
    return send_to_group(station_group(trip.station_id), payload)


def notify_driver_unassigned(trip_id, driver_id, reason):
    return send_to_group(driver_group(driver_id), {
        'type': 'trip_unassigned',
        'trip_id': str(trip_id),
        'reason': reason,
    })


class AssignmentService:
    """
    Binds one driver to one pending trip.

    The check-and-set is a single conditional UPDATE; losing the race shows
    up as zero affected rows (trip taken) or an IntegrityError from the
    one-open-trip-per-driver constraint (driver taken). Both are CONFLICT.
    """

    def assign(self, trip, driver, distance_meters=None):
        if trip.status != Trip.STATUS_PENDING or trip.driver_id is not None:
            return conflict('Trip is already assigned or resolved', trip=trip, driver=driver)

        if driver.station_id is None or driver.station_id != trip.station_id:
            logger.warning(
                f"Refused cross-station assignment of driver {driver.id} "
                f"(station {driver.station_id}) to trip {trip.id} (station {trip.station_id})"
            )
            return forbidden('Driver belongs to another station', trip=trip, driver=driver)

        now = timezone.now()
        try:
            with transaction.atomic():
                updated = Trip.objects.filter(
                    pk=trip.pk,
                    station_id=driver.station_id,
                    status=Trip.STATUS_PENDING,
                    driver__isnull=True,
                ).update(driver=driver, assigned_at=now, updated_at=now)

                if not updated:
                    logger.info(f"Trip {trip.id} was taken before driver {driver.id} could be bound")
                    return conflict('Trip was assigned by another dispatcher', trip=trip, driver=driver)

                assignment = TripAssignment.objects.create(
                    trip_id=trip.pk, driver=driver, distance_meters=distance_meters
                )
        except IntegrityError:
            logger.info(f"Driver {driver.id} already holds an open trip; trip {trip.id} not bound")
            return conflict('Driver already has an open trip', trip=trip, driver=driver)

        trip.driver = driver
        trip.assigned_at = now
        trip.updated_at = now

        logger.info(
            f"Assigned driver {driver.id} to trip {trip.id}"
            + (f" at {distance_meters:.0f}m" if distance_meters is not None else "")
        )
        transaction.on_commit(lambda: self.after_assignment(trip, driver, assignment.pk))
        return Result(Outcome.ASSIGNED, trip=trip, driver=driver, distance_meters=distance_meters)

    def after_assignment(self, trip, driver, assignment_id):
        """Side effects of a committed assignment; failures never propagate."""
        from matching.tasks import expire_unaccepted_assignment, notify_driver_of_assignment

        try:
            notify_driver_of_assignment.delay(str(trip.id), str(driver.id))
        except Exception:
            logger.error(f"Could not queue notification for trip {trip.id}", exc_info=True)

        timeout = dispatch_setting('ACCEPT_TIMEOUT_SECONDS')
        if timeout:
            try:
                expire_unaccepted_assignment.apply_async(
                    args=[str(trip.id), str(driver.id), assignment_id],
                    countdown=timeout,
                )
            except Exception:
                logger.error(f"Could not schedule acceptance timeout for trip {trip.id}", exc_info=True)

        broadcast_trip_update(trip, 'assigned')


class DriverPresenceService:
    """Writes made by the driver's own client: availability and position."""

    def set_availability(self, driver, is_online):
        driver.is_online = bool(is_online)
        driver.save(update_fields=['is_online', 'updated_at'])
        logger.info(f"Driver {driver.id} is now {'online' if driver.is_online else 'offline'}")
        return driver

    def update_location(self, driver, lat, lng):
        position = Coordinate.of(lat, lng)
        driver.latitude = position.lat
        driver.longitude = position.lng
        driver.current_zone_id = geofence_index.zone_for(driver.station_id, position.lat, position.lng)
        driver.location_updated_at = timezone.now()
        driver.save(update_fields=[
            'latitude', 'longitude', 'current_zone', 'location_updated_at', 'updated_at'
        ])
        return driver
