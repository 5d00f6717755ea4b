# matching/tasks.py
import json
import logging
from datetime import timedelta

from celery import shared_task
from celery.exceptions import SoftTimeLimitExceeded
from django.utils import timezone
from push_notifications.models import WebPushDevice

from drivers.services import driver_group, send_to_group, trip_event_payload
from rides.conf import dispatch_setting
from rides.lifecycle import trip_lifecycle
from rides.models import Driver, Trip
from .services import DispatchService

logger = logging.getLogger(__name__)


@shared_task
def dispatch_trip(trip_id, widen_zone=None, reset_exclusions=False):
    """One dispatch attempt; never retried here, callers re-queue if they want another."""
    result = DispatchService().dispatch(
        trip_id, widen_zone=widen_zone, reset_exclusions=reset_exclusions
    )
    logger.info(f"Dispatch of trip {trip_id}: {result.outcome.value}")
    return result.as_dict()


@shared_task(soft_time_limit=dispatch_setting('NOTIFICATION_TIME_LIMIT'))
def notify_driver_of_assignment(trip_id, driver_id):
    """Fire-and-forget: websocket event plus web push. Every failure is logged and dropped."""
    try:
        trip = Trip.objects.get(id=trip_id)
        driver = Driver.objects.select_related('user').get(id=driver_id)
    except (Trip.DoesNotExist, Driver.DoesNotExist):
        logger.warning(f"Notification skipped: trip {trip_id} or driver {driver_id} not found")
        return False

    if trip.driver_id != driver.id:
        logger.info(f"Notification skipped: trip {trip_id} no longer assigned to driver {driver_id}")
        return False

    payload = trip_event_payload(trip)
    payload.update({
        'type': 'trip_assigned',
        'timeout_seconds': dispatch_setting('ACCEPT_TIMEOUT_SECONDS'),
        'message': f'New trip: {trip.pickup_address or "pickup on map"}',
    })
    send_to_group(driver_group(driver.id), payload)

    sent = 0
    try:
        devices = WebPushDevice.objects.filter(user=driver.user, active=True)
        push_body = json.dumps({
            'title': 'New trip assigned',
            'body': payload['message'],
            'trip_id': payload['trip_id'],
        })
        for device in devices:
            try:
                device.send_message(push_body)
                sent += 1
            except SoftTimeLimitExceeded:
                raise
            except Exception:
                logger.error(f"Web push to device {device.pk} of driver {driver.id} failed", exc_info=True)
    except SoftTimeLimitExceeded:
        logger.error(f"Notification for trip {trip_id} hit its time limit after {sent} pushes")
        return False

    logger.info(f"Driver {driver.id} notified of trip {trip.id} ({sent} push devices)")
    return True


@shared_task
def expire_unaccepted_assignment(trip_id, driver_id, assignment_id=None):
    """Free a trip whose driver did not accept within the acceptance window."""
    result = trip_lifecycle.expire(trip_id, driver_id)
    if result.ok:
        logger.info(f"Assignment {assignment_id} of trip {trip_id} to driver {driver_id} timed out")
    return result.outcome.value


@shared_task
def release_stale_assignments():
    """Periodic sweep for timeouts whose scheduled check never ran."""
    timeout = dispatch_setting('ACCEPT_TIMEOUT_SECONDS')
    if not timeout:
        return 0

    cutoff = timezone.now() - timedelta(seconds=timeout)
    stale = Trip.objects.filter(
        status=Trip.STATUS_PENDING,
        driver__isnull=False,
        assigned_at__lte=cutoff,
    ).values_list('id', 'driver_id')

    released = 0
    for trip_id, driver_id in stale:
        if trip_lifecycle.expire(trip_id, driver_id).ok:
            released += 1

    if released:
        logger.info(f"Released {released} stale assignments")
    return released
