# rides/services.py
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from django.db import transaction
from rest_framework import serializers

from routing.geofence import geofence_index
from .conf import dispatch_setting
from .lifecycle import queue_dispatch
from .models import Trip
from .outcomes import Outcome, Result, invalid
from .serializers import (
    DirectInvocationSerializer,
    RecordChangeEventSerializer,
    TripCreateSerializer,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectInvocation:
    """``{"trip_id": ...}`` sent by our own callers."""
    trip_id: uuid.UUID
    widen_zone: Optional[bool] = None


@dataclass(frozen=True)
class RecordChangeEvent:
    """Database webhook: ``{"type": "INSERT", "table": "trips", "record": {"id": ...}}``"""
    trip_id: uuid.UUID
    type: str = 'INSERT'
    table: str = 'trips'
    record: Optional[dict] = None


def parse_dispatch_payload(body):
    """
    Parse a dispatch webhook body into exactly one of the known shapes.

    Raises ``serializers.ValidationError`` for bodies that match neither
    shape or both.
    """
    if not isinstance(body, dict):
        raise serializers.ValidationError('Payload must be a JSON object')

    looks_direct = 'trip_id' in body
    looks_record = 'record' in body
    if looks_direct and looks_record:
        raise serializers.ValidationError('Payload is ambiguous: both trip_id and record given')
    if not looks_direct and not looks_record:
        raise serializers.ValidationError('Expected {"trip_id": ...} or {"record": {"id": ...}}')

    if looks_direct:
        serializer = DirectInvocationSerializer(data=body)
        serializer.is_valid(raise_exception=True)
        return DirectInvocation(**serializer.validated_data)

    serializer = RecordChangeEventSerializer(data=body)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data
    return RecordChangeEvent(
        trip_id=data['record']['id'],
        type=data.get('type', 'INSERT'),
        table=data.get('table', 'trips'),
        record=dict(body['record']),
    )


class TripIntakeService:
    def create_trip(self, data, station=None):
        """
        Validate and store a new pending trip.

        ``station`` (the operator's) wins over any station in ``data``.
        """
        data = dict(data)
        if station is not None:
            data['station'] = station.pk

        serializer = TripCreateSerializer(data=data)
        if not serializer.is_valid():
            logger.info(f"Rejected trip intake: {serializer.errors}")
            return invalid('Invalid trip data', errors=serializer.errors)

        attrs = serializer.validated_data
        if attrs.get('zone') is None:
            zone_id = geofence_index.zone_for(attrs['station'].pk, attrs['pickup_lat'], attrs['pickup_lng'])
            attrs['zone_id'] = zone_id
            attrs.pop('zone', None)

        with transaction.atomic():
            trip = Trip.objects.create(status=Trip.STATUS_PENDING, **attrs)

        logger.info(f"Trip {trip.id} created for station {trip.station_id} (zone={trip.zone_id})")

        if dispatch_setting('AUTO_DISPATCH_ON_CREATE'):
            transaction.on_commit(lambda: queue_dispatch(trip.id))
        return Result(Outcome.OK, trip=trip)
