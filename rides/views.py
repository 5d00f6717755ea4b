# rides/views.py
import logging

from django.core.exceptions import ValidationError
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from matching.services import DispatchService
from .lifecycle import trip_lifecycle
from .models import Trip
from .outcomes import Outcome
from .permissions import (
    HasWebhookApiKey,
    IsDriver,
    IsOperator,
    IsOperatorOrDriver,
    driver_for,
    operator_for,
)
from .serializers import DispatchRequestSerializer, TripSerializer, TripStatusSerializer
from .services import TripIntakeService

logger = logging.getLogger(__name__)


def outcome_response(result, created=False):
    if created and result.ok:
        return Response(TripSerializer(result.trip).data, status=status.HTTP_201_CREATED)
    return Response(result.as_dict(), status=result.http_status)


class TripViewSet(mixins.ListModelMixin,
                  mixins.RetrieveModelMixin,
                  viewsets.GenericViewSet):
    """
    Operators see and manage their station's trips; drivers see the trips
    they hold or have held and drive them through the lifecycle.
    """
    serializer_class = TripSerializer
    permission_classes = [IsAuthenticated, IsOperatorOrDriver]
    lookup_value_regex = '[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}'

    def get_permissions(self):
        if self.action in ('create', 'dispatch_trip', 'unassign'):
            return [IsAuthenticated(), IsOperator()]
        if self.action in ('accept', 'decline', 'set_status'):
            return [IsAuthenticated(), IsDriver()]
        return super().get_permissions()

    def get_queryset(self):
        trips = Trip.objects.select_related('driver', 'zone').prefetch_related('assignments__driver')

        operator = operator_for(self.request.user)
        if operator is not None:
            trips = trips.filter(station_id=operator.station_id)
        else:
            driver = driver_for(self.request.user)
            trips = trips.filter(station_id=driver.station_id, assignments__driver=driver).distinct()

        status_filter = self.request.query_params.get('status')
        if status_filter:
            trips = trips.filter(status=status_filter)
        return trips

    def create(self, request):
        operator = operator_for(request.user)
        result = TripIntakeService().create_trip(request.data, station=operator.station)
        return outcome_response(result, created=True)

    @action(detail=True, methods=['post'], url_path='dispatch')
    def dispatch_trip(self, request, pk=None):
        """Assign the nearest eligible driver now"""
        operator = operator_for(request.user)
        try:
            known = Trip.objects.filter(pk=pk, station_id=operator.station_id).exists()
        except ValidationError:
            known = False
        if not known:
            return Response({'status': Outcome.NOT_FOUND.value}, status=status.HTTP_404_NOT_FOUND)

        serializer = DispatchRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = DispatchService().dispatch(pk, **serializer.validated_data)
        return outcome_response(result)

    @action(detail=True, methods=['post'])
    def unassign(self, request, pk=None):
        result = trip_lifecycle.unassign(pk, operator=operator_for(request.user))
        return outcome_response(result)

    @action(detail=True, methods=['post'])
    def accept(self, request, pk=None):
        result = trip_lifecycle.accept(pk, driver_for(request.user))
        return outcome_response(result)

    @action(detail=True, methods=['post'])
    def decline(self, request, pk=None):
        result = trip_lifecycle.decline(pk, driver_for(request.user))
        return outcome_response(result)

    @action(detail=True, methods=['post'], url_path='status')
    def set_status(self, request, pk=None):
        serializer = TripStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = trip_lifecycle.advance(pk, driver_for(request.user), serializer.validated_data['status'])
        return outcome_response(result)


class TripWebhookView(APIView):
    """External trip creation (call centre, partner systems)."""
    authentication_classes = []
    permission_classes = [HasWebhookApiKey]

    def post(self, request):
        result = TripIntakeService().create_trip(request.data)
        if result.ok:
            logger.info(f"Webhook created trip {result.trip.id}")
        return outcome_response(result, created=True)
