# matching/views.py
import logging

from rest_framework import serializers, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from rides.models import Zone
from rides.permissions import HasWebhookApiKey, IsOperator, operator_for
from rides.serializers import FindDriversSerializer
from rides.services import parse_dispatch_payload
from routing.services import Coordinate
from .services import DispatchService

logger = logging.getLogger(__name__)


class FindDriversView(APIView):
    """Preview the nearest eligible drivers for a pickup without assigning anyone"""
    permission_classes = [IsAuthenticated, IsOperator]

    def post(self, request):
        serializer = FindDriversSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        operator = operator_for(request.user)
        zone = None
        if data.get('zone'):
            zone = Zone.objects.filter(pk=data['zone'], station_id=operator.station_id).first()
            if zone is None:
                return Response({'zone': ['Unknown zone']}, status=status.HTTP_400_BAD_REQUEST)

        pickup = Coordinate.of(data['pickup_lat'], data['pickup_lng'])
        ranked = DispatchService().find_drivers(operator.station, pickup, zone=zone, limit=data['limit'])

        drivers = []
        for driver, distance in ranked:
            drivers.append({
                'driver_id': str(driver.id),
                'full_name': driver.full_name,
                'vehicle_number': driver.vehicle_number,
                'latitude': driver.latitude,
                'longitude': driver.longitude,
                'zone_id': str(driver.current_zone_id) if driver.current_zone_id else None,
                'distance_meters': round(distance, 2),
            })

        return Response({
            'status': 'ok' if drivers else 'no_drivers_available',
            'count': len(drivers),
            'drivers': drivers,
        })


class DispatchWebhookView(APIView):
    """Auto-assign trigger for direct calls and database change events."""
    authentication_classes = []
    permission_classes = [HasWebhookApiKey]

    def post(self, request):
        try:
            payload = parse_dispatch_payload(request.data)
        except serializers.ValidationError as e:
            logger.info(f"Rejected dispatch webhook body: {e.detail}")
            return Response(
                {'status': 'invalid_input', 'errors': e.detail},
                status=status.HTTP_400_BAD_REQUEST,
            )

        widen_zone = getattr(payload, 'widen_zone', None)
        result = DispatchService().dispatch(payload.trip_id, widen_zone=widen_zone)
        logger.info(f"Webhook dispatch ({type(payload).__name__}) of trip {payload.trip_id}: {result.outcome.value}")
        return Response(result.as_dict(), status=result.http_status)
