# drivers/views.py
import logging

from push_notifications.api.rest_framework import WebPushDeviceAuthorizedViewSet
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from rides.permissions import IsDriver, driver_for
from .serializers import AvailabilitySerializer, DriverSerializer, LocationSerializer
from .services import DriverPresenceService

logger = logging.getLogger(__name__)


class DriverProfileView(APIView):
    permission_classes = [IsAuthenticated, IsDriver]

    def get(self, request):
        return Response(DriverSerializer(driver_for(request.user)).data)


class DriverLocationView(APIView):
    """Position report from the driver's client; recomputes the driver's zone"""
    permission_classes = [IsAuthenticated, IsDriver]

    def post(self, request):
        serializer = LocationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        driver = DriverPresenceService().update_location(
            driver_for(request.user),
            serializer.validated_data['latitude'],
            serializer.validated_data['longitude'],
        )
        return Response({
            'status': 'location_updated',
            'current_zone': str(driver.current_zone_id) if driver.current_zone_id else None,
        })


class DriverAvailabilityView(APIView):
    permission_classes = [IsAuthenticated, IsDriver]

    def post(self, request):
        serializer = AvailabilitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        driver = driver_for(request.user)
        if not driver.is_approved and serializer.validated_data['is_online']:
            return Response({'error': 'Driver is not approved yet'}, status=status.HTTP_403_FORBIDDEN)

        driver = DriverPresenceService().set_availability(driver, serializer.validated_data['is_online'])
        return Response({'status': 'availability_updated', 'is_online': driver.is_online})


class DriverPushDeviceViewSet(WebPushDeviceAuthorizedViewSet):
    """
    Web push subscriptions of the signed-in driver. ``POST`` registers the
    browser's subscription; ``unregister`` drops it by endpoint, since web
    push endpoints are URLs and cannot travel as a path segment.
    """
    permission_classes = (*WebPushDeviceAuthorizedViewSet.permission_classes, IsDriver)

    @action(detail=False, methods=['post'])
    def unregister(self, request):
        registration_id = request.data.get('registration_id')
        if not registration_id:
            return Response({'registration_id': ['This field is required.']},
                            status=status.HTTP_400_BAD_REQUEST)

        deleted, _ = self.get_queryset().filter(registration_id=registration_id).delete()
        if not deleted:
            return Response({'error': 'Device not registered'}, status=status.HTTP_404_NOT_FOUND)

        logger.info(f"Driver {driver_for(request.user).id} unregistered a push device")
        return Response(status=status.HTTP_204_NO_CONTENT)

    def perform_create(self, serializer):
        super().perform_create(serializer)
        logger.info(f"Driver {driver_for(self.request.user).id} registered a push device")
