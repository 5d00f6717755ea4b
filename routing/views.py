# routing/views.py
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from rides.models import Zone
from rides.permissions import IsOperator, IsOperatorOrDriver, driver_for, operator_for
from .geofence import geofence_index
from .serializers import PointSerializer, ZoneSerializer


class ZoneViewSet(viewsets.ModelViewSet):
    """Station zones; every write invalidates the station's geofence index."""
    serializer_class = ZoneSerializer
    permission_classes = [IsAuthenticated, IsOperator]
    lookup_value_regex = '[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}'

    def get_permissions(self):
        if self.action in ('list', 'retrieve', 'check_point'):
            return [IsAuthenticated(), IsOperatorOrDriver()]
        return super().get_permissions()

    def station_id(self):
        member = operator_for(self.request.user) or driver_for(self.request.user)
        return member.station_id

    def get_queryset(self):
        return Zone.objects.filter(station_id=self.station_id()).order_by('created_at', 'id')

    def perform_create(self, serializer):
        serializer.save(station_id=self.station_id())

    @action(detail=False, methods=['post'], url_path='check-point')
    def check_point(self, request):
        """Which of the station's zones contains a point"""
        serializer = PointSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        zone_id = geofence_index.zone_for(
            self.station_id(), serializer.validated_data['lat'], serializer.validated_data['lng']
        )
        if zone_id is None:
            return Response({'zone': None})

        zone = Zone.objects.get(pk=zone_id)
        return Response({'zone': ZoneSerializer(zone).data})
