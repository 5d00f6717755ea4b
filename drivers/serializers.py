# drivers/serializers.py
from rest_framework import serializers
from rides.models import Driver


class DriverSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True)
    zone_name = serializers.CharField(source='current_zone.name', read_only=True, default=None)
    is_busy = serializers.SerializerMethodField()

    class Meta:
        model = Driver
        fields = ('id', 'username', 'station', 'full_name', 'phone', 'vehicle_number',
                  'is_online', 'is_approved', 'is_active', 'latitude', 'longitude',
                  'current_zone', 'zone_name', 'location_updated_at', 'is_busy')
        read_only_fields = fields

    def get_is_busy(self, obj):
        return obj.trips.filter(status__in=('pending', 'active')).exists()


class LocationSerializer(serializers.Serializer):
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)


class AvailabilitySerializer(serializers.Serializer):
    is_online = serializers.BooleanField()
