# rides/serializers.py
from rest_framework import serializers

from .models import Station, Trip, TripAssignment, Zone


class TripAssignmentSerializer(serializers.ModelSerializer):
    driver_name = serializers.CharField(source='driver.full_name', read_only=True)

    class Meta:
        model = TripAssignment
        fields = ('id', 'driver', 'driver_name', 'distance_meters', 'assigned_at',
                  'released_at', 'release_reason')


class TripSerializer(serializers.ModelSerializer):
    driver_name = serializers.CharField(source='driver.full_name', read_only=True, default=None)
    zone_name = serializers.CharField(source='zone.name', read_only=True, default=None)
    assignments = TripAssignmentSerializer(many=True, read_only=True)

    class Meta:
        model = Trip
        fields = ('id', 'station', 'customer_phone', 'pickup_address', 'destination_address',
                  'pickup_lat', 'pickup_lng', 'destination_lat', 'destination_lng',
                  'zone', 'zone_name', 'status', 'driver', 'driver_name',
                  'assigned_at', 'accepted_at', 'completed_at', 'created_at', 'updated_at',
                  'assignments')
        read_only_fields = fields


class TripCreateSerializer(serializers.Serializer):
    """Inbound trip from the operator API or the trip webhook."""
    station = serializers.PrimaryKeyRelatedField(queryset=Station.objects.all(), required=False)
    customer_phone = serializers.CharField(max_length=20, required=False, allow_blank=True)
    pickup_address = serializers.CharField(required=False, allow_blank=True)
    destination_address = serializers.CharField(required=False, allow_blank=True)
    pickup_lat = serializers.FloatField(min_value=-90, max_value=90)
    pickup_lng = serializers.FloatField(min_value=-180, max_value=180)
    destination_lat = serializers.FloatField(min_value=-90, max_value=90, required=False, allow_null=True)
    destination_lng = serializers.FloatField(min_value=-180, max_value=180, required=False, allow_null=True)
    zone = serializers.PrimaryKeyRelatedField(
        queryset=Zone.objects.all(), required=False, allow_null=True
    )

    def validate_station(self, station):
        if not station.is_active:
            raise serializers.ValidationError("Station is not active")
        return station

    def validate(self, attrs):
        has_lat = attrs.get('destination_lat') is not None
        has_lng = attrs.get('destination_lng') is not None
        if has_lat != has_lng:
            raise serializers.ValidationError(
                "destination_lat and destination_lng must be given together"
            )

        station = attrs.get('station')
        if station is None:
            raise serializers.ValidationError({'station': 'Station is required'})

        zone = attrs.get('zone')
        if zone is not None and zone.station_id != station.pk:
            raise serializers.ValidationError({'zone': 'Zone belongs to another station'})
        return attrs


class DispatchRequestSerializer(serializers.Serializer):
    widen_zone = serializers.BooleanField(required=False, allow_null=True, default=None)
    reset_exclusions = serializers.BooleanField(required=False, default=False)


class TripStatusSerializer(serializers.Serializer):
    status = serializers.CharField()


class FindDriversSerializer(serializers.Serializer):
    pickup_lat = serializers.FloatField(min_value=-90, max_value=90)
    pickup_lng = serializers.FloatField(min_value=-180, max_value=180)
    zone = serializers.UUIDField(required=False, allow_null=True)
    limit = serializers.IntegerField(min_value=1, max_value=50, default=10)


class DirectInvocationSerializer(serializers.Serializer):
    trip_id = serializers.UUIDField()
    widen_zone = serializers.BooleanField(required=False, allow_null=True, default=None)


class ChangedRecordSerializer(serializers.Serializer):
    id = serializers.UUIDField()


class RecordChangeEventSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=['INSERT'], required=False)
    table = serializers.ChoiceField(choices=['trips'], required=False)
    schema = serializers.CharField(required=False)
    record = ChangedRecordSerializer()
    old_record = serializers.JSONField(required=False, allow_null=True)
