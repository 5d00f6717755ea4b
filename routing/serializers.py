# routing/serializers.py
from rest_framework import serializers
from shapely import wkt as shapely_wkt
from shapely.errors import GEOSException
from shapely.geometry import Polygon, mapping

from rides.models import Zone
from .geofence import polygon_rings


class ZoneSerializer(serializers.ModelSerializer):
    """Zones come in as GeoJSON ``geometry`` or as a WKT ``wkt`` string."""
    wkt = serializers.CharField(write_only=True, required=False)
    geometry = serializers.JSONField(required=False)
    driver_count = serializers.SerializerMethodField()

    class Meta:
        model = Zone
        fields = ('id', 'station', 'name', 'color', 'geometry', 'wkt',
                  'center_lat', 'center_lng', 'driver_count', 'created_at', 'updated_at')
        read_only_fields = ('id', 'station', 'center_lat', 'center_lng', 'created_at', 'updated_at')

    def get_driver_count(self, obj):
        return obj.drivers.filter(is_online=True).count()

    def validate_color(self, value):
        if len(value) != 7 or not value.startswith('#'):
            raise serializers.ValidationError("Color must be a hex value like #F7C948")
        try:
            int(value[1:], 16)
        except ValueError:
            raise serializers.ValidationError("Color must be a hex value like #F7C948")
        return value

    def validate(self, attrs):
        raw_wkt = attrs.pop('wkt', None)
        geometry = attrs.get('geometry')

        if raw_wkt:
            try:
                parsed = shapely_wkt.loads(raw_wkt)
            except (GEOSException, ValueError) as e:
                raise serializers.ValidationError({'wkt': f'Invalid WKT: {e}'})
            if parsed.geom_type != 'Polygon':
                raise serializers.ValidationError({'wkt': 'Only POLYGON geometries are supported'})
            geometry = mapping(parsed)
        elif geometry is None and self.instance is None:
            raise serializers.ValidationError({'geometry': 'Provide a GeoJSON geometry or a WKT string'})

        if geometry is not None:
            attrs.update(self._normalized_geometry(geometry))
        return attrs

    def _normalized_geometry(self, geometry):
        try:
            rings = polygon_rings(geometry)
            polygon = Polygon(rings[0], rings[1:])
        except (ValueError, TypeError, IndexError, GEOSException) as e:
            raise serializers.ValidationError({'geometry': str(e)})

        if not polygon.is_valid:
            raise serializers.ValidationError(
                {'geometry': 'Polygon must be simple (no self-intersections)'}
            )

        centroid = polygon.centroid
        return {
            'geometry': {
                'type': 'Polygon',
                'coordinates': [[list(position) for position in ring] for ring in rings],
            },
            'center_lat': centroid.y,
            'center_lng': centroid.x,
        }


class PointSerializer(serializers.Serializer):
    lat = serializers.FloatField(min_value=-90, max_value=90)
    lng = serializers.FloatField(min_value=-180, max_value=180)
