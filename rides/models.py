# rides/models.py
import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q


class Station(models.Model):
    """A fleet operator's isolated slice of drivers, zones and trips."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=120)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name


class Zone(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    station = models.ForeignKey(Station, on_delete=models.CASCADE, related_name='zones')
    name = models.CharField(max_length=120)
    color = models.CharField(max_length=7, default='#F7C948')

    # GeoJSON Polygon: {"type": "Polygon", "coordinates": [[[lng, lat], ...], <holes>]}
    geometry = models.JSONField()
    center_lat = models.FloatField(null=True, blank=True)
    center_lng = models.FloatField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        # Overlapping zones resolve to the first one in this order
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['station', 'created_at'], name='zone_station_created_idx'),
        ]

    def __str__(self):
        return self.name


class Driver(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='driver')
    station = models.ForeignKey(Station, on_delete=models.PROTECT, related_name='drivers')
    full_name = models.CharField(max_length=120)
    phone = models.CharField(max_length=20, blank=True)
    vehicle_number = models.CharField(max_length=20, blank=True)

    is_online = models.BooleanField(default=False)
    is_approved = models.BooleanField(default=True)
    # Soft-deactivation: drivers referenced by trips are never deleted
    is_active = models.BooleanField(default=True)

    latitude = models.FloatField(null=True, blank=True)
    longitude = models.FloatField(null=True, blank=True)
    current_zone = models.ForeignKey(
        Zone, on_delete=models.SET_NULL, null=True, blank=True, related_name='drivers'
    )
    location_updated_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['station', 'is_online', 'is_approved'], name='driver_presence_idx'),
            models.Index(fields=['current_zone'], name='driver_zone_idx'),
        ]

    def __str__(self):
        return self.full_name

    @property
    def has_position(self):
        return self.latitude is not None and self.longitude is not None


class Operator(models.Model):
    """Station administrator or dispatcher using the operator API."""
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='operator')
    station = models.ForeignKey(Station, on_delete=models.PROTECT, related_name='operators')

    def __str__(self):
        return f'{self.user} @ {self.station}'


class Trip(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_ACTIVE = 'active'
    STATUS_COMPLETED = 'completed'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_COMPLETED, 'Completed'),
    ]
    OPEN_STATUSES = (STATUS_PENDING, STATUS_ACTIVE)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    station = models.ForeignKey(Station, on_delete=models.PROTECT, related_name='trips')

    customer_phone = models.CharField(max_length=20, blank=True)
    pickup_address = models.TextField(blank=True)
    destination_address = models.TextField(blank=True)

    pickup_lat = models.FloatField()
    pickup_lng = models.FloatField()
    destination_lat = models.FloatField(null=True, blank=True)
    destination_lng = models.FloatField(null=True, blank=True)

    zone = models.ForeignKey(Zone, on_delete=models.SET_NULL, null=True, blank=True, related_name='trips')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    driver = models.ForeignKey(
        Driver, on_delete=models.PROTECT, null=True, blank=True, related_name='trips'
    )

    assigned_at = models.DateTimeField(null=True, blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['station', 'status'], name='trip_station_status_idx'),
            models.Index(fields=['driver', 'status'], name='trip_driver_status_idx'),
            models.Index(fields=['status', 'created_at'], name='trip_status_created_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['driver'],
                condition=Q(status__in=['pending', 'active']) & Q(driver__isnull=False),
                name='one_open_trip_per_driver',
            ),
        ]

    def __str__(self):
        return f'Trip {self.id} ({self.status})'

    @property
    def is_assigned(self):
        return self.driver_id is not None


class TripAssignment(models.Model):
    """Ledger of every driver that has held a trip."""
    REASON_DECLINED = 'declined'
    REASON_TIMEOUT = 'timeout'
    REASON_UNASSIGNED = 'unassigned'
    RELEASE_REASON_CHOICES = [
        (REASON_DECLINED, 'Declined'),
        (REASON_TIMEOUT, 'Timed out'),
        (REASON_UNASSIGNED, 'Unassigned'),
    ]

    trip = models.ForeignKey(Trip, on_delete=models.CASCADE, related_name='assignments')
    driver = models.ForeignKey(Driver, on_delete=models.PROTECT, related_name='assignments')
    distance_meters = models.FloatField(null=True, blank=True)
    assigned_at = models.DateTimeField(auto_now_add=True)
    released_at = models.DateTimeField(null=True, blank=True)
    release_reason = models.CharField(max_length=20, choices=RELEASE_REASON_CHOICES, blank=True)

    class Meta:
        ordering = ['assigned_at']
        indexes = [
            models.Index(fields=['trip', 'driver'], name='assignment_trip_driver_idx'),
        ]

    def __str__(self):
        return f'{self.driver} -> {self.trip_id}'
