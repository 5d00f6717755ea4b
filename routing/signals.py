# routing/signals.py
from django.db import transaction
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from rides.models import Zone
from .geofence import geofence_index


@receiver(post_save, sender=Zone)
@receiver(post_delete, sender=Zone)
def refresh_station_geofence(sender, instance, **kwargs):
    """Zone polygons changed: the next dispatch must see the new shapes."""
    station_id = instance.station_id
    geofence_index.invalidate(station_id)
    # Readers in other transactions only see the change after commit
    transaction.on_commit(lambda: geofence_index.invalidate(station_id))
