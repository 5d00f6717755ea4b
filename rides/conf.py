from django.conf import settings

DEFAULTS = {
    'DISTANCE_STRATEGY': 'geodesic',
    'GEOFENCE_BACKEND': 'strtree',
    'ZONE_WIDENING': False,
    'MAX_CANDIDATES': 10,
    'ACCEPT_TIMEOUT_SECONDS': 60,
    'REDISPATCH_ON_DECLINE': True,
    'AUTO_DISPATCH_ON_CREATE': True,
    'NOTIFICATION_TIME_LIMIT': 10,
    'WEBHOOK_API_KEYS': [],
    'WEBHOOK_SECRET_KEY': '',
    'GEOFENCE_CACHE_PREFIX': 'geofence:version',
}


def dispatch_setting(name):
    """Read a DISPATCH_SETTINGS value at call time so overrides apply."""
    return getattr(settings, 'DISPATCH_SETTINGS', {}).get(name, DEFAULTS[name])
