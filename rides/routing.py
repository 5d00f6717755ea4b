# rides/routing.py
from django.urls import re_path
from . import consumers
from drivers import consumers as driver_consumers

websocket_urlpatterns = [
    re_path(r'ws/station/(?P<station_id>[0-9a-f-]+)/$', consumers.StationConsumer.as_asgi()),
    re_path(r'ws/driver/(?P<driver_id>[0-9a-f-]+)/$', driver_consumers.DriverConsumer.as_asgi()),
]
