import os
from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'taxiflow.settings')

django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402

import rides.routing  # noqa: E402

application = ProtocolTypeRouter({
    # Use the initialized Django app for HTTP requests
    "http": django_asgi_app,

    # Consumers authenticate with the JWT passed in the query string
    "websocket": URLRouter(
        rides.routing.websocket_urlpatterns
    ),
})
