from django.apps import AppConfig


class RoutingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'routing'
    verbose_name = 'Zones & Geometry'

    def ready(self):
        from . import signals  # noqa: F401
