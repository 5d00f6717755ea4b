# routing/urls.py
from django.urls import path, include
from rest_framework.routers import SimpleRouter

from .views import ZoneViewSet

router = SimpleRouter()
router.register(r'zones', ZoneViewSet, basename='zone')

urlpatterns = [
    path('', include(router.urls)),
]
