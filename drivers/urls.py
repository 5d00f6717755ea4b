# drivers/urls.py
from django.urls import include, path
from rest_framework.routers import SimpleRouter

from .views import DriverAvailabilityView, DriverLocationView, DriverProfileView, DriverPushDeviceViewSet

router = SimpleRouter()
router.register(r'me/push', DriverPushDeviceViewSet, basename='driver-push')

urlpatterns = [
    path('me/', DriverProfileView.as_view(), name='driver-me'),
    path('me/location/', DriverLocationView.as_view(), name='driver-location'),
    path('me/availability/', DriverAvailabilityView.as_view(), name='driver-availability'),
    path('', include(router.urls)),
]
