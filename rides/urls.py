# rides/urls.py
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import TripViewSet, TripWebhookView

router = DefaultRouter()
router.register(r'trips', TripViewSet, basename='trip')

urlpatterns = [
    path('', include(router.urls)),
    path('webhooks/trips/', TripWebhookView.as_view(), name='trip-webhook'),
]
