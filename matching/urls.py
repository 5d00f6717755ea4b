# matching/urls.py
from django.urls import path

from .views import DispatchWebhookView, FindDriversView

urlpatterns = [
    path('dispatch/find-drivers/', FindDriversView.as_view(), name='find-drivers'),
    path('webhooks/dispatch/', DispatchWebhookView.as_view(), name='dispatch-webhook'),
]
