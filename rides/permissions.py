# rides/permissions.py
import hashlib
import hmac
import logging

from rest_framework import permissions

from .conf import dispatch_setting

logger = logging.getLogger(__name__)


def operator_for(user):
    return getattr(user, 'operator', None) if user and user.is_authenticated else None


def driver_for(user):
    return getattr(user, 'driver', None) if user and user.is_authenticated else None


class IsOperator(permissions.BasePermission):
    message = 'Operator account required.'

    def has_permission(self, request, view):
        return operator_for(request.user) is not None


class IsDriver(permissions.BasePermission):
    message = 'Driver account required.'

    def has_permission(self, request, view):
        driver = driver_for(request.user)
        return driver is not None and driver.is_active


class IsOperatorOrDriver(permissions.BasePermission):
    def has_permission(self, request, view):
        return operator_for(request.user) is not None or driver_for(request.user) is not None


class HasWebhookApiKey(permissions.BasePermission):
    """
    ``X-API-Key`` must match one of WEBHOOK_API_KEYS. When WEBHOOK_SECRET_KEY
    is set the body must also carry ``X-Signature: sha256=<hex hmac>``.
    """
    message = 'Invalid webhook credentials.'

    def has_permission(self, request, view):
        incoming = request.headers.get('X-API-Key', '')
        if not incoming or not any(
            hmac.compare_digest(incoming, key) for key in dispatch_setting('WEBHOOK_API_KEYS')
        ):
            logger.warning(f"Webhook call to {request.path} with a bad API key")
            return False

        secret = dispatch_setting('WEBHOOK_SECRET_KEY')
        if not secret:
            return True

        signature = request.headers.get('X-Signature', '')
        expected = 'sha256=' + hmac.new(secret.encode(), request.body, hashlib.sha256).hexdigest()
        if not hmac.compare_digest(signature, expected):
            logger.warning(f"Webhook call to {request.path} with a bad signature")
            return False
        return True
