import hmac

from django.conf import settings
from rest_framework.permissions import BasePermission


class HasAdminToken(BasePermission):
    """Allow the request when ``X-Admin-Token`` matches ``ADMIN_API_TOKEN``."""

    message = "ADMIN_TOKEN_REQUIRED"

    def has_permission(self, request, view):
        expected = getattr(settings, "ADMIN_API_TOKEN", "")
        supplied = request.headers.get("X-Admin-Token", "")
        return bool(expected) and hmac.compare_digest(supplied.encode(), expected.encode())
