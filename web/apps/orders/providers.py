"""Service provider helpers for wiring OrderService with its ports.

``get_order_service`` returns an ``OrderService`` backed by the customer
repository and the email notifier. The catalog port is the HTTP client
for the catalog service when ``settings.USE_HTTP_ADAPTERS`` is truthy, or
the shared in-process ``CatalogStub`` otherwise (tests and local
development).
"""

from django.conf import settings

from .adapters import default_catalog
from .domain import CatalogPort, OrderService
from .http_adapters import HttpCatalogClient
from .notifications import EmailOrderNotifier
from .repository import CustomerRepository


def get_catalog() -> CatalogPort:
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return HttpCatalogClient()
    return default_catalog


def get_order_service() -> OrderService:
    """Return a configured OrderService instance."""
    return OrderService(
        catalog=get_catalog(),
        customers=CustomerRepository(),
        notifier=EmailOrderNotifier(),
    )
