# Shared fixtures for the bookstore web app: in-process catalog and customer seeding
import pytest
from django.core.cache import cache

from apps.orders.adapters import default_catalog
from apps.orders.domain import Book


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.ADMIN_API_TOKEN = "test-admin-token"
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    cache.clear()
    default_catalog.clear()
    yield
    default_catalog.clear()


@pytest.fixture()
def catalog():
    """The shared stub catalog seeded with SP1 (price 100) and SP2 (price 50)."""
    default_catalog.add(Book(code="SP1", name="Clean Code", price=100, in_stock=10))
    default_catalog.add(Book(code="SP2", name="Refactoring", price=50, in_stock=5))
    return default_catalog


@pytest.fixture()
def make_customer(db):
    from apps.orders.models import CustomerModel

    def _make(code="KH1", full_name="Nguyen Van A", email="a@example.com", orders=None):
        return CustomerModel.objects.create(
            code=code, full_name=full_name, email=email, orders=orders or [],
        )
    return _make


@pytest.fixture()
def admin_headers():
    return {"HTTP_X_ADMIN_TOKEN": "test-admin-token"}
