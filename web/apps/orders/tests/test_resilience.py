import httpx
import pytest

from apps.orders.http_adapters import CircuitBreaker, CircuitOpenError, HttpCatalogClient, _catalog_cb


@pytest.fixture(autouse=True)
def fast_retries(settings, monkeypatch):
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    monkeypatch.setattr("time.sleep", lambda *a, **k: None, raising=True)
    # start every test with a closed circuit
    _catalog_cb.on_success()
    yield
    _catalog_cb.on_success()


class R:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = body or {}

    def json(self):
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise httpx.HTTPStatusError("err", request=None, response=None)


def test_lookup_retries_on_5xx(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 2
    calls = {"n": 0}

    def fake_request(self, method, url, json=None, headers=None, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            return R(500)
        assert headers["X-Retry-Count"] == "1"
        return R(200, {"code": "SP1", "name": "Clean Code", "price": 100})

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    book = HttpCatalogClient(base_url="http://x").get_by_code("SP1")
    assert book.name == "Clean Code"
    assert calls["n"] == 2


def test_adjust_not_retried_on_5xx(monkeypatch, settings):
    """A stock adjustment may have been applied, so a 5xx is not repeated."""
    settings.HTTP_RETRY_MAX = 3
    calls = {"n": 0}

    def fake_request(self, method, url, **kwargs):
        calls["n"] += 1
        return R(502)

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    with pytest.raises(httpx.HTTPStatusError):
        HttpCatalogClient(base_url="http://x").adjust_stock_and_sold("SP1", 1)
    assert calls["n"] == 1


def test_adjust_retried_on_connect_error(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 3
    calls = {"n": 0}

    def fake_request(self, method, url, **kwargs):
        calls["n"] += 1
        if calls["n"] < 3:
            raise httpx.ConnectError("refused")
        return R(200, {"adjusted": True})

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    assert HttpCatalogClient(base_url="http://x").adjust_stock_and_sold("SP1", 1) is True
    assert calls["n"] == 3


def test_adjust_not_retried_on_read_timeout(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 3
    calls = {"n": 0}

    def fake_request(self, method, url, **kwargs):
        calls["n"] += 1
        raise httpx.ReadTimeout("slow")

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    with pytest.raises(httpx.ReadTimeout):
        HttpCatalogClient(base_url="http://x").adjust_stock_and_sold("SP1", 1)
    assert calls["n"] == 1


def test_circuit_opens_after_threshold(monkeypatch):
    cb = CircuitBreaker("t", fail_threshold=2, reset_timeout=60.0)
    cb.before_call()
    cb.on_failure()
    assert cb.state == "CLOSED"
    cb.on_failure()
    assert cb.state == "OPEN"
    with pytest.raises(CircuitOpenError):
        cb.before_call()


def test_circuit_half_open_probe(monkeypatch):
    now = {"t": 1000.0}
    monkeypatch.setattr("time.monotonic", lambda: now["t"], raising=True)
    cb = CircuitBreaker("t", fail_threshold=1, reset_timeout=5.0)
    cb.on_failure()
    assert cb.state == "OPEN"

    now["t"] += 5.0
    assert cb.before_call() == "HALF_OPEN"
    with pytest.raises(CircuitOpenError):
        cb.before_call()  # only one probe at a time
    cb.on_failure()
    assert cb.state == "OPEN"

    now["t"] += 5.0
    cb.before_call()
    cb.on_success()
    assert cb.state == "CLOSED"
