import httpx
import pytest


@pytest.mark.django_db
def test_health_with_stub_catalog(client):
    r = client.get("/health/")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["components"]["catalog"] == {"ok": True, "mode": "stub"}


@pytest.mark.django_db
def test_health_reports_unreachable_catalog(client, settings, monkeypatch):
    settings.USE_HTTP_ADAPTERS = True

    def fake_get(url, **kw):
        raise httpx.ConnectError("refused")

    monkeypatch.setattr(httpx, "get", fake_get, raising=True)
    r = client.get("/health/")
    assert r.status_code == 503
    assert r.json()["components"] == {"db": {"ok": True}, "catalog": {"ok": False, "mode": "http"}}
