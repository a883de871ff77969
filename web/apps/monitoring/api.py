import httpx
from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse


def _db_ok() -> bool:
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        return True
    except DatabaseError:
        return False


def _catalog_component() -> dict:
    # in-process stub catalog is always available
    if not getattr(settings, "USE_HTTP_ADAPTERS", True):
        return {"ok": True, "mode": "stub"}
    try:
        resp = httpx.get(f"{settings.CATALOG_BASE_URL.rstrip('/')}/health", timeout=2.0)
        return {"ok": resp.status_code == 200, "mode": "http"}
    except httpx.HTTPError:
        return {"ok": False, "mode": "http"}


def health_view(_request):
    db = {"ok": _db_ok()}
    catalog = _catalog_component()
    ok = db["ok"] and catalog["ok"]
    return JsonResponse(
        {"ok": ok, "components": {"db": db, "catalog": catalog}},
        status=200 if ok else 503,
    )
