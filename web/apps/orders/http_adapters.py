"""HTTP adapter for the catalog service with retries, a circuit breaker and
request correlation.

``HttpCatalogClient`` implements ``CatalogPort`` on top of ``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
    by the gateway middleware.
- A circuit breaker for the catalog so an unhealthy service is not
    hammered, with HALF_OPEN probing after a timeout.
- Retries with exponential backoff. Book lookups retry on transport errors
    and 5xx. Stock adjustments are not idempotent, so they retry only when
    the connection was never established.
"""

import logging
import os
import sys
import threading
import time
from typing import Optional

import httpx
from django.conf import settings

from gateway.middleware import REQUEST_ID_CTX

from .domain import Book, CatalogPort

logger = logging.getLogger("bookstore.http")


def _is_test_mode() -> bool:
    return (
        "pytest" in sys.modules
        or os.environ.get("PYTEST_CURRENT_TEST") is not None
    )


# ---------------- Circuit Breaker ---------------- #

class CircuitOpenError(RuntimeError):
    """Raised instead of calling a downstream service whose circuit is open."""


class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe, back to OPEN on failure.
      Only one probe may be in flight.

    Thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Return the state at call time or refuse the call.

        Raises:
            CircuitOpenError: When OPEN, or HALF_OPEN with a probe running.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise CircuitOpenError(f"CIRCUIT_OPEN:{self.name}")
            if st == "HALF_OPEN":
                if self._probe_in_flight:
                    raise CircuitOpenError(f"CIRCUIT_HALF_OPEN_BUSY:{self.name}")
                self._probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (
                self._failures >= self.fail_threshold and self._state != "OPEN"
            ):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._probe_in_flight = False
                logger.warning("circuit opened", extra={"service": self.name, "failures": self._failures})

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._probe_in_flight = False


_catalog_cb = CircuitBreaker(
    "catalog",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Headers for an outgoing call: ``X-Request-ID`` plus ``extra``."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy() -> tuple[int, float]:
    """Return retry configuration as (max_attempts, backoff_base_seconds)."""
    max_retries = getattr(settings, "HTTP_RETRY_MAX", 3)
    backoff = getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15)
    if _is_test_mode():
        backoff = 0.0
    return max(1, max_retries), backoff


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception], idempotent: bool) -> bool:
    """Decide whether a failed attempt may be repeated.

    Non-idempotent calls retry only on connection failures, where the
    request cannot have reached the service.
    """
    if exc is not None:
        return idempotent or isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))
    if resp is not None and 500 <= resp.status_code < 600:
        return idempotent
    return False


# ---------------- Catalog Adapter ---------------- #

class HttpCatalogClient(CatalogPort):
    """HTTP client for the catalog service."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.CATALOG_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def _send(self, method: str, path: str, *, json: Optional[dict] = None,
              business_statuses: tuple = (), idempotent: bool = True) -> httpx.Response:
        """Send one logical request, retrying per policy.

        Responses with status 2xx or in ``business_statuses`` are returned
        and count as circuit successes.

        Raises:
            CircuitOpenError: When the circuit refuses the call.
            httpx.RequestError: For transport errors after retries.
            httpx.HTTPStatusError: For other non-2xx responses.
        """
        max_attempts, backoff = _retry_policy()
        tries = 0
        state = _catalog_cb.before_call()
        headers = _request_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})
        url = f"{self.base_url}{path}"

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.request(method, url, json=json, headers=headers)
                        if 200 <= resp.status_code < 300 or resp.status_code in business_statuses:
                            _catalog_cb.on_success()
                            return resp
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)
                    if tries >= max_attempts or not _should_retry(resp, exc, idempotent):
                        if exc is not None or resp.status_code >= 500:
                            _catalog_cb.on_failure()
                        logger.warning("catalog call failed", extra={
                            "method": method, "path": path, "tries": tries,
                            "status": getattr(resp, "status_code", None)})
                        if exc is not None:
                            raise exc
                        resp.raise_for_status()
                        return resp

                    sleep_s = backoff * (2 ** (tries - 1))
                    time.sleep(min(sleep_s, getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)))
        finally:
            _catalog_cb.on_finish()

    def get_by_code(self, code: str) -> Optional[Book]:
        """Look a book up by code.

        Returns:
            Book | None: None when the catalog answers 404.
        """
        resp = self._send("GET", f"/books/{code}", business_statuses=(404,))
        if resp.status_code == 404:
            return None
        data = resp.json()
        return Book(
            code=data["code"],
            name=data["name"],
            price=data["price"],
            in_stock=data.get("in_stock", 0),
            sold=data.get("sold", 0),
        )

    def adjust_stock_and_sold(self, code: str, delta: int) -> bool:
        """Ask the catalog to move ``delta`` units from stock to sold.

        Returns:
            bool: True on 200 with ``adjusted``; False on 409 (insufficient
            stock or unknown book).
        """
        resp = self._send(
            "POST", f"/books/{code}/adjust",
            json={"delta": delta}, business_statuses=(409,), idempotent=False,
        )
        if resp.status_code == 409:
            return False
        return bool(resp.json().get("adjusted", False))
