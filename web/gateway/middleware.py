"""Gateway middleware: request correlation and API payload limits.

``RequestIdMiddleware`` gives every request an identifier, reusing the
client's ``X-Request-Id`` header when it looks sane and generating a UUIDv4
otherwise. The id is stored on the request, in the ``REQUEST_ID_CTX``
context variable (read by the logging filter and by the catalog HTTP
client) and echoed back in the ``X-Request-ID`` response header.

``ApiSizeLimitMiddleware`` refuses ``/api/`` requests whose declared body
is larger than ``settings.API_MAX_BYTES``.
"""

import contextvars
import re
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


class RequestIdMiddleware(MiddlewareMixin):
    """Set and return a per-request identifier."""

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER, "")
        if not _REQUEST_ID_RE.match(rid):
            rid = str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        response[self.RESPONSE_HEADER] = getattr(request, "request_id", REQUEST_ID_CTX.get())
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    """Reject oversized API payloads with 413 before views parse them."""

    def process_request(self, request):
        if not request.path.startswith("/api/"):
            return None
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > settings.API_MAX_BYTES:
            return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)
        return None
