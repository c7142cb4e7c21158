import uuid
from contextvars import ContextVar
from typing import Callable

import structlog
from django.http import HttpRequest, HttpResponse

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

logger = structlog.get_logger(__name__)


class RequestIdMiddleware:
    """Extracts or generates a request ID and binds it for logging.

    Reads the X-Request-ID header; if absent a UUID4 is generated.  The ID
    is bound into structlog contextvars as ``request_id`` (payment logs use
    ``correlation_id`` for the gateway transaction id, so the two never
    collide) and echoed back in the X-Request-ID response header.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        rid = request.META.get("HTTP_X_REQUEST_ID") or str(uuid.uuid4())
        request_id_var.set(rid)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=rid)

        logger.info("request_started", method=request.method, path=request.path)

        response = self.get_response(request)

        logger.info(
            "request_finished",
            method=request.method,
            path=request.path,
            status_code=response.status_code,
        )

        response["X-Request-ID"] = rid
        return response
