import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

from itera.utils.security import get_client_ip

log = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"


def elapsed_since(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Request context for every log line written while a request is handled.

    The resolved client address is kept on ``request.state.client_ip`` so the
    suggestion rate limiter keys on the same value the logs show. One access
    record is written per request, at warning level for 4xx and error level
    for 5xx responses.
    """

    def __init__(self, app, trust_proxy_headers: bool = True):
        super().__init__(app)
        self.trust_proxy_headers = trust_proxy_headers

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        clear_contextvars()

        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        client_ip = get_client_ip(request, self.trust_proxy_headers)
        request.state.request_id = request_id
        request.state.client_ip = client_ip
        bind_contextvars(
            request_id=request_id,
            http_method=request.method,
            path=request.url.path,
            client_ip=client_ip,
        )

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            log.exception("http_request_failed", elapsed_ms=elapsed_since(started), error=str(e))
            raise

        fields = {"status_code": response.status_code, "elapsed_ms": elapsed_since(started)}
        remaining = response.headers.get("RateLimit-Remaining")
        if remaining is not None:
            fields["rate_limit_remaining"] = int(remaining)

        if response.status_code >= 500:
            log.error("http_request", **fields)
        elif response.status_code >= 400:
            log.warning("http_request", **fields)
        else:
            log.info("http_request", **fields)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
