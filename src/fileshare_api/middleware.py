"""HTTP middleware functions, registered in `create_app` with `app.middleware("http")`."""

import logging
import time

from fastapi import Request

from fileshare_api.metrics import get_metrics_store
from fileshare_api.responses import SECURITY_HEADERS

logger = logging.getLogger(__name__)


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


async def add_security_headers(request: Request, call_next):
    """Make sure every response, including the framework's own 404/405s, carries the security headers."""
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000

    log = logger.warning if response.status_code >= 400 else logger.info
    log("%s %s -> %d (%.1f ms)", request.method, request.url.path, response.status_code, duration_ms)
    return response


async def collect_metrics(request: Request, call_next):
    """Count requests and time them, labelled by route template, method and status."""
    store = get_metrics_store()
    start = time.perf_counter()
    method = request.method

    store.record_counter("http_requests_total", 1, {"path": request.url.path, "method": method})
    response = await call_next(request)

    duration_ms = (time.perf_counter() - start) * 1000
    labels = {"path": _route_path(request), "method": method, "status": str(response.status_code)}
    store.record_histogram("http_request_duration_ms", duration_ms, labels)
    store.record_counter("http_response_status_total", 1, labels)
    if 200 <= response.status_code < 400:
        store.record_counter("http_requests_success_total", 1, {"path": labels["path"], "method": method})
    else:
        store.record_counter("http_requests_error_total", 1, labels)
    return response
