# backend/app/middleware/structured_logging.py
from __future__ import annotations

import logging
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

log = logging.getLogger("scheduling.access")


def _claimed_actor(request: Request) -> dict:
    # Dev headers only; under JWT the handler resolves the actor and logs it itself.
    out = {}
    uid = request.headers.get(settings.dev_header_user_id)
    if uid and uid.isdigit():
        out["user_id"] = int(uid)
    role = request.headers.get(settings.dev_header_user_role)
    if role:
        out["actor_role"] = role.strip().lower()
    return out


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Access log. One record per request, formatted by JsonFormatter, carrying
    method, path, status_code, latency_ms and the claimed actor. Runs inside
    RequestIDMiddleware so the line gets the request id.

    4xx are logged at WARNING so rejected scheduling actions stand out from
    the polling traffic.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            extra = {
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "latency_ms": int((time.perf_counter() - started) * 1000),
                **_claimed_actor(request),
            }
            level = logging.INFO
            if status_code >= 500:
                level = logging.ERROR
            elif status_code >= 400:
                level = logging.WARNING
            log.log(level, "%s %s -> %s", request.method, request.url.path, status_code, extra=extra)
