# backend/app/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .domain.scheduling.errors import SchedulingError
from .logging_config import configure_logging
from .middleware.request_id import RequestIDMiddleware, get_request_id
from .middleware.structured_logging import StructuredLoggingMiddleware
from .routers.appointments import router as appointments_router
from .routers.counter_proposals import router as counter_proposals_router
from .routers.health import router as health_router
from .routers.proposals import router as proposals_router
from .routers.work_orders import router as work_orders_router

API_PREFIX = "/api"

log = logging.getLogger("scheduling.api")


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    log.warning(
        "%s %s rejected: %s",
        request.method,
        request.url.path,
        exc.message,
        extra={"error_code": exc.code, **{k: v for k, v in exc.details.items() if k.endswith("_id")}},
    )
    body = exc.to_dict()
    rid = get_request_id()
    if rid:
        body["request_id"] = rid
    return JSONResponse(status_code=exc.http_status, content={"error": body})


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Work Order Scheduling",
        version=settings.app_version,
    )

    # RequestIDMiddleware wraps the access logger so the id is set when it logs
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SchedulingError, scheduling_error_handler)

    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(work_orders_router, prefix=API_PREFIX)
    app.include_router(proposals_router, prefix=API_PREFIX)
    app.include_router(appointments_router, prefix=API_PREFIX)
    app.include_router(counter_proposals_router, prefix=API_PREFIX)
    return app


app = create_app()
