from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request

from tenantdesk.apps.api.errors import register_exception_handlers
from tenantdesk.apps.api.response import REQUEST_ID_HEADER, resolve_request_id
from tenantdesk.apps.api.routes.admin_users import router as admin_users_router
from tenantdesk.apps.api.routes.audit import router as audit_router
from tenantdesk.apps.api.routes.entities import router as entities_router
from tenantdesk.apps.api.routes.filter_presets import router as filter_presets_router
from tenantdesk.apps.api.routes.health import router as health_router
from tenantdesk.core.logging import configure_logging


API_PREFIX = "/api"
ROUTERS = (
    health_router,
    # Onboarding wizard: idempotent setup plus status polling.
    entities_router,
    admin_users_router,
    filter_presets_router,
    audit_router,
)

logger = logging.getLogger(__name__)


async def _tag_request(request: Request, call_next):
    # Echo the caller's request id (or a fresh one) on every response.
    request_id = resolve_request_id(request)
    started = time.monotonic()
    response = await call_next(request)
    logger.debug(
        "request_completed method=%s path=%s status=%s latency_ms=%.1f request_id=%s",
        request.method,
        request.url.path,
        response.status_code,
        (time.monotonic() - started) * 1000.0,
        request_id,
    )
    response.headers.setdefault(REQUEST_ID_HEADER, request_id)
    return response


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="tenantdesk API")
    app.middleware("http")(_tag_request)
    register_exception_handlers(app)
    for router in ROUTERS:
        app.include_router(router, prefix=API_PREFIX)
    return app


app = create_app()
