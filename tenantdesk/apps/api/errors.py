from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tenantdesk.apps.api.response import error_response
from tenantdesk.persistence.guards import TenantPredicateError


logger = logging.getLogger(__name__)

STATUS_CODES: dict[int, str] = {
    400: "VALIDATION_ERROR",
    401: "AUTH_UNAUTHORIZED",
    403: "AUTH_FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}
_LOCATION_ROOTS = frozenset({"body", "query", "path", "header"})


def error_code_for(status_code: int) -> str:
    return STATUS_CODES.get(status_code, "UNKNOWN_ERROR")


def describe_http_error(exc: StarletteHTTPException) -> tuple[str, str, dict[str, Any] | None]:
    """Map an HTTPException detail onto (code, message, details).

    Routes raise ``HTTPException(detail={"code": ..., "message": ..., **extra})``;
    anything besides code and message is passed through as ``details``. Plain
    string details keep the status-derived code.
    """
    fallback = error_code_for(exc.status_code)
    detail = exc.detail
    if isinstance(detail, str) and detail:
        return fallback, detail, None
    if not isinstance(detail, dict):
        return fallback, "Request failed", None
    extra = {key: value for key, value in detail.items() if key not in ("code", "message")}
    return (
        str(detail.get("code") or fallback),
        str(detail.get("message") or "Request failed"),
        extra or None,
    )


def _field_path(loc: tuple[Any, ...] | list[Any]) -> str:
    # ("body", "registrations", 0, "type") -> "registrations.0.type"
    parts = [str(part) for part in loc]
    if parts and parts[0] in _LOCATION_ROOTS:
        parts = parts[1:]
    return ".".join(parts) or "body"


def field_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    return [
        {
            "field": _field_path(error.get("loc", ())),
            "message": str(error.get("msg", "Invalid value")),
            "type": str(error.get("type", "value_error")),
        }
        for error in exc.errors()
    ]


def _envelope(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    *,
    details: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=status_code, headers=headers)


async def on_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Covers fastapi.HTTPException too, plus router-level 404/405s.
    code, message, details = describe_http_error(exc)
    return _envelope(request, exc.status_code, code, message, details=details, headers=exc.headers)


async def on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _envelope(
        request,
        400,
        "VALIDATION_ERROR",
        "Validation error",
        details={"errors": field_errors(exc)},
    )


async def on_tenant_predicate_error(request: Request, exc: TenantPredicateError) -> JSONResponse:
    logger.error("tenant_predicate_missing path=%s table=%s message=%s", request.url.path, exc.table, exc.message)
    return _envelope(request, 500, "INTERNAL_ERROR", "Internal server error")


async def on_unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    # Callers only ever see the generic envelope.
    logger.error("unhandled_exception path=%s", request.url.path, exc_info=exc)
    return _envelope(request, 500, "INTERNAL_ERROR", "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, on_http_error)
    app.add_exception_handler(RequestValidationError, on_validation_error)
    app.add_exception_handler(TenantPredicateError, on_tenant_predicate_error)
    app.add_exception_handler(Exception, on_unhandled_error)
