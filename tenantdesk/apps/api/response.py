from __future__ import annotations

from typing import Any, Literal
from uuid import uuid4

from fastapi import Request
from pydantic import BaseModel


REQUEST_ID_HEADER = "X-Request-Id"


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class ErrorMeta(BaseModel):
    request_id: str


class ErrorEnvelope(BaseModel):
    # Shape of every non-2xx body; documented through the OpenAPI responses.
    success: Literal[False] = False
    error: ErrorBody
    meta: ErrorMeta


def resolve_request_id(request: Request) -> str:
    # The middleware normally sets this first; handlers that run outside it still get an id.
    request_id = (
        getattr(request.state, "request_id", None)
        or request.headers.get(REQUEST_ID_HEADER)
        or str(uuid4())
    )
    request.state.request_id = request_id
    return request_id


def success_response(*, data: Any) -> dict[str, Any]:
    return {"success": True, "data": data}


def flat_success_response(**fields: Any) -> dict[str, Any]:
    # Some clients read result fields next to "success" rather than under "data".
    return {"success": True, **fields}


def error_response(
    *,
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    envelope = ErrorEnvelope(
        error=ErrorBody(code=code, message=message, details=details),
        meta=ErrorMeta(request_id=resolve_request_id(request)),
    )
    return envelope.model_dump(exclude_none=True)
