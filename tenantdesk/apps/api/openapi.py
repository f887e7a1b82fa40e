from __future__ import annotations

from typing import Any

from tenantdesk.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "success": False,
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, example: dict[str, Any]) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": example}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: _response(
        "Validation error",
        _error_example(
            code="VALIDATION_ERROR",
            message="Validation error",
            details={
                "errors": [
                    {"field": "country", "message": "String should have at least 2 characters", "type": "string_too_short"}
                ]
            },
        ),
    ),
    401: _response(
        "Unauthorized",
        _error_example(code="AUTH_UNAUTHORIZED", message="Missing or invalid credentials"),
    ),
    403: _response(
        "Forbidden",
        _error_example(code="AUTH_FORBIDDEN", message="Insufficient role for this operation"),
    ),
    404: _response("Not found", _error_example(code="NOT_FOUND", message="Resource not found")),
    500: _response(
        "Internal server error",
        _error_example(code="INTERNAL_ERROR", message="Internal server error"),
    ),
}

SETUP_CONFLICT_RESPONSE: dict[int | str, dict[str, Any]] = {
    409: _response(
        "Idempotency key in progress",
        _error_example(
            code="IDEMPOTENCY_IN_PROGRESS",
            message="Setup request with this idempotency key is still in progress",
        ),
    ),
}
