from __future__ import annotations

from typing import Any

from amlguard.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    # Build a consistent error envelope example for OpenAPI docs.
    payload: dict[str, Any] = {
        "success": False,
        "error": message,
        "code": code,
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["details"] = details
    return payload


def _response(description: str, *, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {
            "application/json": {
                "example": _error_example(code=code, message=message, details=details),
            }
        },
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: _response(
        "Bad request",
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": [{"loc": ["body", "institutionId"], "msg": "Field required", "type": "missing"}]},
    ),
    401: _response("Unauthorized", code="AUTH_UNAUTHORIZED", message="Missing or invalid bearer token"),
    403: _response("Forbidden", code="AUTH_FORBIDDEN", message="Insufficient role for this operation"),
    404: _response("Not found", code="NOT_FOUND", message="Institution not found"),
    500: _response("Internal server error", code="INTERNAL_ERROR", message="Internal server error"),
}

CONFLICT_RESPONSES: dict[int | str, dict[str, Any]] = {
    409: _response("Conflict", code="CONFLICT", message="Cannot suspend a revoked license"),
}
