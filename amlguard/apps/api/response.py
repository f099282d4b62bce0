from __future__ import annotations

from dataclasses import asdict
from typing import Any, Generic, TypeVar
from uuid import uuid4

from fastapi import Request
from pydantic import BaseModel, Field

from amlguard.domain.entities import to_jsonable


API_PREFIX = "/api"
API_VERSION = "v1"

T = TypeVar("T")


class ResponseMeta(BaseModel):
    # Include request/version metadata for consistent client tracing.
    request_id: str
    api_version: str = Field(default=API_VERSION)


class SuccessEnvelope(BaseModel, Generic[T]):
    success: bool = True
    data: T
    meta: ResponseMeta


class ErrorEnvelope(BaseModel):
    # Errors carry a readable message plus a stable machine code.
    success: bool = False
    error: str
    code: str
    details: dict[str, Any] | None = None
    meta: ResponseMeta


def get_request_id(request: Request) -> str:
    # Use existing request IDs when provided to preserve traceability.
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id
    header_request_id = request.headers.get("X-Request-Id")
    if header_request_id:
        request.state.request_id = header_request_id
        return header_request_id
    generated = str(uuid4())
    request.state.request_id = generated
    return generated


def success_response(*, request: Request, data: Any) -> dict[str, Any]:
    meta = ResponseMeta(request_id=get_request_id(request))
    return {"success": True, "data": data, "meta": meta.model_dump()}


def error_response(
    *,
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    meta = ResponseMeta(request_id=get_request_id(request))
    payload: dict[str, Any] = {"success": False, "error": message, "code": code, "meta": meta.model_dump()}
    if details:
        payload["details"] = details
    return payload


def record_data(record: Any) -> dict[str, Any]:
    # Dataclass records go out with ISO 8601 timestamps and their stored field names.
    return to_jsonable(asdict(record))
