from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from amlguard.apps.api.deps import Principal, get_context, get_current_principal
from amlguard.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from amlguard.apps.api.response import success_response
from amlguard.core.errors import AuthError
from amlguard.services.auth.sessions import find_user_by_id
from amlguard.services.context import AppContext


router = APIRouter(prefix="/auth", tags=["auth"], responses=DEFAULT_ERROR_RESPONSES)


class LoginRequest(BaseModel):
    model_config = {"extra": "forbid", "populate_by_name": True}

    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=256)
    remember_me: bool = Field(default=False, alias="rememberMe")


class ExtendRequest(BaseModel):
    model_config = {"extra": "forbid"}

    hours: float | None = Field(default=None, gt=0, le=24)


@router.post("/login")
async def login(
    payload: LoginRequest,
    request: Request,
    context: AppContext = Depends(get_context),
) -> dict:
    session = context.sessions.login(
        email=payload.email,
        password=payload.password,
        remember_me=payload.remember_me,
    )
    # The poller starts with the first session rather than at import time.
    context.session_monitor.start()
    return success_response(request=request, data=session.to_dict())


@router.get("/me")
async def me(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    context: AppContext = Depends(get_context),
) -> dict:
    session = context.sessions.get(principal.session_id) if principal.session_id else None
    user = session.user if session else find_user_by_id(principal.user_id)
    data = {
        "userId": principal.user_id,
        "role": principal.role,
        "authMethod": principal.auth_method,
        "user": user.to_public() if user else None,
        "session": None,
    }
    if session is not None:
        data["session"] = {
            "sessionId": session.id,
            "expiresAt": session.expires_at.isoformat(),
            "timeRemainingMs": int(session.time_remaining().total_seconds() * 1000),
            "expiringSoon": session.is_expiring_soon(),
        }
    return success_response(request=request, data=data)


@router.post("/extend")
async def extend_session(
    payload: ExtendRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    context: AppContext = Depends(get_context),
) -> dict:
    if not principal.session_id:
        raise AuthError("Token is not bound to a session")
    session = context.sessions.extend(principal.session_id, payload.hours)
    return success_response(request=request, data=session.to_dict())


@router.post("/logout")
async def logout(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    context: AppContext = Depends(get_context),
) -> dict:
    logged_out = context.sessions.logout(principal.session_id) if principal.session_id else False
    return success_response(request=request, data={"loggedOut": logged_out})
