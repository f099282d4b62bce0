from __future__ import annotations

from fastapi import Depends, Request
from pydantic import BaseModel

from amlguard.core.errors import AuthError, ForbiddenError
from amlguard.persistence.store import Store
from amlguard.services.audit_trail import AuditTrail
from amlguard.services.auth.roles import role_allows
from amlguard.services.auth.tokens import DEFAULT_ROLE, decode_access_token
from amlguard.services.context import AppContext
from amlguard.services.registry import EntityRegistry
from amlguard.services.supervisors import SupervisorMonitor


DEV_PRINCIPAL_ID = "dev-user"


class Principal(BaseModel):
    # Capture the authenticated identity used for RBAC and audit entries.
    user_id: str
    role: str
    session_id: str | None = None
    auth_method: str = "bearer"


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_store(context: AppContext = Depends(get_context)) -> Store:
    return context.store


async def get_entity_registry(context: AppContext = Depends(get_context)) -> EntityRegistry:
    await context.entities.ensure_loaded()
    return context.entities


async def get_supervisor_monitor(context: AppContext = Depends(get_context)) -> SupervisorMonitor:
    await context.supervisors.ensure_loaded()
    return context.supervisors


async def get_audit_trail(context: AppContext = Depends(get_context)) -> AuditTrail:
    await context.audit_trail.ensure_loaded()
    return context.audit_trail


def _bearer_token(request: Request) -> str | None:
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Malformed Authorization header")
    return token.strip()


async def get_current_principal(
    request: Request,
    context: AppContext = Depends(get_context),
) -> Principal:
    token = _bearer_token(request)
    if token is None:
        # Outside production an anonymous caller acts as the default supervisor.
        if context.settings.is_production():
            raise AuthError("Missing bearer token")
        principal = Principal(user_id=DEV_PRINCIPAL_ID, role=DEFAULT_ROLE, auth_method="dev")
    else:
        claims = decode_access_token(token)
        # Tokens minted by the login flow die with their session.
        if claims.session_id and context.sessions.get(claims.session_id) is None:
            raise AuthError("Session expired")
        principal = Principal(user_id=claims.subject, role=claims.role, session_id=claims.session_id)
    request.state.principal = principal
    return principal


def require_role(minimum_role: str):
    # Dependency factory to enforce RBAC at the route level.
    async def _dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not role_allows(role=principal.role, minimum_role=minimum_role):
            raise ForbiddenError(f"{minimum_role} role required")
        return principal

    return _dependency
