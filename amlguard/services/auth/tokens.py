from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from amlguard.core.config import get_settings
from amlguard.core.errors import AuthError
from amlguard.domain.records import utc_now
from amlguard.services.auth.roles import normalize_role


DEFAULT_ROLE = "Supervisor"


@dataclass(frozen=True)
class TokenClaims:
    subject: str
    role: str
    expires_at: datetime | None
    session_id: str | None = None


def create_access_token(
    *,
    subject: str,
    role: str,
    ttl_hours: float | None = None,
    session_id: str | None = None,
    now: datetime | None = None,
) -> tuple[str, datetime]:
    """Sign an HS256 bearer token and return it with its expiry."""
    settings = get_settings()
    issued_at = now or utc_now()
    hours = settings.session_ttl_hours if ttl_hours is None else ttl_hours
    expires_at = issued_at + timedelta(hours=hours)
    payload = {
        "sub": subject,
        "role": normalize_role(role),
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    if session_id:
        payload["sid"] = session_id
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, expires_at


def decode_access_token(token: str) -> TokenClaims:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise AuthError("Invalid token") from exc
    subject = payload.get("sub") or "unknown"
    try:
        role = normalize_role(str(payload.get("role") or DEFAULT_ROLE))
    except ValueError as exc:
        raise AuthError("Invalid token role") from exc
    exp = payload.get("exp")
    expires_at = datetime.fromtimestamp(exp, tz=timezone.utc) if isinstance(exp, (int, float)) else None
    return TokenClaims(
        subject=str(subject),
        role=role,
        expires_at=expires_at,
        session_id=payload.get("sid"),
    )
