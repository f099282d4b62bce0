from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable
from uuid import uuid4

import bcrypt

from amlguard.core.config import get_settings
from amlguard.core.errors import AuthError
from amlguard.domain.records import utc_now
from amlguard.services.auth.tokens import create_access_token


logger = logging.getLogger(__name__)


def hash_password(raw: str) -> str:
    return bcrypt.hashpw(raw.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(raw: str, hashed: str) -> bool:
    encoded = raw.encode("utf-8")
    # bcrypt only reads 72 bytes and newer releases refuse longer input.
    if len(encoded) > 72:
        return False
    return bcrypt.checkpw(encoded, hashed.encode("utf-8"))


_DEMO_PASSWORD_HASH = hash_password("AMLGuard2025!")


@dataclass(frozen=True)
class DemoUser:
    id: str
    email: str
    first_name: str
    last_name: str
    role: str
    organization: str
    password_hash: str = _DEMO_PASSWORD_HASH
    is_active: bool = True

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "role": self.role,
            "organization": self.organization,
        }


DEMO_USERS: tuple[DemoUser, ...] = (
    DemoUser("usr_001", "brian.guvava@seczim.co.zw", "Brian", "Guvava", "Administrator", "SECZim - IT Department"),
    DemoUser("usr_002", "samkheliso.dube@seczim.co.zw", "Samkheliso", "Dube", "Supervisor", "SECZim - AML Unit"),
    DemoUser("usr_003", "makanaka.elara@capitalmarkets.co.zw", "Makanaka", "Elara", "Entity", "Capital Markets Securities Ltd"),
    DemoUser("usr_004", "admin@seczim.co.zw", "System", "Administrator", "Administrator", "SECZim - Management"),
    DemoUser("usr_005", "supervisor@seczim.co.zw", "AML", "Supervisor", "Supervisor", "SECZim - AML Unit"),
    DemoUser("usr_006", "entity@investmentfirm.co.zw", "Compliance", "Officer", "Entity", "Premium Investment Managers"),
)


def find_user_by_email(email: str) -> DemoUser | None:
    needle = email.strip().lower()
    return next((user for user in DEMO_USERS if user.email.lower() == needle), None)


def find_user_by_id(user_id: str) -> DemoUser | None:
    return next((user for user in DEMO_USERS if user.id == user_id), None)


def validate_credentials(email: str, password: str) -> DemoUser | None:
    user = find_user_by_email(email)
    if user is None:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


@dataclass
class AuthSession:
    id: str
    user: DemoUser
    token: str
    expires_at: datetime
    remember_me: bool = False
    created_at: datetime = field(default_factory=utc_now)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utc_now()) >= self.expires_at

    def time_remaining(self, now: datetime | None = None) -> timedelta:
        remaining = self.expires_at - (now or utc_now())
        return max(remaining, timedelta(0))

    def is_expiring_soon(self, warning_minutes: int = 5, now: datetime | None = None) -> bool:
        remaining = self.time_remaining(now)
        return timedelta(0) < remaining <= timedelta(minutes=warning_minutes)

    def extend(self, hours: float, now: datetime | None = None) -> None:
        # Extension restarts the clock from now rather than stacking onto the old expiry.
        self.expires_at = (now or utc_now()) + timedelta(hours=hours)

    def to_dict(self, now: datetime | None = None) -> dict:
        return {
            "sessionId": self.id,
            "token": self.token,
            "user": self.user.to_public(),
            "expiresAt": self.expires_at.isoformat(),
            "rememberMe": self.remember_me,
            "timeRemainingMs": int(self.time_remaining(now).total_seconds() * 1000),
        }


class SessionRegistry:
    """Tracks sessions issued by the login flow; expired sessions are purged."""

    def __init__(self) -> None:
        self._sessions: dict[str, AuthSession] = {}

    def login(self, *, email: str, password: str, remember_me: bool = False) -> AuthSession:
        user = validate_credentials(email, password)
        if user is None:
            raise AuthError("Invalid email or password. Please try again.")
        if not user.is_active:
            raise AuthError("Your account has been deactivated. Please contact support.")
        settings = get_settings()
        hours = settings.session_remember_ttl_hours if remember_me else settings.session_ttl_hours
        session_id = uuid4().hex
        token, expires_at = create_access_token(
            subject=user.id, role=user.role, ttl_hours=hours, session_id=session_id
        )
        session = AuthSession(
            id=session_id,
            user=user,
            token=token,
            expires_at=expires_at,
            remember_me=remember_me,
        )
        self._sessions[session_id] = session
        logger.info("session_created user_id=%s role=%s remember_me=%s", user.id, user.role, remember_me)
        return session

    def get(self, session_id: str) -> AuthSession | None:
        session = self._sessions.get(session_id)
        if session is None or session.is_expired():
            return None
        return session

    def extend(self, session_id: str, hours: float | None = None) -> AuthSession:
        session = self.get(session_id)
        if session is None:
            raise AuthError("Session expired")
        settings = get_settings()
        resolved_hours = hours if hours is not None else settings.session_ttl_hours
        now = utc_now()
        session.extend(resolved_hours, now)
        # The bearer token carries its own exp; reissue it to match the new expiry.
        session.token, _ = create_access_token(
            subject=session.user.id,
            role=session.user.role,
            ttl_hours=resolved_hours,
            session_id=session.id,
            now=now,
        )
        return session

    def logout(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def purge_expired(self, now: datetime | None = None) -> list[str]:
        now = now or utc_now()
        expired = [sid for sid, session in self._sessions.items() if session.is_expired(now)]
        for sid in expired:
            self._sessions.pop(sid, None)
        return expired

    def __len__(self) -> int:
        return len(self._sessions)


class SessionExpiryMonitor:
    """Polls the registry on a fixed interval and logs expired sessions out.

    This is a wall-clock check, not a cancellation of in-flight requests.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        interval_s: float | None = None,
        on_expired: Callable[[str], Awaitable[None]] | None = None,
    ) -> None:
        self._registry = registry
        self._interval_s = interval_s if interval_s is not None else get_settings().session_check_interval_s
        self._on_expired = on_expired
        self._task: asyncio.Task | None = None

    async def check_once(self) -> list[str]:
        expired = self._registry.purge_expired()
        for session_id in expired:
            logger.info("session_expired session_id=%s", session_id)
            if self._on_expired is not None:
                await self._on_expired(session_id)
        return expired

    async def _loop(self) -> None:
        while True:
            try:
                await self.check_once()
            except Exception:  # noqa: BLE001 - keep the poller alive while surfacing failures in logs.
                logger.exception("session expiry check failed")
            await asyncio.sleep(max(0.01, self._interval_s))

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
