from __future__ import annotations

from amlguard.services.auth.tokens import create_access_token


# Demo users from the session registry, one per role.
ROLE_SUBJECTS = {
    "Administrator": "usr_001",
    "Supervisor": "usr_002",
    "Entity": "usr_003",
}


def bearer_headers(role: str, *, subject: str | None = None, ttl_hours: float | None = None) -> dict[str, str]:
    # Session-less tokens; good for RBAC checks without going through login.
    token, _ = create_access_token(
        subject=subject or ROLE_SUBJECTS[role],
        role=role,
        ttl_hours=ttl_hours,
    )
    return {"Authorization": f"Bearer {token}"}
