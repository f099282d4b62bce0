from __future__ import annotations


ROLE_ORDER: dict[str, int] = {
    "Entity": 1,
    "Supervisor": 2,
    "Administrator": 3,
}

_CANONICAL = {name.lower(): name for name in ROLE_ORDER}


def normalize_role(role: str) -> str:
    # Accept any casing but store the canonical role name.
    normalized = _CANONICAL.get(role.strip().lower())
    if normalized is None:
        raise ValueError(f"Unsupported role: {role}")
    return normalized


def role_allows(*, role: str, minimum_role: str) -> bool:
    # Compare roles using numeric ordering for least-privilege enforcement.
    return ROLE_ORDER.get(role, 0) >= ROLE_ORDER.get(minimum_role, 0)
