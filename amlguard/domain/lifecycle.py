from __future__ import annotations

from amlguard.core.errors import ConflictError, ValidationError


LICENSE_ACTIONS: tuple[str, ...] = ("suspend", "revoke", "renew")

# Target institution status for each licence action.
_ACTION_TARGET_STATUS: dict[str, str] = {
    "suspend": "Suspended",
    "revoke": "Revoked",
    "renew": "Active",
}

# Findings move forward only; Closed is terminal.
_FINDING_TRANSITIONS: dict[str, frozenset[str]] = {
    "Open": frozenset({"InProgress", "Closed"}),
    "InProgress": frozenset({"Closed"}),
    "Closed": frozenset(),
}


def license_action_status(current_status: str, action: str) -> str:
    """Return the status an institution moves to under ``action``.

    Revoked is terminal: every action against a revoked licence is rejected.
    Suspending an already suspended licence is rejected as a no-op.
    """
    if action not in _ACTION_TARGET_STATUS:
        raise ValidationError(f"Unsupported license action: {action}")
    if current_status == "Revoked":
        raise ConflictError(f"Cannot {action} a revoked license")
    if action == "suspend" and current_status == "Suspended":
        raise ConflictError("License is already suspended")
    return _ACTION_TARGET_STATUS[action]


def finding_transition(current_status: str, next_status: str) -> str:
    allowed = _FINDING_TRANSITIONS.get(current_status)
    if allowed is None:
        raise ValidationError(f"Unknown finding status: {current_status}")
    if next_status not in allowed:
        raise ConflictError(f"Cannot move finding from {current_status} to {next_status}")
    return next_status
