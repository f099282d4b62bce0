from __future__ import annotations

import pytest

from amlguard.core.errors import ConflictError, ValidationError
from amlguard.domain.lifecycle import finding_transition, license_action_status


@pytest.mark.parametrize(
    ("current", "action", "expected"),
    [
        ("Active", "suspend", "Suspended"),
        ("Active", "revoke", "Revoked"),
        ("Suspended", "renew", "Active"),
        ("Suspended", "revoke", "Revoked"),
        ("Pending", "renew", "Active"),
    ],
)
def test_license_action_targets(current: str, action: str, expected: str) -> None:
    assert license_action_status(current, action) == expected


@pytest.mark.parametrize("action", ["suspend", "revoke", "renew"])
def test_revoked_license_is_terminal(action: str) -> None:
    with pytest.raises(ConflictError):
        license_action_status("Revoked", action)


def test_suspending_a_suspended_license_is_rejected() -> None:
    with pytest.raises(ConflictError):
        license_action_status("Suspended", "suspend")


def test_unknown_license_action_is_a_validation_error() -> None:
    with pytest.raises(ValidationError):
        license_action_status("Active", "terminate")


def test_findings_move_forward_only() -> None:
    assert finding_transition("Open", "InProgress") == "InProgress"
    assert finding_transition("Open", "Closed") == "Closed"
    assert finding_transition("InProgress", "Closed") == "Closed"
    with pytest.raises(ConflictError):
        finding_transition("InProgress", "Open")
    with pytest.raises(ConflictError):
        finding_transition("Closed", "InProgress")
    with pytest.raises(ValidationError):
        finding_transition("Archived", "Closed")
