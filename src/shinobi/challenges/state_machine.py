"""Participation state machine.

ACTIVE -> COMPLETED | FAILED | WITHDRAWN. All three are terminal.
"""

from __future__ import annotations

from shinobi.errors import InvalidState

ACTIVE = "ACTIVE"
COMPLETED = "COMPLETED"
FAILED = "FAILED"
WITHDRAWN = "WITHDRAWN"

ALL_STATUSES = (ACTIVE, COMPLETED, FAILED, WITHDRAWN)

VALID_TRANSITIONS: dict[str, list[str]] = {
    ACTIVE: [COMPLETED, FAILED, WITHDRAWN],
    COMPLETED: [],
    FAILED: [],
    WITHDRAWN: [],
}


def validate_transition(current_status: str, target_status: str) -> None:
    """Raise InvalidState unless current -> target is allowed."""
    valid = VALID_TRANSITIONS.get(current_status, [])
    if target_status not in valid:
        msg = f"Invalid transition: {current_status} -> {target_status}. Valid transitions: {valid}"
        raise InvalidState(msg)
