"""Operating modes and the permission rules that depend on them."""

from __future__ import annotations

from enum import StrEnum

from filetrack.errors import PermissionDeniedError
from filetrack.models import Company, Status, is_end_state, is_valid_status


class Mode(StrEnum):
    CONTRACTOR = "Contractor"
    VENDOR = "Vendor"


def company_for(mode: Mode) -> Company:
    return Company.CONTRACTOR if mode == Mode.CONTRACTOR else Company.VENDOR


def can_transition_status(current: str, target: str, mode: Mode) -> bool:
    """Nothing leaves an end state; vendors cannot close or reject."""
    if not is_valid_status(current) or not is_valid_status(target):
        return False
    if is_end_state(current):
        return False
    if mode == Mode.CONTRACTOR:
        return True
    if mode == Mode.VENDOR:
        return target not in (Status.CLOSED, Status.REJECTED)
    return False


def require_contractor(mode: Mode, action: str) -> None:
    if mode != Mode.CONTRACTOR:
        msg = f"permission denied: {action} requires contractor mode"
        raise PermissionDeniedError(msg)
