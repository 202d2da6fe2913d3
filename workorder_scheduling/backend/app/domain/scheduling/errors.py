# backend/app/domain/scheduling/errors.py
from __future__ import annotations

from typing import Any, Optional

VALIDATION = "validation"
CONFLICT = "conflict"
NOT_FOUND = "not_found"
AUTHORIZATION = "authorization"

HTTP_STATUS_BY_KIND = {
    VALIDATION: 422,
    CONFLICT: 409,
    NOT_FOUND: 404,
    AUTHORIZATION: 403,
}


class SchedulingError(Exception):
    """
    Base for every typed scheduling failure.

    `code` is the stable identifier clients switch on; `kind` tells them whether
    to show an inline form error (validation) or re-fetch and retry (conflict).
    """

    code = "SchedulingError"
    kind = VALIDATION

    def __init__(self, message: Optional[str] = None, **details: Any) -> None:
        self.message = message or self.code
        self.details = details
        super().__init__(self.message)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND.get(self.kind, 400)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


# -------------------- validation --------------------

class ValidationError(SchedulingError):
    kind = VALIDATION


class InvalidSlotCount(ValidationError):
    code = "InvalidSlotCount"


class SlotInPast(ValidationError):
    code = "SlotInPast"


class SlotOverlap(ValidationError):
    code = "SlotOverlap"


class SlotTooShort(ValidationError):
    code = "SlotTooShort"


class SlotMisaligned(ValidationError):
    code = "SlotMisaligned"


class InvalidTimeRange(ValidationError):
    code = "InvalidTimeRange"


class NoWindows(ValidationError):
    code = "NoWindows"


class WindowTooShort(ValidationError):
    code = "WindowTooShort"


class WindowOverlap(ValidationError):
    code = "WindowOverlap"


class WindowInPast(ValidationError):
    code = "WindowInPast"


class InvalidSlotIndex(ValidationError):
    code = "InvalidSlotIndex"


class InvalidCounterTarget(ValidationError):
    code = "InvalidCounterTarget"


# -------------------- state conflicts --------------------

class StateConflictError(SchedulingError):
    kind = CONFLICT


class IllegalStateTransition(StateConflictError):
    code = "IllegalStateTransition"

    def __init__(self, current: str, target: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"cannot move work order from {current} to {target}",
            current=current,
            target=target,
        )


class SlotAlreadySelected(StateConflictError):
    code = "SlotAlreadySelected"


class ProposalAlreadyResolved(StateConflictError):
    code = "ProposalAlreadyResolved"


class ProposalNotPending(StateConflictError):
    code = "ProposalNotPending"


class DuplicatePendingProposal(StateConflictError):
    code = "DuplicatePendingProposal"


class SelectedWindowConflicts(StateConflictError):
    code = "SelectedWindowConflicts"


class StaleVersion(StateConflictError):
    code = "StaleVersion"


# -------------------- not found --------------------

class NotFoundError(SchedulingError):
    kind = NOT_FOUND


class WorkOrderNotFound(NotFoundError):
    code = "WorkOrderNotFound"


class ProposalNotFound(NotFoundError):
    code = "ProposalNotFound"


class SlotNotFound(NotFoundError):
    code = "SlotNotFound"


class AppointmentNotFound(NotFoundError):
    code = "AppointmentNotFound"


class CounterProposalNotFound(NotFoundError):
    code = "CounterProposalNotFound"


# -------------------- authorization --------------------

class NotAuthorized(SchedulingError):
    code = "NotAuthorized"
    kind = AUTHORIZATION
