# backend/app/domain/scheduling/state_machine.py
from __future__ import annotations

from typing import Dict, FrozenSet

from .errors import IllegalStateTransition

# -----------------------------------------------------------------------------
# Work order state machine
# -----------------------------------------------------------------------------
# NeedsReview is only reachable from Scheduled (counter-proposal submitted) and
# always returns to Scheduled. Once InProgress, the appointment time is frozen.
# -----------------------------------------------------------------------------

NEW = "New"
IN_REVIEW = "InReview"
SCHEDULED = "Scheduled"
NEEDS_REVIEW = "NeedsReview"
IN_PROGRESS = "InProgress"
ON_HOLD = "OnHold"
RESOLVED = "Resolved"
CLOSED = "Closed"

WORK_ORDER_STATUSES = (NEW, IN_REVIEW, SCHEDULED, IN_PROGRESS, ON_HOLD, RESOLVED, CLOSED, NEEDS_REVIEW)

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    NEW: frozenset({IN_REVIEW}),
    IN_REVIEW: frozenset({SCHEDULED, NEW}),
    SCHEDULED: frozenset({NEEDS_REVIEW, IN_PROGRESS}),
    NEEDS_REVIEW: frozenset({SCHEDULED}),
    IN_PROGRESS: frozenset({ON_HOLD, RESOLVED}),
    ON_HOLD: frozenset({IN_PROGRESS}),
    RESOLVED: frozenset({CLOSED}),
    CLOSED: frozenset(),
}

# Targets a caller may request directly; everything else is driven by
# proposal / counter-proposal operations.
MANUAL_TARGETS = frozenset({IN_PROGRESS, ON_HOLD, RESOLVED, CLOSED})

# Statuses in which the appointment time may still be renegotiated.
NEGOTIABLE = frozenset({SCHEDULED, NEEDS_REVIEW})


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def assert_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise IllegalStateTransition(current=current, target=target)


def next_status(current: str, target: str) -> str:
    assert_transition(current, target)
    return target


# -------------------- appointment / proposal / counter statuses --------------------

APPT_CONFIRMED = "Confirmed"
APPT_NEEDS_REVIEW = "NeedsReview"
APPT_CANCELLED = "Cancelled"

# Appointments that hold contractor time.
APPT_BOOKED = (APPT_CONFIRMED, APPT_NEEDS_REVIEW)

PROPOSAL_OPEN = "Open"
PROPOSAL_ACCEPTED = "Accepted"
PROPOSAL_COUNTERED = "Countered"
PROPOSAL_SUPERSEDED = "Superseded"
PROPOSAL_EXPIRED = "Expired"

COUNTER_PENDING = "Pending"
COUNTER_ACCEPTED = "Accepted"
COUNTER_REJECTED = "Rejected"
COUNTER_EXPIRED = "Expired"
