# backend/tests/test_work_order_state_machine.py
from __future__ import annotations

import pytest

from app.domain.scheduling.errors import IllegalStateTransition
from app.domain.scheduling.state_machine import (
    CLOSED,
    IN_PROGRESS,
    IN_REVIEW,
    NEEDS_REVIEW,
    NEW,
    ON_HOLD,
    RESOLVED,
    SCHEDULED,
    TRANSITIONS,
    WORK_ORDER_STATUSES,
    assert_transition,
    can_transition,
    next_status,
)

ALLOWED = {
    (NEW, IN_REVIEW),
    (IN_REVIEW, SCHEDULED),
    (IN_REVIEW, NEW),
    (SCHEDULED, NEEDS_REVIEW),
    (SCHEDULED, IN_PROGRESS),
    (NEEDS_REVIEW, SCHEDULED),
    (IN_PROGRESS, ON_HOLD),
    (IN_PROGRESS, RESOLVED),
    (ON_HOLD, IN_PROGRESS),
    (RESOLVED, CLOSED),
}


def test_transition_table_is_exactly_the_lifecycle():
    assert set(TRANSITIONS) == set(WORK_ORDER_STATUSES)
    for a in WORK_ORDER_STATUSES:
        for b in WORK_ORDER_STATUSES:
            assert can_transition(a, b) == ((a, b) in ALLOWED), (a, b)


@pytest.mark.parametrize(
    "current,target",
    [
        (NEW, SCHEDULED),
        (NEEDS_REVIEW, IN_PROGRESS),
        (IN_PROGRESS, NEEDS_REVIEW),
        (CLOSED, NEW),
        (SCHEDULED, SCHEDULED),
    ],
)
def test_illegal_transition_is_typed(current, target):
    with pytest.raises(IllegalStateTransition) as ei:
        assert_transition(current, target)

    err = ei.value
    assert err.kind == "conflict"
    assert err.http_status == 409
    assert err.details["current"] == current
    assert err.details["target"] == target


def test_next_status_returns_target_when_legal():
    assert next_status(SCHEDULED, NEEDS_REVIEW) == NEEDS_REVIEW
    assert next_status(NEEDS_REVIEW, SCHEDULED) == SCHEDULED
