# backend/tests/test_work_order_transitions_audit_trail.py
from __future__ import annotations

import json

import pytest
from sqlalchemy import select

from app.domain.scheduling.errors import IllegalStateTransition, NotAuthorized, StaleVersion
from app.models import AuditEvent
from app.services.counter_proposals import reject_counter_proposal, submit_counter_proposal
from app.services.events_facade import wf
from app.services.work_orders import transition_work_order

from conftest import WED, window


def test_manual_lifecycle_after_scheduling(db, cast, scheduled):
    res = scheduled()
    wo_id = res.proposal.work_order_id

    for target in ("InProgress", "OnHold", "InProgress", "Resolved"):
        wo = transition_work_order(db, actor=cast.contractor, work_order_id=wo_id, target=target)
        assert wo.status == target

    with pytest.raises(NotAuthorized):
        transition_work_order(db, actor=cast.contractor, work_order_id=wo_id, target="Closed")

    wo = transition_work_order(db, actor=cast.operator, work_order_id=wo_id, target="Closed")
    assert wo.status == "Closed"


def test_scheduling_states_are_not_manual(db, cast, scheduled):
    res = scheduled()
    wo_id = res.proposal.work_order_id

    with pytest.raises(IllegalStateTransition):
        transition_work_order(db, actor=cast.operator, work_order_id=wo_id, target="NeedsReview")
    with pytest.raises(IllegalStateTransition):
        transition_work_order(db, actor=cast.operator, work_order_id=wo_id, target="Resolved")
    with pytest.raises(NotAuthorized):
        transition_work_order(db, actor=cast.tenant, work_order_id=wo_id, target="InProgress")


def test_version_guard(db, cast, scheduled):
    res = scheduled()
    wo_id = res.proposal.work_order_id
    wo = transition_work_order(db, actor=cast.contractor, work_order_id=wo_id, target="InProgress")
    seen = wo.version

    with pytest.raises(StaleVersion):
        transition_work_order(
            db, actor=cast.contractor, work_order_id=wo_id, target="OnHold", expected_version=seen - 1
        )
    ok = transition_work_order(
        db, actor=cast.contractor, work_order_id=wo_id, target="OnHold", expected_version=seen
    )
    assert ok.version == seen + 1


def test_every_step_leaves_a_trail(db, cast, scheduled):
    res = scheduled()
    wo_id = res.proposal.work_order_id
    cp = submit_counter_proposal(
        db, actor=cast.tenant, appointment_id=res.appointment.id, availability=[window(WED, 8, 12)]
    )
    reject_counter_proposal(db, actor=cast.contractor, counter_proposal_id=cp.id)

    events = wf.list(db, work_order_id=wo_id)
    types = [e.event_type for e in events]
    assert types[0] == "work_order.created"
    for expected in (
        "proposal.created",
        "slot.selected",
        "appointment.created",
        "counter_proposal.submitted",
        "appointment.needs_review",
        "counter_proposal.rejected",
        "appointment.confirmed",
    ):
        assert expected in types

    by_type = {e.event_type: e for e in events}
    assert by_type["slot.selected"].actor_role == "tenant"
    assert by_type["counter_proposal.rejected"].actor_role == "contractor"
    assert by_type["counter_proposal.submitted"].payload["counter_proposal_id"] == cp.id

    audit = db.scalars(
        select(AuditEvent).where(AuditEvent.entity_type == "CounterProposal", AuditEvent.entity_id == str(cp.id))
        .order_by(AuditEvent.id)
    ).all()
    assert [a.action for a in audit] == ["counter_proposal.submitted", "counter_proposal.rejected"]
    assert json.loads(audit[1].before_json)["status"] == "Pending"
    assert json.loads(audit[1].after_json)["status"] == "Rejected"


def test_trail_polling_cursor_and_type_filter(db, cast, scheduled):
    res = scheduled()
    wo_id = res.proposal.work_order_id
    seen = wf.list(db, work_order_id=wo_id)
    cursor = seen[-1].id

    assert wf.list(db, work_order_id=wo_id, since_id=cursor) == []

    transition_work_order(db, actor=cast.contractor, work_order_id=wo_id, target="InProgress")
    fresh = wf.list(db, work_order_id=wo_id, since_id=cursor)
    assert fresh and all(e.id > cursor for e in fresh)

    only = wf.list(db, work_order_id=wo_id, event_type="slot.selected")
    assert [e.event_type for e in only] == ["slot.selected"]
