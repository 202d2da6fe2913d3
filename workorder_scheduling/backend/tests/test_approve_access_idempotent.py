# backend/tests/test_approve_access_idempotent.py
from __future__ import annotations

import pytest

from app.domain.scheduling.errors import AppointmentNotFound, NotAuthorized
from app.models import WorkOrder
from app.services.appointments import approve_access
from app.services.events_facade import wf


def test_second_approval_is_a_no_op(db, cast, scheduled):
    res = scheduled()
    assert res.appointment.requires_tenant_access_approval is True
    assert res.appointment.tenant_approved is False

    first = approve_access(db, actor=cast.tenant, appointment_id=res.appointment.id)
    approved_at, version = first.tenant_approved_at, first.version

    second = approve_access(db, actor=cast.tenant, appointment_id=res.appointment.id)

    assert second.tenant_approved is True
    assert second.tenant_approved_at == approved_at
    assert second.version == version

    events = [e.event_type for e in wf.list(db, work_order_id=res.proposal.work_order_id)]
    assert events.count("appointment.access_approved") == 1


def test_approval_does_not_touch_scheduling_state(db, cast, scheduled):
    res = scheduled()
    approve_access(db, actor=cast.tenant, appointment_id=res.appointment.id)

    db.refresh(res.appointment)
    assert res.appointment.status == "Confirmed"
    assert db.get(WorkOrder, res.proposal.work_order_id).status == "Scheduled"


def test_only_the_tenant_approves(db, cast, scheduled):
    res = scheduled()
    for actor in (cast.other_tenant, cast.contractor, cast.operator):
        with pytest.raises(NotAuthorized):
            approve_access(db, actor=actor, appointment_id=res.appointment.id)

    with pytest.raises(AppointmentNotFound):
        approve_access(db, actor=cast.tenant, appointment_id=res.appointment.id + 999)
