# backend/tests/test_proposal_slot_selection.py
from __future__ import annotations

import pytest
from sqlalchemy import select

from app.db import SessionLocal
from app.domain.scheduling.errors import (
    IllegalStateTransition,
    InvalidSlotCount,
    NotAuthorized,
    ProposalAlreadyResolved,
    SlotAlreadySelected,
    SlotNotFound,
    StaleVersion,
)
from app.models import Appointment, Proposal, ProposalSlot, WorkOrder
from app.services.events_facade import wf
from app.services.proposals import create_proposal, live_proposal, replace_proposal, select_slot

from conftest import DEFAULT_SLOTS, MON, THU, TUE, at, window


def _slot(proposal, number):
    return [s for s in proposal.slots if s.slot_number == number][0]


def test_tenant_selects_second_slot(db, cast, new_work_order):
    wo = new_work_order()
    proposal = create_proposal(db, actor=cast.contractor, work_order_id=wo.id, slots=DEFAULT_SLOTS)

    db.refresh(wo)
    assert wo.status == "InReview"
    assert [s.slot_number for s in proposal.slots] == [1, 2, 3]
    assert proposal.status == "Open"

    res = select_slot(db, actor=cast.tenant, proposal_id=proposal.id, slot_id=_slot(proposal, 2).id)

    assert res.appointment.scheduled_start_at == at(TUE, 14)
    assert res.appointment.scheduled_end_at == at(TUE, 16)
    assert res.appointment.status == "Confirmed"
    assert res.appointment.contractor_id == cast.contractor.user_id
    assert res.proposal.status == "Accepted"
    assert res.proposal.selected_slot_id == res.slot.id

    db.refresh(wo)
    assert wo.status == "Scheduled"

    slots = db.scalars(select(ProposalSlot).where(ProposalSlot.proposal_id == proposal.id)).all()
    assert len(slots) == 3
    assert sum(1 for s in slots if s.selected) == 1


def test_second_selection_is_refused(db, cast, scheduled):
    res = scheduled()
    other = _slot(res.proposal, 1)

    with pytest.raises(SlotAlreadySelected):
        select_slot(db, actor=cast.tenant, proposal_id=res.proposal.id, slot_id=other.id)

    assert db.scalar(select(Appointment).where(Appointment.work_order_id == res.proposal.work_order_id)).id == (
        res.appointment.id
    )
    db.refresh(res.slot)
    assert res.slot.selected is True


def test_concurrent_selection_only_one_wins(db, cast, new_work_order):
    wo = new_work_order()
    proposal = create_proposal(db, actor=cast.contractor, work_order_id=wo.id, slots=DEFAULT_SLOTS)
    slot_ids = {s.slot_number: s.id for s in proposal.slots}

    # second session reads the proposal before the first one commits
    s2 = SessionLocal()
    try:
        s2.get(Proposal, proposal.id)
        s2.get(WorkOrder, wo.id)

        select_slot(db, actor=cast.tenant, proposal_id=proposal.id, slot_id=slot_ids[1])

        with pytest.raises(SlotAlreadySelected):
            select_slot(s2, actor=cast.tenant, proposal_id=proposal.id, slot_id=slot_ids[3])
    finally:
        s2.close()

    appts = db.scalars(select(Appointment).where(Appointment.work_order_id == wo.id)).all()
    assert len(appts) == 1
    assert appts[0].scheduled_start_at == at(MON, 9)


def test_proposal_needs_exactly_three_slots_and_writes_nothing(db, cast, new_work_order):
    wo = new_work_order()
    with pytest.raises(InvalidSlotCount):
        create_proposal(db, actor=cast.contractor, work_order_id=wo.id, slots=DEFAULT_SLOTS[:2])

    db.refresh(wo)
    assert wo.status == "New"
    assert db.scalars(select(Proposal)).all() == []


def test_bare_start_slot_uses_job_duration(db, cast, new_work_order):
    wo = new_work_order(duration=90)
    proposal = create_proposal(
        db,
        actor=cast.contractor,
        work_order_id=wo.id,
        slots=[{"start": at(MON, 9)}, {"start": at(TUE, 9)}, {"start": at(THU, 9)}],
    )
    assert [(s.end_at - s.start_at).total_seconds() for s in proposal.slots] == [5400.0] * 3


def test_only_new_work_orders_take_proposals(db, cast, scheduled):
    res = scheduled()
    with pytest.raises(IllegalStateTransition):
        create_proposal(db, actor=cast.contractor, work_order_id=res.proposal.work_order_id, slots=DEFAULT_SLOTS)


def test_roles_are_enforced(db, cast, new_work_order):
    wo = new_work_order()

    with pytest.raises(NotAuthorized):
        create_proposal(db, actor=cast.tenant, work_order_id=wo.id, slots=DEFAULT_SLOTS)
    with pytest.raises(NotAuthorized):
        create_proposal(db, actor=cast.other_contractor, work_order_id=wo.id, slots=DEFAULT_SLOTS)

    proposal = create_proposal(db, actor=cast.contractor, work_order_id=wo.id, slots=DEFAULT_SLOTS)
    with pytest.raises(NotAuthorized):
        select_slot(db, actor=cast.other_tenant, proposal_id=proposal.id, slot_id=_slot(proposal, 1).id)
    with pytest.raises(NotAuthorized):
        select_slot(db, actor=cast.contractor, proposal_id=proposal.id, slot_id=_slot(proposal, 1).id)
    with pytest.raises(NotAuthorized):
        select_slot(
            db,
            actor=cast.tenant.scoped_to(wo.id + 1000),
            proposal_id=proposal.id,
            slot_id=_slot(proposal, 1).id,
        )


def test_unassigned_work_order_goes_to_first_proposer(db, cast):
    from app.services.work_orders import create_work_order

    wo = create_work_order(db, actor=cast.operator, title="Broken heater", tenant_user_id=cast.tenant.user_id)
    create_proposal(db, actor=cast.other_contractor, work_order_id=wo.id, slots=DEFAULT_SLOTS)

    db.refresh(wo)
    assert wo.assigned_contractor_id == cast.other_contractor.user_id


def test_slot_from_another_proposal_is_not_found(db, cast, new_work_order):
    p1 = create_proposal(db, actor=cast.contractor, work_order_id=new_work_order().id, slots=DEFAULT_SLOTS)
    p2 = create_proposal(
        db, actor=cast.contractor, work_order_id=new_work_order(title="Second").id, slots=DEFAULT_SLOTS
    )
    with pytest.raises(SlotNotFound):
        select_slot(db, actor=cast.tenant, proposal_id=p1.id, slot_id=_slot(p2, 1).id)


def test_stale_version_refused(db, cast, new_work_order):
    wo = new_work_order()
    proposal = create_proposal(db, actor=cast.contractor, work_order_id=wo.id, slots=DEFAULT_SLOTS)
    with pytest.raises(StaleVersion):
        select_slot(
            db,
            actor=cast.tenant,
            proposal_id=proposal.id,
            slot_id=_slot(proposal, 1).id,
            expected_version=proposal.version + 1,
        )


def test_replace_supersedes_open_proposal(db, cast, new_work_order):
    wo = new_work_order()
    old = create_proposal(db, actor=cast.contractor, work_order_id=wo.id, slots=DEFAULT_SLOTS)
    new_slots = [window(TUE, 9, 11), window(THU, 9, 11), window(THU, 13, 15)]

    new = replace_proposal(db, actor=cast.contractor, proposal_id=old.id, slots=new_slots, expected_version=old.version)

    db.refresh(old)
    db.refresh(wo)
    assert old.status == "Superseded"
    assert new.status == "Open"
    assert wo.status == "InReview"
    assert live_proposal(db, work_order_id=wo.id).id == new.id
    assert db.scalar(select(Proposal.status).where(Proposal.id == old.id)) == "Superseded"
    superseded = wf.list(db, work_order_id=wo.id, event_type="proposal.superseded")
    assert len(superseded) == 1

    with pytest.raises(ProposalAlreadyResolved):
        select_slot(db, actor=cast.tenant, proposal_id=old.id, slot_id=_slot(old, 1).id)

    res = select_slot(db, actor=cast.tenant, proposal_id=new.id, slot_id=_slot(new, 2).id)
    assert res.appointment.scheduled_start_at == at(THU, 9)


def test_replace_after_selection_refused(db, cast, scheduled):
    res = scheduled()
    with pytest.raises(SlotAlreadySelected):
        replace_proposal(db, actor=cast.contractor, proposal_id=res.proposal.id, slots=DEFAULT_SLOTS)
