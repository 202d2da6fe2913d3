# backend/app/services/proposals.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, List, Mapping, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..auth import ActorContext
from ..config import settings
from ..db import atomic
from ..domain.audit import snapshot
from ..domain.scheduling.errors import (
    InvalidTimeRange,
    NotAuthorized,
    ProposalAlreadyResolved,
    SlotAlreadySelected,
    StaleVersion,
)
from ..domain.scheduling.intervals import TimeWindow, parse_dt
from ..domain.scheduling.state_machine import (
    APPT_CONFIRMED,
    IN_REVIEW,
    PROPOSAL_ACCEPTED,
    PROPOSAL_COUNTERED,
    PROPOSAL_OPEN,
    PROPOSAL_SUPERSEDED,
    SCHEDULED,
    assert_transition,
)
from ..domain.scheduling.validation import validate_proposal_slots
from ..models import Appointment, Proposal, ProposalSlot, WorkOrder
from .access import require_participant, require_proposing_contractor, require_tenant_of
from .notifications import PROPOSAL_CREATED, SLOT_SELECTED, NotificationEvent, notify
from .notifications import PROPOSAL_SUPERSEDED as EVT_SUPERSEDED
from .ownership import check_version, must_get_proposal, must_get_slot, must_get_work_order
from .work_orders import move_status, record_change, required_duration_minutes

log = logging.getLogger("scheduling.proposals")


def _utcnow() -> datetime:
    return datetime.utcnow()


@dataclass(frozen=True)
class SlotSelection:
    proposal: Proposal
    slot: ProposalSlot
    appointment: Appointment


def _slot_window(spec: Mapping[str, Any], duration_minutes: int) -> TimeWindow:
    """
    A slot is either {start, end} or {start} alone; a bare start gets the
    job's estimated duration.
    """
    start = spec.get("start")
    if start is None:
        raise InvalidTimeRange("slot start is required")
    end = spec.get("end")
    if end is None:
        s = parse_dt(start)
        return TimeWindow(s, s + timedelta(minutes=int(duration_minutes)))
    return TimeWindow.of(start, end)


def _build_proposal(
    db: Session,
    *,
    actor: ActorContext,
    wo: WorkOrder,
    slots: Sequence[Mapping[str, Any]],
    estimated_cost: Optional[float],
    estimated_duration_minutes: Optional[int],
    notes: Optional[str],
    now: datetime,
) -> Proposal:
    duration = int(estimated_duration_minutes or required_duration_minutes(wo))
    windows = validate_proposal_slots(
        [_slot_window(s, duration) for s in slots],
        now=now,
        expected_count=settings.slot_count,
        min_minutes=settings.slot_min_minutes,
        granularity_minutes=settings.slot_granularity_minutes,
    )

    expires_at = None
    if settings.proposal_expiry_hours:
        expires_at = now + timedelta(hours=int(settings.proposal_expiry_hours))

    proposal = Proposal(
        work_order_id=wo.id,
        contractor_id=actor.user_id,
        status=PROPOSAL_OPEN,
        estimated_cost=estimated_cost,
        estimated_duration_minutes=duration,
        notes=notes,
        selected_slot_id=None,
        expires_at=expires_at,
        version=1,
        created_at=now,
        updated_at=now,
    )
    proposal.slots = [
        ProposalSlot(slot_number=i + 1, start_at=w.start, end_at=w.end, selected=False, created_at=now)
        for i, w in enumerate(windows)
    ]
    db.add(proposal)

    if estimated_duration_minutes:
        wo.estimated_duration_minutes = duration
    return proposal


def create_proposal(
    db: Session,
    *,
    actor: ActorContext,
    work_order_id: int,
    slots: Sequence[Mapping[str, Any]],
    estimated_cost: Optional[float] = None,
    estimated_duration_minutes: Optional[int] = None,
    notes: Optional[str] = None,
) -> Proposal:
    """
    Contractor offers exactly three slots for a New work order.
    Moves the work order to InReview and assigns the contractor if needed.
    """
    wo = must_get_work_order(db, work_order_id=work_order_id)
    require_proposing_contractor(actor, wo)
    assert_transition(str(wo.status), IN_REVIEW)

    now = _utcnow()
    with atomic(db):
        before_wo = snapshot(wo)
        if wo.assigned_contractor_id is None:
            wo.assigned_contractor_id = actor.user_id

        proposal = _build_proposal(
            db,
            actor=actor,
            wo=wo,
            slots=slots,
            estimated_cost=estimated_cost,
            estimated_duration_minutes=estimated_duration_minutes,
            notes=notes,
            now=now,
        )
        db.flush()
        move_status(db, wo, IN_REVIEW, now=now)

        record_change(
            db,
            actor=actor,
            work_order_id=wo.id,
            event_type=PROPOSAL_CREATED,
            entity=proposal,
            before=None,
            payload={"proposal_id": proposal.id, "slot_ids": [s.id for s in proposal.slots]},
        )
        record_change(
            db,
            actor=actor,
            work_order_id=wo.id,
            event_type="work_order.status_changed",
            entity=wo,
            before=before_wo,
            payload={"from": before_wo["status"], "to": IN_REVIEW},
        )

    db.refresh(proposal)
    log.info(
        "proposal created",
        extra={"work_order_id": wo.id, "proposal_id": proposal.id, "user_id": actor.user_id, "actor_role": actor.role},
    )
    notify(NotificationEvent(work_order_id=wo.id, event_type=PROPOSAL_CREATED, actor_role=actor.role))
    return proposal


def replace_proposal(
    db: Session,
    *,
    actor: ActorContext,
    proposal_id: int,
    slots: Sequence[Mapping[str, Any]],
    estimated_cost: Optional[float] = None,
    estimated_duration_minutes: Optional[int] = None,
    notes: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> Proposal:
    """
    Contractor re-issues slots while the tenant has not picked one yet.
    The old proposal is Superseded; the work order stays InReview.
    """
    old = must_get_proposal(db, proposal_id=proposal_id)
    wo = must_get_work_order(db, work_order_id=old.work_order_id)
    require_proposing_contractor(actor, wo)
    if int(old.contractor_id) != int(actor.user_id):
        raise NotAuthorized("only the issuing contractor may replace a proposal", proposal_id=old.id)

    if old.selected_slot_id is not None:
        raise SlotAlreadySelected("a slot was already selected", proposal_id=old.id)
    if old.status != PROPOSAL_OPEN:
        raise ProposalAlreadyResolved(f"proposal is {old.status}", proposal_id=old.id, status=old.status)
    check_version(old, expected_version)

    now = _utcnow()
    with atomic(db):
        before = snapshot(old)
        res = db.execute(
            update(Proposal)
            .where(
                Proposal.id == old.id,
                Proposal.status == PROPOSAL_OPEN,
                Proposal.selected_slot_id.is_(None),
                Proposal.version == old.version,
            )
            .values(status=PROPOSAL_SUPERSEDED, version=Proposal.version + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            _raise_lost_race(db, old)
        db.refresh(old)

        proposal = _build_proposal(
            db,
            actor=actor,
            wo=wo,
            slots=slots,
            estimated_cost=estimated_cost,
            estimated_duration_minutes=estimated_duration_minutes,
            notes=notes,
            now=now,
        )
        db.flush()

        record_change(
            db,
            actor=actor,
            work_order_id=wo.id,
            event_type=EVT_SUPERSEDED,
            entity=old,
            before=before,
            payload={"proposal_id": old.id, "replaced_by": proposal.id},
        )
        record_change(
            db,
            actor=actor,
            work_order_id=wo.id,
            event_type=PROPOSAL_CREATED,
            entity=proposal,
            before=None,
            payload={"proposal_id": proposal.id, "replaces": old.id},
        )

    db.refresh(proposal)
    log.info(
        "proposal %s replaced by %s",
        old.id,
        proposal.id,
        extra={"work_order_id": wo.id, "proposal_id": proposal.id, "user_id": actor.user_id},
    )
    notify(NotificationEvent(work_order_id=wo.id, event_type=PROPOSAL_CREATED, actor_role=actor.role))
    return proposal


def _raise_lost_race(db: Session, proposal: Proposal) -> None:
    """The conditional update matched nothing: say why, from the committed row."""
    db.refresh(proposal)
    if proposal.selected_slot_id is not None:
        raise SlotAlreadySelected(
            "this proposal was just confirmed by someone else",
            proposal_id=proposal.id,
            selected_slot_id=proposal.selected_slot_id,
        )
    if proposal.status != PROPOSAL_OPEN:
        raise ProposalAlreadyResolved(f"proposal is {proposal.status}", proposal_id=proposal.id, status=proposal.status)
    raise StaleVersion("proposal changed since it was read", proposal_id=proposal.id, current_version=proposal.version)


def select_slot(
    db: Session,
    *,
    actor: ActorContext,
    proposal_id: int,
    slot_id: int,
    expected_version: Optional[int] = None,
) -> SlotSelection:
    """
    Tenant picks one of the three slots. First selection wins: the proposal's
    selected_slot_id is claimed with a compare-and-set, and a losing writer
    gets SlotAlreadySelected instead of overwriting.
    """
    proposal = must_get_proposal(db, proposal_id=proposal_id)
    wo = must_get_work_order(db, work_order_id=proposal.work_order_id)
    require_tenant_of(actor, wo)
    slot = must_get_slot(db, proposal_id=proposal.id, slot_id=slot_id)

    if proposal.selected_slot_id is not None:
        raise SlotAlreadySelected(
            "a slot was already selected",
            proposal_id=proposal.id,
            selected_slot_id=proposal.selected_slot_id,
        )
    if proposal.status != PROPOSAL_OPEN:
        raise ProposalAlreadyResolved(f"proposal is {proposal.status}", proposal_id=proposal.id, status=proposal.status)
    check_version(proposal, expected_version)
    assert_transition(str(wo.status), SCHEDULED)

    now = _utcnow()
    with atomic(db):
        before = snapshot(proposal)
        cond = [
            Proposal.id == proposal.id,
            Proposal.selected_slot_id.is_(None),
            Proposal.status == PROPOSAL_OPEN,
        ]
        if expected_version is not None:
            cond.append(Proposal.version == int(expected_version))

        res = db.execute(
            update(Proposal)
            .where(*cond)
            .values(
                selected_slot_id=slot.id,
                status=PROPOSAL_ACCEPTED,
                version=Proposal.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            _raise_lost_race(db, proposal)
        db.refresh(proposal)

        slot.selected = True
        slot.selected_at = now

        appt = Appointment(
            work_order_id=wo.id,
            contractor_id=proposal.contractor_id,
            scheduled_start_at=slot.start_at,
            scheduled_end_at=slot.end_at,
            status=APPT_CONFIRMED,
            requires_tenant_access_approval=bool(settings.require_tenant_access_approval),
            tenant_approved=False,
            proposal_id=proposal.id,
            counter_proposal_id=None,
            version=1,
            created_at=now,
            updated_at=now,
        )
        db.add(appt)
        db.flush()

        move_status(db, wo, SCHEDULED, now=now)

        record_change(
            db,
            actor=actor,
            work_order_id=wo.id,
            event_type=SLOT_SELECTED,
            entity=proposal,
            before=before,
            payload={"proposal_id": proposal.id, "slot_id": slot.id, "appointment_id": appt.id},
        )
        record_change(
            db,
            actor=actor,
            work_order_id=wo.id,
            event_type="appointment.created",
            entity=appt,
            before=None,
            payload={"appointment_id": appt.id, "source": "slot", "slot_number": slot.slot_number},
        )

    db.refresh(appt)
    log.info(
        "slot %s selected",
        slot.slot_number,
        extra={
            "work_order_id": wo.id,
            "proposal_id": proposal.id,
            "appointment_id": appt.id,
            "user_id": actor.user_id,
            "actor_role": actor.role,
        },
    )
    notify(NotificationEvent(work_order_id=wo.id, event_type=SLOT_SELECTED, actor_role=actor.role))
    return SlotSelection(proposal=proposal, slot=slot, appointment=appt)


def get_proposal(db: Session, *, actor: ActorContext, proposal_id: int) -> Proposal:
    proposal = must_get_proposal(db, proposal_id=proposal_id)
    wo = must_get_work_order(db, work_order_id=proposal.work_order_id)
    require_participant(actor, wo)
    return proposal


def list_proposals(db: Session, *, actor: ActorContext, work_order_id: int) -> List[Proposal]:
    wo = must_get_work_order(db, work_order_id=work_order_id)
    require_participant(actor, wo)
    q = select(Proposal).where(Proposal.work_order_id == wo.id).order_by(Proposal.id.desc())
    return list(db.scalars(q).all())


def live_proposal(db: Session, *, work_order_id: int) -> Optional[Proposal]:
    """The work order's Open or Countered proposal, if any."""
    return db.scalar(
        select(Proposal)
        .where(Proposal.work_order_id == int(work_order_id), Proposal.status.in_((PROPOSAL_OPEN, PROPOSAL_COUNTERED)))
        .order_by(Proposal.id.desc())
    )
