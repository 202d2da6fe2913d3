# backend/app/services/counter_proposals.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, List, Mapping, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import ActorContext
from ..config import settings
from ..db import atomic
from ..domain.audit import snapshot
from ..domain.scheduling.conflict_resolver import Resolution, conflicting_bookings, resolve_windows
from ..domain.scheduling.errors import (
    DuplicatePendingProposal,
    IllegalStateTransition,
    InvalidCounterTarget,
    InvalidSlotIndex,
    InvalidTimeRange,
    ProposalAlreadyResolved,
    ProposalNotPending,
    SelectedWindowConflicts,
    SlotAlreadySelected,
    SlotMisaligned,
    StaleVersion,
    WindowTooShort,
)
from ..domain.scheduling.intervals import TimeWindow, is_aligned
from ..domain.scheduling.state_machine import (
    APPT_CONFIRMED,
    APPT_NEEDS_REVIEW,
    COUNTER_ACCEPTED,
    COUNTER_PENDING,
    COUNTER_REJECTED,
    NEEDS_REVIEW,
    NEGOTIABLE,
    PROPOSAL_ACCEPTED,
    PROPOSAL_COUNTERED,
    PROPOSAL_OPEN,
    SCHEDULED,
)
from ..domain.scheduling.validation import validate_availability_windows
from ..models import Appointment, CounterProposal, Proposal, WorkOrder
from .access import require_contractor, require_participant, require_tenant_of
from .contractor_calendar import contractor_bookings
from .notifications import COUNTER_ACCEPTED as EVT_ACCEPTED
from .notifications import COUNTER_REJECTED as EVT_REJECTED
from .notifications import COUNTER_SUBMITTED as EVT_SUBMITTED
from .notifications import NotificationEvent, notify
from .ownership import (
    check_version,
    must_get_appointment,
    must_get_counter_proposal,
    must_get_proposal,
    must_get_work_order,
    touch,
)
from .work_orders import move_status, record_change, required_duration_minutes

log = logging.getLogger("scheduling.counter_proposals")


def _utcnow() -> datetime:
    return datetime.utcnow()


@dataclass(frozen=True)
class CounterResolution:
    counter_proposal: CounterProposal
    required_minutes: int
    resolution: Resolution


@dataclass(frozen=True)
class CounterOutcome:
    counter_proposal: CounterProposal
    appointment: Optional[Appointment]
    work_order: WorkOrder


# -------------------- helpers --------------------

def load_windows(cp: CounterProposal) -> List[TimeWindow]:
    raw = json.loads(cp.availability_json or "[]")
    return [TimeWindow.of(w["start"], w["end"]) for w in raw]


def _dump_windows(windows: Sequence[TimeWindow]) -> str:
    return json.dumps([w.to_dict() for w in windows])


def _contractor_id(db: Session, cp: CounterProposal) -> int:
    if cp.appointment_id is not None:
        return int(must_get_appointment(db, appointment_id=cp.appointment_id).contractor_id)
    return int(must_get_proposal(db, proposal_id=cp.proposal_id).contractor_id)


def _pending_exists(db: Session, *, appointment_id: Optional[int] = None, proposal_id: Optional[int] = None) -> bool:
    q = select(CounterProposal.id).where(CounterProposal.status == COUNTER_PENDING)
    if appointment_id is not None:
        q = q.where(CounterProposal.appointment_id == int(appointment_id))
    else:
        q = q.where(CounterProposal.proposal_id == int(proposal_id))
    return db.scalar(q.limit(1)) is not None


def _claim_pending(db: Session, cp: CounterProposal, expected_version: Optional[int], values: dict[str, Any]) -> None:
    """Compare-and-set on status=Pending; the losing writer gets a typed conflict."""
    cond = [CounterProposal.id == cp.id, CounterProposal.status == COUNTER_PENDING]
    if expected_version is not None:
        cond.append(CounterProposal.version == int(expected_version))

    res = db.execute(
        update(CounterProposal)
        .where(*cond)
        .values(version=CounterProposal.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        db.refresh(cp)
        if cp.status != COUNTER_PENDING:
            raise ProposalNotPending(
                f"counter-proposal is already {cp.status}",
                counter_proposal_id=cp.id,
                status=cp.status,
            )
        raise StaleVersion(
            "counter-proposal changed since it was read",
            counter_proposal_id=cp.id,
            current_version=cp.version,
        )
    db.refresh(cp)


def _set_proposal_status(db: Session, proposal: Proposal, *, expected: str, target: str, now: datetime) -> None:
    res = db.execute(
        update(Proposal)
        .where(Proposal.id == proposal.id, Proposal.status == expected, Proposal.selected_slot_id.is_(None))
        .values(status=target, version=Proposal.version + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        db.refresh(proposal)
        if proposal.selected_slot_id is not None:
            raise SlotAlreadySelected("this proposal was just confirmed by someone else", proposal_id=proposal.id)
        raise ProposalAlreadyResolved(f"proposal is {proposal.status}", proposal_id=proposal.id, status=proposal.status)
    db.refresh(proposal)


def _log_extra(actor: Optional[ActorContext], cp: CounterProposal) -> dict[str, Any]:
    return {
        "work_order_id": cp.work_order_id,
        "counter_proposal_id": cp.id,
        "appointment_id": cp.appointment_id,
        "proposal_id": cp.proposal_id,
        "user_id": actor.user_id if actor else None,
        "actor_role": actor.role if actor else "system",
    }


# -------------------- submit (tenant) --------------------

def submit_counter_proposal(
    db: Session,
    *,
    actor: ActorContext,
    availability: Sequence[Mapping[str, Any]],
    reason: Optional[str] = None,
    appointment_id: Optional[int] = None,
    proposal_id: Optional[int] = None,
) -> CounterProposal:
    """
    Tenant offers alternative windows against a confirmed appointment, or
    against a proposal whose slots do not work for them.
    """
    if (appointment_id is None) == (proposal_id is None):
        raise InvalidCounterTarget("exactly one of appointment_id or proposal_id is required")

    appt: Optional[Appointment] = None
    proposal: Optional[Proposal] = None
    if appointment_id is not None:
        appt = must_get_appointment(db, appointment_id=appointment_id)
        wo = must_get_work_order(db, work_order_id=appt.work_order_id)
    else:
        proposal = must_get_proposal(db, proposal_id=proposal_id)
        wo = must_get_work_order(db, work_order_id=proposal.work_order_id)
    require_tenant_of(actor, wo)

    # duplicate check comes first: a second session racing the first should see
    # DuplicatePendingProposal, not the NeedsReview state the first one caused
    if _pending_exists(db, appointment_id=appointment_id, proposal_id=proposal_id):
        raise DuplicatePendingProposal(
            "a counter-proposal is already pending",
            appointment_id=appointment_id,
            proposal_id=proposal_id,
        )

    if appt is not None:
        if appt.status not in (APPT_CONFIRMED, APPT_NEEDS_REVIEW) or str(wo.status) not in NEGOTIABLE:
            raise IllegalStateTransition(
                current=str(wo.status),
                target=NEEDS_REVIEW,
                message=f"appointment is {appt.status} and work order is {wo.status}; time can no longer be renegotiated",
            )
    else:
        if proposal.selected_slot_id is not None:
            raise SlotAlreadySelected("a slot was already selected", proposal_id=proposal.id)
        if proposal.status != PROPOSAL_OPEN:
            raise ProposalAlreadyResolved(f"proposal is {proposal.status}", proposal_id=proposal.id, status=proposal.status)

    now = _utcnow()
    windows = validate_availability_windows(
        [TimeWindow.of(w.get("start"), w.get("end")) for w in availability],
        now=now,
        required_minutes=required_duration_minutes(wo),
    )

    expires_at = None
    if settings.counter_proposal_expiry_hours:
        expires_at = now + timedelta(hours=int(settings.counter_proposal_expiry_hours))

    with atomic(db):
        cp = CounterProposal(
            work_order_id=wo.id,
            appointment_id=appt.id if appt is not None else None,
            proposal_id=proposal.id if proposal is not None else None,
            submitted_by_user_id=actor.user_id,
            availability_json=_dump_windows(windows),
            reason=reason,
            status=COUNTER_PENDING,
            expires_at=expires_at,
            version=1,
            created_at=now,
            updated_at=now,
        )
        db.add(cp)
        try:
            db.flush()
        except IntegrityError:
            raise DuplicatePendingProposal(
                "a counter-proposal is already pending",
                appointment_id=appointment_id,
                proposal_id=proposal_id,
            )

        if appt is not None:
            before_appt = snapshot(appt)
            appt.status = APPT_NEEDS_REVIEW
            touch(appt, now)
            if str(wo.status) == SCHEDULED:
                move_status(db, wo, NEEDS_REVIEW, now=now)
            record_change(
                db,
                actor=actor,
                work_order_id=wo.id,
                event_type="appointment.needs_review",
                entity=appt,
                before=before_appt,
                payload={"appointment_id": appt.id, "counter_proposal_id": cp.id},
            )
        else:
            _set_proposal_status(db, proposal, expected=PROPOSAL_OPEN, target=PROPOSAL_COUNTERED, now=now)

        record_change(
            db,
            actor=actor,
            work_order_id=wo.id,
            event_type=EVT_SUBMITTED,
            entity=cp,
            before=None,
            payload={"counter_proposal_id": cp.id, "windows": len(windows)},
        )

    db.refresh(cp)
    log.info("counter-proposal submitted", extra=_log_extra(actor, cp))
    notify(NotificationEvent(work_order_id=wo.id, event_type=EVT_SUBMITTED, actor_role=actor.role))
    return cp


# -------------------- review (contractor) --------------------

def resolve_counter_proposal(db: Session, *, actor: ActorContext, counter_proposal_id: int) -> CounterResolution:
    """
    Rank the tenant's windows against the contractor's other bookings.
    Read-only: safe to call any number of times.
    """
    cp = must_get_counter_proposal(db, counter_proposal_id=counter_proposal_id)
    wo = must_get_work_order(db, work_order_id=cp.work_order_id)
    contractor_id = _contractor_id(db, cp)
    require_contractor(actor, wo, contractor_id)

    required = required_duration_minutes(wo)
    windows = load_windows(cp)
    bookings = contractor_bookings(
        db,
        contractor_id=contractor_id,
        windows=windows,
        exclude_appointment_id=cp.appointment_id,
    )
    return CounterResolution(
        counter_proposal=cp,
        required_minutes=required,
        resolution=resolve_windows(windows, bookings, required),
    )


def accept_counter_proposal(
    db: Session,
    *,
    actor: ActorContext,
    counter_proposal_id: int,
    selected_slot_index: int,
    start: Any = None,
    end: Any = None,
    expected_version: Optional[int] = None,
) -> CounterOutcome:
    """
    Contractor accepts one tenant window (or a narrower range inside it).

    The resolver is re-run here against the current calendar; a window or
    range that collides with another booking is refused even if the client
    showed it as free.
    """
    cp = must_get_counter_proposal(db, counter_proposal_id=counter_proposal_id)
    wo = must_get_work_order(db, work_order_id=cp.work_order_id)
    contractor_id = _contractor_id(db, cp)
    require_contractor(actor, wo, contractor_id)

    if cp.status != COUNTER_PENDING:
        raise ProposalNotPending(f"counter-proposal is already {cp.status}", counter_proposal_id=cp.id, status=cp.status)
    check_version(cp, expected_version)

    windows = load_windows(cp)
    idx = int(selected_slot_index)
    if not 0 <= idx < len(windows):
        raise InvalidSlotIndex(f"no window at index {idx}", selected_slot_index=idx, windows=len(windows))

    required = required_duration_minutes(wo)
    bookings = contractor_bookings(db, contractor_id=contractor_id, windows=windows, exclude_appointment_id=cp.appointment_id)
    match = resolve_windows(windows, bookings, required).for_index(idx)

    if start is not None or end is not None:
        if start is None or end is None:
            raise InvalidTimeRange("start and end must be given together")
        chosen = TimeWindow.of(start, end)
        if not match.window.contains(chosen):
            raise InvalidTimeRange("chosen range must lie inside the tenant's window", selected_slot_index=idx)
        if chosen.minutes < required:
            raise WindowTooShort(
                f"chosen range is shorter than the job ({required} minutes)",
                minutes=chosen.minutes,
                required_minutes=required,
            )
        g = settings.slot_granularity_minutes
        if not (is_aligned(chosen.start, g) and is_aligned(chosen.end, g)):
            raise SlotMisaligned(f"chosen range must start and end on a {g}-minute boundary")
        clash = conflicting_bookings(chosen, bookings)
        if clash:
            raise SelectedWindowConflicts(
                "chosen range overlaps another confirmed appointment",
                selected_slot_index=idx,
                conflict_ids=clash,
            )
    else:
        if not match.usable:
            raise SelectedWindowConflicts(
                "window conflicts with another confirmed appointment",
                selected_slot_index=idx,
                conflict_ids=list(match.conflict_ids),
            )
        chosen = match.candidate

    now = _utcnow()
    with atomic(db):
        before_cp = snapshot(cp)
        _claim_pending(
            db,
            cp,
            expected_version,
            {
                "status": COUNTER_ACCEPTED,
                "resolved_slot_index": idx,
                "resolved_start_at": chosen.start,
                "resolved_end_at": chosen.end,
                "resolved_by_user_id": actor.user_id,
                "resolved_at": now,
                "updated_at": now,
            },
        )

        if cp.appointment_id is not None:
            appt = must_get_appointment(db, appointment_id=cp.appointment_id)
            before_appt = snapshot(appt)
            appt.scheduled_start_at = chosen.start
            appt.scheduled_end_at = chosen.end
            appt.status = APPT_CONFIRMED
            appt.counter_proposal_id = cp.id
            touch(appt, now)
            if str(wo.status) == NEEDS_REVIEW:
                move_status(db, wo, SCHEDULED, now=now)
            record_change(
                db,
                actor=actor,
                work_order_id=wo.id,
                event_type="appointment.rescheduled",
                entity=appt,
                before=before_appt,
                payload={"appointment_id": appt.id, "counter_proposal_id": cp.id},
            )
        else:
            proposal = must_get_proposal(db, proposal_id=cp.proposal_id)
            _set_proposal_status(db, proposal, expected=PROPOSAL_COUNTERED, target=PROPOSAL_ACCEPTED, now=now)
            appt = Appointment(
                work_order_id=wo.id,
                contractor_id=contractor_id,
                scheduled_start_at=chosen.start,
                scheduled_end_at=chosen.end,
                status=APPT_CONFIRMED,
                requires_tenant_access_approval=bool(settings.require_tenant_access_approval),
                tenant_approved=False,
                proposal_id=proposal.id,
                counter_proposal_id=cp.id,
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
                event_type="appointment.created",
                entity=appt,
                before=None,
                payload={"appointment_id": appt.id, "source": "counter_proposal", "counter_proposal_id": cp.id},
            )

        record_change(
            db,
            actor=actor,
            work_order_id=wo.id,
            event_type=EVT_ACCEPTED,
            entity=cp,
            before=before_cp,
            payload={
                "counter_proposal_id": cp.id,
                "resolved_slot_index": idx,
                "kind": match.kind,
                "start": chosen.start.isoformat(),
                "end": chosen.end.isoformat(),
            },
        )

    db.refresh(appt)
    db.refresh(wo)
    log.info("counter-proposal accepted", extra=_log_extra(actor, cp))
    notify(NotificationEvent(work_order_id=wo.id, event_type=EVT_ACCEPTED, actor_role=actor.role))
    return CounterOutcome(counter_proposal=cp, appointment=appt, work_order=wo)


def close_counter_proposal(
    db: Session,
    cp: CounterProposal,
    *,
    target_status: str,
    actor: Optional[ActorContext],
    now: datetime,
    note: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> Optional[Appointment]:
    """
    Rejected or expired: the disputed appointment goes back to Confirmed with
    its original time, or the countered proposal reopens. Does not commit.
    """
    wo = must_get_work_order(db, work_order_id=cp.work_order_id)
    before_cp = snapshot(cp)
    _claim_pending(
        db,
        cp,
        expected_version,
        {
            "status": target_status,
            "resolved_by_user_id": actor.user_id if actor else None,
            "resolved_at": now,
            "resolution_note": note,
            "updated_at": now,
        },
    )

    appt: Optional[Appointment] = None
    if cp.appointment_id is not None:
        appt = must_get_appointment(db, appointment_id=cp.appointment_id)
        before_appt = snapshot(appt)
        appt.status = APPT_CONFIRMED
        touch(appt, now)
        if str(wo.status) == NEEDS_REVIEW:
            move_status(db, wo, SCHEDULED, now=now)
        record_change(
            db,
            actor=actor,
            work_order_id=wo.id,
            event_type="appointment.confirmed",
            entity=appt,
            before=before_appt,
            payload={"appointment_id": appt.id, "counter_proposal_id": cp.id},
        )
    else:
        proposal = must_get_proposal(db, proposal_id=cp.proposal_id)
        _set_proposal_status(db, proposal, expected=PROPOSAL_COUNTERED, target=PROPOSAL_OPEN, now=now)

    record_change(
        db,
        actor=actor,
        work_order_id=wo.id,
        event_type=f"counter_proposal.{target_status.lower()}",
        entity=cp,
        before=before_cp,
        payload={"counter_proposal_id": cp.id, "note": note},
    )
    return appt


def reject_counter_proposal(
    db: Session,
    *,
    actor: ActorContext,
    counter_proposal_id: int,
    reason: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> CounterOutcome:
    cp = must_get_counter_proposal(db, counter_proposal_id=counter_proposal_id)
    wo = must_get_work_order(db, work_order_id=cp.work_order_id)
    require_contractor(actor, wo, _contractor_id(db, cp))

    if cp.status != COUNTER_PENDING:
        raise ProposalNotPending(f"counter-proposal is already {cp.status}", counter_proposal_id=cp.id, status=cp.status)
    check_version(cp, expected_version)

    now = _utcnow()
    with atomic(db):
        appt = close_counter_proposal(
            db,
            cp,
            target_status=COUNTER_REJECTED,
            actor=actor,
            now=now,
            note=reason,
            expected_version=expected_version,
        )

    if appt is not None:
        db.refresh(appt)
    db.refresh(wo)
    log.info("counter-proposal rejected", extra=_log_extra(actor, cp))
    notify(NotificationEvent(work_order_id=wo.id, event_type=EVT_REJECTED, actor_role=actor.role))
    return CounterOutcome(counter_proposal=cp, appointment=appt, work_order=wo)


# -------------------- reads --------------------

def get_counter_proposal(db: Session, *, actor: ActorContext, counter_proposal_id: int) -> CounterProposal:
    cp = must_get_counter_proposal(db, counter_proposal_id=counter_proposal_id)
    require_participant(actor, must_get_work_order(db, work_order_id=cp.work_order_id))
    return cp


def list_counter_proposals(db: Session, *, actor: ActorContext, appointment_id: int) -> List[CounterProposal]:
    appt = must_get_appointment(db, appointment_id=appointment_id)
    require_participant(actor, must_get_work_order(db, work_order_id=appt.work_order_id))
    q = (
        select(CounterProposal)
        .where(CounterProposal.appointment_id == appt.id)
        .order_by(CounterProposal.id.desc())
    )
    return list(db.scalars(q).all())
