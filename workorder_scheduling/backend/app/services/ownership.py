# backend/app/services/ownership.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.scheduling.errors import (
    AppointmentNotFound,
    CounterProposalNotFound,
    ProposalNotFound,
    SlotNotFound,
    StaleVersion,
    WorkOrderNotFound,
)
from ..models import Appointment, CounterProposal, Proposal, ProposalSlot, WorkOrder


def must_get_work_order(db: Session, *, work_order_id: int) -> WorkOrder:
    row = db.get(WorkOrder, int(work_order_id))
    if not row:
        raise WorkOrderNotFound("work order not found", work_order_id=work_order_id)
    return row


def must_get_proposal(db: Session, *, proposal_id: int) -> Proposal:
    row = db.get(Proposal, int(proposal_id))
    if not row:
        raise ProposalNotFound("proposal not found", proposal_id=proposal_id)
    return row


def must_get_slot(db: Session, *, proposal_id: int, slot_id: int) -> ProposalSlot:
    row = db.scalar(
        select(ProposalSlot).where(ProposalSlot.id == int(slot_id), ProposalSlot.proposal_id == int(proposal_id))
    )
    if not row:
        raise SlotNotFound("slot not found on this proposal", proposal_id=proposal_id, slot_id=slot_id)
    return row


def must_get_appointment(db: Session, *, appointment_id: int) -> Appointment:
    row = db.get(Appointment, int(appointment_id))
    if not row:
        raise AppointmentNotFound("appointment not found", appointment_id=appointment_id)
    return row


def must_get_counter_proposal(db: Session, *, counter_proposal_id: int) -> CounterProposal:
    row = db.get(CounterProposal, int(counter_proposal_id))
    if not row:
        raise CounterProposalNotFound("counter-proposal not found", counter_proposal_id=counter_proposal_id)
    return row


# -------------------- version bookkeeping --------------------

def check_version(row: Any, expected_version: Optional[int]) -> None:
    """Client-supplied version must match when given; None skips the check."""
    if expected_version is None:
        return
    if int(row.version) != int(expected_version):
        raise StaleVersion(
            f"{type(row).__name__} changed since it was read",
            entity=type(row).__name__,
            expected_version=int(expected_version),
            current_version=int(row.version),
        )


def touch(row: Any, now: datetime) -> None:
    row.version = int(row.version or 0) + 1
    row.updated_at = now
