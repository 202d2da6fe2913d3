# backend/app/services/expiry.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..db import atomic
from ..domain.audit import snapshot
from ..domain.scheduling.errors import StateConflictError
from ..domain.scheduling.state_machine import (
    COUNTER_EXPIRED,
    COUNTER_PENDING,
    IN_REVIEW,
    NEW,
    PROPOSAL_EXPIRED,
    PROPOSAL_OPEN,
)
from ..models import CounterProposal, Proposal
from .counter_proposals import close_counter_proposal
from .notifications import COUNTER_EXPIRED as EVT_COUNTER_EXPIRED
from .notifications import PROPOSAL_EXPIRED as EVT_PROPOSAL_EXPIRED
from .notifications import NotificationEvent, notify
from .ownership import must_get_work_order
from .work_orders import move_status, record_change

log = logging.getLogger("scheduling.expiry")


@dataclass(frozen=True)
class SweepResult:
    proposals_expired: int = 0
    counters_expired: int = 0


def _expire_proposal(db: Session, proposal: Proposal, now: datetime) -> bool:
    wo = must_get_work_order(db, work_order_id=proposal.work_order_id)
    with atomic(db):
        before = snapshot(proposal)
        res = db.execute(
            update(Proposal)
            .where(
                Proposal.id == proposal.id,
                Proposal.status == PROPOSAL_OPEN,
                Proposal.selected_slot_id.is_(None),
            )
            .values(status=PROPOSAL_EXPIRED, version=Proposal.version + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            # tenant selected or contractor replaced it in the meantime
            return False
        db.refresh(proposal)

        if str(wo.status) == IN_REVIEW:
            move_status(db, wo, NEW, now=now)
        record_change(
            db,
            actor=None,
            work_order_id=wo.id,
            event_type=EVT_PROPOSAL_EXPIRED,
            entity=proposal,
            before=before,
            payload={"proposal_id": proposal.id},
        )

    notify(NotificationEvent(work_order_id=wo.id, event_type=EVT_PROPOSAL_EXPIRED, actor_role=None))
    return True


def sweep_expired(db: Session, now: Optional[datetime] = None) -> SweepResult:
    """
    Expire Open proposals and Pending counter-proposals whose expires_at has
    passed. Rows without expires_at never expire. Each row is its own
    transaction; a row that changed under us is skipped, not retried.
    """
    now = now or datetime.utcnow()
    proposals = 0
    counters = 0

    stale_proposals = db.scalars(
        select(Proposal)
        .where(Proposal.status == PROPOSAL_OPEN, Proposal.expires_at.is_not(None), Proposal.expires_at <= now)
        .order_by(Proposal.id)
    ).all()
    for p in stale_proposals:
        try:
            if _expire_proposal(db, p, now):
                proposals += 1
        except StateConflictError as e:
            log.warning(
                "proposal expiry skipped: %s",
                e.code,
                extra={"proposal_id": p.id, "work_order_id": p.work_order_id, "error_code": e.code},
            )

    stale_counters = db.scalars(
        select(CounterProposal)
        .where(
            CounterProposal.status == COUNTER_PENDING,
            CounterProposal.expires_at.is_not(None),
            CounterProposal.expires_at <= now,
        )
        .order_by(CounterProposal.id)
    ).all()
    for cp in stale_counters:
        try:
            with atomic(db):
                close_counter_proposal(db, cp, target_status=COUNTER_EXPIRED, actor=None, now=now, note="expired")
        except StateConflictError as e:
            log.warning(
                "counter-proposal expiry skipped: %s",
                e.code,
                extra={"counter_proposal_id": cp.id, "work_order_id": cp.work_order_id, "error_code": e.code},
            )
            continue
        counters += 1
        notify(NotificationEvent(work_order_id=cp.work_order_id, event_type=EVT_COUNTER_EXPIRED, actor_role=None))

    if proposals or counters:
        log.info("expiry sweep: %s proposals, %s counter-proposals", proposals, counters)
    return SweepResult(proposals_expired=proposals, counters_expired=counters)
