# backend/app/routers/counter_proposals.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import ActorContext, get_actor
from ..db import get_db
from ..domain.scheduling.conflict_resolver import WindowMatch
from ..schemas import (
    AcceptCounterIn,
    CounterOutcomeOut,
    CounterProposalOut,
    RejectCounterIn,
    ResolutionOut,
    WindowMatchOut,
)
from ..services import counter_proposals as counter_svc

router = APIRouter(prefix="/counter-proposals", tags=["counter-proposals"])


def _match_out(m: Optional[WindowMatch]) -> Optional[WindowMatchOut]:
    if m is None:
        return None
    return WindowMatchOut(
        window_index=m.window_index,
        kind=m.kind,
        window=m.window.to_dict(),
        candidate=m.candidate.to_dict() if m.candidate is not None else None,
        conflict_ids=list(m.conflict_ids),
    )


@router.get("/{counter_proposal_id}", response_model=CounterProposalOut)
def get_counter_proposal(counter_proposal_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return counter_svc.get_counter_proposal(db, actor=actor, counter_proposal_id=counter_proposal_id)


@router.get("/{counter_proposal_id}/resolution", response_model=ResolutionOut)
def resolution(counter_proposal_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    res = counter_svc.resolve_counter_proposal(db, actor=actor, counter_proposal_id=counter_proposal_id)
    return ResolutionOut(
        counter_proposal_id=res.counter_proposal.id,
        required_minutes=res.required_minutes,
        match=_match_out(res.resolution.match),
        ranked=[_match_out(m) for m in res.resolution.ranked],
        conflicts=list(res.resolution.conflicts),
    )


@router.post("/{counter_proposal_id}/accept", response_model=CounterOutcomeOut)
def accept(
    counter_proposal_id: int,
    payload: AcceptCounterIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    out = counter_svc.accept_counter_proposal(
        db,
        actor=actor,
        counter_proposal_id=counter_proposal_id,
        selected_slot_index=payload.selected_slot_index,
        start=payload.start,
        end=payload.end,
        expected_version=payload.expected_version,
    )
    return {"counter_proposal": out.counter_proposal, "appointment": out.appointment, "work_order": out.work_order}


@router.post("/{counter_proposal_id}/reject", response_model=CounterOutcomeOut)
def reject(
    counter_proposal_id: int,
    payload: RejectCounterIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    out = counter_svc.reject_counter_proposal(
        db,
        actor=actor,
        counter_proposal_id=counter_proposal_id,
        reason=payload.reason,
        expected_version=payload.expected_version,
    )
    return {"counter_proposal": out.counter_proposal, "appointment": out.appointment, "work_order": out.work_order}
