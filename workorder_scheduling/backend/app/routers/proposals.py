# backend/app/routers/proposals.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import ActorContext, get_actor
from ..db import get_db
from ..schemas import (
    CounterProposalCreate,
    CounterProposalOut,
    ProposalOut,
    ProposalReplace,
    SelectSlotIn,
    SlotSelectionOut,
)
from ..services import counter_proposals as counter_svc
from ..services import proposals as proposal_svc

router = APIRouter(prefix="/proposals", tags=["proposals"])


@router.get("/{proposal_id}", response_model=ProposalOut)
def get_proposal(proposal_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return proposal_svc.get_proposal(db, actor=actor, proposal_id=proposal_id)


@router.post("/{proposal_id}/replace", response_model=ProposalOut, status_code=201)
def replace_proposal(
    proposal_id: int,
    payload: ProposalReplace,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return proposal_svc.replace_proposal(
        db,
        actor=actor,
        proposal_id=proposal_id,
        slots=[s.model_dump() for s in payload.slots],
        estimated_cost=payload.estimated_cost,
        estimated_duration_minutes=payload.estimated_duration_minutes,
        notes=payload.notes,
        expected_version=payload.expected_version,
    )


@router.post("/{proposal_id}/select", response_model=SlotSelectionOut)
def select_slot(
    proposal_id: int,
    payload: SelectSlotIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    res = proposal_svc.select_slot(
        db,
        actor=actor,
        proposal_id=proposal_id,
        slot_id=payload.slot_id,
        expected_version=payload.expected_version,
    )
    return {"proposal": res.proposal, "appointment": res.appointment}


@router.post("/{proposal_id}/counter-proposals", response_model=CounterProposalOut, status_code=201)
def counter_proposal(
    proposal_id: int,
    payload: CounterProposalCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return counter_svc.submit_counter_proposal(
        db,
        actor=actor,
        proposal_id=proposal_id,
        availability=[w.model_dump() for w in payload.availability],
        reason=payload.reason,
    )
