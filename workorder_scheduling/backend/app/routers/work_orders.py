# backend/app/routers/work_orders.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ..auth import ActorContext, get_actor
from ..db import get_db
from ..schemas import (
    ProposalCreate,
    ProposalOut,
    TransitionIn,
    WorkflowEventOut,
    WorkOrderCreate,
    WorkOrderDetailOut,
    WorkOrderOut,
)
from ..services import proposals as proposal_svc
from ..services import work_orders as wo_svc

router = APIRouter(prefix="/work-orders", tags=["work-orders"])


@router.post("", response_model=WorkOrderOut, status_code=201)
def create_work_order(payload: WorkOrderCreate, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return wo_svc.create_work_order(db, actor=actor, **payload.model_dump())


@router.get("/{work_order_id}", response_model=WorkOrderDetailOut)
def get_work_order(work_order_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    wo = wo_svc.get_work_order(db, actor=actor, work_order_id=work_order_id)
    out = WorkOrderDetailOut.model_validate(wo)
    live = proposal_svc.live_proposal(db, work_order_id=wo.id)
    if live is not None:
        out = out.model_copy(update={"live_proposal": ProposalOut.model_validate(live)})
    return out


@router.delete("/{work_order_id}", status_code=204)
def delete_work_order(work_order_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    wo_svc.delete_work_order(db, actor=actor, work_order_id=work_order_id)
    return Response(status_code=204)


@router.post("/{work_order_id}/transition", response_model=WorkOrderOut)
def transition(
    work_order_id: int,
    payload: TransitionIn,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return wo_svc.transition_work_order(
        db,
        actor=actor,
        work_order_id=work_order_id,
        target=payload.target,
        expected_version=payload.expected_version,
    )


@router.post("/{work_order_id}/proposals", response_model=ProposalOut, status_code=201)
def create_proposal(
    work_order_id: int,
    payload: ProposalCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return proposal_svc.create_proposal(
        db,
        actor=actor,
        work_order_id=work_order_id,
        slots=[s.model_dump() for s in payload.slots],
        estimated_cost=payload.estimated_cost,
        estimated_duration_minutes=payload.estimated_duration_minutes,
        notes=payload.notes,
    )


@router.get("/{work_order_id}/proposals", response_model=list[ProposalOut])
def list_proposals(work_order_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return proposal_svc.list_proposals(db, actor=actor, work_order_id=work_order_id)


@router.get("/{work_order_id}/events", response_model=list[WorkflowEventOut])
def list_events(
    work_order_id: int,
    since_id: Optional[int] = Query(default=None, ge=0),
    event_type: Optional[str] = Query(default=None),
    limit: int = Query(default=200, ge=1, le=2000),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return wo_svc.list_events(
        db, actor=actor, work_order_id=work_order_id, since_id=since_id, event_type=event_type, limit=limit
    )
