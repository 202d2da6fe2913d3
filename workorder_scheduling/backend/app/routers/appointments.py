# backend/app/routers/appointments.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import ActorContext, get_actor
from ..db import get_db
from ..schemas import AppointmentOut, CounterProposalCreate, CounterProposalOut
from ..services import appointments as appt_svc
from ..services import counter_proposals as counter_svc

router = APIRouter(tags=["appointments"])


@router.get("/appointments/{appointment_id}", response_model=AppointmentOut)
def get_appointment(appointment_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return appt_svc.get_appointment(db, actor=actor, appointment_id=appointment_id)


@router.post("/appointments/{appointment_id}/approve-access", response_model=AppointmentOut)
def approve_access(appointment_id: int, db: Session = Depends(get_db), actor: ActorContext = Depends(get_actor)):
    return appt_svc.approve_access(db, actor=actor, appointment_id=appointment_id)


@router.post(
    "/appointments/{appointment_id}/counter-proposals",
    response_model=CounterProposalOut,
    status_code=201,
)
def submit_counter_proposal(
    appointment_id: int,
    payload: CounterProposalCreate,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return counter_svc.submit_counter_proposal(
        db,
        actor=actor,
        appointment_id=appointment_id,
        availability=[w.model_dump() for w in payload.availability],
        reason=payload.reason,
    )


@router.get("/appointments/{appointment_id}/counter-proposals", response_model=list[CounterProposalOut])
def list_counter_proposals(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return counter_svc.list_counter_proposals(db, actor=actor, appointment_id=appointment_id)


@router.get("/contractors/{contractor_id}/appointments", response_model=list[AppointmentOut])
def contractor_appointments(
    contractor_id: int,
    start: Optional[str] = Query(default=None),
    end: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    actor: ActorContext = Depends(get_actor),
):
    return appt_svc.contractor_schedule(db, actor=actor, contractor_id=contractor_id, start=start, end=end)
