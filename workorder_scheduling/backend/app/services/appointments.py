# backend/app/services/appointments.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ..auth import CONTRACTOR, OPERATOR, ActorContext
from ..db import atomic
from ..domain.audit import snapshot
from ..domain.scheduling.errors import NotAuthorized
from ..domain.scheduling.intervals import parse_dt
from ..models import Appointment
from .access import require_participant, require_tenant_of
from .contractor_calendar import list_contractor_appointments
from .notifications import ACCESS_APPROVED, NotificationEvent, notify
from .ownership import must_get_appointment, must_get_work_order, touch
from .work_orders import record_change

log = logging.getLogger("scheduling.appointments")


def approve_access(db: Session, *, actor: ActorContext, appointment_id: int) -> Appointment:
    """
    Tenant grants entry for the visit. Independent of the time negotiation:
    does not touch appointment status or the work order. A second call is a
    no-op and returns the appointment unchanged.
    """
    appt = must_get_appointment(db, appointment_id=appointment_id)
    wo = must_get_work_order(db, work_order_id=appt.work_order_id)
    require_tenant_of(actor, wo)

    if appt.tenant_approved:
        return appt

    now = datetime.utcnow()
    with atomic(db):
        before = snapshot(appt)
        appt.tenant_approved = True
        appt.tenant_approved_at = now
        touch(appt, now)
        db.flush()
        record_change(
            db,
            actor=actor,
            work_order_id=wo.id,
            event_type=ACCESS_APPROVED,
            entity=appt,
            before=before,
            payload={"appointment_id": appt.id},
        )
    db.refresh(appt)

    log.info(
        "tenant approved access",
        extra={"work_order_id": wo.id, "appointment_id": appt.id, "user_id": actor.user_id, "actor_role": actor.role},
    )
    notify(NotificationEvent(work_order_id=wo.id, event_type=ACCESS_APPROVED, actor_role=actor.role))
    return appt


def get_appointment(db: Session, *, actor: ActorContext, appointment_id: int) -> Appointment:
    appt = must_get_appointment(db, appointment_id=appointment_id)
    require_participant(actor, must_get_work_order(db, work_order_id=appt.work_order_id))
    return appt


def contractor_schedule(
    db: Session,
    *,
    actor: ActorContext,
    contractor_id: int,
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> List[Appointment]:
    """A contractor's own booked time; operators may look at anyone's."""
    if actor.role == CONTRACTOR:
        if int(actor.user_id) != int(contractor_id):
            raise NotAuthorized("contractors can only list their own appointments", contractor_id=contractor_id)
    elif actor.role != OPERATOR:
        raise NotAuthorized("requires role contractor or operator", role=actor.role)

    return list_contractor_appointments(
        db,
        contractor_id=contractor_id,
        start=parse_dt(start) if start else None,
        end=parse_dt(end) if end else None,
    )
