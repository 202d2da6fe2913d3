from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain.scheduling.conflict_resolver import Booking
from app.domain.scheduling.intervals import TimeWindow
from app.domain.scheduling.state_machine import APPT_BOOKED
from app.models import Appointment


def list_contractor_appointments(
    db: Session,
    *,
    contractor_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    exclude_appointment_id: Optional[int] = None,
) -> List[Appointment]:
    """
    The contractor's appointments that still hold time (Confirmed or
    NeedsReview), optionally limited to those intersecting [start, end).
    """
    q = select(Appointment).where(
        Appointment.contractor_id == int(contractor_id),
        Appointment.status.in_(APPT_BOOKED),
    )

    if start is not None:
        q = q.where(Appointment.scheduled_end_at > start)
    if end is not None:
        q = q.where(Appointment.scheduled_start_at < end)

    if exclude_appointment_id is not None:
        q = q.where(Appointment.id != int(exclude_appointment_id))

    return list(db.scalars(q.order_by(Appointment.scheduled_start_at, Appointment.id)).all())


def contractor_bookings(
    db: Session,
    *,
    contractor_id: int,
    windows: Sequence[TimeWindow],
    exclude_appointment_id: Optional[int] = None,
) -> List[Booking]:
    """
    Bookings that could collide with any of `windows`; the contested
    appointment itself is excluded (its time is the one being renegotiated).
    """
    if not windows:
        return []

    rows = list_contractor_appointments(
        db,
        contractor_id=contractor_id,
        start=min(w.start for w in windows),
        end=max(w.end for w in windows),
        exclude_appointment_id=exclude_appointment_id,
    )
    return [
        Booking(appointment_id=int(r.id), window=TimeWindow(r.scheduled_start_at, r.scheduled_end_at))
        for r in rows
        if r.scheduled_end_at > r.scheduled_start_at
    ]
