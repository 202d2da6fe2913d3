# backend/app/services/work_orders.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..auth import ActorContext
from ..config import settings
from ..db import atomic
from ..domain.audit import audit_write, snapshot
from ..domain.scheduling.errors import IllegalStateTransition
from ..domain.scheduling.state_machine import MANUAL_TARGETS, NEW, assert_transition
from ..models import WorkOrder
from .access import require_contractor_or_operator, require_operator, require_participant
from .events_facade import wf
from .notifications import STATUS_CHANGED, NotificationEvent, notify
from .ownership import check_version, must_get_work_order

log = logging.getLogger("scheduling.work_orders")


def _utcnow() -> datetime:
    return datetime.utcnow()


def required_duration_minutes(wo: WorkOrder) -> int:
    return int(wo.estimated_duration_minutes or settings.default_job_duration_minutes)


def record_change(
    db: Session,
    *,
    actor: Optional[ActorContext],
    work_order_id: int,
    event_type: str,
    entity: Any,
    before: Optional[dict[str, Any]],
    payload: Optional[dict[str, Any]] = None,
) -> None:
    """Audit row (before/after) + workflow event, inside the caller's transaction."""
    audit_write(
        db,
        actor_user_id=actor.user_id if actor else None,
        action=event_type,
        entity_type=type(entity).__name__,
        entity_id=entity.id,
        before=before,
        after=snapshot(entity),
    )
    wf.emit(
        db,
        work_order_id=work_order_id,
        actor_user_id=actor.user_id if actor else None,
        actor_role=actor.role if actor else "system",
        event_type=event_type,
        payload=payload,
    )


def move_status(
    db: Session,
    wo: WorkOrder,
    target: str,
    *,
    now: datetime,
) -> WorkOrder:
    """
    Apply one state-machine transition with a conditional update on the
    current status, so two writers cannot both move the same work order.
    Does not commit.
    """
    current = str(wo.status)
    assert_transition(current, target)

    # pending edits on wo would be lost by the refresh below
    db.flush()
    res = db.execute(
        update(WorkOrder)
        .where(WorkOrder.id == wo.id, WorkOrder.status == current)
        .values(status=target, version=WorkOrder.version + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        db.refresh(wo)
        raise IllegalStateTransition(
            current=str(wo.status),
            target=target,
            message=f"work order moved to {wo.status} concurrently",
        )

    db.refresh(wo)
    return wo


def create_work_order(
    db: Session,
    *,
    actor: ActorContext,
    title: str,
    priority: str = "Normal",
    category: Optional[str] = None,
    property_id: Optional[int] = None,
    unit_id: Optional[int] = None,
    tenant_user_id: Optional[int] = None,
    assigned_contractor_id: Optional[int] = None,
    estimated_duration_minutes: Optional[int] = None,
) -> WorkOrder:
    """Directory stand-in: operators file work orders on behalf of tenants."""
    require_operator(actor)
    now = _utcnow()

    row = WorkOrder(
        title=title,
        priority=priority,
        category=category,
        status=NEW,
        property_id=property_id,
        unit_id=unit_id,
        tenant_user_id=tenant_user_id,
        assigned_contractor_id=assigned_contractor_id,
        estimated_duration_minutes=estimated_duration_minutes,
        version=1,
        created_at=now,
        updated_at=now,
    )
    with atomic(db):
        db.add(row)
        db.flush()
        record_change(db, actor=actor, work_order_id=row.id, event_type="work_order.created", entity=row, before=None)
    db.refresh(row)
    return row


def transition_work_order(
    db: Session,
    *,
    actor: ActorContext,
    work_order_id: int,
    target: str,
    expected_version: Optional[int] = None,
) -> WorkOrder:
    """
    Manual moves after scheduling: InProgress, OnHold, Resolved (assigned
    contractor or operator) and Closed (operator only). Scheduling states are
    reachable only through proposal / counter-proposal operations.
    """
    wo = must_get_work_order(db, work_order_id=work_order_id)
    if target == "Closed":
        require_operator(actor)
    else:
        require_contractor_or_operator(actor, wo)

    if target not in MANUAL_TARGETS:
        raise IllegalStateTransition(
            current=str(wo.status),
            target=target,
            message=f"{target} is only reachable through scheduling operations",
        )
    check_version(wo, expected_version)

    before = snapshot(wo)
    previous = str(wo.status)
    with atomic(db):
        move_status(db, wo, target, now=_utcnow())
        record_change(
            db,
            actor=actor,
            work_order_id=wo.id,
            event_type=STATUS_CHANGED,
            entity=wo,
            before=before,
            payload={"from": previous, "to": target},
        )
    db.refresh(wo)

    log.info(
        "work order %s -> %s",
        previous,
        target,
        extra={"work_order_id": wo.id, "user_id": actor.user_id, "actor_role": actor.role},
    )
    notify(NotificationEvent(work_order_id=wo.id, event_type=STATUS_CHANGED, actor_role=actor.role))
    return wo


def delete_work_order(db: Session, *, actor: ActorContext, work_order_id: int) -> None:
    """Cascades to proposals, slots, the appointment and counter-proposals."""
    require_operator(actor)
    wo = must_get_work_order(db, work_order_id=work_order_id)
    with atomic(db):
        audit_write(
            db,
            actor_user_id=actor.user_id,
            action="work_order.deleted",
            entity_type="WorkOrder",
            entity_id=wo.id,
            before=snapshot(wo),
            after=None,
        )
        db.delete(wo)


def get_work_order(db: Session, *, actor: ActorContext, work_order_id: int) -> WorkOrder:
    wo = must_get_work_order(db, work_order_id=work_order_id)
    require_participant(actor, wo)
    return wo


def list_events(
    db: Session,
    *,
    actor: ActorContext,
    work_order_id: int,
    since_id: Optional[int] = None,
    event_type: Optional[str] = None,
    limit: int = 200,
):
    wo = get_work_order(db, actor=actor, work_order_id=work_order_id)
    return wf.list(db, work_order_id=wo.id, since_id=since_id, event_type=event_type, limit=limit)
