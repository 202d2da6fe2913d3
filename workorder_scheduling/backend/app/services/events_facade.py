# backend/app/services/events_facade.py
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import WorkflowEvent


@dataclass(frozen=True)
class WorkflowEventOut:
    id: int
    work_order_id: Optional[int]
    actor_user_id: Optional[int]
    actor_role: Optional[str]
    event_type: str
    payload: dict[str, Any]
    created_at: Optional[datetime]

    @classmethod
    def from_row(cls, r: WorkflowEvent) -> "WorkflowEventOut":
        try:
            payload = json.loads(r.payload_json) if r.payload_json else {}
        except ValueError:
            payload = {}
        return cls(
            id=int(r.id),
            work_order_id=r.work_order_id,
            actor_user_id=r.actor_user_id,
            actor_role=r.actor_role,
            event_type=str(r.event_type),
            payload=payload,
            created_at=r.created_at,
        )


class WorkflowFacade:
    """
    Per-work-order negotiation trail: who did what, in which role, in order.

    Rows are written inside the same transaction as the state change they
    describe, so the trail never shows a step that was rolled back.
    """

    def emit(
        self,
        db: Session,
        *,
        work_order_id: Optional[int],
        actor_user_id: Optional[int],
        actor_role: Optional[str],
        event_type: str,
        payload: dict[str, Any] | None = None,
        created_at: Optional[datetime] = None,
    ) -> WorkflowEvent:
        if not event_type:
            raise ValueError("event_type required")

        row = WorkflowEvent(
            work_order_id=work_order_id,
            actor_user_id=actor_user_id,
            actor_role=actor_role,
            event_type=str(event_type),
            payload_json=json.dumps(payload or {}, default=str),
            created_at=created_at or datetime.utcnow(),
        )
        db.add(row)
        db.flush()
        return row

    def list(
        self,
        db: Session,
        *,
        work_order_id: int,
        since_id: Optional[int] = None,
        event_type: Optional[str] = None,
        limit: int = 200,
    ) -> list[WorkflowEventOut]:
        """Oldest first; `since_id` lets a client poll for what it has not seen yet."""
        q = select(WorkflowEvent).where(WorkflowEvent.work_order_id == int(work_order_id))
        if since_id is not None:
            q = q.where(WorkflowEvent.id > int(since_id))
        if event_type:
            q = q.where(WorkflowEvent.event_type == str(event_type))

        rows = db.scalars(q.order_by(WorkflowEvent.id.asc()).limit(int(limit))).all()
        return [WorkflowEventOut.from_row(r) for r in rows]


wf = WorkflowFacade()
