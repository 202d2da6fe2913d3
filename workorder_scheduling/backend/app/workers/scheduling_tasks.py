# backend/app/workers/scheduling_tasks.py
from __future__ import annotations

import logging

from ..db import SessionLocal
from ..services.expiry import sweep_expired
from .celery_app import celery_app

log = logging.getLogger("scheduling.worker")


@celery_app.task(
    name="app.workers.scheduling_tasks.send_notification",
)
def send_notification(payload: dict) -> dict:
    """
    Delivery hook for SMS/email channels, which live outside this service.

    The payload is the minimal {work_order_id, event_type, actor_role}; channel
    adapters look up recipients themselves.
    """
    log.info(
        "deliver %s",
        payload.get("event_type"),
        extra={"work_order_id": payload.get("work_order_id"), "actor_role": payload.get("actor_role")},
    )
    return {"ok": True, "event_type": payload.get("event_type")}


@celery_app.task(name="app.workers.scheduling_tasks.sweep_expired_negotiations")
def sweep_expired_negotiations() -> dict:
    db = SessionLocal()
    try:
        res = sweep_expired(db)
        return {"ok": True, "proposals_expired": res.proposals_expired, "counters_expired": res.counters_expired}
    finally:
        db.close()
