from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from app.config import settings

log = logging.getLogger("scheduling.notifications")

PROPOSAL_CREATED = "proposal.created"
PROPOSAL_SUPERSEDED = "proposal.superseded"
PROPOSAL_EXPIRED = "proposal.expired"
SLOT_SELECTED = "slot.selected"
COUNTER_SUBMITTED = "counter_proposal.submitted"
COUNTER_ACCEPTED = "counter_proposal.accepted"
COUNTER_REJECTED = "counter_proposal.rejected"
COUNTER_EXPIRED = "counter_proposal.expired"
ACCESS_APPROVED = "appointment.access_approved"
STATUS_CHANGED = "work_order.status_changed"


@dataclass(frozen=True)
class NotificationEvent:
    work_order_id: int
    event_type: str
    actor_role: Optional[str]


def notify(event: NotificationEvent) -> None:
    """
    Fire-and-forget hand-off to the delivery channel.

    Called only after the state change has committed. Delivery problems are
    logged and never surface to the caller: a slow or broken channel must not
    undo or stall scheduling.
    """
    backend = (settings.notification_backend or "log").strip().lower()
    payload = asdict(event)

    if backend == "celery":
        try:
            from app.workers.scheduling_tasks import send_notification

            send_notification.delay(payload)
        except Exception:
            log.warning(
                "notification enqueue failed",
                exc_info=True,
                extra={"work_order_id": event.work_order_id, "actor_role": event.actor_role},
            )
        return

    log.info(
        "notification %s",
        event.event_type,
        extra={"work_order_id": event.work_order_id, "actor_role": event.actor_role},
    )
