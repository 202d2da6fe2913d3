# backend/tests/test_notification_dispatch.py
from __future__ import annotations

from app.config import settings
from app.models import WorkOrder
from app.services.appointments import approve_access
from app.workers import scheduling_tasks


class _Recorder:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[dict] = []

    def delay(self, payload: dict) -> None:
        self.calls.append(payload)
        if self.fail:
            raise ConnectionError("broker down")


def test_celery_backend_gets_minimal_payload(db, cast, scheduled, monkeypatch):
    res = scheduled()
    rec = _Recorder()
    monkeypatch.setattr(settings, "notification_backend", "celery")
    monkeypatch.setattr(scheduling_tasks, "send_notification", rec)

    approve_access(db, actor=cast.tenant, appointment_id=res.appointment.id)

    assert rec.calls == [
        {
            "work_order_id": res.proposal.work_order_id,
            "event_type": "appointment.access_approved",
            "actor_role": "tenant",
        }
    ]


def test_delivery_failure_does_not_undo_the_change(db, cast, scheduled, monkeypatch):
    res = scheduled()
    monkeypatch.setattr(settings, "notification_backend", "celery")
    monkeypatch.setattr(scheduling_tasks, "send_notification", _Recorder(fail=True))

    appt = approve_access(db, actor=cast.tenant, appointment_id=res.appointment.id)

    db.expire_all()
    assert appt.tenant_approved is True
    assert db.get(WorkOrder, res.proposal.work_order_id).status == "Scheduled"


def test_send_notification_task_acknowledges():
    out = scheduling_tasks.send_notification({"work_order_id": 1, "event_type": "slot.selected", "actor_role": "tenant"})
    assert out == {"ok": True, "event_type": "slot.selected"}
