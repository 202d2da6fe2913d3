# backend/app/workers/celery_app.py
from __future__ import annotations

from celery import Celery

from ..config import settings

BROKER = settings.celery_broker_url or "redis://localhost:6379/0"
BACKEND = settings.celery_result_backend or "redis://localhost:6379/1"

celery_app = Celery(
    "scheduling",
    broker=BROKER,
    backend=BACKEND,
    include=["app.workers.scheduling_tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    timezone="UTC",
)

celery_app.conf.task_routes = {
    "app.workers.scheduling_tasks.send_notification": {"queue": "notifications"},
    "app.workers.scheduling_tasks.sweep_expired_negotiations": {"queue": "sweeps"},
}

# Expiry is opt-in: the sweep task is a no-op unless expiry hours are configured.
celery_app.conf.beat_schedule = {
    "sweep-expired-negotiations": {
        "task": "app.workers.scheduling_tasks.sweep_expired_negotiations",
        "schedule": float(settings.expiry_sweep_interval_seconds),
    },
}
