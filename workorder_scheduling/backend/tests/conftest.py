# backend/tests/conftest.py
from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timedelta

# Settings are read at import time; point them at a throwaway sqlite file first.
_DB_DIR = tempfile.mkdtemp(prefix="scheduling-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["APP_ENV"] = "test"
os.environ["AUTH_MODE"] = "dev"
os.environ["NOTIFICATION_BACKEND"] = "log"

import pytest  # noqa: E402

from app.auth import CONTRACTOR, OPERATOR, TENANT, ActorContext  # noqa: E402
from app.db import Base, SessionLocal, engine  # noqa: E402
from app.models import AppUser  # noqa: E402
from app.services.proposals import create_proposal, select_slot  # noqa: E402
from app.services.work_orders import create_work_order  # noqa: E402


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@dataclass(frozen=True)
class Cast:
    operator: ActorContext
    tenant: ActorContext
    contractor: ActorContext
    other_tenant: ActorContext
    other_contractor: ActorContext


def _mk_user(db, email: str, role: str) -> ActorContext:
    u = AppUser(email=email, display_name=email.split("@")[0], role=role, created_at=datetime.utcnow())
    db.add(u)
    db.commit()
    db.refresh(u)
    return ActorContext(role=role, user_id=int(u.id))


@pytest.fixture()
def cast(db) -> Cast:
    return Cast(
        operator=_mk_user(db, "ops@t.local", OPERATOR),
        tenant=_mk_user(db, "tenant@t.local", TENANT),
        contractor=_mk_user(db, "pro@t.local", CONTRACTOR),
        other_tenant=_mk_user(db, "tenant2@t.local", TENANT),
        other_contractor=_mk_user(db, "pro2@t.local", CONTRACTOR),
    )


def next_monday(hour: int = 0) -> datetime:
    """A Monday at least a week out, on the hour."""
    d = (datetime.utcnow() + timedelta(days=7)).replace(hour=hour, minute=0, second=0, microsecond=0)
    return d + timedelta(days=(7 - d.weekday()) % 7)


def at(day_offset: int, hour: int, minute: int = 0) -> datetime:
    return next_monday() + timedelta(days=day_offset, hours=hour, minutes=minute)


def window(day_offset: int, start_hour: int, end_hour: int) -> dict:
    return {"start": at(day_offset, start_hour), "end": at(day_offset, end_hour)}


MON, TUE, WED, THU, FRI = 0, 1, 2, 3, 4

# Mon 9-11, Tue 14-16, Wed 9-11
DEFAULT_SLOTS = [window(MON, 9, 11), window(TUE, 14, 16), window(WED, 9, 11)]


@pytest.fixture()
def new_work_order(db, cast):
    """Factory: a New two-hour work order for `cast.tenant`, assigned to `cast.contractor`."""

    def _make(tenant=None, contractor=None, duration: int = 120, title: str = "Leaking faucet"):
        return create_work_order(
            db,
            actor=cast.operator,
            title=title,
            tenant_user_id=(tenant or cast.tenant).user_id,
            assigned_contractor_id=(contractor or cast.contractor).user_id,
            estimated_duration_minutes=duration,
        )

    return _make


@pytest.fixture()
def scheduled(db, cast, new_work_order):
    """Factory: runs propose + select; returns the SlotSelection."""

    def _make(slots=None, slot_number: int = 2, tenant=None, contractor=None):
        tenant = tenant or cast.tenant
        contractor = contractor or cast.contractor
        wo = new_work_order(tenant=tenant, contractor=contractor)
        proposal = create_proposal(db, actor=contractor, work_order_id=wo.id, slots=slots or DEFAULT_SLOTS)
        slot = [s for s in proposal.slots if s.slot_number == slot_number][0]
        return select_slot(db, actor=tenant, proposal_id=proposal.id, slot_id=slot.id)

    return _make
