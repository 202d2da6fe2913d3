# backend/app/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from app.auth import CONTRACTOR, OPERATOR, TENANT, ActorContext
from app.db import Base, SessionLocal, engine
from app.models import AppUser, WorkOrder
from app.services.work_orders import create_work_order


@dataclass(frozen=True)
class SeedResult:
    operator_id: int
    tenant_id: int
    contractor_id: int
    work_order_id: Optional[int]


def _get_or_create_user(db: Session, email: str, display_name: str, role: str) -> AppUser:
    row = db.query(AppUser).filter(AppUser.email == email).one_or_none()
    if row:
        return row
    row = AppUser(email=email, display_name=display_name, role=role)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def seed_demo(
    *,
    title: str = "Leaking kitchen faucet",
    duration_minutes: int = 60,
    create_work_order_row: bool = True,
    create_tables: bool = False,
) -> SeedResult:
    if create_tables:
        Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        operator = _get_or_create_user(db, "operator@demo.local", "Operator", OPERATOR)
        tenant = _get_or_create_user(db, "tenant@demo.local", "Tenant", TENANT)
        contractor = _get_or_create_user(db, "contractor@demo.local", "Contractor", CONTRACTOR)

        wo_id: Optional[int] = None
        if create_work_order_row:
            existing = (
                db.query(WorkOrder)
                .filter(WorkOrder.title == title, WorkOrder.tenant_user_id == tenant.id)
                .one_or_none()
            )
            if existing is None:
                existing = create_work_order(
                    db,
                    actor=ActorContext(role=OPERATOR, user_id=operator.id),
                    title=title,
                    tenant_user_id=tenant.id,
                    assigned_contractor_id=contractor.id,
                    estimated_duration_minutes=duration_minutes,
                )
            wo_id = int(existing.id)

        return SeedResult(
            operator_id=int(operator.id),
            tenant_id=int(tenant.id),
            contractor_id=int(contractor.id),
            work_order_id=wo_id,
        )
    finally:
        db.close()
