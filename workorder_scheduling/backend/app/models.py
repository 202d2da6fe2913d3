# backend/app/models.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


# -----------------------------
# Identity directory (minimal)
# -----------------------------
class AppUser(Base):
    __tablename__ = "app_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="tenant")  # tenant|contractor|operator
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Audit / workflow trail
# -----------------------------
class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    actor_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    action: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(80), nullable=False)

    before_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    after_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class WorkflowEvent(Base):
    __tablename__ = "workflow_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    work_order_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=True, index=True
    )
    actor_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    event_type: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    payload_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Work orders
# -----------------------------
class WorkOrder(Base):
    __tablename__ = "work_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="Normal")
    category: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="New", index=True)

    property_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    unit_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    tenant_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True, index=True)
    assigned_contractor_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("app_users.id"), nullable=True, index=True
    )

    estimated_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    proposals: Mapped[List["Proposal"]] = relationship(
        back_populates="work_order", cascade="all, delete-orphan", passive_deletes=True, order_by="Proposal.id"
    )
    appointment: Mapped[Optional["Appointment"]] = relationship(
        back_populates="work_order", uselist=False, cascade="all, delete-orphan", passive_deletes=True
    )
    counter_proposals: Mapped[List["CounterProposal"]] = relationship(
        back_populates="work_order", cascade="all, delete-orphan", passive_deletes=True
    )


# -----------------------------
# Proposals / slots
# -----------------------------
class Proposal(Base):
    __tablename__ = "proposals"
    __table_args__ = (
        # one live (Open or Countered) proposal per work order
        Index(
            "uq_proposals_one_live_per_work_order",
            "work_order_id",
            unique=True,
            sqlite_where=text("status IN ('Open', 'Countered')"),
            postgresql_where=text("status IN ('Open', 'Countered')"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    work_order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    contractor_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False, index=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Open")

    estimated_cost: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    estimated_duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # plain column (no FK) to avoid a proposals <-> proposal_slots cycle
    selected_slot_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    work_order: Mapped["WorkOrder"] = relationship(back_populates="proposals")
    slots: Mapped[List["ProposalSlot"]] = relationship(
        back_populates="proposal",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProposalSlot.slot_number",
    )


class ProposalSlot(Base):
    __tablename__ = "proposal_slots"
    __table_args__ = (UniqueConstraint("proposal_id", "slot_number", name="uq_proposal_slots_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    proposal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slot_number: Mapped[int] = mapped_column(Integer, nullable=False)  # 1..3

    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    selected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    selected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    proposal: Mapped["Proposal"] = relationship(back_populates="slots")


# -----------------------------
# Appointments
# -----------------------------
class Appointment(Base):
    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    work_order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    contractor_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False, index=True)

    scheduled_start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    scheduled_end_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Confirmed")  # Confirmed|NeedsReview|Cancelled

    requires_tenant_access_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    tenant_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tenant_approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # provenance of the current time range
    proposal_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    counter_proposal_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    work_order: Mapped["WorkOrder"] = relationship(back_populates="appointment")


# -----------------------------
# Counter-proposals
# -----------------------------
class CounterProposal(Base):
    __tablename__ = "counter_proposals"
    __table_args__ = (
        Index(
            "uq_counter_proposals_one_pending_per_appointment",
            "appointment_id",
            unique=True,
            sqlite_where=text("status = 'Pending' AND appointment_id IS NOT NULL"),
            postgresql_where=text("status = 'Pending' AND appointment_id IS NOT NULL"),
        ),
        Index(
            "uq_counter_proposals_one_pending_per_proposal",
            "proposal_id",
            unique=True,
            sqlite_where=text("status = 'Pending' AND proposal_id IS NOT NULL"),
            postgresql_where=text("status = 'Pending' AND proposal_id IS NOT NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    work_order_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("work_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    appointment_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("appointments.id", ondelete="CASCADE"), nullable=True, index=True
    )
    proposal_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("proposals.id", ondelete="CASCADE"), nullable=True, index=True
    )
    submitted_by_user_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False)

    # ordered [{"start": iso, "end": iso}, ...]; order is the tenant's preference
    availability_json: Mapped[str] = mapped_column(Text, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Pending")

    resolved_slot_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    resolved_start_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolved_end_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolved_by_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    resolution_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    work_order: Mapped["WorkOrder"] = relationship(back_populates="counter_proposals")
