"""scheduling core: work orders, proposals, slots, appointments, counter-proposals

Revision ID: 0001_scheduling_core
Revises:
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa


revision = "0001_scheduling_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # -------------------------
    # Identity + audit
    # -------------------------
    op.create_table(
        "app_users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=200), nullable=False),
        sa.Column("display_name", sa.String(length=160), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="tenant"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_app_users_email", "app_users", ["email"], unique=True)

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=80), nullable=False),
        sa.Column("entity_id", sa.String(length=80), nullable=False),
        sa.Column("before_json", sa.Text(), nullable=True),
        sa.Column("after_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"])

    # -------------------------
    # Work orders
    # -------------------------
    op.create_table(
        "work_orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("priority", sa.String(length=20), nullable=False, server_default="Normal"),
        sa.Column("category", sa.String(length=80), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="New"),
        sa.Column("property_id", sa.Integer(), nullable=True),
        sa.Column("unit_id", sa.Integer(), nullable=True),
        sa.Column("tenant_user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("assigned_contractor_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("estimated_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_work_orders_status", "work_orders", ["status"])
    op.create_index("ix_work_orders_property_id", "work_orders", ["property_id"])
    op.create_index("ix_work_orders_tenant_user_id", "work_orders", ["tenant_user_id"])
    op.create_index("ix_work_orders_assigned_contractor_id", "work_orders", ["assigned_contractor_id"])

    op.create_table(
        "workflow_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "work_order_id",
            sa.Integer(),
            sa.ForeignKey("work_orders.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("actor_role", sa.String(length=20), nullable=True),
        sa.Column("event_type", sa.String(length=80), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_workflow_events_work_order_id", "workflow_events", ["work_order_id"])
    op.create_index("ix_workflow_events_event_type", "workflow_events", ["event_type"])

    # -------------------------
    # Proposals / slots
    # -------------------------
    op.create_table(
        "proposals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "work_order_id",
            sa.Integer(),
            sa.ForeignKey("work_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("contractor_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Open"),
        sa.Column("estimated_cost", sa.Float(), nullable=True),
        sa.Column("estimated_duration_minutes", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("selected_slot_id", sa.Integer(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_proposals_work_order_id", "proposals", ["work_order_id"])
    op.create_index("ix_proposals_contractor_id", "proposals", ["contractor_id"])
    op.create_index(
        "uq_proposals_one_live_per_work_order",
        "proposals",
        ["work_order_id"],
        unique=True,
        sqlite_where=sa.text("status IN ('Open', 'Countered')"),
        postgresql_where=sa.text("status IN ('Open', 'Countered')"),
    )

    op.create_table(
        "proposal_slots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "proposal_id",
            sa.Integer(),
            sa.ForeignKey("proposals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("slot_number", sa.Integer(), nullable=False),
        sa.Column("start_at", sa.DateTime(), nullable=False),
        sa.Column("end_at", sa.DateTime(), nullable=False),
        sa.Column("selected", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("selected_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("proposal_id", "slot_number", name="uq_proposal_slots_number"),
    )
    op.create_index("ix_proposal_slots_proposal_id", "proposal_slots", ["proposal_id"])

    # -------------------------
    # Appointments
    # -------------------------
    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "work_order_id",
            sa.Integer(),
            sa.ForeignKey("work_orders.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("contractor_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=False),
        sa.Column("scheduled_start_at", sa.DateTime(), nullable=False),
        sa.Column("scheduled_end_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Confirmed"),
        sa.Column("requires_tenant_access_approval", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("tenant_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("tenant_approved_at", sa.DateTime(), nullable=True),
        sa.Column("proposal_id", sa.Integer(), nullable=True),
        sa.Column("counter_proposal_id", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_appointments_contractor_id", "appointments", ["contractor_id"])
    op.create_index("ix_appointments_scheduled_start_at", "appointments", ["scheduled_start_at"])

    # -------------------------
    # Counter-proposals
    # -------------------------
    op.create_table(
        "counter_proposals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "work_order_id",
            sa.Integer(),
            sa.ForeignKey("work_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "appointment_id",
            sa.Integer(),
            sa.ForeignKey("appointments.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "proposal_id",
            sa.Integer(),
            sa.ForeignKey("proposals.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("submitted_by_user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=False),
        sa.Column("availability_json", sa.Text(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="Pending"),
        sa.Column("resolved_slot_index", sa.Integer(), nullable=True),
        sa.Column("resolved_start_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_end_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_by_user_id", sa.Integer(), sa.ForeignKey("app_users.id"), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("resolution_note", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_counter_proposals_work_order_id", "counter_proposals", ["work_order_id"])
    op.create_index("ix_counter_proposals_appointment_id", "counter_proposals", ["appointment_id"])
    op.create_index("ix_counter_proposals_proposal_id", "counter_proposals", ["proposal_id"])
    op.create_index(
        "uq_counter_proposals_one_pending_per_appointment",
        "counter_proposals",
        ["appointment_id"],
        unique=True,
        sqlite_where=sa.text("status = 'Pending' AND appointment_id IS NOT NULL"),
        postgresql_where=sa.text("status = 'Pending' AND appointment_id IS NOT NULL"),
    )
    op.create_index(
        "uq_counter_proposals_one_pending_per_proposal",
        "counter_proposals",
        ["proposal_id"],
        unique=True,
        sqlite_where=sa.text("status = 'Pending' AND proposal_id IS NOT NULL"),
        postgresql_where=sa.text("status = 'Pending' AND proposal_id IS NOT NULL"),
    )


def downgrade():
    op.drop_table("counter_proposals")
    op.drop_table("appointments")
    op.drop_table("proposal_slots")
    op.drop_table("proposals")
    op.drop_table("workflow_events")
    op.drop_table("work_orders")
    op.drop_table("audit_events")
    op.drop_table("app_users")
