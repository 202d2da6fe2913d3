# backend/app/schemas.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# -------------------- Shared --------------------

class WindowIn(BaseModel):
    start: datetime
    end: datetime


class SlotIn(BaseModel):
    """A bare start gets the job's estimated duration."""

    start: datetime
    end: Optional[datetime] = None


class WindowOut(BaseModel):
    start: datetime
    end: datetime


class VersionedIn(BaseModel):
    expected_version: Optional[int] = Field(default=None, ge=1)


# -------------------- Work orders --------------------

class WorkOrderCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    priority: str = "Normal"
    category: Optional[str] = None
    property_id: Optional[int] = None
    unit_id: Optional[int] = None
    tenant_user_id: Optional[int] = None
    assigned_contractor_id: Optional[int] = None
    estimated_duration_minutes: Optional[int] = Field(default=None, ge=1)


class WorkOrderOut(BaseModel):
    id: int
    title: str
    priority: str
    category: Optional[str] = None
    status: str
    property_id: Optional[int] = None
    unit_id: Optional[int] = None
    tenant_user_id: Optional[int] = None
    assigned_contractor_id: Optional[int] = None
    estimated_duration_minutes: Optional[int] = None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransitionIn(VersionedIn):
    target: str


# -------------------- Proposals --------------------

class ProposalCreate(BaseModel):
    slots: List[SlotIn]
    estimated_cost: Optional[float] = Field(default=None, ge=0)
    estimated_duration_minutes: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = None


class ProposalReplace(ProposalCreate, VersionedIn):
    pass


class ProposalSlotOut(BaseModel):
    id: int
    slot_number: int
    start_at: datetime
    end_at: datetime
    selected: bool
    selected_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ProposalOut(BaseModel):
    id: int
    work_order_id: int
    contractor_id: int
    status: str
    estimated_cost: Optional[float] = None
    estimated_duration_minutes: Optional[int] = None
    notes: Optional[str] = None
    selected_slot_id: Optional[int] = None
    expires_at: Optional[datetime] = None
    version: int
    created_at: datetime
    updated_at: datetime
    slots: List[ProposalSlotOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class SelectSlotIn(VersionedIn):
    slot_id: int


# -------------------- Appointments --------------------

class AppointmentOut(BaseModel):
    id: int
    work_order_id: int
    contractor_id: int
    scheduled_start_at: datetime
    scheduled_end_at: datetime
    status: str
    requires_tenant_access_approval: bool
    tenant_approved: bool
    tenant_approved_at: Optional[datetime] = None
    proposal_id: Optional[int] = None
    counter_proposal_id: Optional[int] = None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SlotSelectionOut(BaseModel):
    proposal: ProposalOut
    appointment: AppointmentOut


class WorkOrderDetailOut(WorkOrderOut):
    live_proposal: Optional[ProposalOut] = None
    appointment: Optional[AppointmentOut] = None


# -------------------- Counter-proposals --------------------

class CounterProposalCreate(BaseModel):
    availability: List[WindowIn]
    reason: Optional[str] = Field(default=None, max_length=2000)


class CounterProposalOut(BaseModel):
    id: int
    work_order_id: int
    appointment_id: Optional[int] = None
    proposal_id: Optional[int] = None
    submitted_by_user_id: int
    availability: List[WindowOut] = Field(default_factory=list)
    reason: Optional[str] = None
    status: str
    resolved_slot_index: Optional[int] = None
    resolved_start_at: Optional[datetime] = None
    resolved_end_at: Optional[datetime] = None
    resolved_by_user_id: Optional[int] = None
    resolved_at: Optional[datetime] = None
    resolution_note: Optional[str] = None
    expires_at: Optional[datetime] = None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="before")
    @classmethod
    def _availability_from_json(cls, data: Any) -> Any:
        # ORM rows keep windows as JSON text
        raw = getattr(data, "availability_json", None)
        if raw is None:
            return data
        fields = {k: getattr(data, k) for k in cls.model_fields if k != "availability" and hasattr(data, k)}
        fields["availability"] = json.loads(raw or "[]")
        return fields


class AcceptCounterIn(VersionedIn):
    selected_slot_index: int = Field(ge=0)
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class RejectCounterIn(VersionedIn):
    reason: Optional[str] = Field(default=None, max_length=2000)


class CounterOutcomeOut(BaseModel):
    counter_proposal: CounterProposalOut
    appointment: Optional[AppointmentOut] = None
    work_order: WorkOrderOut


class WindowMatchOut(BaseModel):
    window_index: int
    kind: str  # clean | partial | none
    window: WindowOut
    candidate: Optional[WindowOut] = None
    conflict_ids: List[int] = Field(default_factory=list)


class ResolutionOut(BaseModel):
    counter_proposal_id: int
    required_minutes: int
    match: Optional[WindowMatchOut] = None
    ranked: List[WindowMatchOut]
    conflicts: List[int]


# -------------------- Workflow events --------------------

class WorkflowEventOut(BaseModel):
    id: int
    work_order_id: Optional[int] = None
    actor_user_id: Optional[int] = None
    actor_role: Optional[str] = None
    event_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# -------------------- Errors --------------------

class ErrorBody(BaseModel):
    code: str
    kind: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class ErrorOut(BaseModel):
    error: ErrorBody
