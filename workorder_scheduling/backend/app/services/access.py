# backend/app/services/access.py
from __future__ import annotations

from typing import Optional

from ..auth import ActorContext, CONTRACTOR, OPERATOR, TENANT
from ..domain.scheduling.errors import NotAuthorized
from ..models import WorkOrder

# Relationship checks between an actor and a work order. Every scheduling
# operation calls exactly one of these before touching state.


def _check_scope(actor: ActorContext, work_order: WorkOrder) -> None:
    if actor.work_order_id is not None and int(actor.work_order_id) != int(work_order.id):
        raise NotAuthorized("actor context is scoped to a different work order", work_order_id=work_order.id)


def _require_role(actor: ActorContext, *roles: str) -> None:
    if actor.role not in roles:
        raise NotAuthorized(f"requires role {' or '.join(roles)}", role=actor.role)


def require_tenant_of(actor: ActorContext, work_order: WorkOrder) -> None:
    _require_role(actor, TENANT)
    _check_scope(actor, work_order)
    if work_order.tenant_user_id is None or int(work_order.tenant_user_id) != int(actor.user_id):
        raise NotAuthorized("only the tenant tied to this work order may do this", work_order_id=work_order.id)


def require_proposing_contractor(actor: ActorContext, work_order: WorkOrder) -> None:
    """Assigned contractor, or any contractor picking up an unassigned work order."""
    _require_role(actor, CONTRACTOR)
    _check_scope(actor, work_order)
    assigned: Optional[int] = work_order.assigned_contractor_id
    if assigned is not None and int(assigned) != int(actor.user_id):
        raise NotAuthorized("work order is assigned to another contractor", work_order_id=work_order.id)


def require_contractor(actor: ActorContext, work_order: WorkOrder, contractor_id: int) -> None:
    _require_role(actor, CONTRACTOR)
    _check_scope(actor, work_order)
    if int(contractor_id) != int(actor.user_id):
        raise NotAuthorized("only the contractor on this booking may do this", work_order_id=work_order.id)


def require_contractor_or_operator(actor: ActorContext, work_order: WorkOrder) -> None:
    _require_role(actor, CONTRACTOR, OPERATOR)
    _check_scope(actor, work_order)
    if actor.role == CONTRACTOR:
        assigned = work_order.assigned_contractor_id
        if assigned is None or int(assigned) != int(actor.user_id):
            raise NotAuthorized("only the assigned contractor may do this", work_order_id=work_order.id)


def require_operator(actor: ActorContext) -> None:
    _require_role(actor, OPERATOR)


def require_participant(actor: ActorContext, work_order: WorkOrder) -> None:
    """Read access: the tenant, the assigned contractor, or an operator."""
    _check_scope(actor, work_order)
    if actor.role == OPERATOR:
        return
    if actor.role == TENANT and work_order.tenant_user_id == actor.user_id:
        return
    if actor.role == CONTRACTOR and work_order.assigned_contractor_id in (None, actor.user_id):
        return
    raise NotAuthorized("not a participant of this work order", work_order_id=work_order.id)
