# backend/app/auth.py
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Optional

import jwt  # PyJWT
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db
from .domain.scheduling.errors import NotAuthorized
from .models import AppUser

TENANT = "tenant"
CONTRACTOR = "contractor"
OPERATOR = "operator"

ROLES = (TENANT, CONTRACTOR, OPERATOR)


@dataclass(frozen=True)
class ActorContext:
    """
    Who is calling and on behalf of which work order.

    Passed explicitly into every scheduling operation; nothing reads identity
    from ambient state.
    """

    role: str  # tenant | contractor | operator
    user_id: int
    work_order_id: Optional[int] = None

    def scoped_to(self, work_order_id: Optional[int]) -> "ActorContext":
        return replace(self, work_order_id=work_order_id)


# -------------------------
# JWT helpers
# -------------------------
def create_access_token(*, user_id: int, role: str, work_order_id: Optional[int] = None, minutes: int = 60 * 24) -> str:
    now = datetime.utcnow()
    payload: dict[str, Any] = {
        "sub": str(int(user_id)),
        "role": str(role),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    if work_order_id is not None:
        payload["wo"] = int(work_order_id)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _decode_token(token: str) -> dict[str, Any]:
    try:
        return dict(jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]))
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def _as_int(v: Any, what: str) -> Optional[int]:
    if v is None or str(v).strip() == "":
        return None
    try:
        return int(str(v).strip())
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Invalid {what}")


def _actor_for_user(db: Session, *, user_id: int, role_hint: Optional[str], work_order_id: Optional[int]) -> ActorContext:
    user = db.get(AppUser, int(user_id))
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")

    role = str(user.role).strip().lower()
    if role not in ROLES:
        raise NotAuthorized(f"unsupported role: {role}", user_id=int(user.id), role=role)
    if role_hint and role_hint.strip().lower() != role:
        raise NotAuthorized("role does not match user", user_id=int(user.id), claimed_role=role_hint.strip().lower())

    return ActorContext(role=role, user_id=int(user.id), work_order_id=work_order_id)


# -------------------------
# get_actor
# -------------------------
def get_actor(
    request: Request,
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> ActorContext:
    """
    Auth modes supported (in priority order):
      1) Authorization: Bearer <jwt> with sub/role (and optional wo) claims
      2) dev header spoofing (ONLY if settings.auth_mode == "dev")
    """
    token = None
    if authorization and str(authorization).lower().startswith("bearer "):
        token = str(authorization).split(" ", 1)[1].strip()

    if token:
        claims = _decode_token(token)
        user_id = _as_int(claims.get("sub"), "sub")
        if user_id is None:
            raise HTTPException(status_code=401, detail="Token missing sub")
        return _actor_for_user(
            db,
            user_id=user_id,
            role_hint=claims.get("role"),
            work_order_id=_as_int(claims.get("wo"), "wo"),
        )

    if settings.auth_mode == "dev":
        user_id = _as_int(request.headers.get(settings.dev_header_user_id), settings.dev_header_user_id)
        if user_id is None:
            raise HTTPException(status_code=401, detail=f"Missing {settings.dev_header_user_id} for dev auth")
        return _actor_for_user(
            db,
            user_id=user_id,
            role_hint=request.headers.get(settings.dev_header_user_role),
            work_order_id=_as_int(
                request.headers.get(settings.dev_header_work_order_id), settings.dev_header_work_order_id
            ),
        )

    raise HTTPException(status_code=401, detail="Not authenticated")
