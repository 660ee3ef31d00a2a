from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import Field, field_validator
from sqlalchemy import func
from sqlalchemy.orm import Session

from staffclock.api.deps import get_clock, get_current_user
from staffclock.api.schemas import CamelModel, tenant_out, user_out
from staffclock.core.clock import Clock
from staffclock.core.errors import ValidationError
from staffclock.core.logging import get_logger
from staffclock.core.rate_limit import AUTH_LIMIT, limiter
from staffclock.db.session import get_session
from staffclock.domains.audit.service import AuditLogger
from staffclock.domains.auth.service import AuthResult, authenticate, change_pin
from staffclock.models.user import User

router = APIRouter(prefix="/auth", tags=["auth"])
logger = get_logger(__name__)

PIN_PATTERN = r"^\d{4,6}$"


def normalize_email(value: str | None) -> str | None:
    if value is None:
        return None
    email = value.strip().lower()
    if "@" not in email:
        raise ValueError("Invalid email format")
    return email


class LoginRequest(CamelModel):
    email: str
    pin: str = Field(..., pattern=PIN_PATTERN)
    tenant_id: str | None = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)


class QuickLoginRequest(CamelModel):
    pin: str = Field(..., pattern=PIN_PATTERN)
    tenant_id: str | None = None


class ChangePinRequest(CamelModel):
    current_pin: str = Field(..., pattern=PIN_PATTERN)
    new_pin: str = Field(..., pattern=PIN_PATTERN)


class ProfileUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    email: str | None = None
    department: str | None = Field(default=None, max_length=100)
    position: str | None = Field(default=None, max_length=100)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        return normalize_email(value)


def _session_payload(result: AuthResult) -> dict[str, Any]:
    return {
        "success": True,
        "token": result.token,
        "user": user_out(result.user),
        "tenant": tenant_out(result.tenant),
    }


def _tenant_scope(request: Request, body_tenant: str | None) -> str | None:
    return body_tenant or request.headers.get("X-Tenant-ID") or None


@router.post("/login")
@limiter.limit(AUTH_LIMIT)
def login(
    request: Request,
    payload: LoginRequest,
    db: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    logger.info("login_attempt", email=payload.email)
    result = authenticate(
        db,
        payload.pin,
        email=payload.email,
        tenant_id=_tenant_scope(request, payload.tenant_id),
        clock=clock,
    )
    return _session_payload(result)


@router.post("/quick-login")
@limiter.limit(AUTH_LIMIT)
def quick_login(
    request: Request,
    payload: QuickLoginRequest,
    db: Session = Depends(get_session),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    result = authenticate(db, payload.pin, tenant_id=_tenant_scope(request, payload.tenant_id), clock=clock)
    return _session_payload(result)


@router.get("/profile")
def get_profile(user: User = Depends(get_current_user)) -> dict[str, Any]:
    return {"success": True, "user": user_out(user), "tenant": tenant_out(user.tenant)}


@router.put("/profile")
def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> dict[str, Any]:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "email" in changes:
        taken = (
            db.query(User)
            .filter(
                User.tenant_id == user.tenant_id,
                func.lower(User.email) == changes["email"],
                User.id != user.id,
            )
            .first()
        )
        if taken:
            raise ValidationError("Email already in use")

    for field, value in changes.items():
        setattr(user, field, value)
    AuditLogger(db).log(
        tenant_id=user.tenant_id,
        user_id=user.id,
        action="profile_updated",
        resource="user",
        resource_id=user.id,
        details={"fields": sorted(changes)},
    )
    db.commit()
    db.refresh(user)
    logger.info("profile_updated", user_id=user.id, fields=sorted(changes))
    return {"success": True, "user": user_out(user)}


@router.put("/change-pin")
def update_pin(
    payload: ChangePinRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> dict[str, Any]:
    change_pin(db, user, payload.current_pin, payload.new_pin)
    return {"success": True, "message": "PIN changed successfully"}
