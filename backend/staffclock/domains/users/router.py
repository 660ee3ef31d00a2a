from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, Query
from pydantic import Field, field_validator
from sqlalchemy.orm import Session

from staffclock.api.deps import MANAGER_ROLES, get_current_user, require_roles
from staffclock.api.schemas import CamelModel, user_out
from staffclock.db.session import get_session
from staffclock.domains.auth.router import PIN_PATTERN, normalize_email
from staffclock.domains.users.service import UserDirectory
from staffclock.models.user import User

router = APIRouter(prefix="/users", tags=["users"])

Role = Literal["admin", "manager", "staff", "contractor"]
CLEARABLE_FIELDS = {"email", "department", "position", "overtime_rate"}


class UserCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str | None = None
    pin: str = Field(..., pattern=PIN_PATTERN)
    role: Role = "staff"
    department: str | None = Field(default=None, max_length=100)
    position: str | None = Field(default=None, max_length=100)
    hourly_rate: float = Field(default=0.0, ge=0)
    overtime_rate: float | None = Field(default=None, ge=1)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        return normalize_email(value)


class UserUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    email: str | None = None
    role: Role | None = None
    department: str | None = Field(default=None, max_length=100)
    position: str | None = Field(default=None, max_length=100)
    hourly_rate: float | None = Field(default=None, ge=0)
    overtime_rate: float | None = Field(default=None, ge=1)
    is_active: bool | None = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str | None) -> str | None:
        return normalize_email(value)


class PinReset(CamelModel):
    new_pin: str = Field(..., pattern=PIN_PATTERN)


def get_directory(db: Session = Depends(get_session)) -> UserDirectory:
    return UserDirectory(db)


@router.get("")
def list_users(
    role: Role | None = None,
    department: str | None = None,
    is_active: bool | None = Query(default=None, alias="isActive"),
    actor: User = Depends(require_roles(*MANAGER_ROLES)),
    directory: UserDirectory = Depends(get_directory),
) -> dict[str, Any]:
    users = directory.list_users(actor, role=role, department=department, is_active=is_active)
    return {"success": True, "users": [user_out(user) for user in users]}


@router.post("", status_code=201)
def create_user(
    payload: UserCreate,
    actor: User = Depends(require_roles(*MANAGER_ROLES)),
    directory: UserDirectory = Depends(get_directory),
) -> dict[str, Any]:
    fields = payload.model_dump(exclude={"pin"})
    user = directory.create_user(actor, pin=payload.pin, **fields)
    return {"success": True, "user": user_out(user)}


@router.get("/{user_id}")
def get_user(
    user_id: str,
    actor: User = Depends(get_current_user),
    directory: UserDirectory = Depends(get_directory),
) -> dict[str, Any]:
    return {"success": True, "user": user_out(directory.get_user(actor, user_id))}


@router.put("/{user_id}")
def update_user(
    user_id: str,
    payload: UserUpdate,
    actor: User = Depends(require_roles(*MANAGER_ROLES)),
    directory: UserDirectory = Depends(get_directory),
) -> dict[str, Any]:
    changes = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or field in CLEARABLE_FIELDS
    }
    user = directory.update_user(actor, user_id, changes)
    return {"success": True, "user": user_out(user)}


@router.delete("/{user_id}")
def deactivate_user(
    user_id: str,
    actor: User = Depends(require_roles("admin")),
    directory: UserDirectory = Depends(get_directory),
) -> dict[str, Any]:
    user = directory.deactivate_user(actor, user_id)
    return {"success": True, "message": "User deactivated", "user": user_out(user)}


@router.patch("/{user_id}/reset-pin")
def reset_pin(
    user_id: str,
    payload: PinReset,
    actor: User = Depends(require_roles(*MANAGER_ROLES)),
    directory: UserDirectory = Depends(get_directory),
) -> dict[str, Any]:
    directory.reset_pin(actor, user_id, payload.new_pin)
    return {"success": True, "message": "PIN reset successfully"}
