from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import Field, field_validator
from sqlalchemy.orm import Session

from staffclock.api.deps import MANAGER_ROLES, require_roles
from staffclock.api.schemas import CamelModel, tenant_out, user_out
from staffclock.db.session import get_session
from staffclock.domains.auth.router import PIN_PATTERN, normalize_email
from staffclock.domains.tenants.service import create_tenant, update_tenant
from staffclock.domains.tenants.settings import BUSINESS_TYPES, BusinessType, defaults_for
from staffclock.models.user import User

router = APIRouter(prefix="/tenant", tags=["tenant"])

BUSINESS_TYPE_LABELS = {
    "retail": "Retail store",
    "restaurant": "Restaurant or cafe",
    "office": "Office",
    "healthcare": "Healthcare",
    "manufacturing": "Manufacturing",
    "contractors": "Contractor workforce",
}


class AdminAccount(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str
    pin: str = Field(..., pattern=PIN_PATTERN)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)


class TenantCreate(CamelModel):
    name: str = Field(..., min_length=2, max_length=100)
    subdomain: str = Field(..., pattern=r"^[a-zA-Z0-9-]{3,63}$")
    business_type: BusinessType
    timezone: str = "America/New_York"
    currency: str = Field(default="USD", pattern=r"^[A-Za-z]{3}$")
    contact_info: dict[str, Any] = {}
    admin: AdminAccount


class TenantUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    timezone: str | None = None
    currency: str | None = Field(default=None, pattern=r"^[A-Za-z]{3}$")
    contact_info: dict[str, Any] | None = None
    settings: dict[str, Any] | None = None


@router.post("/create", status_code=201)
def create(payload: TenantCreate, db: Session = Depends(get_session)) -> dict[str, Any]:
    onboarding = create_tenant(
        db,
        name=payload.name,
        subdomain=payload.subdomain,
        business_type=payload.business_type,
        timezone=payload.timezone,
        currency=payload.currency,
        contact_info=payload.contact_info,
        admin_name=payload.admin.name,
        admin_email=payload.admin.email,
        admin_pin=payload.admin.pin,
    )
    return {
        "success": True,
        "token": onboarding.token,
        "tenant": tenant_out(onboarding.tenant),
        "user": user_out(onboarding.admin),
    }


@router.get("/business-types")
def business_types() -> dict[str, Any]:
    return {
        "success": True,
        "businessTypes": [
            {
                "value": business_type,
                "label": BUSINESS_TYPE_LABELS[business_type],
                "defaultSettings": defaults_for(business_type).to_document(),
            }
            for business_type in BUSINESS_TYPES
        ],
    }


@router.get("/info")
def info(user: User = Depends(require_roles(*MANAGER_ROLES))) -> dict[str, Any]:
    return {"success": True, "tenant": tenant_out(user.tenant)}


@router.put("/settings")
def update_settings(
    payload: TenantUpdate,
    user: User = Depends(require_roles("admin")),
    db: Session = Depends(get_session),
) -> dict[str, Any]:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    tenant = update_tenant(db, user, changes)
    return {"success": True, "tenant": tenant_out(tenant)}
