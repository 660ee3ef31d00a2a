from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from staffclock.domains.tenants.settings import load_settings
from staffclock.models.tenant import Tenant
from staffclock.models.user import User


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserOut(CamelModel):
    id: str
    tenant_id: str
    name: str
    email: str | None = None
    role: str
    department: str | None = None
    position: str | None = None
    hourly_rate: float = 0.0
    overtime_rate: float | None = None
    is_active: bool
    last_login: datetime | None = None
    created_at: datetime | None = None


class TenantOut(CamelModel):
    id: str
    name: str
    subdomain: str
    business_type: str
    timezone: str
    currency: str
    is_active: bool
    settings: dict[str, Any]
    contact_info: dict[str, Any] = {}


def user_out(user: User) -> dict[str, Any]:
    return UserOut.model_validate(user).model_dump(mode="json", by_alias=True)


def tenant_out(tenant: Tenant) -> dict[str, Any]:
    return TenantOut(
        id=tenant.id,
        name=tenant.name,
        subdomain=tenant.subdomain,
        business_type=tenant.business_type,
        timezone=tenant.timezone,
        currency=tenant.currency,
        is_active=tenant.is_active,
        settings=load_settings(tenant).to_document(),
        contact_info=tenant.contact_info or {},
    ).model_dump(mode="json", by_alias=True)
