from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from staffclock.core.errors import ValidationError
from staffclock.core.logging import get_logger
from staffclock.core.security import create_access_token, hash_pin
from staffclock.domains.audit.service import AuditLogger
from staffclock.domains.tenants.settings import defaults_for, load_settings, merge_settings
from staffclock.models.tenant import Tenant
from staffclock.models.user import User

logger = get_logger(__name__)


@dataclass
class Onboarding:
    tenant: Tenant
    admin: User
    token: str


def validate_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone: {name}") from exc
    return name


def create_tenant(
    db: Session,
    *,
    name: str,
    subdomain: str,
    business_type: str,
    admin_name: str,
    admin_email: str,
    admin_pin: str,
    timezone: str = "America/New_York",
    currency: str = "USD",
    contact_info: dict[str, Any] | None = None,
) -> Onboarding:
    """Register an organization with its first administrator and business-type defaults."""
    subdomain = subdomain.strip().lower()
    if db.query(Tenant).filter(Tenant.subdomain == subdomain).first():
        raise ValidationError("Subdomain is already taken")

    tenant = Tenant(
        name=name.strip(),
        subdomain=subdomain,
        business_type=business_type,
        timezone=validate_timezone(timezone),
        currency=currency.upper(),
        settings=defaults_for(business_type).to_document(),
        settings_version=1,
        contact_info=contact_info or {},
    )
    db.add(tenant)
    db.flush()

    admin = User(
        tenant_id=tenant.id,
        name=admin_name.strip(),
        email=admin_email,
        pin_hash=hash_pin(admin_pin),
        role="admin",
    )
    db.add(admin)
    db.flush()
    AuditLogger(db).log(
        tenant_id=tenant.id,
        user_id=admin.id,
        action="tenant_created",
        resource="tenant",
        resource_id=tenant.id,
        details={"business_type": business_type, "subdomain": subdomain},
    )
    db.commit()
    db.refresh(tenant)
    db.refresh(admin)

    logger.info("tenant_created", tenant_id=tenant.id, subdomain=subdomain, business_type=business_type)
    token = create_access_token(admin.id, role=admin.role, tenant_id=tenant.id)
    return Onboarding(tenant=tenant, admin=admin, token=token)


def update_tenant(db: Session, actor: User, changes: dict[str, Any]) -> Tenant:
    """Apply profile changes and a partial settings document; bumps ``settings_version``."""
    tenant = actor.tenant
    settings_update = changes.pop("settings", None)

    if "timezone" in changes:
        validate_timezone(changes["timezone"])
    if "currency" in changes:
        changes["currency"] = changes["currency"].upper()
    for field, value in changes.items():
        setattr(tenant, field, value)

    if settings_update:
        try:
            merged = merge_settings(load_settings(tenant), settings_update)
        except PydanticValidationError as exc:
            raise ValidationError("Invalid settings", details=str(exc)) from exc
        tenant.settings = merged.to_document()
        tenant.settings_version = (tenant.settings_version or 0) + 1

    AuditLogger(db).log(
        tenant_id=tenant.id,
        user_id=actor.id,
        action="tenant_settings_updated",
        resource="tenant",
        resource_id=tenant.id,
        details={"fields": sorted(changes), "settings": settings_update or {}},
    )
    db.commit()
    db.refresh(tenant)
    logger.info("tenant_settings_updated", tenant_id=tenant.id, settings_version=tenant.settings_version)
    return tenant
