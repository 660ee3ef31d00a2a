from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from staffclock.core.clock import utcnow
from staffclock.db.session import Base


def _tenant_id() -> str:
    return f"tenant-{uuid4().hex[:12]}"


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String(64), primary_key=True, default=_tenant_id)
    name = Column(String(100), nullable=False)
    subdomain = Column(String(63), nullable=False, unique=True, index=True)
    business_type = Column(String(30), nullable=False, default="office")
    timezone = Column(String(64), nullable=False, default="America/New_York")
    currency = Column(String(3), nullable=False, default="USD")

    # Validated and defaulted through TenantSettings before it is written.
    settings = Column(JSON, nullable=False, default=dict)
    settings_version = Column(Integer, nullable=False, default=1)
    contact_info = Column(JSON, nullable=False, default=dict)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    users = relationship("User", back_populates="tenant")
