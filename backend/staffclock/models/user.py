from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from staffclock.core.clock import utcnow
from staffclock.db.session import Base

ROLES = ("admin", "manager", "staff", "contractor")
ROLE_RANK = {"contractor": 0, "staff": 1, "manager": 2, "admin": 3}


def role_at_least(role: str, minimum: str) -> bool:
    return ROLE_RANK.get(role, -1) >= ROLE_RANK[minimum]


def _user_id() -> str:
    return f"user-{uuid4().hex[:12]}"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),)

    id = Column(String(64), primary_key=True, default=_user_id)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    pin_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="staff")  # admin|manager|staff|contractor

    department = Column(String(100), nullable=True)
    position = Column(String(100), nullable=True)
    hourly_rate = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    overtime_rate = Column(Numeric(4, 2, asdecimal=False), nullable=True)  # falls back to tenant policy

    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    tenant = relationship("Tenant", back_populates="users")
