from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from staffclock.core.clock import utcnow
from staffclock.db.session import Base

ENTRY_STATUSES = ("active", "completed", "cancelled")
APPROVAL_STATUSES = ("pending", "approved", "auto_approved")


def _entry_id() -> str:
    return f"entry-{uuid4().hex[:12]}"


class TimeEntry(Base):
    __tablename__ = "time_entries"
    __table_args__ = (
        # One open entry per user, enforced by the database rather than by a read-then-write.
        Index(
            "uq_time_entries_one_active_per_user",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
        Index("ix_time_entries_tenant_user_clock_in", "tenant_id", "user_id", "clock_in"),
        Index("ix_time_entries_tenant_status", "tenant_id", "status"),
    )

    id = Column(String(64), primary_key=True, default=_entry_id)
    tenant_id = Column(String(64), ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)

    clock_in = Column(DateTime(timezone=True), nullable=False)
    clock_out = Column(DateTime(timezone=True), nullable=True)
    work_date = Column(Date, nullable=False)
    total_hours = Column(Numeric(6, 2, asdecimal=False), nullable=True)
    total_break_minutes = Column(Float, nullable=False, default=0.0)

    status = Column(String(20), nullable=False, default="active")
    notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    location = Column(JSON, nullable=True)

    is_approved = Column(Boolean, nullable=False, default=False)
    approval_status = Column(String(20), nullable=False, default="pending")
    approved_by = Column(String(64), ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(String(64), nullable=True)
    last_modified_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", foreign_keys=[user_id])
    approver = relationship("User", foreign_keys=[approved_by])
    breaks = relationship(
        "BreakPeriod",
        back_populates="time_entry",
        order_by="BreakPeriod.started_at",
        cascade="all, delete-orphan",
    )

    @property
    def open_break(self) -> "BreakPeriod | None":
        for period in self.breaks:
            if period.ended_at is None:
                return period
        return None


class BreakPeriod(Base):
    __tablename__ = "break_periods"

    id = Column(Integer, primary_key=True, index=True)
    time_entry_id = Column(String(64), ForeignKey("time_entries.id"), nullable=False, index=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    time_entry = relationship("TimeEntry", back_populates="breaks")
