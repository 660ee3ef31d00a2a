from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import Field, field_validator

from staffclock.api.schemas import CamelModel
from staffclock.core.clock import ensure_utc
from staffclock.models.time_entry import TimeEntry


class LocationIn(CamelModel):
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    address: str | None = Field(default=None, max_length=255)
    ip: str | None = None
    ssid: str | None = Field(default=None, max_length=64)

    @field_validator("address", "ssid", "ip")
    @classmethod
    def strip_text(cls, value: str | None) -> str | None:
        return value.strip() or None if value else value


class ClockInRequest(CamelModel):
    location: LocationIn | None = None
    notes: str | None = Field(default=None, max_length=500)


class ClockOutRequest(CamelModel):
    notes: str | None = Field(default=None, max_length=500)


class EntryUpdate(CamelModel):
    clock_in: datetime | None = None
    clock_out: datetime | None = None
    notes: str | None = Field(default=None, max_length=500)
    admin_notes: str | None = Field(default=None, max_length=1000)


class CancelRequest(CamelModel):
    reason: str | None = Field(default=None, max_length=500)


class BreakOut(CamelModel):
    started_at: datetime
    ended_at: datetime | None = None


class EntryUserOut(CamelModel):
    id: str
    name: str
    email: str | None = None
    department: str | None = None


class TimeEntryOut(CamelModel):
    id: str
    tenant_id: str
    user_id: str
    user: EntryUserOut | None = None
    clock_in: datetime
    clock_out: datetime | None = None
    work_date: date = Field(alias="date")
    total_hours: float | None = None
    total_break_minutes: float = 0.0
    status: Literal["active", "completed", "cancelled"]
    notes: str | None = None
    admin_notes: str | None = None
    location: dict[str, Any] | None = None
    is_approved: bool
    approval_status: str
    approved_by: str | None = None
    approved_at: datetime | None = None
    breaks: list[BreakOut] = []


def entry_out(entry: TimeEntry) -> dict[str, Any]:
    payload = TimeEntryOut(
        id=entry.id,
        tenant_id=entry.tenant_id,
        user_id=entry.user_id,
        user=EntryUserOut.model_validate(entry.user) if entry.user is not None else None,
        clock_in=ensure_utc(entry.clock_in),
        clock_out=ensure_utc(entry.clock_out),
        work_date=entry.work_date,
        total_hours=entry.total_hours,
        total_break_minutes=round(entry.total_break_minutes or 0.0, 2),
        status=entry.status,
        notes=entry.notes,
        admin_notes=entry.admin_notes,
        location=entry.location,
        is_approved=entry.is_approved,
        approval_status=entry.approval_status,
        approved_by=entry.approved_by,
        approved_at=ensure_utc(entry.approved_at),
        breaks=[
            BreakOut(started_at=ensure_utc(period.started_at), ended_at=ensure_utc(period.ended_at))
            for period in entry.breaks
        ],
    )
    return payload.model_dump(mode="json", by_alias=True)
