from __future__ import annotations

from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from staffclock.api.deps import MANAGER_ROLES, get_clock, require_roles
from staffclock.core.clock import Clock
from staffclock.db.session import get_session
from staffclock.domains.exports.service import ExportFile, ExportService
from staffclock.models.user import User

router = APIRouter(prefix="/exports", tags=["exports"])

ExportFormat = Literal["csv", "excel", "pdf"]


def get_exports(db: Session = Depends(get_session), clock: Clock = Depends(get_clock)) -> ExportService:
    return ExportService(db, clock)


def _attachment(export: ExportFile) -> Response:
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


@router.get("/time-entries")
def export_time_entries(
    fmt: ExportFormat = Query(default="csv", alias="format"),
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
    user_id: str | None = Query(default=None, alias="userId"),
    status: Literal["active", "completed", "cancelled"] | None = None,
    is_approved: bool | None = Query(default=None, alias="isApproved"),
    include_details: bool = Query(default=False, alias="includeDetails"),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
    exports: ExportService = Depends(get_exports),
) -> Response:
    criteria = exports.reports.scoped_filter(
        user,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        status=status,
        is_approved=is_approved,
    )
    return _attachment(exports.export_time_entries(user, fmt, criteria, include_details=include_details))


@router.get("/payroll")
def export_payroll(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    fmt: ExportFormat = Query(default="csv", alias="format"),
    user: User = Depends(require_roles(*MANAGER_ROLES)),
    exports: ExportService = Depends(get_exports),
) -> Response:
    return _attachment(exports.export_payroll(user, fmt, start_date, end_date))
