from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from staffclock.api.deps import MANAGER_ROLES, get_clock, get_current_user, require_roles
from staffclock.core.clock import Clock
from staffclock.db.session import get_session
from staffclock.domains.reporting.reports import ReportService
from staffclock.models.user import User

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def get_reports(db: Session = Depends(get_session), clock: Clock = Depends(get_clock)) -> ReportService:
    return ReportService(db, clock)


@router.get("/stats")
def dashboard_stats(
    user: User = Depends(require_roles(*MANAGER_ROLES)),
    reports: ReportService = Depends(get_reports),
) -> dict[str, Any]:
    stats = reports.dashboard_stats(user)
    return {"success": True, **stats.model_dump(mode="json", by_alias=True)}


@router.get("/user")
def user_dashboard(
    user: User = Depends(get_current_user),
    reports: ReportService = Depends(get_reports),
) -> dict[str, Any]:
    dashboard = reports.user_dashboard(user)
    return {"success": True, **dashboard.model_dump(mode="json", by_alias=True)}
