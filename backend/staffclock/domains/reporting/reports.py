"""Read-side queries: entry lists, weekly report, payroll summary and dashboards.

All queries are tenant-scoped through the acting user. Staff and contractors only
ever see their own entries, whatever filter they ask for.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Iterable

from sqlalchemy.orm import Session

from staffclock.api.schemas import CamelModel
from staffclock.core.clock import Clock, hours_between, local_date, utcnow
from staffclock.core.errors import Forbidden, ValidationError
from staffclock.core.logging import get_logger
from staffclock.domains.reporting.overtime import OvertimeBucket, OvertimeEngine, week_bounds
from staffclock.domains.tenants.settings import load_settings
from staffclock.domains.time_entries.repository import EntryFilter, TimeEntryRepository
from staffclock.domains.time_entries.schemas import EntryUserOut, entry_out
from staffclock.models.time_entry import TimeEntry
from staffclock.models.user import User, role_at_least

logger = get_logger(__name__)

MAX_WEEKS_BACK = 52


class UserWeek(CamelModel):
    user: EntryUserOut
    total_hours: float = 0.0
    regular_hours: float = 0.0
    overtime_hours: float = 0.0
    double_time_hours: float = 0.0
    entries: list[dict[str, Any]] = []


class WeeklyReport(CamelModel):
    week: str
    week_start: date
    week_end: date
    total_hours: float = 0.0
    regular_hours: float = 0.0
    overtime_hours: float = 0.0
    double_time_hours: float = 0.0
    total_staff: int = 0
    entries_by_user: list[UserWeek] = []
    entries: list[dict[str, Any]] = []


class PayrollLine(CamelModel):
    user_id: str
    name: str
    email: str | None = None
    department: str | None = None
    position: str | None = None
    hourly_rate: float
    overtime_multiplier: float
    double_time_multiplier: float
    entry_count: int = 0
    total_hours: float = 0.0
    regular_hours: float = 0.0
    overtime_hours: float = 0.0
    double_time_hours: float = 0.0
    regular_pay: float = 0.0
    overtime_pay: float = 0.0
    double_time_pay: float = 0.0
    total_pay: float = 0.0


class PayrollSummary(CamelModel):
    start_date: date
    end_date: date
    currency: str
    lines: list[PayrollLine] = []
    total_hours: float = 0.0
    total_pay: float = 0.0


class TodayStats(CamelModel):
    clocked_in: int = 0
    total_hours: float = 0.0
    entries: int = 0


class WeekStats(CamelModel):
    total_hours: float = 0.0
    overtime: float = 0.0
    average_daily: float = 0.0


class GeneralStats(CamelModel):
    active_employees: int = 0
    pending_approvals: int = 0


class DashboardStats(CamelModel):
    today: TodayStats
    weekly: WeekStats
    general: GeneralStats


class PersonalPeriod(CamelModel):
    hours: float = 0.0
    overtime: float = 0.0
    entries: int = 0


class UserDashboard(CamelModel):
    current_entry: dict[str, Any] | None = None
    today: PersonalPeriod
    weekly: PersonalPeriod


def _sum_hours(entries: list[TimeEntry]) -> float:
    return round(sum(entry.total_hours or 0.0 for entry in entries), 2)


def _overtime(buckets: Iterable[OvertimeBucket]) -> float:
    return round(sum(bucket.overtime_hours + bucket.doubletime_hours for bucket in buckets), 2)


class ReportService:
    def __init__(self, session: Session, clock: Clock = utcnow):
        self.session = session
        self.clock = clock
        self.repository = TimeEntryRepository(session)

    def scoped_filter(
        self,
        actor: User,
        *,
        user_id: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        status: str | None = None,
        is_approved: bool | None = None,
    ) -> EntryFilter:
        if start_date and end_date and start_date > end_date:
            raise ValidationError("startDate must not be after endDate")
        if not role_at_least(actor.role, "manager"):
            user_id = actor.id
        return EntryFilter(
            tenant_id=actor.tenant_id,
            user_id=user_id,
            start_date=start_date,
            end_date=end_date,
            status=status,
            is_approved=is_approved,
        )

    def list_entries(self, criteria: EntryFilter) -> list[TimeEntry]:
        return self.repository.list_entries(criteria)

    def classify(self, actor: User, entries: list[TimeEntry]) -> dict[str, OvertimeBucket]:
        return OvertimeEngine.for_policy(load_settings(actor.tenant)).classify_entries(entries)

    def today(self, actor: User) -> date:
        return local_date(self.clock(), actor.tenant.timezone)

    def weekly_report(self, actor: User, week_offset: int = 0) -> WeeklyReport:
        if not -MAX_WEEKS_BACK <= week_offset <= 0:
            raise ValidationError(f"weekOffset must be between -{MAX_WEEKS_BACK} and 0")

        policy = load_settings(actor.tenant)
        week_start, week_end = week_bounds(self.today(actor), policy.work_hours.workweek_start)
        week_start += timedelta(weeks=week_offset)
        week_end += timedelta(weeks=week_offset)

        entries = [
            entry
            for entry in self.list_entries(self.scoped_filter(actor, start_date=week_start, end_date=week_end))
            if entry.status != "cancelled"
        ]
        entries.sort(key=lambda entry: (entry.clock_in, entry.id))
        buckets = self.classify(actor, entries)

        by_user: dict[str, UserWeek] = {}
        report = WeeklyReport(
            week=f"{week_start.isoformat()} - {week_end.isoformat()}",
            week_start=week_start,
            week_end=week_end,
        )
        for entry in entries:
            bucket = buckets.get(entry.id, OvertimeBucket())
            serialized = entry_out(entry)
            line = by_user.get(entry.user_id)
            if line is None:
                line = by_user[entry.user_id] = UserWeek(user=EntryUserOut.model_validate(entry.user))
            line.entries.append(serialized)
            line.total_hours += entry.total_hours or 0.0
            line.regular_hours += bucket.regular_hours
            line.overtime_hours += bucket.overtime_hours
            line.double_time_hours += bucket.doubletime_hours
            report.entries.append(serialized)

        for line in by_user.values():
            line.total_hours = round(line.total_hours, 2)
            line.regular_hours = round(line.regular_hours, 2)
            line.overtime_hours = round(line.overtime_hours, 2)
            line.double_time_hours = round(line.double_time_hours, 2)
            report.total_hours += line.total_hours
            report.regular_hours += line.regular_hours
            report.overtime_hours += line.overtime_hours
            report.double_time_hours += line.double_time_hours

        report.total_hours = round(report.total_hours, 2)
        report.regular_hours = round(report.regular_hours, 2)
        report.overtime_hours = round(report.overtime_hours, 2)
        report.double_time_hours = round(report.double_time_hours, 2)
        report.total_staff = len(by_user)
        report.entries_by_user = sorted(by_user.values(), key=lambda line: (line.user.name.lower(), line.user.id))
        return report

    def payroll_summary(self, actor: User, start: date, end: date) -> PayrollSummary:
        """Pay for completed, approved entries dated ``start..end`` inclusive.

        Entries earlier in the first work week are loaded too so that weekly
        overtime is counted against the whole week, then left out of the totals.
        """
        if not role_at_least(actor.role, "manager"):
            raise Forbidden("Insufficient permissions")
        if start > end:
            raise ValidationError("startDate must not be after endDate")

        tenant = actor.tenant
        policy = load_settings(tenant)
        context_start, _ = week_bounds(start, policy.work_hours.workweek_start)
        entries = self.list_entries(
            EntryFilter(
                tenant_id=actor.tenant_id,
                start_date=context_start,
                end_date=end,
                status="completed",
                is_approved=True,
            )
        )
        buckets = self.classify(actor, entries)

        lines: dict[str, PayrollLine] = {}
        for entry in entries:
            if entry.work_date < start:
                continue
            user = entry.user
            line = lines.get(user.id)
            if line is None:
                line = lines[user.id] = PayrollLine(
                    user_id=user.id,
                    name=user.name,
                    email=user.email,
                    department=user.department,
                    position=user.position,
                    hourly_rate=float(user.hourly_rate or 0.0),
                    overtime_multiplier=float(user.overtime_rate or policy.overtime.overtime_rate),
                    double_time_multiplier=float(policy.overtime.double_time_rate),
                )
            bucket = buckets.get(entry.id, OvertimeBucket())
            line.entry_count += 1
            line.total_hours += entry.total_hours or 0.0
            line.regular_hours += bucket.regular_hours
            line.overtime_hours += bucket.overtime_hours
            line.double_time_hours += bucket.doubletime_hours

        summary = PayrollSummary(start_date=start, end_date=end, currency=tenant.currency)
        for line in sorted(lines.values(), key=lambda item: (item.name.lower(), item.user_id)):
            line.total_hours = round(line.total_hours, 2)
            line.regular_hours = round(line.regular_hours, 2)
            line.overtime_hours = round(line.overtime_hours, 2)
            line.double_time_hours = round(line.double_time_hours, 2)
            line.regular_pay = round(line.regular_hours * line.hourly_rate, 2)
            line.overtime_pay = round(line.overtime_hours * line.hourly_rate * line.overtime_multiplier, 2)
            line.double_time_pay = round(line.double_time_hours * line.hourly_rate * line.double_time_multiplier, 2)
            line.total_pay = round(line.regular_pay + line.overtime_pay + line.double_time_pay, 2)
            summary.lines.append(line)
            summary.total_hours += line.total_hours
            summary.total_pay += line.total_pay

        summary.total_hours = round(summary.total_hours, 2)
        summary.total_pay = round(summary.total_pay, 2)
        logger.info(
            "payroll_summary_built",
            tenant_id=actor.tenant_id,
            start=start.isoformat(),
            end=end.isoformat(),
            employees=len(summary.lines),
        )
        return summary

    def dashboard_stats(self, actor: User) -> DashboardStats:
        if not role_at_least(actor.role, "manager"):
            raise Forbidden("Staff users cannot view organization stats")

        today = self.today(actor)
        week_start, _ = week_bounds(today, load_settings(actor.tenant).work_hours.workweek_start)
        week_entries = [
            entry
            for entry in self.list_entries(EntryFilter(tenant_id=actor.tenant_id, start_date=week_start, end_date=today))
            if entry.status != "cancelled"
        ]
        today_entries = [entry for entry in week_entries if entry.work_date == today]
        completed_week = [entry for entry in week_entries if entry.status == "completed"]
        buckets = self.classify(actor, completed_week)

        worked_days = defaultdict(float)
        for entry in completed_week:
            worked_days[entry.work_date] += entry.total_hours or 0.0
        week_total = _sum_hours(completed_week)

        active_employees = (
            self.session.query(User)
            .filter(User.tenant_id == actor.tenant_id, User.is_active.is_(True))
            .count()
        )
        return DashboardStats(
            today=TodayStats(
                clocked_in=sum(1 for entry in today_entries if entry.status == "active"),
                total_hours=_sum_hours([entry for entry in today_entries if entry.status == "completed"]),
                entries=len(today_entries),
            ),
            weekly=WeekStats(
                total_hours=week_total,
                overtime=_overtime(buckets.values()),
                average_daily=round(week_total / len(worked_days), 2) if worked_days else 0.0,
            ),
            general=GeneralStats(
                active_employees=active_employees,
                pending_approvals=self.repository.count_pending(actor.tenant_id),
            ),
        )

    def user_dashboard(self, user: User) -> UserDashboard:
        today = self.today(user)
        week_start, _ = week_bounds(today, load_settings(user.tenant).work_hours.workweek_start)
        completed = self.list_entries(
            EntryFilter(
                tenant_id=user.tenant_id,
                user_id=user.id,
                start_date=week_start,
                end_date=today,
                status="completed",
            )
        )
        buckets = self.classify(user, completed)
        today_entries = [entry for entry in completed if entry.work_date == today]

        current = self.repository.find_active_entry(user.id)
        current_payload = None
        if current is not None:
            current_payload = entry_out(current)
            current_payload["elapsedHours"] = hours_between(
                current.clock_in, self.clock(), current.total_break_minutes or 0.0
            )

        return UserDashboard(
            current_entry=current_payload,
            today=PersonalPeriod(
                hours=_sum_hours(today_entries),
                overtime=_overtime([buckets[entry.id] for entry in today_entries if entry.id in buckets]),
                entries=len(today_entries),
            ),
            weekly=PersonalPeriod(
                hours=_sum_hours(completed),
                overtime=_overtime(buckets.values()),
                entries=len(completed),
            ),
        )
