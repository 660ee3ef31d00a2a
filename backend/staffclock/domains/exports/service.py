from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from sqlalchemy.orm import Session

from staffclock.core.clock import Clock, to_local, utcnow
from staffclock.core.errors import NotFound, ValidationError
from staffclock.core.logging import get_logger
from staffclock.domains.audit.service import AuditLogger
from staffclock.domains.exports.exporter import FORMATS, ReportRow, export_csv, export_excel, export_pdf
from staffclock.domains.reporting.overtime import OvertimeBucket
from staffclock.domains.reporting.reports import PayrollSummary, ReportService
from staffclock.domains.tenants.settings import TenantSettings, load_settings
from staffclock.domains.time_entries.repository import EntryFilter
from staffclock.models.time_entry import TimeEntry
from staffclock.models.user import User

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExportFile:
    filename: str
    media_type: str
    content: bytes


def _local_stamp(value, zone: str) -> str:
    local = to_local(value, zone)
    return local.strftime("%Y-%m-%d %H:%M") if local else ""


def timesheet_rows(
    entries: list[TimeEntry],
    buckets: dict[str, OvertimeBucket],
    policy: TenantSettings,
    *,
    timezone: str,
    include_details: bool = False,
) -> list[ReportRow]:
    rows: list[ReportRow] = []
    for entry in entries:
        user = entry.user
        bucket = buckets.get(entry.id, OvertimeBucket())
        if entry.approver is not None:
            approved_by = entry.approver.name
        elif entry.approval_status == "auto_approved":
            approved_by = "Auto"
        else:
            approved_by = ""
        row: ReportRow = {
            "Employee Name": user.name,
            "Email": user.email,
            "Department": user.department,
            "Position": user.position,
            "Date": entry.work_date.isoformat(),
            "Clock In": _local_stamp(entry.clock_in, timezone),
            "Clock Out": _local_stamp(entry.clock_out, timezone),
            "Total Hours": float(entry.total_hours or 0.0),
            "Regular Hours": bucket.regular_hours,
            "Overtime Hours": bucket.overtime_hours,
            "Double Time Hours": bucket.doubletime_hours,
            "Break Time (mins)": round(float(entry.total_break_minutes or 0.0), 2),
            "Status": entry.status,
            "Approved": bool(entry.is_approved),
            "Approved By": approved_by,
            "Notes": entry.notes,
        }
        if include_details:
            rate = float(user.hourly_rate or 0.0)
            overtime_rate = float(user.overtime_rate or policy.overtime.overtime_rate)
            regular_pay = round(bucket.regular_hours * rate, 2)
            overtime_pay = round(
                bucket.overtime_hours * rate * overtime_rate
                + bucket.doubletime_hours * rate * policy.overtime.double_time_rate,
                2,
            )
            location = entry.location or {}
            row.update(
                {
                    "Hourly Rate": rate,
                    "Overtime Rate": overtime_rate,
                    "Regular Pay": regular_pay,
                    "Overtime Pay": overtime_pay,
                    "Total Pay": round(regular_pay + overtime_pay, 2),
                    "Location": location.get("address"),
                    "Latitude": location.get("latitude"),
                    "Longitude": location.get("longitude"),
                }
            )
        rows.append(row)
    return rows


def payroll_rows(summary: PayrollSummary) -> list[ReportRow]:
    return [
        {
            "Employee Name": line.name,
            "Email": line.email,
            "Department": line.department,
            "Position": line.position,
            "Entries": line.entry_count,
            "Total Hours": line.total_hours,
            "Regular Hours": line.regular_hours,
            "Overtime Hours": line.overtime_hours,
            "Double Time Hours": line.double_time_hours,
            "Hourly Rate": line.hourly_rate,
            "Regular Pay": line.regular_pay,
            "Overtime Pay": line.overtime_pay,
            "Double Time Pay": line.double_time_pay,
            "Total Pay": line.total_pay,
        }
        for line in summary.lines
    ]


def render(rows: list[ReportRow], fmt: str, *, title: str, subtitle: str | None = None, summary=None) -> bytes:
    if fmt == "csv":
        return export_csv(rows)
    if fmt == "excel":
        return export_excel(rows, title=title, summary=summary)
    if fmt == "pdf":
        return export_pdf(rows, title=title, subtitle=subtitle)
    raise ValidationError(f"Unsupported export format: {fmt}")


class ExportService:
    def __init__(self, session: Session, clock: Clock = utcnow):
        self.session = session
        self.clock = clock
        self.reports = ReportService(session, clock)
        self.audit = AuditLogger(session)

    def export_time_entries(self, actor: User, fmt: str, criteria: EntryFilter, *, include_details: bool = False) -> ExportFile:
        extension, media_type = self._resolve(fmt)
        entries = self.reports.list_entries(criteria)
        if not entries:
            raise NotFound("No time entries found for the specified criteria")

        tenant = actor.tenant
        policy = load_settings(tenant)
        rows = timesheet_rows(
            entries,
            self.reports.classify(actor, entries),
            policy,
            timezone=tenant.timezone,
            include_details=include_details,
        )
        period = self._period_label(criteria.start_date, criteria.end_date)
        content = render(rows, fmt, title="Timesheet", subtitle=f"{tenant.name} {period}".strip())
        export = ExportFile(
            filename=f"timesheet_export_{self.reports.today(actor).isoformat()}.{extension}",
            media_type=media_type,
            content=content,
        )
        self._record(actor, "timesheet", fmt, len(rows), export.filename)
        return export

    def export_payroll(self, actor: User, fmt: str, start: date, end: date) -> ExportFile:
        extension, media_type = self._resolve(fmt)
        summary = self.reports.payroll_summary(actor, start, end)
        if not summary.lines:
            raise NotFound("No approved time entries found for the payroll period")

        rows = payroll_rows(summary)
        totals = [
            {
                "Period": f"{start.isoformat()} - {end.isoformat()}",
                "Employees": len(summary.lines),
                "Total Hours": summary.total_hours,
                "Total Pay": summary.total_pay,
                "Currency": summary.currency,
            }
        ]
        content = render(
            rows,
            fmt,
            title="Payroll",
            subtitle=f"{actor.tenant.name} {self._period_label(start, end)}",
            summary=totals,
        )
        export = ExportFile(
            filename=f"payroll_{start.isoformat()}_{end.isoformat()}.{extension}",
            media_type=media_type,
            content=content,
        )
        self._record(actor, "payroll", fmt, len(rows), export.filename)
        return export

    @staticmethod
    def _resolve(fmt: str) -> tuple[str, str]:
        if fmt not in FORMATS:
            raise ValidationError(f"Unsupported export format: {fmt}")
        return FORMATS[fmt]

    @staticmethod
    def _period_label(start: date | None, end: date | None) -> str:
        if start and end:
            return f"{start.isoformat()} to {end.isoformat()}"
        if start:
            return f"from {start.isoformat()}"
        if end:
            return f"through {end.isoformat()}"
        return ""

    def _record(self, actor: User, kind: str, fmt: str, count: int, filename: str) -> None:
        self.audit.log(
            tenant_id=actor.tenant_id,
            user_id=actor.id,
            action="export_generated",
            resource=kind,
            details={"format": fmt, "records": count, "filename": filename},
        )
        self.session.commit()
        logger.info("export_generated", kind=kind, format=fmt, records=count, filename=filename)
