from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from staffclock.core.errors import Forbidden, ValidationError
from staffclock.domains.reporting.reports import ReportService
from staffclock.models import TimeEntry, User

MONDAY = date(2024, 3, 4)


def _completed(db, user_id: str, day: date, hours: float, *, approved: bool = True, status: str = "completed"):
    start = datetime(day.year, day.month, day.day, 13, tzinfo=timezone.utc)
    entry = TimeEntry(
        tenant_id="test-tenant",
        user_id=user_id,
        clock_in=start,
        clock_out=start + timedelta(hours=hours),
        work_date=day,
        total_hours=hours,
        status=status,
        is_approved=approved,
        approval_status="approved" if approved else "pending",
    )
    db.add(entry)
    db.commit()
    return entry


def test_payroll_counts_weekly_overtime_from_earlier_in_the_week(db, seeded, clock):
    for offset in range(5):
        _completed(db, "user-3", MONDAY + timedelta(days=offset), 9.0)
    saturday = MONDAY + timedelta(days=5)
    _completed(db, "user-3", saturday, 6.0)
    _completed(db, "user-2", saturday, 4.0)
    _completed(db, "user-2", saturday - timedelta(days=1), 3.0, approved=False)

    manager = db.get(User, "user-2")
    summary = ReportService(db, clock).payroll_summary(manager, saturday, saturday)

    assert [line.name for line in summary.lines] == ["Manager User", "Staff User"]
    manager_line, staff_line = summary.lines
    assert (manager_line.entry_count, manager_line.regular_hours, manager_line.total_pay) == (1, 4.0, 112.0)
    assert staff_line.entry_count == 1
    assert staff_line.regular_hours == 0.0
    assert staff_line.overtime_hours == 6.0
    assert staff_line.overtime_pay == 162.0
    assert summary.total_hours == 10.0
    assert summary.total_pay == 274.0
    assert summary.currency == "USD"


def test_payroll_pays_daily_overtime_at_the_overtime_rate(db, seeded, clock):
    _completed(db, "user-3", MONDAY, 10.0)

    summary = ReportService(db, clock).payroll_summary(db.get(User, "user-1"), MONDAY, MONDAY)

    line = summary.lines[0]
    assert (line.regular_hours, line.overtime_hours) == (8.0, 2.0)
    assert (line.regular_pay, line.overtime_pay, line.total_pay) == (144.0, 54.0, 198.0)


def test_payroll_uses_the_employees_own_overtime_multiplier(db, seeded, clock):
    staff = db.get(User, "user-3")
    staff.overtime_rate = 2.0
    db.commit()
    _completed(db, "user-3", MONDAY, 10.0)

    line = ReportService(db, clock).payroll_summary(db.get(User, "user-1"), MONDAY, MONDAY).lines[0]

    assert line.overtime_multiplier == 2.0
    assert line.overtime_pay == 72.0


def test_payroll_requires_a_manager_and_ordered_dates(db, seeded, clock):
    reports = ReportService(db, clock)

    with pytest.raises(Forbidden):
        reports.payroll_summary(db.get(User, "user-3"), MONDAY, MONDAY)
    with pytest.raises(ValidationError):
        reports.payroll_summary(db.get(User, "user-1"), MONDAY, MONDAY - timedelta(days=1))


def test_dashboard_stats_for_today_and_this_week(client, manager_headers, staff_headers, clock):
    client.post("/time-entries/clock-in", headers=staff_headers)
    clock.advance(hours=10)
    client.post("/time-entries/clock-out", headers=staff_headers)
    client.post("/time-entries/clock-in", headers=manager_headers)

    response = client.get("/dashboard/stats", headers=manager_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["today"] == {"clockedIn": 1, "totalHours": 10.0, "entries": 2}
    assert body["weekly"] == {"totalHours": 10.0, "overtime": 2.0, "averageDaily": 10.0}
    assert body["general"] == {"activeEmployees": 3, "pendingApprovals": 0}


def test_dashboard_stats_are_for_managers_only(client, staff_headers):
    response = client.get("/dashboard/stats", headers=staff_headers)

    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Insufficient permissions"}


def test_user_dashboard_includes_the_running_entry(client, staff_headers, clock):
    client.post("/time-entries/clock-in", headers=staff_headers)
    clock.advance(hours=10)
    client.post("/time-entries/clock-out", headers=staff_headers)
    client.post("/time-entries/clock-in", headers=staff_headers)
    clock.advance(hours=1, minutes=30)

    body = client.get("/dashboard/user", headers=staff_headers).json()

    assert body["currentEntry"]["status"] == "active"
    assert body["currentEntry"]["elapsedHours"] == 1.5
    assert body["today"] == {"hours": 10.0, "overtime": 2.0, "entries": 1}
    assert body["weekly"] == {"hours": 10.0, "overtime": 2.0, "entries": 1}


def test_user_dashboard_without_entries(client, staff_headers):
    body = client.get("/dashboard/user", headers=staff_headers).json()

    assert body["currentEntry"] is None
    assert body["weekly"]["entries"] == 0


def test_weekly_report_splits_regular_and_overtime(client, db, seeded, staff_headers):
    for offset in range(5):
        _completed(db, "user-3", MONDAY + timedelta(days=offset), 9.0)
    _completed(db, "user-3", MONDAY + timedelta(days=5), 6.0)
    _completed(db, "user-3", MONDAY + timedelta(days=6), 5.0, status="cancelled", approved=False)
    _completed(db, "user-2", MONDAY, 4.0)

    body = client.get("/time-entries/weekly-report", headers=staff_headers).json()

    assert body["week"] == "2024-03-04 - 2024-03-10"
    assert body["weekStart"] == "2024-03-04"
    assert body["totalStaff"] == 1
    assert body["totalHours"] == 51.0
    assert body["regularHours"] == 40.0
    assert body["overtimeHours"] == 11.0
    assert len(body["entries"]) == 6
    assert body["entriesByUser"][0]["user"]["name"] == "Staff User"


def test_weekly_report_for_managers_covers_everyone(client, db, seeded, manager_headers):
    _completed(db, "user-3", MONDAY, 4.0)
    _completed(db, "user-2", MONDAY, 4.0)

    body = client.get("/time-entries/weekly-report", headers=manager_headers).json()

    assert body["totalStaff"] == 2
    assert [line["user"]["name"] for line in body["entriesByUser"]] == ["Manager User", "Staff User"]


def test_weekly_report_offset_looks_back(client, db, seeded, staff_headers):
    _completed(db, "user-3", date(2024, 2, 28), 7.0)

    previous = client.get("/time-entries/weekly-report", params={"weekOffset": -1}, headers=staff_headers).json()
    current = client.get("/time-entries/weekly-report", headers=staff_headers).json()

    assert previous["weekStart"] == "2024-02-26"
    assert previous["totalHours"] == 7.0
    assert current["totalHours"] == 0.0


def test_weekly_report_rejects_future_offsets(client, staff_headers):
    response = client.get("/time-entries/weekly-report", params={"weekOffset": 1}, headers=staff_headers)

    assert response.status_code == 400
