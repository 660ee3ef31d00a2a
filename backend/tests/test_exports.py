from __future__ import annotations

import csv
import io

from openpyxl import load_workbook

from staffclock.domains.exports.exporter import export_csv, export_pdf
from staffclock.models import AuditLog


def _worked_shift(client, headers, clock, hours=3.5):
    client.post("/time-entries/clock-in", headers=headers)
    clock.advance(hours=hours)
    client.post("/time-entries/clock-out", headers=headers)


def test_timesheet_csv_has_one_row_per_entry(client, manager_headers, staff_headers, clock):
    _worked_shift(client, staff_headers, clock)

    response = client.get("/exports/time-entries", params={"format": "csv"}, headers=manager_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"] == 'attachment; filename="timesheet_export_2024-03-06.csv"'
    rows = list(csv.DictReader(io.StringIO(response.content.decode("utf-8"))))
    assert len(rows) == 1
    row = rows[0]
    assert row["Employee Name"] == "Staff User"
    assert row["Date"] == "2024-03-06"
    assert row["Clock In"] == "2024-03-06 09:00"
    assert row["Clock Out"] == "2024-03-06 12:30"
    assert row["Total Hours"] == "3.50"
    assert row["Approved"] == "Yes"
    assert row["Approved By"] == "Auto"
    assert "Hourly Rate" not in row


def test_timesheet_details_add_pay_columns(client, manager_headers, staff_headers, clock):
    _worked_shift(client, staff_headers, clock, hours=10)

    response = client.get(
        "/exports/time-entries",
        params={"format": "csv", "includeDetails": "true"},
        headers=manager_headers,
    )

    row = next(csv.DictReader(io.StringIO(response.content.decode("utf-8"))))
    assert row["Regular Hours"] == "8.00"
    assert row["Overtime Hours"] == "2.00"
    assert row["Regular Pay"] == "144.00"
    assert row["Overtime Pay"] == "54.00"
    assert row["Total Pay"] == "198.00"


def test_cancelled_hours_do_not_turn_later_shifts_into_overtime(client, manager_headers, staff_headers, clock):
    entry_id = client.post("/time-entries/clock-in", headers=staff_headers).json()["entry"]["id"]
    clock.advance(hours=8)
    client.post("/time-entries/clock-out", headers=staff_headers)
    client.patch(f"/time-entries/{entry_id}/cancel", headers=manager_headers, json={"reason": "Duplicate"})
    _worked_shift(client, staff_headers, clock, hours=4)

    response = client.get(
        "/exports/time-entries",
        params={"format": "csv", "includeDetails": "true"},
        headers=manager_headers,
    )

    rows = {row["Status"]: row for row in csv.DictReader(io.StringIO(response.content.decode("utf-8")))}
    assert rows["completed"]["Regular Hours"] == "4.00"
    assert rows["completed"]["Overtime Hours"] == "0.00"
    assert rows["completed"]["Overtime Pay"] == "0.00"
    assert rows["cancelled"]["Regular Hours"] == "0.00"
    assert rows["cancelled"]["Total Pay"] == "0.00"


def test_repeated_csv_exports_are_identical(client, manager_headers, staff_headers, clock):
    _worked_shift(client, staff_headers, clock)

    first = client.get("/exports/time-entries", headers=manager_headers)
    second = client.get("/exports/time-entries", headers=manager_headers)

    assert first.content == second.content


def test_export_with_no_matching_entries_is_not_found(client, manager_headers):
    response = client.get("/exports/time-entries", headers=manager_headers)

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "No time entries found for the specified criteria"}


def test_staff_cannot_export(client, staff_headers, clock):
    _worked_shift(client, staff_headers, clock)

    assert client.get("/exports/time-entries", headers=staff_headers).status_code == 403
    assert (
        client.get(
            "/exports/payroll",
            params={"startDate": "2024-03-04", "endDate": "2024-03-10"},
            headers=staff_headers,
        ).status_code
        == 403
    )


def test_excel_timesheet_opens_with_expected_cells(client, manager_headers, staff_headers, clock):
    _worked_shift(client, staff_headers, clock)

    response = client.get("/exports/time-entries", params={"format": "excel"}, headers=manager_headers)

    assert response.headers["content-disposition"].endswith('.xlsx"')
    sheet = load_workbook(io.BytesIO(response.content)).active
    assert sheet.title == "Timesheet"
    assert sheet["A1"].value == "Employee Name"
    assert sheet["A2"].value == "Staff User"
    headers = [cell.value for cell in sheet[1]]
    assert sheet.cell(row=2, column=headers.index("Total Hours") + 1).value == 3.5


def test_payroll_excel_has_a_summary_sheet(client, manager_headers, staff_headers, clock):
    _worked_shift(client, staff_headers, clock, hours=10)

    response = client.get(
        "/exports/payroll",
        params={"format": "excel", "startDate": "2024-03-04", "endDate": "2024-03-10"},
        headers=manager_headers,
    )

    assert response.status_code == 200
    assert response.headers["content-disposition"] == 'attachment; filename="payroll_2024-03-04_2024-03-10.xlsx"'
    workbook = load_workbook(io.BytesIO(response.content))
    assert workbook.sheetnames == ["Payroll", "Summary"]
    summary = workbook["Summary"]
    assert [cell.value for cell in summary[1]] == ["Period", "Employees", "Total Hours", "Total Pay", "Currency"]
    assert [cell.value for cell in summary[2]][1:] == [1, 10.0, 198.0, "USD"]


def test_payroll_csv_lists_each_employee(client, manager_headers, staff_headers, clock):
    _worked_shift(client, staff_headers, clock, hours=10)

    response = client.get(
        "/exports/payroll",
        params={"startDate": "2024-03-04", "endDate": "2024-03-10"},
        headers=manager_headers,
    )

    rows = list(csv.DictReader(io.StringIO(response.content.decode("utf-8"))))
    assert [row["Employee Name"] for row in rows] == ["Staff User"]
    assert rows[0]["Total Pay"] == "198.00"


def test_payroll_requires_a_date_range(client, manager_headers):
    response = client.get("/exports/payroll", params={"endDate": "2024-03-10"}, headers=manager_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "Validation failed"


def test_payroll_without_approved_entries_is_not_found(client, manager_headers, staff_headers):
    client.post("/time-entries/clock-in", headers=staff_headers)

    response = client.get(
        "/exports/payroll",
        params={"startDate": "2024-03-04", "endDate": "2024-03-10"},
        headers=manager_headers,
    )

    assert response.status_code == 404
    assert response.json()["error"] == "No approved time entries found for the payroll period"


def test_pdf_export_is_a_repeatable_pdf(client, manager_headers, staff_headers, clock):
    _worked_shift(client, staff_headers, clock)

    first = client.get("/exports/time-entries", params={"format": "pdf"}, headers=manager_headers)
    second = client.get("/exports/time-entries", params={"format": "pdf"}, headers=manager_headers)

    assert first.headers["content-type"] == "application/pdf"
    assert first.content.startswith(b"%PDF")
    assert first.content == second.content


def test_exports_are_audited(client, manager_headers, staff_headers, clock, db):
    _worked_shift(client, staff_headers, clock)
    client.get("/exports/time-entries", headers=manager_headers)

    log = db.query(AuditLog).filter(AuditLog.action == "export_generated").one()
    assert log.user_id == "user-2"
    assert log.details["format"] == "csv"
    assert log.details["records"] == 1


def test_unknown_format_is_rejected(client, manager_headers):
    response = client.get("/exports/time-entries", params={"format": "xml"}, headers=manager_headers)

    assert response.status_code == 400


def test_serializers_handle_empty_rows_and_markup():
    assert export_csv([]) == b""
    pdf = export_pdf([{"Notes": "<b> & more"}], title="Timesheet")
    assert pdf.startswith(b"%PDF")
