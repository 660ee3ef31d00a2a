"""Serializers for timesheet and payroll exports.

Every function here is a pure function of the rows it is given. CSV and PDF output
is byte-for-byte repeatable for the same rows; workbooks are repeatable cell by cell.
"""

from __future__ import annotations

import csv
import io
from datetime import date, datetime
from typing import Any, Dict, Iterable, List

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import landscape, letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

ReportRow = Dict[str, Any]

CSV_MEDIA_TYPE = "text/csv"
EXCEL_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_MEDIA_TYPE = "application/pdf"

FORMATS = {
    "csv": ("csv", CSV_MEDIA_TYPE),
    "excel": ("xlsx", EXCEL_MEDIA_TYPE),
    "pdf": ("pdf", PDF_MEDIA_TYPE),
}

# Fixed so regenerated workbooks and PDFs do not pick up the wall clock.
_DOCUMENT_TIMESTAMP = datetime(2000, 1, 1)


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float):
        return f"{value:.2f}"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _headers(rows: List[ReportRow]) -> List[str]:
    return list(rows[0].keys()) if rows else []


def export_csv(rows: Iterable[ReportRow]) -> bytes:
    rows = list(rows)
    handle = io.StringIO(newline="")
    if rows:
        writer = csv.DictWriter(handle, fieldnames=_headers(rows))
        writer.writeheader()
        for row in rows:
            writer.writerow({key: _stringify(value) for key, value in row.items()})
    return handle.getvalue().encode("utf-8")


def _fill_sheet(sheet, rows: List[ReportRow]) -> None:
    headers = _headers(rows)
    sheet.append(headers)
    header_font = Font(bold=True)
    header_fill = PatternFill(start_color="FFE0E0E0", end_color="FFE0E0E0", fill_type="solid")
    for cell in sheet[1]:
        cell.font = header_font
        cell.fill = header_fill
    for row in rows:
        sheet.append([row.get(header) for header in headers])
    for index, header in enumerate(headers, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = max(12, len(header) + 2)


def export_excel(rows: Iterable[ReportRow], *, title: str, summary: Iterable[ReportRow] | None = None) -> bytes:
    """Workbook with the rows on the first sheet and an optional ``Summary`` sheet."""
    rows = list(rows)
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = title[:31]
    _fill_sheet(sheet, rows)

    summary_rows = list(summary or [])
    if summary_rows:
        _fill_sheet(workbook.create_sheet("Summary"), summary_rows)

    workbook.properties.created = _DOCUMENT_TIMESTAMP
    workbook.properties.modified = _DOCUMENT_TIMESTAMP
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def export_pdf(rows: Iterable[ReportRow], *, title: str, subtitle: str | None = None) -> bytes:
    rows = list(rows)
    styles = getSampleStyleSheet()
    cell_style = styles["BodyText"].clone("ExportCell", fontSize=7, leading=9)

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(letter),
        leftMargin=0.4 * inch,
        rightMargin=0.4 * inch,
        topMargin=0.5 * inch,
        bottomMargin=0.5 * inch,
        title=title,
        invariant=True,
    )

    story: List[Any] = [Paragraph(title, styles["Title"])]
    if subtitle:
        story.append(Paragraph(subtitle, styles["Normal"]))
    story.append(Spacer(1, 12))

    headers = _headers(rows)
    table_rows = [[Paragraph(f"<b>{header}</b>", cell_style) for header in headers]]
    for row in rows:
        table_rows.append([Paragraph(_escape(_stringify(row.get(header))), cell_style) for header in headers])

    table = Table(table_rows, repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.whitesmoke),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LEFTPADDING", (0, 0), (-1, -1), 3),
                ("RIGHTPADDING", (0, 0), (-1, -1), 3),
                ("TOPPADDING", (0, 0), (-1, -1), 2),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
            ]
        )
    )
    story.append(table)
    doc.build(story)
    return buffer.getvalue()


def _escape(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
