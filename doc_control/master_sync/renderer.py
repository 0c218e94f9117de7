"""Rendering of the batch response workbook."""
from __future__ import annotations

import io
from collections.abc import Iterable

from openpyxl import Workbook
from openpyxl.styles import Font

from .reconcile import Mismatch
from .records import RESPONSE_COLUMNS, DocumentRecord

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
ATTACHMENT_FILENAME = "Belge_Bilgileri.xlsx"

RECORDS_SHEET = "Belge Bilgileri"
MISMATCH_SHEET = "Uyuşmazlıklar"
MISMATCH_HEADERS = ["Doküman Kodu", "Uyuşmazlık"]


def build_workbook(
    records: Iterable[DocumentRecord],
    mismatches: Iterable[Mismatch] = (),
) -> Workbook:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = RECORDS_SHEET
    sheet.append(list(RESPONSE_COLUMNS.values()))
    for record in records:
        sheet.append(record.response_row())
    style_header(sheet)

    mismatch_rows = [[mismatch.code, mismatch.message] for mismatch in mismatches]
    if mismatch_rows:
        report = workbook.create_sheet(MISMATCH_SHEET)
        report.append(MISMATCH_HEADERS)
        for row in mismatch_rows:
            report.append(row)
        style_header(report)
    return workbook


def style_header(sheet) -> None:
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for column_cells in sheet.columns:
        width = max(len(str(cell.value or "")) for cell in column_cells)
        sheet.column_dimensions[column_cells[0].column_letter].width = min(width + 2, 60)


def render(
    records: Iterable[DocumentRecord],
    mismatches: Iterable[Mismatch] = (),
) -> bytes:
    buffer = io.BytesIO()
    build_workbook(records, mismatches).save(buffer)
    return buffer.getvalue()

