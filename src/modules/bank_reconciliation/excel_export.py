"""Export the reconciliation report to Excel (XLSX)."""

from decimal import Decimal
from io import BytesIO
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Font

from src.modules.bank_reconciliation.models import TransactionStatus

TRANSACTION_HEADERS = [
    "ID",
    "Date",
    "Description",
    "Amount",
    "Reference",
    "Status",
    "Booking ID",
    "Score",
    "Method",
    "Batch",
]


def _cell_value(v: Any) -> Any:
    """Convert value for Excel (Decimal -> float, date stays)."""
    if v is None:
        return None
    if isinstance(v, Decimal):
        return float(v)
    return v


def _write_table(ws: Any, rows: list[list[Any]], start_row: int = 1) -> None:
    """Write list of rows to sheet starting at start_row."""
    for i, row in enumerate(rows, start=start_row):
        for j, val in enumerate(row, start=1):
            ws.cell(row=i, column=j, value=_cell_value(val))


def _bold_row(ws: Any, row: int, columns: int) -> None:
    for c in range(1, columns + 1):
        ws.cell(row, c).font = Font(bold=True)


def _transaction_row(t: Any) -> list[Any]:
    return [
        t.id,
        t.transaction_date,
        t.description,
        t.amount,
        t.reference,
        t.status,
        t.matched_booking_id,
        t.match_score,
        t.match_method,
        t.import_batch_id,
    ]


def _write_transactions(ws: Any, title: str, transactions: list[Any]) -> None:
    ws.cell(1, 1, title)
    ws.cell(1, 1).font = Font(bold=True, size=12)
    _write_table(ws, [TRANSACTION_HEADERS], 3)
    _bold_row(ws, 3, len(TRANSACTION_HEADERS))
    _write_table(ws, [_transaction_row(t) for t in transactions], 4)


def export_reconciliation_report(data: dict) -> bytes:
    """
    Build a workbook with Summary, Unmatched and Matched sheets.

    ``data`` is the dict returned by ReconciliationReportService.reconciliation_report.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Summary"
    period = data.get("period", {})
    date_from = period.get("date_from") or "start"
    date_to = period.get("date_to") or "today"
    ws.cell(1, 1, f"Bank Reconciliation: {date_from} to {date_to}")
    ws.cell(1, 1).font = Font(bold=True, size=12)

    headers = ["Status", "Transactions", "Amount"]
    _write_table(ws, [headers], 3)
    _bold_row(ws, 3, len(headers))
    summary = data["summary"]
    row = 4
    for status in TransactionStatus:
        totals = summary.by_status[status.value]
        _write_table(ws, [[status.value, totals.count, totals.total_amount]], row)
        row += 1
    _write_table(ws, [["TOTAL", summary.total.count, summary.total.total_amount]], row)
    _bold_row(ws, row, len(headers))

    _write_transactions(wb.create_sheet("Unmatched"), "Unmatched transactions", data.get("unmatched", []))
    _write_transactions(wb.create_sheet("Matched"), "Matched transactions", data.get("matched", []))

    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()
