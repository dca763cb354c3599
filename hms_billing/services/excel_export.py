from __future__ import annotations

from decimal import Decimal
from io import BytesIO
from typing import Any, Dict, Iterable, List

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

XLSX_MEDIA_TYPE = ("application/vnd.openxmlformats-officedocument."
                   "spreadsheetml.sheet")

DUES_COLUMNS = [
    ("S.No", "sNo"),
    ("Date", "date"),
    ("Bill No", "billNumber"),
    ("Patient ID", "patientId"),
    ("Patient Name", "patientName"),
    ("Mobile", "mobileNumber"),
    ("Status", "status"),
    ("Bill Amount", "billAmount"),
    ("Paid Amount", "paidAmount"),
    ("Due", "due"),
    ("Excess", "excess"),
    ("Remarks", "remarks"),
    ("Billed By", "billedBy"),
]

RECEIPT_COLUMNS = [
    ("Receipt No", "receiptNumber"),
    ("Bill No", "billNumber"),
    ("Type", "type"),
    ("Amount", "amount"),
    ("Date", "date"),
    ("Payment Type", "paymentType"),
    ("Created By", "createdBy"),
    ("Remarks", "remarks"),
]


def _cell(v: Any) -> Any:
    if isinstance(v, Decimal):
        return float(v)
    return v


def _autosize(ws, n_cols: int) -> None:
    for i in range(1, n_cols + 1):
        col = get_column_letter(i)
        max_len = 10
        for cell in ws[col]:
            if cell.value is not None:
                max_len = max(max_len, len(str(cell.value)))
        ws.column_dimensions[col].width = min(max_len + 2, 55)


def _sheet(title: str, columns, rows: Iterable[Dict[str, Any]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = title

    ws.append([h for h, _ in columns])
    for c in ws[1]:
        c.font = Font(bold=True)

    for r in rows:
        ws.append([_cell(r.get(k)) for _, k in columns])

    _autosize(ws, len(columns))

    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()


def build_dues_excel(report: Dict[str, Any]) -> bytes:
    rows: List[Dict[str, Any]] = list(report.get("bills") or [])
    totals = report.get("totals") or {}
    rows.append({
        "patientName": "TOTAL",
        "billAmount": totals.get("totalBillAmount"),
        "paidAmount": totals.get("totalPaidAmount"),
        "due": totals.get("totalDue"),
        "excess": totals.get("totalExcess"),
    })
    return _sheet("Dues", DUES_COLUMNS, rows)


def build_receipts_excel(receipts: Iterable) -> bytes:
    rows = []
    for r in receipts:
        rows.append({
            "receiptNumber": r.receipt_number,
            "billNumber": r.bill_number,
            "type": r.type,
            "amount": r.amount,
            "date": r.date,
            "paymentType": r.payment_type or "",
            "createdBy": r.created_by or "",
            "remarks": r.remarks or "",
        })
    return _sheet("Receipts", RECEIPT_COLUMNS, rows)
