from __future__ import annotations

from datetime import date
from io import BytesIO
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from hms_billing.api.deps import get_ledger
from hms_billing.api.response import ok
from hms_billing.models.billing import ReceiptType
from hms_billing.services.billing_ledger import BillingLedger
from hms_billing.services.billing_reports import (
    collection_report,
    discount_report,
    doctor_consultation_report,
    dues_report,
    refund_report,
    report_period,
    status_counts,
    user_collection_report,
)
from hms_billing.services.excel_export import (
    XLSX_MEDIA_TYPE,
    build_dues_excel,
    build_receipts_excel,
)
from hms_billing.utils.timezone import day_bounds, now_ist

router = APIRouter(prefix="/reports", tags=["Billing Reports"])


def _xlsx(content: bytes, name: str) -> StreamingResponse:
    ts = now_ist().strftime("%Y%m%d_%H%M%S")
    return StreamingResponse(
        BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{name}_{ts}.xlsx"'
        },
    )


def _dues(ledger: BillingLedger, date_from, date_to, only, status):
    start, end = day_bounds(date_from, date_to)
    bills = ledger.list_bills(date_from=start, date_to=end)
    meta = {
        "period": report_period(start, end),
        "statusCounts": status_counts(bills),
    }
    return dues_report(bills, only=only, status=status), meta


@router.get("/dues")
def dues(
        date_from: Optional[date] = Query(None),
        date_to: Optional[date] = Query(None),
        only: Optional[str] = Query(None, pattern="^(due|excess)$"),
        status: Optional[str] = Query(None),
        ledger: BillingLedger = Depends(get_ledger),
):
    report, meta = _dues(ledger, date_from, date_to, only, status)
    return ok(report, meta=meta)


@router.get("/dues/export")
def dues_export(
        date_from: Optional[date] = Query(None),
        date_to: Optional[date] = Query(None),
        only: Optional[str] = Query(None, pattern="^(due|excess)$"),
        status: Optional[str] = Query(None),
        ledger: BillingLedger = Depends(get_ledger),
):
    report, _ = _dues(ledger, date_from, date_to, only, status)
    return _xlsx(build_dues_excel(report), "dues_report")


@router.get("/doctor-consultation")
def doctor_consultation(
        date_from: Optional[date] = Query(None),
        date_to: Optional[date] = Query(None),
        doctor_id: Optional[str] = Query(None),
        ledger: BillingLedger = Depends(get_ledger),
):
    start, end = day_bounds(date_from, date_to)
    bills = ledger.list_bills(date_from=start, date_to=end,
                              doctor_id=doctor_id)
    return ok(doctor_consultation_report(bills),
              meta={"period": report_period(start, end)})


@router.get("/discounts")
def discounts(
        date_from: Optional[date] = Query(None),
        date_to: Optional[date] = Query(None),
        ledger: BillingLedger = Depends(get_ledger),
):
    start, end = day_bounds(date_from, date_to)
    bills = ledger.list_bills(date_from=start, date_to=end)
    return ok(discount_report(bills),
              meta={"period": report_period(start, end)})


@router.get("/refunds")
def refunds(
        date_from: Optional[date] = Query(None),
        date_to: Optional[date] = Query(None),
        ledger: BillingLedger = Depends(get_ledger),
):
    start, end = day_bounds(date_from, date_to)
    rows = ledger.list_all_receipts(
        receipt_type=ReceiptType.CANCELLATION.value,
        date_from=start,
        date_to=end)
    return ok(refund_report(rows), meta={"period": report_period(start, end)})


@router.get("/collection")
def collection(
        date_from: Optional[date] = Query(None),
        date_to: Optional[date] = Query(None),
        payment_type: Optional[str] = Query(None, pattern="^(cash|card|upi|neft)$"),
        receipt_type: Optional[str] = Query(None, pattern="^(creation|payment)$"),
        ledger: BillingLedger = Depends(get_ledger),
):
    start, end = day_bounds(date_from, date_to)
    rows = ledger.list_all_receipts(date_from=start, date_to=end)
    report = collection_report(rows,
                               payment_type=payment_type,
                               receipt_type=receipt_type)
    return ok(report, meta={"period": report_period(start, end)})


@router.get("/user-collection")
def user_collection(
        date_from: Optional[date] = Query(None),
        date_to: Optional[date] = Query(None),
        user: Optional[str] = Query(None),
        ledger: BillingLedger = Depends(get_ledger),
):
    start, end = day_bounds(date_from, date_to)
    bills = ledger.list_bills(date_from=start, date_to=end)
    return ok(user_collection_report(bills, user=user),
              meta={"period": report_period(start, end)})


@router.get("/receipts/export")
def receipts_export(
        type: Optional[str] = Query(None),
        date_from: Optional[date] = Query(None),
        date_to: Optional[date] = Query(None),
        search: Optional[str] = Query(None),
        ledger: BillingLedger = Depends(get_ledger),
):
    start, end = day_bounds(date_from, date_to)
    rows = ledger.list_all_receipts(receipt_type=type,
                                    date_from=start,
                                    date_to=end,
                                    search=search)
    return _xlsx(build_receipts_excel(rows), "receipts")
