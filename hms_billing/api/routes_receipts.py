from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from hms_billing.api.deps import get_ledger
from hms_billing.api.response import ok
from hms_billing.services.billing_ledger import BillingLedger
from hms_billing.services.billing_reports import receipt_stats
from hms_billing.services.billing_serialize import dump, serialize_receipt
from hms_billing.utils.timezone import day_bounds

router = APIRouter(prefix="/receipts", tags=["Billing Receipts"])


@router.get("")
def list_receipts(
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
    return ok([dump(serialize_receipt(r)) for r in rows],
              meta={"count": len(rows)})


# declared before /{receipt_number} so "stats" is not taken as a number
@router.get("/stats")
def stats(
        date_from: Optional[date] = Query(None),
        date_to: Optional[date] = Query(None),
        ledger: BillingLedger = Depends(get_ledger),
):
    start, end = day_bounds(date_from, date_to)
    rows = ledger.list_all_receipts(date_from=start, date_to=end)
    return ok(receipt_stats(rows))


@router.get("/bill/{bill_number}")
def receipts_for_bill(
        bill_number: str,
        ledger: BillingLedger = Depends(get_ledger),
):
    rows = ledger.list_receipts(bill_number)
    return ok([dump(serialize_receipt(r)) for r in rows])


@router.get("/{receipt_number}")
def get_receipt(
        receipt_number: str,
        ledger: BillingLedger = Depends(get_ledger),
):
    return ok(dump(serialize_receipt(ledger.get_receipt(receipt_number))))
