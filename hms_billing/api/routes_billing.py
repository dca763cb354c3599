from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from hms_billing.api.deps import current_user, get_ledger
from hms_billing.api.response import ok
from hms_billing.schemas.billing import (
    AddPaymentIn,
    BillCreate,
    BillUpdate,
    CancelBillIn,
)
from hms_billing.services.billing_ledger import BillingLedger
from hms_billing.services.billing_serialize import dump, serialize_bill
from hms_billing.utils.jwt import CurrentUser
from hms_billing.utils.timezone import day_bounds

router = APIRouter(prefix="/bills", tags=["Billing"])


def _bill_payload(ledger: BillingLedger, bill) -> dict:
    return dump(serialize_bill(bill, ledger.verify_bill(bill)))


@router.post("")
def create_bill(
        payload: BillCreate,
        ledger: BillingLedger = Depends(get_ledger),
        user: CurrentUser = Depends(current_user),
):
    bill = ledger.create_bill(payload, user=user)
    return ok(dump(serialize_bill(bill)), status_code=201)


@router.get("")
def list_bills(
        date_from: Optional[date] = Query(None),
        date_to: Optional[date] = Query(None),
        doctor_id: Optional[str] = Query(None),
        status: Optional[str] = Query(None),
        ledger: BillingLedger = Depends(get_ledger),
):
    start, end = day_bounds(date_from, date_to)
    bills = ledger.list_bills(date_from=start,
                              date_to=end,
                              doctor_id=doctor_id,
                              status=status)
    return ok([dump(serialize_bill(b)) for b in bills],
              meta={"count": len(bills)})


@router.get("/number/{bill_number}")
def get_bill_by_number(
        bill_number: str,
        ledger: BillingLedger = Depends(get_ledger),
):
    bill = ledger.get_bill_by_number(bill_number)
    return ok(_bill_payload(ledger, bill))


@router.get("/{bill_id}")
def get_bill(
        bill_id: int,
        ledger: BillingLedger = Depends(get_ledger),
):
    bill = ledger.get_bill(bill_id)
    return ok(_bill_payload(ledger, bill))


@router.put("/{bill_id}")
def update_bill_items(
        bill_id: int,
        payload: BillUpdate,
        ledger: BillingLedger = Depends(get_ledger),
        user: CurrentUser = Depends(current_user),
):
    bill = ledger.update_items(bill_id, payload, user=user)
    return ok(dump(serialize_bill(bill)))


@router.post("/{bill_id}/payments")
def add_payment(
        bill_id: int,
        payload: AddPaymentIn,
        ledger: BillingLedger = Depends(get_ledger),
        user: CurrentUser = Depends(current_user),
):
    bill = ledger.add_payment(bill_id, payload, user=user)
    return ok(dump(serialize_bill(bill)))


@router.post("/{bill_id}/cancel")
def cancel_bill(
        bill_id: int,
        payload: CancelBillIn,
        ledger: BillingLedger = Depends(get_ledger),
        user: CurrentUser = Depends(current_user),
):
    bill = ledger.cancel_bill(bill_id, payload.reason, user=user)
    return ok(dump(serialize_bill(bill)))


@router.get("/{bill_id}/verify")
def verify_bill(
        bill_id: int,
        ledger: BillingLedger = Depends(get_ledger),
):
    bill = ledger.get_bill(bill_id)
    problems = ledger.verify_bill(bill)
    return ok({
        "billNumber": bill.bill_number,
        "consistent": not problems,
        "problems": problems,
    })
