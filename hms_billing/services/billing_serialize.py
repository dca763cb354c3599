# FILE: hms_billing/services/billing_serialize.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from hms_billing.models.billing import Bill, Receipt
from hms_billing.schemas.billing import (
    BillOut,
    BillingItemOut,
    DiscountOut,
    PaymentMethodOut,
    PaymentOut,
    ReceiptOut,
    TotalsOut,
    UserRefOut,
)
from hms_billing.services.billing_calc import bill_totals
from hms_billing.services.billing_math import D, money2
from hms_billing.services.billing_status import resolve_status


def serialize_receipt(r: Receipt) -> ReceiptOut:
    method = None
    if r.payment_type:
        method = PaymentMethodOut(
            type=r.payment_type,
            card_number=r.card_number,
            utr_number=r.utr_number,
        )
    return ReceiptOut(
        id=r.id,
        receipt_number=r.receipt_number,
        bill_id=r.bill_id,
        bill_number=r.bill_number,
        type=r.type,
        amount=money2(r.amount),
        date=r.date,
        created_by=UserRefOut(id=r.created_by_id, name=r.created_by),
        remarks=r.remarks,
        payment_method=method,
        changes=r.changes,
    )


def serialize_bill(bill: Bill,
                   warnings: Optional[List[str]] = None) -> BillOut:
    # derived fresh, the stored snapshot is for queries only
    t = bill_totals(bill)
    status = resolve_status(t.grand_total, bill.paid_amount,
                            bool(bill.is_cancelled))
    return BillOut(
        id=bill.id,
        bill_number=bill.bill_number,
        patient_id=bill.patient_id,
        patient_name=bill.patient_name,
        patient_mobile=bill.patient_mobile,
        doctor_id=bill.doctor_id,
        doctor_name=bill.doctor_name,
        billing_items=[
            BillingItemOut(
                name=it.name,
                code=it.code,
                category=it.category,
                price=money2(it.price),
                quantity=D(it.quantity),
                tax=money2(it.tax),
                total=money2(it.total),
            ) for it in bill.items
        ],
        discount=DiscountOut(type=bill.discount_type,
                             value=D(bill.discount_value)),
        payment=PaymentOut(
            type=bill.payment_type,
            paid=money2(bill.paid_amount),
            card_number=bill.card_number,
            utr_number=bill.utr_number,
        ),
        totals=TotalsOut(
            subtotal=money2(t.subtotal),
            total_tax=money2(t.total_tax),
            discount_amount=money2(t.discount_amount),
            grand_total=money2(t.grand_total),
            due_amount=money2(t.due_amount),
            balance=money2(t.balance),
        ),
        status=status.value,
        cancel_reason=bill.cancel_reason,
        cancelled_at=bill.cancelled_at,
        remarks=bill.remarks,
        receipt_history=[serialize_receipt(r) for r in bill.receipts],
        created_by=UserRefOut(id=bill.created_by_id, name=bill.created_by),
        created_at=bill.created_at,
        updated_at=bill.updated_at,
        integrity_warnings=list(warnings or []),
    )


def dump(model) -> Dict[str, Any]:
    return model.model_dump(by_alias=True)
