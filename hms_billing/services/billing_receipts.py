# FILE: hms_billing/services/billing_receipts.py
from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from hms_billing.core.config import settings
from hms_billing.models.billing import Bill, Receipt, ReceiptType
from hms_billing.services.billing_calc import Totals, bill_totals
from hms_billing.services.billing_math import D, ZERO, money2
from hms_billing.services.billing_repository import BillRepository
from hms_billing.services.billing_status import resolve_status
from hms_billing.utils.jwt import CurrentUser
from hms_billing.utils.timezone import now_ist

logger = logging.getLogger(__name__)

_SERIAL_RE = re.compile(r"(\d+)$")


def receipt_serial(number: str) -> int:
    """Trailing counter of a receipt number: "RCPT-000042" -> 42."""
    m = _SERIAL_RE.search(number or "")
    if not m:
        raise ValueError(f"receipt number without a serial: {number!r}")
    return int(m.group(1))


def numbers_increasing(numbers: Iterable[str]) -> bool:
    """True when the serials strictly increase (no repeats, no going back)."""
    prev = None
    for n in numbers:
        try:
            serial = receipt_serial(n)
        except ValueError:
            return False
        if prev is not None and serial <= prev:
            return False
        prev = serial
    return True


def totals_snapshot(t: Totals) -> Dict[str, str]:
    return {
        "subtotal": str(money2(t.subtotal)),
        "totalTax": str(money2(t.total_tax)),
        "discountAmount": str(money2(t.discount_amount)),
        "grandTotal": str(money2(t.grand_total)),
        "dueAmount": str(money2(t.due_amount)),
    }


class ReceiptTrail:
    """
    Appends exactly one immutable receipt per accepted mutation.

    Every change to bill.paid_amount is paired with a receipt here, so that
    paid == creation receipt amount + sum(payment receipt amounts).
    """

    def __init__(self, repo: BillRepository):
        self.repo = repo

    def emit(
        self,
        bill: Bill,
        rtype: ReceiptType,
        *,
        amount,
        user: CurrentUser,
        remarks: Optional[str] = None,
        payment_type: Optional[str] = None,
        card_number: Optional[str] = None,
        utr_number: Optional[str] = None,
        changes: Optional[Dict[str, Any]] = None,
    ) -> Receipt:
        receipt = Receipt(
            receipt_number=self.repo.next_receipt_number(),
            type=rtype.value,
            amount=money2(amount),
            date=now_ist(),
            created_by_id=user.id,
            created_by=user.name,
            remarks=(remarks or None),
            payment_type=payment_type,
            card_number=card_number,
            utr_number=utr_number,
            changes=changes,
        )
        self.repo.append_receipt(bill, receipt)
        logger.info("Receipt %s (%s) amount=%s for bill %s",
                    receipt.receipt_number, rtype.value, receipt.amount,
                    bill.bill_number)
        return receipt

    # --------------------------------------------------------
    # Audit reconstruction
    # --------------------------------------------------------
    @staticmethod
    def receipted_paid(receipts: List[Receipt]) -> Decimal:
        total = ZERO
        for r in receipts:
            if r.type in (ReceiptType.CREATION.value,
                          ReceiptType.PAYMENT.value):
                total += D(r.amount)
        return total

    def reconcile(self, bill: Bill) -> List[str]:
        """
        Human-readable invariant violations for a persisted bill
        (empty list when consistent).
        """
        eps = settings.BILLING_PAID_EPSILON
        problems: List[str] = []
        receipts = list(bill.receipts or [])
        paid = D(bill.paid_amount)

        creations = [r for r in receipts if r.type == ReceiptType.CREATION.value]
        if len(creations) != 1:
            problems.append(
                f"expected exactly one creation receipt, found {len(creations)}")

        receipted = self.receipted_paid(receipts)
        if abs(receipted - paid) >= eps:
            problems.append(
                f"paid {money2(paid)} != receipted payments {money2(receipted)}")

        # receipts come ordered by id; the counter outgrows its zero padding
        if not numbers_increasing(r.receipt_number for r in receipts):
            problems.append("receipt numbers are not strictly increasing")

        fresh = bill_totals(bill)
        for col, value in (
            ("subtotal", fresh.subtotal),
            ("total_tax", fresh.total_tax),
            ("discount_amount", fresh.discount_amount),
            ("grand_total", fresh.grand_total),
            ("due_amount", fresh.due_amount),
        ):
            if abs(D(getattr(bill, col)) - value) >= eps:
                problems.append(
                    f"stored {col} {money2(getattr(bill, col))} != derived {money2(value)}"
                )

        expected = resolve_status(fresh.grand_total, paid,
                                  bool(bill.is_cancelled))
        if bill.status != expected.value:
            problems.append(
                f"stored status {bill.status!r} != resolved {expected.value!r}")

        cancels = [
            r for r in receipts if r.type == ReceiptType.CANCELLATION.value
        ]
        if bool(bill.is_cancelled) != bool(cancels) or len(cancels) > 1:
            problems.append("cancellation flag and cancellation receipts disagree")

        # accepted at write time, reported here
        if paid - fresh.grand_total >= eps and not bill.is_cancelled:
            problems.append(
                f"overpaid by {money2(paid - fresh.grand_total)} (surplus not tracked as credit)"
            )
        if fresh.discount_amount - fresh.subtotal >= eps:
            problems.append(
                f"discount {money2(fresh.discount_amount)} exceeds subtotal {money2(fresh.subtotal)}"
            )

        return problems
