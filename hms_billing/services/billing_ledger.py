# FILE: hms_billing/services/billing_ledger.py
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Tuple

from hms_billing.models.billing import (
    Bill,
    BillItem,
    BillStatus,
    Receipt,
    ReceiptType,
)
from hms_billing.schemas.billing import (
    AddPaymentIn,
    BillCreate,
    BillUpdate,
    BillingItemIn,
    DiscountIn,
)
from hms_billing.services.billing_calc import (
    Totals,
    bill_totals,
    compute_item_total,
    normalize_discount_type,
)
from hms_billing.services.billing_errors import (
    BillNotFoundError,
    BillingConsistencyError,
    BillingStateError,
    BillingValidationError,
    ReceiptNotFoundError,
)
from hms_billing.services.billing_math import (
    Q3,
    Q4,
    D,
    money2,
    parse_amount,
    quantize_to,
)
from hms_billing.services.billing_payments import normalize_mode, validate_method
from hms_billing.services.billing_receipts import ReceiptTrail, totals_snapshot
from hms_billing.services.billing_repository import BillRepository
from hms_billing.services.billing_status import resolve_status
from hms_billing.utils.jwt import CurrentUser
from hms_billing.utils.timezone import now_ist

logger = logging.getLogger(__name__)


class BillLocks:
    """Single-writer lock per bill id for this process."""

    def __init__(self):
        self._guard = threading.Lock()
        # bill id -> [lock, holders and waiters]; dropped when nobody needs it
        self._locks: Dict[int, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, bill_id: int) -> Iterator[None]:
        key = int(bill_id)
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


# shared by every ledger instance in the process
bill_locks = BillLocks()


def _required_text(value, field: str) -> str:
    v = (str(value) if value is not None else "").strip()
    if not v:
        raise BillingValidationError(f"{field} is required", field=field)
    return v


def _build_items(items: List[BillingItemIn]) -> List[BillItem]:
    if not items:
        raise BillingValidationError("At least one billing item is required",
                                     field="billingItems")
    rows: List[BillItem] = []
    for idx, it in enumerate(items):
        prefix = f"billingItems[{idx}]"
        name = _required_text(it.name, f"{prefix}.name")
        price = money2(parse_amount(it.price, field=f"{prefix}.price"))
        # totals are computed from column-scale values only
        qty = quantize_to(
            parse_amount(it.quantity, field=f"{prefix}.quantity",
                         allow_zero=False), Q3)
        if qty <= 0:
            raise BillingValidationError(f"{prefix}.quantity must be > 0",
                                         field=f"{prefix}.quantity")
        tax = money2(parse_amount(it.tax, field=f"{prefix}.tax"))
        rows.append(
            BillItem(
                seq=idx + 1,
                name=name,
                code=it.code,
                category=it.category,
                price=price,
                quantity=qty,
                tax=tax,
                total=quantize_to(compute_item_total(price, qty, tax), Q4),
            ))
    return rows


def _item_key(it) -> Tuple:
    return (it.name, it.code or None, it.category or None, D(it.price),
            D(it.quantity), D(it.tax))


def _discount_parts(discount: Optional[DiscountIn]) -> Tuple[str, Decimal]:
    if discount is None:
        return "percent", Decimal("0")
    dtype = normalize_discount_type(discount.type)
    value = parse_amount(discount.value, field="discount.value")
    return dtype.value, quantize_to(value, Q4)


class BillingLedger:
    """
    Keeps a bill's totals, payments, status and receipt trail consistent.

    Each mutation runs under the bill's lock inside one repository
    transaction: totals, status and the receipt are committed together or
    not at all.
    """

    def __init__(self, repo: BillRepository, *, locks: BillLocks | None = None):
        self.repo = repo
        self.trail = ReceiptTrail(repo)
        self.locks = locks or bill_locks

    # --------------------------------------------------------
    # helpers
    # --------------------------------------------------------
    @staticmethod
    def _apply_totals(bill: Bill) -> Totals:
        t = bill_totals(bill)
        bill.subtotal = t.subtotal
        bill.total_tax = t.total_tax
        bill.discount_amount = t.discount_amount
        bill.grand_total = t.grand_total
        bill.due_amount = t.due_amount
        bill.status = resolve_status(t.grand_total, bill.paid_amount,
                                     bool(bill.is_cancelled)).value
        return t

    def _load(self, bill_id: int, *, for_update: bool = False) -> Bill:
        bill = self.repo.get(bill_id, for_update=for_update)
        if not bill:
            raise BillNotFoundError(f"Bill {bill_id} not found")
        return bill

    @staticmethod
    def _ensure_mutable(bill: Bill, action: str) -> None:
        if bill.is_cancelled:
            logger.warning("Rejected %s on cancelled bill %s", action,
                           bill.bill_number)
            raise BillingStateError(
                f"Bill {bill.bill_number} is cancelled; cannot {action}")

    # --------------------------------------------------------
    # create
    # --------------------------------------------------------
    def create_bill(self, data: BillCreate, *, user: CurrentUser) -> Bill:
        patient_id = _required_text(data.patient_id, "patientId")
        doctor_id = _required_text(data.doctor_id, "doctorId")
        items = _build_items(data.billing_items)
        discount_type, discount_value = _discount_parts(data.discount)

        payment = data.payment
        if payment is None:
            raise BillingValidationError("payment type is required",
                                         field="payment.type")
        paid = money2(parse_amount(payment.paid, field="payment.paid"))
        if paid > 0:
            method = validate_method(payment.type, payment.card_number,
                                     payment.utr_number)
            mode, card, utr = method.mode.value, method.card_number, method.utr_number
        else:
            mode, card, utr = normalize_mode(payment.type).value, None, None

        with self.repo.transaction():
            bill = Bill(
                bill_number=self.repo.next_bill_number(),
                patient_id=patient_id,
                patient_name=data.patient_name,
                patient_mobile=data.patient_mobile,
                doctor_id=doctor_id,
                doctor_name=data.doctor_name,
                discount_type=discount_type,
                discount_value=discount_value,
                payment_type=mode,
                paid_amount=paid,
                card_number=card,
                utr_number=utr,
                is_cancelled=False,
                remarks=data.remarks,
                created_by_id=user.id,
                created_by=user.name,
                updated_by=user.name,
                created_at=now_ist(),
            )
            bill.items = items
            t = self._apply_totals(bill)
            self.repo.save(bill)
            self.trail.emit(
                bill,
                ReceiptType.CREATION,
                amount=paid,
                user=user,
                remarks=data.remarks or "Bill created",
                payment_type=mode,
                card_number=card,
                utr_number=utr,
                changes={"totals": totals_snapshot(t)},
            )

        logger.info("Created bill %s grand_total=%s paid=%s status=%s",
                    bill.bill_number, money2(t.grand_total), paid, bill.status)
        return bill

    # --------------------------------------------------------
    # payments
    # --------------------------------------------------------
    def add_payment(self, bill_id: int, data: AddPaymentIn, *,
                    user: CurrentUser) -> Bill:
        amount = money2(parse_amount(data.amount, field="amount",
                                     allow_zero=False))
        if amount <= 0:
            raise BillingValidationError("amount must be > 0", field="amount")
        method = validate_method(data.method, data.card_number,
                                 data.utr_number)

        with self.locks.hold(bill_id):
            with self.repo.transaction():
                bill = self._load(bill_id, for_update=True)
                self._ensure_mutable(bill, "add payment")

                bill.paid_amount = D(bill.paid_amount) + amount
                bill.payment_type = method.mode.value
                bill.card_number = method.card_number
                bill.utr_number = method.utr_number
                bill.updated_by = user.name
                t = self._apply_totals(bill)
                self.repo.save(bill)
                self.trail.emit(
                    bill,
                    ReceiptType.PAYMENT,
                    amount=amount,
                    user=user,
                    remarks=data.remarks or f"Payment received ({method.mode.value})",
                    payment_type=method.mode.value,
                    card_number=method.card_number,
                    utr_number=method.utr_number,
                )

        logger.info("Payment %s (%s) on bill %s paid=%s due=%s status=%s",
                    amount, method.mode.value, bill.bill_number,
                    money2(bill.paid_amount), money2(t.due_amount), bill.status)
        if D(bill.paid_amount) > t.grand_total:
            logger.warning("Bill %s overpaid by %s; surplus is not tracked",
                           bill.bill_number,
                           money2(D(bill.paid_amount) - t.grand_total))
        return bill

    # --------------------------------------------------------
    # item edits (modification)
    # --------------------------------------------------------
    def update_items(self, bill_id: int, data: BillUpdate, *,
                     user: CurrentUser) -> Bill:
        items = _build_items(data.billing_items)
        new_discount = (_discount_parts(data.discount)
                        if data.discount is not None else None)

        with self.locks.hold(bill_id):
            with self.repo.transaction():
                bill = self._load(bill_id, for_update=True)
                self._ensure_mutable(bill, "edit items")

                if new_discount is None:
                    new_discount = (bill.discount_type, D(bill.discount_value))
                same_items = ([_item_key(i) for i in bill.items]
                              == [_item_key(i) for i in items])
                same_discount = (bill.discount_type == new_discount[0]
                                 and D(bill.discount_value) == new_discount[1])
                if same_items and same_discount:
                    raise BillingValidationError("No changes to save",
                                                 field="billingItems")

                before = bill_totals(bill)
                old_count = len(bill.items)
                bill.items.clear()
                bill.items.extend(items)
                bill.discount_type, bill.discount_value = new_discount
                if data.remarks is not None:
                    bill.remarks = data.remarks
                bill.updated_by = user.name
                after = self._apply_totals(bill)
                self.repo.save(bill)

                delta = after.grand_total - before.grand_total
                self.trail.emit(
                    bill,
                    ReceiptType.MODIFICATION,
                    amount=delta,
                    user=user,
                    remarks=data.remarks or "Bill items updated",
                    changes={
                        "description":
                        (f"Items {old_count} -> {len(items)}, grand total "
                         f"{money2(before.grand_total)} -> {money2(after.grand_total)}"
                         ),
                        "before": totals_snapshot(before),
                        "after": totals_snapshot(after),
                    },
                )

        logger.info("Modified bill %s grand_total=%s status=%s",
                    bill.bill_number, money2(after.grand_total), bill.status)
        return bill

    # --------------------------------------------------------
    # cancellation / refund
    # --------------------------------------------------------
    def cancel_bill(self, bill_id: int, reason: Optional[str], *,
                    user: CurrentUser) -> Bill:
        reason = (reason or "").strip()
        if not reason:
            raise BillingValidationError("Cancellation reason is required",
                                         field="reason")

        with self.locks.hold(bill_id):
            with self.repo.transaction():
                bill = self._load(bill_id, for_update=True)
                if bill.is_cancelled:
                    logger.warning("Rejected cancel on cancelled bill %s",
                                   bill.bill_number)
                    raise BillingStateError(
                        f"Bill {bill.bill_number} is already cancelled")

                refund = money2(bill.paid_amount)
                bill.is_cancelled = True
                bill.cancel_reason = reason
                bill.cancelled_at = now_ist()
                bill.cancelled_by = user.name
                bill.updated_by = user.name
                self._apply_totals(bill)
                self.repo.save(bill)
                self.trail.emit(
                    bill,
                    ReceiptType.CANCELLATION,
                    amount=refund,
                    user=user,
                    remarks=reason,
                    payment_type=bill.payment_type,
                    card_number=bill.card_number,
                    utr_number=bill.utr_number,
                )

        logger.info("Cancelled bill %s refund=%s reason=%r", bill.bill_number,
                    refund, reason)
        return bill

    # --------------------------------------------------------
    # reads
    # --------------------------------------------------------
    def get_bill(self, bill_id: int) -> Bill:
        return self._load(bill_id)

    def get_bill_by_number(self, bill_number: str) -> Bill:
        bill = self.repo.get_by_number(bill_number)
        if not bill:
            raise BillNotFoundError(f"Bill {bill_number} not found")
        return bill

    def verify_bill(self, bill: Bill | int, *,
                    strict: bool = False) -> List[str]:
        if not isinstance(bill, Bill):
            bill = self._load(int(bill))
        problems = self.trail.reconcile(bill)
        if problems:
            logger.warning("Integrity problems on bill %s: %s",
                           bill.bill_number, "; ".join(problems))
            if strict:
                raise BillingConsistencyError(
                    f"Bill {bill.bill_number} failed integrity check",
                    problems=problems)
        return problems

    def list_receipts(self, bill_number: str) -> List[Receipt]:
        bill = self.get_bill_by_number(bill_number)
        return self.repo.list_receipts(bill_number=bill.bill_number)

    def get_receipt(self, receipt_number: str) -> Receipt:
        r = self.repo.get_receipt(receipt_number)
        if not r:
            raise ReceiptNotFoundError(f"Receipt {receipt_number} not found")
        return r

    def list_all_receipts(
        self,
        *,
        receipt_type: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        search: Optional[str] = None,
    ) -> List[Receipt]:
        if receipt_type:
            try:
                receipt_type = ReceiptType(receipt_type.strip().lower()).value
            except ValueError:
                raise BillingValidationError(
                    f"Unknown receipt type {receipt_type!r}", field="type")
        return self.repo.list_receipts(receipt_type=receipt_type,
                                       date_from=date_from,
                                       date_to=date_to,
                                       search=search)

    def list_bills(
        self,
        *,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        doctor_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Bill]:
        if status:
            try:
                status = BillStatus(status.strip().lower()).value
            except ValueError:
                raise BillingValidationError(f"Unknown status {status!r}",
                                             field="status")
        return self.repo.list_bills(date_from=date_from,
                                    date_to=date_to,
                                    doctor_id=doctor_id,
                                    status=status)
