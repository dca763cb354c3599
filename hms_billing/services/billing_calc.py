# FILE: hms_billing/services/billing_calc.py
"""
Totals calculator and discount engine.

Pure functions over items / discount / paid. Nothing here rounds: values
are quantized only when written to storage columns, receipts or API output,
so repeated recalculation never compounds rounding error.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Tuple

from hms_billing.models.billing import DiscountType
from hms_billing.services.billing_errors import BillingValidationError
from hms_billing.services.billing_math import D, ZERO


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    total_tax: Decimal
    discount_amount: Decimal
    grand_total: Decimal
    due_amount: Decimal

    @property
    def balance(self) -> Decimal:
        # older receipt prints read "balance"
        return self.due_amount


def _get(obj: Any, name: str, default=None):
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def compute_item_total(price, quantity, tax) -> Decimal:
    """line total = price * quantity + tax (tax is flat per line)."""
    return D(price) * D(quantity) + D(tax)


def compute_subtotals(items: Iterable[Any]) -> Tuple[Decimal, Decimal]:
    subtotal = ZERO
    total_tax = ZERO
    for it in items or []:
        subtotal += D(_get(it, "total"))
        total_tax += D(_get(it, "tax"))
    return subtotal, total_tax


def normalize_discount_type(value: Any) -> DiscountType:
    raw = getattr(value, "value", value)
    raw = (str(raw or "")).strip().lower()
    try:
        return DiscountType(raw)
    except ValueError:
        raise BillingValidationError(
            "discount type must be 'percent' or 'amount'",
            field="discount.type")


def compute_discount(subtotal, discount: Optional[Any]) -> Decimal:
    """
    percent -> subtotal * value / 100 (no cap on value, always from subtotal)
    amount  -> value clamped to [0, subtotal]
    """
    if discount is None:
        return ZERO
    dtype = normalize_discount_type(_get(discount, "type"))
    value = D(_get(discount, "value"))
    if value < 0:
        raise BillingValidationError("discount value must be >= 0",
                                     field="discount.value")

    subtotal = D(subtotal)
    if dtype == DiscountType.PERCENT:
        return subtotal * value / Decimal("100")

    if subtotal <= 0:
        return ZERO
    return min(value, subtotal)


def compute_totals(items: Iterable[Any], discount: Optional[Any],
                   paid) -> Totals:
    subtotal, total_tax = compute_subtotals(items)
    discount_amount = compute_discount(subtotal, discount)
    grand_total = max(ZERO, subtotal - discount_amount)
    due_amount = max(ZERO, grand_total - D(paid))
    return Totals(
        subtotal=subtotal,
        total_tax=total_tax,
        discount_amount=discount_amount,
        grand_total=grand_total,
        due_amount=due_amount,
    )


def bill_totals(bill) -> Totals:
    """Fresh derivation for a persisted Bill row."""
    return compute_totals(
        bill.items,
        {"type": bill.discount_type, "value": bill.discount_value},
        bill.paid_amount,
    )
