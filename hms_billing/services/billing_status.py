# FILE: hms_billing/services/billing_status.py
from __future__ import annotations

from decimal import Decimal

from hms_billing.core.config import settings
from hms_billing.models.billing import BillStatus
from hms_billing.services.billing_math import D, ZERO


def resolve_status(grand_total,
                   paid,
                   cancelled: bool = False,
                   *,
                   epsilon: Decimal | None = None) -> BillStatus:
    """
    The only authority for a bill's lifecycle state.

    cancelled  -> CANCELLED (terminal, overrides everything)
    due <= 0 or paid ~= grand_total (within epsilon) -> PAID
    0 < paid < grand_total -> PARTIAL
    otherwise -> ACTIVE
    """
    if cancelled:
        return BillStatus.CANCELLED

    eps = settings.BILLING_PAID_EPSILON if epsilon is None else D(epsilon)
    grand = D(grand_total)
    paid = D(paid)

    due = max(ZERO, grand - paid)
    if due <= 0 or abs(paid - grand) < eps:
        return BillStatus.PAID
    if paid > 0 and paid < grand:
        return BillStatus.PARTIAL
    return BillStatus.ACTIVE

