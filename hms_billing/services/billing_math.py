# hms_billing/services/billing_math.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from hms_billing.services.billing_errors import BillingValidationError

Q2 = Decimal("0.01")
# storage scales: quantity Numeric(10, 3), discount value / line total Numeric(.., 4)
Q3 = Decimal("0.001")
Q4 = Decimal("0.0001")
ZERO = Decimal("0")


def D(x) -> Decimal:
    try:
        return Decimal(str(x or 0))
    except (InvalidOperation, TypeError, ValueError):
        return ZERO


def money2(x) -> Decimal:
    return D(x).quantize(Q2, rounding=ROUND_HALF_UP)


def quantize_to(x, q: Decimal) -> Decimal:
    return D(x).quantize(q, rounding=ROUND_HALF_UP)


def parse_amount(x, *, field: str, allow_zero: bool = True) -> Decimal:
    """Strict conversion for caller-supplied numbers (no silent zero)."""
    if x is None or (isinstance(x, str) and not x.strip()):
        raise BillingValidationError(f"{field} is required", field=field)
    if isinstance(x, bool):
        raise BillingValidationError(f"{field} must be a number", field=field)
    try:
        v = Decimal(str(x).strip())
    except (InvalidOperation, ValueError):
        raise BillingValidationError(f"{field} must be a number", field=field)
    if not v.is_finite():
        raise BillingValidationError(f"{field} must be a number", field=field)
    if v < 0 or (v == 0 and not allow_zero):
        bound = ">= 0" if allow_zero else "> 0"
        raise BillingValidationError(f"{field} must be {bound}", field=field)
    return v
