# FILE: hms_billing/services/billing_payments.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from hms_billing.models.billing import PayMode
from hms_billing.services.billing_errors import BillingValidationError

_CARD_LAST4 = re.compile(r"^\d{4}$")
_UTR = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{3,63}$")


@dataclass(frozen=True)
class PaymentMethod:
    mode: PayMode
    card_number: Optional[str] = None
    utr_number: Optional[str] = None


def normalize_mode(value) -> PayMode:
    raw = (str(getattr(value, "value", value) or "")).strip()
    if not raw:
        raise BillingValidationError("payment type is required",
                                     field="payment.type")
    for m in PayMode:
        if m.value.lower() == raw.lower():
            return m
    allowed = ", ".join(m.value for m in PayMode)
    raise BillingValidationError(f"payment type must be one of: {allowed}",
                                 field="payment.type")


def validate_method(mode, card_number: Optional[str] = None,
                    utr_number: Optional[str] = None) -> PaymentMethod:
    """
    card     -> last 4 digits required
    upi/NEFT -> UTR / reference token required
    cash     -> nothing; stray card/UTR values are dropped
    """
    m = normalize_mode(mode)
    card = (card_number or "").strip()
    utr = (utr_number or "").strip()

    if m == PayMode.CARD:
        if not _CARD_LAST4.match(card):
            raise BillingValidationError(
                "card payments need the last 4 digits of the card",
                field="payment.cardNumber")
        return PaymentMethod(mode=m, card_number=card)

    if m in (PayMode.UPI, PayMode.NEFT):
        if not _UTR.match(utr):
            raise BillingValidationError(
                f"{m.value} payments need a valid UTR / reference number",
                field="payment.utrNumber")
        return PaymentMethod(mode=m, utr_number=utr)

    return PaymentMethod(mode=m)
