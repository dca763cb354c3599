# hms_billing/models/__init__.py
from .billing import (
    Bill,
    BillItem,
    Receipt,
    BillingNumberSeries,
    BillStatus,
    ReceiptType,
    PayMode,
    DiscountType,
    NumberDocType,
)

__all__ = [
    "Bill",
    "BillItem",
    "Receipt",
    "BillingNumberSeries",
    "BillStatus",
    "ReceiptType",
    "PayMode",
    "DiscountType",
    "NumberDocType",
]
