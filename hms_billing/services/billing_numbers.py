# FILE: hms_billing/services/billing_numbers.py
from __future__ import annotations

from sqlalchemy.orm import Session

from hms_billing.core.config import settings
from hms_billing.models.billing import BillingNumberSeries, NumberDocType


def next_number(
    db: Session,
    *,
    doc_type: NumberDocType,
    prefix: str,
    padding: int = 6,
) -> str:
    """
    Allocate the next number of a series inside the caller's transaction.
    The series row is locked until that transaction commits or rolls back,
    so a rolled-back mutation never consumes a number.
    """
    row = (db.query(BillingNumberSeries).filter(
        BillingNumberSeries.doc_type == doc_type.value).filter(
            BillingNumberSeries.prefix == (prefix or "")).filter(
                BillingNumberSeries.is_active.is_(True)).with_for_update().
           first())

    if not row:
        row = BillingNumberSeries(
            doc_type=doc_type.value,
            prefix=prefix or "",
            padding=padding,
            next_number=1,
            is_active=True,
        )
        db.add(row)
        db.flush()

    n = int(row.next_number or 1)
    row.next_number = n + 1
    db.flush()

    return f"{row.prefix}{str(n).zfill(int(row.padding or padding))}"


def next_bill_number(db: Session) -> str:
    return next_number(
        db,
        doc_type=NumberDocType.BILL,
        prefix=settings.BILL_NUMBER_PREFIX,
        padding=settings.NUMBER_PADDING,
    )


def next_receipt_number(db: Session) -> str:
    return next_number(
        db,
        doc_type=NumberDocType.RECEIPT,
        prefix=settings.RECEIPT_NUMBER_PREFIX,
        padding=settings.NUMBER_PADDING,
    )
