# FILE: hms_billing/models/billing.py
from __future__ import annotations

import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Boolean,
    DateTime,
    Index,
    ForeignKey,
    UniqueConstraint,
    Text,
    JSON,
    event,
)
from sqlalchemy.orm import relationship

from hms_billing.db.base import Base
from hms_billing.utils.timezone import now_ist


class BillStatus(str, enum.Enum):
    ACTIVE = "active"
    PARTIAL = "partial"
    PAID = "paid"
    CANCELLED = "cancelled"


class ReceiptType(str, enum.Enum):
    CREATION = "creation"
    PAYMENT = "payment"
    MODIFICATION = "modification"
    CANCELLATION = "cancellation"


class PayMode(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    NEFT = "NEFT"


class DiscountType(str, enum.Enum):
    PERCENT = "percent"
    AMOUNT = "amount"


class NumberDocType(str, enum.Enum):
    BILL = "BILL"
    RECEIPT = "RECEIPT"


class Bill(Base):
    """
    One patient invoice.

    Totals/status columns are a snapshot written by the ledger on every
    mutation (re-derived from items, discount and paid_amount, never taken
    from the caller). paid_amount is the cumulative amount collected.
    """

    __tablename__ = "bills"
    __table_args__ = (
        Index("ix_bills_created_at", "created_at"),
        Index("ix_bills_doctor_status", "doctor_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    bill_number = Column(String(32), unique=True, index=True, nullable=False)

    # References into the external patient / doctor registries,
    # with a name snapshot for print and reports
    patient_id = Column(String(64), nullable=False, index=True)
    patient_name = Column(String(200), nullable=True)
    patient_mobile = Column(String(20), nullable=True)
    doctor_id = Column(String(64), nullable=False, index=True)
    doctor_name = Column(String(200), nullable=True)

    # percent | amount
    discount_type = Column(String(16), nullable=False, default="percent")
    discount_value = Column(Numeric(12, 4), nullable=False, default=0)

    # cash | card | upi | NEFT  (method of the latest payment)
    payment_type = Column(String(16), nullable=True)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    card_number = Column(String(4), nullable=True)
    utr_number = Column(String(64), nullable=True)

    # Totals snapshot
    subtotal = Column(Numeric(14, 4), nullable=False, default=0)
    total_tax = Column(Numeric(14, 4), nullable=False, default=0)
    discount_amount = Column(Numeric(14, 4), nullable=False, default=0)
    grand_total = Column(Numeric(14, 4), nullable=False, default=0)
    due_amount = Column(Numeric(14, 4), nullable=False, default=0)

    # active | partial | paid | cancelled
    status = Column(String(16), nullable=False, default=BillStatus.ACTIVE.value)

    is_cancelled = Column(Boolean, nullable=False, default=False)
    cancel_reason = Column(String(255), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(100), nullable=True)

    remarks = Column(Text, nullable=True)

    created_by_id = Column(Integer, nullable=True)
    created_by = Column(String(100), nullable=True)
    updated_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=now_ist, nullable=False)
    updated_at = Column(DateTime, default=now_ist, onupdate=now_ist)

    # optimistic lock: every UPDATE checks and bumps this
    revision = Column(Integer, nullable=False, default=1)

    items = relationship(
        "BillItem",
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillItem.seq",
        lazy="selectin",
    )
    receipts = relationship(
        "Receipt",
        back_populates="bill",
        cascade="save-update, merge",
        order_by="Receipt.id",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": revision}


class BillItem(Base):
    __tablename__ = "bill_items"
    __table_args__ = (Index("ix_bill_items_bill", "bill_id"), )

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(
        Integer,
        ForeignKey("bills.id", ondelete="CASCADE"),
        nullable=False,
    )

    # S.no order for UI/print
    seq = Column(Integer, default=1)

    name = Column(String(300), nullable=False)
    code = Column(String(64), nullable=True)
    category = Column(String(100), nullable=True)

    price = Column(Numeric(12, 2), nullable=False, default=0)
    quantity = Column(Numeric(10, 3), nullable=False, default=1)
    # flat tax per line (not per unit)
    tax = Column(Numeric(12, 2), nullable=False, default=0)
    # price * quantity + tax
    total = Column(Numeric(14, 4), nullable=False, default=0)

    bill = relationship("Bill", back_populates="items")


class Receipt(Base):
    """
    Append-only audit record of one financial mutation against a bill.
    Rows are inserted by the receipt trail and never updated or deleted.
    """

    __tablename__ = "bill_receipts"
    __table_args__ = (
        Index("ix_bill_receipts_bill_number", "bill_number"),
        Index("ix_bill_receipts_type_date", "type", "date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    receipt_number = Column(String(32), unique=True, index=True, nullable=False)

    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=False)
    bill_number = Column(String(32), nullable=False)

    # creation | payment | modification | cancellation
    type = Column(String(16), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    date = Column(DateTime, default=now_ist, nullable=False)

    created_by_id = Column(Integer, nullable=True)
    created_by = Column(String(100), nullable=True)
    remarks = Column(String(500), nullable=True)

    payment_type = Column(String(16), nullable=True)
    card_number = Column(String(4), nullable=True)
    utr_number = Column(String(64), nullable=True)

    # modification detail: description + before/after totals
    changes = Column(JSON, nullable=True)

    bill = relationship("Bill", back_populates="receipts")


class ReceiptImmutableError(RuntimeError):
    pass


@event.listens_for(Receipt, "before_update")
def _receipt_no_update(mapper, connection, target):
    raise ReceiptImmutableError(
        f"Receipt {target.receipt_number} is immutable")


@event.listens_for(Receipt, "before_delete")
def _receipt_no_delete(mapper, connection, target):
    raise ReceiptImmutableError(
        f"Receipt {target.receipt_number} cannot be deleted")


class BillingNumberSeries(Base):
    """
    Sequential counters for human-facing numbers (BILL-000001, RCPT-000001).
    """

    __tablename__ = "billing_number_series"
    __table_args__ = (UniqueConstraint("doc_type",
                                       "prefix",
                                       name="uq_billing_number_series"), )

    id = Column(Integer, primary_key=True, index=True)
    doc_type = Column(String(16), nullable=False)
    prefix = Column(String(16), nullable=False, default="")
    padding = Column(Integer, nullable=False, default=6)
    next_number = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime, default=now_ist, onupdate=now_ist)
