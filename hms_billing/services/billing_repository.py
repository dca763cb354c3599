# FILE: hms_billing/services/billing_repository.py
from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from hms_billing.models.billing import Bill, Receipt
from hms_billing.services.billing_errors import BillingConflictError
from hms_billing.services.billing_numbers import next_bill_number, next_receipt_number


class BillRepository(ABC):
    """
    Storage seam for the ledger. The ledger holds no bill state of its own;
    everything is loaded through and written back via this interface.
    """

    @abstractmethod
    def get(self, bill_id: int, *, for_update: bool = False) -> Optional[Bill]:
        ...

    @abstractmethod
    def get_by_number(self, bill_number: str) -> Optional[Bill]:
        ...

    @abstractmethod
    def save(self, bill: Bill) -> Bill:
        ...

    @abstractmethod
    def append_receipt(self, bill: Bill, receipt: Receipt) -> Receipt:
        ...

    @abstractmethod
    def next_bill_number(self) -> str:
        ...

    @abstractmethod
    def next_receipt_number(self) -> str:
        ...

    @abstractmethod
    def list_bills(
        self,
        *,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        doctor_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Bill]:
        ...

    @abstractmethod
    def list_receipts(
        self,
        *,
        bill_number: Optional[str] = None,
        receipt_type: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        search: Optional[str] = None,
    ) -> List[Receipt]:
        ...

    @abstractmethod
    def get_receipt(self, receipt_number: str) -> Optional[Receipt]:
        ...

    @abstractmethod
    def transaction(self):
        """Context manager: commit on success, roll back on any error."""
        ...


class SqlBillRepository(BillRepository):

    def __init__(self, db: Session):
        self.db = db

    # ---------------- bills ----------------
    def get(self, bill_id: int, *, for_update: bool = False) -> Optional[Bill]:
        q = self.db.query(Bill).filter(Bill.id == int(bill_id))
        if for_update:
            # refresh any identity-map copy; SQLite ignores FOR UPDATE
            q = q.populate_existing().with_for_update()
        return q.first()

    def get_by_number(self, bill_number: str) -> Optional[Bill]:
        return (self.db.query(Bill).filter(
            Bill.bill_number == (bill_number or "").strip()).first())

    def save(self, bill: Bill) -> Bill:
        self.db.add(bill)
        self.db.flush()
        return bill

    def append_receipt(self, bill: Bill, receipt: Receipt) -> Receipt:
        receipt.bill_id = bill.id
        receipt.bill_number = bill.bill_number
        bill.receipts.append(receipt)
        self.db.add(receipt)
        self.db.flush()
        return receipt

    def next_bill_number(self) -> str:
        return next_bill_number(self.db)

    def next_receipt_number(self) -> str:
        return next_receipt_number(self.db)

    def list_bills(
        self,
        *,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        doctor_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Bill]:
        q = self.db.query(Bill)
        if date_from:
            q = q.filter(Bill.created_at >= date_from)
        if date_to:
            q = q.filter(Bill.created_at <= date_to)
        if doctor_id:
            q = q.filter(Bill.doctor_id == str(doctor_id))
        if status:
            q = q.filter(Bill.status == status)
        return q.order_by(Bill.created_at.desc(), Bill.id.desc()).all()

    # ---------------- receipts ----------------
    def list_receipts(
        self,
        *,
        bill_number: Optional[str] = None,
        receipt_type: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        search: Optional[str] = None,
    ) -> List[Receipt]:
        q = self.db.query(Receipt)
        if bill_number:
            q = q.filter(Receipt.bill_number == bill_number.strip())
        if receipt_type:
            q = q.filter(Receipt.type == receipt_type)
        if date_from:
            q = q.filter(Receipt.date >= date_from)
        if date_to:
            q = q.filter(Receipt.date <= date_to)
        if search and search.strip():
            like = f"%{search.strip()}%"
            q = q.filter(
                or_(
                    Receipt.receipt_number.ilike(like),
                    Receipt.bill_number.ilike(like),
                    Receipt.remarks.ilike(like),
                ))
        return q.order_by(Receipt.id.asc()).all()

    def get_receipt(self, receipt_number: str) -> Optional[Receipt]:
        return (self.db.query(Receipt).filter(
            Receipt.receipt_number == (receipt_number or "").strip()).first())

    # ---------------- unit of work ----------------
    @contextmanager
    def transaction(self) -> Iterator[Session]:
        try:
            yield self.db
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise BillingConflictError(
                "Bill was modified by another request; re-fetch and retry"
            ) from e
        except Exception:
            self.db.rollback()
            raise
