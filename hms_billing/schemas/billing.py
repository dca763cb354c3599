# FILE: hms_billing/schemas/billing.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _strip(v):
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


class _In(BaseModel):
    # accept both camelCase (front-desk payloads) and snake_case
    model_config = ConfigDict(populate_by_name=True)


class _Out(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ------------------------------------------------------------------
# Requests
# ------------------------------------------------------------------
class BillingItemIn(_In):
    name: str
    code: Optional[str] = None
    category: Optional[str] = None
    price: Decimal = Field(default=Decimal("0"), ge=0)
    quantity: Decimal = Field(default=Decimal("1"), gt=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    # client-side computed total is ignored; the ledger re-derives it
    total: Optional[Decimal] = None

    @field_validator("name", "code", "category", mode="before")
    @classmethod
    def v_strip(cls, v):
        return _strip(v)


class DiscountIn(_In):
    type: Literal["percent", "amount"] = "percent"
    value: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator("type", mode="before")
    @classmethod
    def v_type(cls, v):
        return (v or "percent").strip().lower() if isinstance(v, str) else v


class InitialPaymentIn(_In):
    type: Optional[str] = None
    paid: Decimal = Field(default=Decimal("0"), ge=0)
    card_number: Optional[str] = Field(default=None, alias="cardNumber")
    utr_number: Optional[str] = Field(default=None, alias="utrNumber")


class BillCreate(_In):
    patient_id: str = Field(alias="patientId")
    patient_name: Optional[str] = Field(default=None, alias="patientName")
    patient_mobile: Optional[str] = Field(default=None, alias="patientMobile")
    doctor_id: str = Field(alias="doctorId")
    doctor_name: Optional[str] = Field(default=None, alias="doctorName")
    billing_items: List[BillingItemIn] = Field(alias="billingItems")
    discount: Optional[DiscountIn] = None
    payment: Optional[InitialPaymentIn] = None
    remarks: Optional[str] = None

    @field_validator("patient_id", "doctor_id", mode="before")
    @classmethod
    def v_ref(cls, v):
        # numeric ids from older clients are stored as strings
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class BillUpdate(_In):
    billing_items: List[BillingItemIn] = Field(alias="billingItems")
    discount: Optional[DiscountIn] = None
    remarks: Optional[str] = None


class AddPaymentIn(_In):
    amount: Decimal
    method: str = Field(validation_alias=AliasChoices("method", "type"))
    card_number: Optional[str] = Field(default=None, alias="cardNumber")
    utr_number: Optional[str] = Field(default=None, alias="utrNumber")
    remarks: Optional[str] = None


class CancelBillIn(_In):
    reason: str = ""


# ------------------------------------------------------------------
# Responses
# ------------------------------------------------------------------
class UserRefOut(_Out):
    id: Optional[int] = None
    name: Optional[str] = None


class BillingItemOut(_Out):
    name: str
    code: Optional[str] = None
    category: Optional[str] = None
    price: Decimal
    quantity: Decimal
    tax: Decimal
    total: Decimal


class DiscountOut(_Out):
    type: str
    value: Decimal


class PaymentOut(_Out):
    type: Optional[str] = None
    paid: Decimal
    card_number: Optional[str] = Field(default=None,
                                       serialization_alias="cardNumber")
    utr_number: Optional[str] = Field(default=None,
                                      serialization_alias="utrNumber")


class TotalsOut(_Out):
    subtotal: Decimal
    total_tax: Decimal = Field(serialization_alias="totalTax")
    discount_amount: Decimal = Field(serialization_alias="discountAmount")
    grand_total: Decimal = Field(serialization_alias="grandTotal")
    due_amount: Decimal = Field(serialization_alias="dueAmount")
    balance: Decimal


class PaymentMethodOut(_Out):
    type: Optional[str] = None
    card_number: Optional[str] = Field(default=None,
                                       serialization_alias="cardNumber")
    utr_number: Optional[str] = Field(default=None,
                                      serialization_alias="utrNumber")


class ReceiptOut(_Out):
    id: int = Field(serialization_alias="_id")
    receipt_number: str = Field(serialization_alias="receiptNumber")
    bill_id: int = Field(serialization_alias="billingId")
    bill_number: str = Field(serialization_alias="billNumber")
    type: str
    amount: Decimal
    date: datetime
    created_by: UserRefOut = Field(serialization_alias="createdBy")
    remarks: Optional[str] = None
    payment_method: Optional[PaymentMethodOut] = Field(
        default=None, serialization_alias="paymentMethod")
    changes: Optional[Dict[str, Any]] = None


class BillOut(_Out):
    id: int = Field(serialization_alias="_id")
    bill_number: str = Field(serialization_alias="billNumber")
    patient_id: str = Field(serialization_alias="patientId")
    patient_name: Optional[str] = Field(default=None,
                                        serialization_alias="patientName")
    patient_mobile: Optional[str] = Field(default=None,
                                          serialization_alias="patientMobile")
    doctor_id: str = Field(serialization_alias="doctorId")
    doctor_name: Optional[str] = Field(default=None,
                                       serialization_alias="doctorName")
    billing_items: List[BillingItemOut] = Field(
        serialization_alias="billingItems")
    discount: DiscountOut
    payment: PaymentOut
    totals: TotalsOut
    status: str
    cancel_reason: Optional[str] = Field(default=None,
                                         serialization_alias="cancelReason")
    cancelled_at: Optional[datetime] = Field(default=None,
                                             serialization_alias="cancelledAt")
    remarks: Optional[str] = None
    receipt_history: List[ReceiptOut] = Field(
        default_factory=list, serialization_alias="receiptHistory")
    created_by: UserRefOut = Field(serialization_alias="createdBy")
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None,
                                           serialization_alias="updatedAt")
    integrity_warnings: List[str] = Field(
        default_factory=list, serialization_alias="integrityWarnings")
