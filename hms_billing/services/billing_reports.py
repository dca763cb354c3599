# FILE: hms_billing/services/billing_reports.py
"""
Read-only projections over historical bills and receipts.

Nothing here writes back to the ledger. Status always comes from the
status resolver and totals from the totals calculator.
"""
from __future__ import annotations

from collections import OrderedDict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from hms_billing.core.config import settings
from hms_billing.models.billing import Bill, BillStatus, Receipt, ReceiptType
from hms_billing.services.billing_calc import bill_totals
from hms_billing.services.billing_math import D, ZERO, money2
from hms_billing.services.billing_status import resolve_status

CONSULTATION_MARKER = "consultation fee"
PAY_BUCKETS = ("cash", "card", "upi", "neft")


def _bucket(payment_type: Optional[str]) -> str:
    pt = (payment_type or "cash").strip().lower()
    return pt if pt in PAY_BUCKETS else "cash"


def _avg(total: Decimal, n: int) -> Decimal:
    return money2(total / n) if n else Decimal("0.00")


# ------------------------------------------------------------------
# Dues
# ------------------------------------------------------------------
def dues_report(bills: Iterable[Bill],
                *,
                only: Optional[str] = None,
                status: Optional[str] = None) -> Dict[str, Any]:
    """
    only: "due" -> bills with an outstanding balance,
          "excess" -> bills paid beyond their grand total.
    """
    rows: List[Dict[str, Any]] = []
    tot_bill = tot_paid = tot_due = tot_excess = ZERO
    for bill in bills:
        t = bill_totals(bill)
        paid = D(bill.paid_amount)
        st = resolve_status(t.grand_total, paid, bool(bill.is_cancelled))
        excess = max(ZERO, paid - t.grand_total)

        if only == "due" and t.due_amount <= 0:
            continue
        if only == "excess" and excess <= 0:
            continue
        if status and st.value != status:
            continue

        rows.append({
            "sNo": len(rows) + 1,
            "date": bill.created_at,
            "billNumber": bill.bill_number,
            "patientId": bill.patient_id,
            "patientName": bill.patient_name,
            "mobileNumber": bill.patient_mobile,
            "status": st.value,
            "billAmount": money2(t.grand_total),
            "paidAmount": money2(paid),
            "due": money2(t.due_amount),
            "excess": money2(excess),
            "remarks": bill.remarks or "",
            "billedBy": bill.created_by,
        })
        tot_bill += t.grand_total
        tot_paid += paid
        tot_due += t.due_amount
        tot_excess += excess

    return {
        "bills": rows,
        "totals": {
            "billCount": len(rows),
            "totalBillAmount": money2(tot_bill),
            "totalPaidAmount": money2(tot_paid),
            "totalDue": money2(tot_due),
            "totalExcess": money2(tot_excess),
        },
    }


# ------------------------------------------------------------------
# Doctor consultation fees (TDS)
# ------------------------------------------------------------------
def doctor_consultation_report(
        bills: Iterable[Bill],
        *,
        tds_percent: Optional[Decimal] = None) -> Dict[str, Any]:
    tds_rate = D(settings.REPORT_TDS_PERCENT if tds_percent is None else
                 tds_percent) / Decimal("100")

    by_doctor: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    by_payment = {b: ZERO for b in PAY_BUCKETS}
    gross_total = tds_total = ZERO
    count = 0

    for bill in bills:
        if bill.is_cancelled:
            continue
        item = next((it for it in bill.items
                     if CONSULTATION_MARKER in (it.name or "").lower()), None)
        if item is None:
            continue

        fee = D(item.total)
        tds = fee * tds_rate
        net = fee - tds
        count += 1
        gross_total += fee
        tds_total += tds
        by_payment[_bucket(bill.payment_type)] += net

        key = bill.doctor_id
        doc = by_doctor.setdefault(
            key, {
                "doctorId": bill.doctor_id,
                "doctorName": bill.doctor_name,
                "billCount": 0,
                "grossFee": ZERO,
                "tds": ZERO,
                "netFee": ZERO,
            })
        doc["billCount"] += 1
        doc["grossFee"] += fee
        doc["tds"] += tds
        doc["netFee"] += net

    doctors = []
    for doc in by_doctor.values():
        doctors.append({
            **doc,
            "grossFee": money2(doc["grossFee"]),
            "tds": money2(doc["tds"]),
            "netFee": money2(doc["netFee"]),
        })

    net_total = gross_total - tds_total
    return {
        "tdsPercent": money2(tds_rate * 100),
        "doctors": doctors,
        "summary": {
            "billCount": count,
            "totalConsultationFees": money2(gross_total),
            "totalTDS": money2(tds_total),
            "netConsultationFees": money2(net_total),
            "averageFee": _avg(gross_total, count),
            "averageNetFee": _avg(net_total, count),
            "byPaymentType": {k: money2(v) for k, v in by_payment.items()},
        },
    }


# ------------------------------------------------------------------
# Discounts
# ------------------------------------------------------------------
def discount_report(bills: Iterable[Bill]) -> Dict[str, Any]:
    rows: List[Dict[str, Any]] = []
    total = ZERO
    by_type = {"percent": ZERO, "amount": ZERO}
    by_doctor: Dict[str, Decimal] = {}
    by_status: Dict[str, Dict[str, Any]] = {}
    largest = smallest = None

    for bill in bills:
        if D(bill.discount_value) <= 0:
            continue
        t = bill_totals(bill)
        st = resolve_status(t.grand_total, bill.paid_amount,
                            bool(bill.is_cancelled)).value
        amt = t.discount_amount
        pct = (amt * 100 / t.subtotal) if t.subtotal > 0 else ZERO

        row = {
            "billNumber": bill.bill_number,
            "date": bill.created_at,
            "patientName": bill.patient_name,
            "doctorName": bill.doctor_name,
            "discountType": bill.discount_type,
            "discountValue": D(bill.discount_value),
            "subtotal": money2(t.subtotal),
            "discountAmount": money2(amt),
            "discountPercent": money2(pct),
            "status": st,
        }
        rows.append(row)

        total += amt
        by_type[bill.discount_type] = by_type.get(bill.discount_type, ZERO) + amt
        doctor = bill.doctor_name or bill.doctor_id
        by_doctor[doctor] = by_doctor.get(doctor, ZERO) + amt
        s = by_status.setdefault(st, {"count": 0, "amount": ZERO})
        s["count"] += 1
        s["amount"] += amt
        if largest is None or amt > D(largest["discountAmount"]):
            largest = row
        if amt > 0 and (smallest is None or amt < D(smallest["discountAmount"])):
            smallest = row

    return {
        "bills": rows,
        "summary": {
            "discountedBills": len(rows),
            "totalDiscountAmount": money2(total),
            "averageDiscount": _avg(total, len(rows)),
            "byType": {k: money2(v) for k, v in by_type.items()},
            "byDoctor": {k: money2(v) for k, v in by_doctor.items()},
            "byStatus": {
                k: {"count": v["count"], "amount": money2(v["amount"])}
                for k, v in by_status.items()
            },
            "maxDiscount": largest,
            "minDiscount": smallest,
        },
    }


# ------------------------------------------------------------------
# Refunds (cancellation receipts)
# ------------------------------------------------------------------
def refund_report(receipts: Iterable[Receipt]) -> Dict[str, Any]:
    rows: List[Dict[str, Any]] = []
    by_method = {b: ZERO for b in PAY_BUCKETS}
    total = ZERO
    largest = ZERO
    for r in receipts:
        if r.type != ReceiptType.CANCELLATION.value:
            continue
        amt = D(r.amount)
        rows.append({
            "receiptNumber": r.receipt_number,
            "billNumber": r.bill_number,
            "date": r.date,
            "amount": money2(amt),
            "paymentType": r.payment_type,
            "reason": r.remarks,
            "cancelledBy": r.created_by,
        })
        by_method[_bucket(r.payment_type)] += amt
        total += amt
        largest = max(largest, amt)

    return {
        "refunds": rows,
        "summary": {
            "totalRefundTransactions": len(rows),
            "totalRefunds": money2(total),
            "averageRefund": _avg(total, len(rows)),
            "largestRefund": money2(largest),
            "byPaymentType": {k: money2(v) for k, v in by_method.items()},
        },
    }


# ------------------------------------------------------------------
# Receipt stats
# ------------------------------------------------------------------
def receipt_stats(receipts: Iterable[Receipt]) -> Dict[str, Any]:
    by_type: Dict[str, Dict[str, Any]] = {}
    by_method: Dict[str, Dict[str, Any]] = {}
    count = 0
    total = ZERO
    for r in receipts:
        amt = D(r.amount)
        count += 1
        total += amt
        t = by_type.setdefault(r.type, {"count": 0, "totalAmount": ZERO})
        t["count"] += 1
        t["totalAmount"] += amt
        if r.type == ReceiptType.PAYMENT.value:
            m = by_method.setdefault(r.payment_type or "",
                                     {"count": 0, "totalAmount": ZERO})
            m["count"] += 1
            m["totalAmount"] += amt

    return {
        "summary": {
            "totalReceipts": count,
            "totalAmount": money2(total),
        },
        "byType": [{
            "_id": k,
            "count": v["count"],
            "totalAmount": money2(v["totalAmount"]),
        } for k, v in sorted(by_type.items())],
        "paymentMethodStats": [{
            "_id": k or None,
            "count": v["count"],
            "totalAmount": money2(v["totalAmount"]),
        } for k, v in sorted(by_method.items())],
    }


# ------------------------------------------------------------------
# Collections (receipt-based cash-up)
# ------------------------------------------------------------------
def collection_report(receipts: Iterable[Receipt],
                      *,
                      payment_type: Optional[str] = None,
                      receipt_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Money in versus money out for a period.

    Creation receipts count as amount collected at the counter, payment
    receipts as dues collected later. Cancellation receipts are refunds
    and are netted off the gross. receipt_type narrows the collection
    side only.
    """
    collected = {b: ZERO for b in PAY_BUCKETS}
    dues = {b: ZERO for b in PAY_BUCKETS}
    refunds = {b: ZERO for b in PAY_BUCKETS}
    collections: List[Dict[str, Any]] = []
    refund_rows: List[Dict[str, Any]] = []

    for r in receipts:
        bucket = _bucket(r.payment_type)
        if payment_type and bucket != payment_type:
            continue
        amt = D(r.amount)
        row = {
            "receiptNumber": r.receipt_number,
            "billNumber": r.bill_number,
            "date": r.date,
            "type": r.type,
            "amount": money2(amt),
            "paymentType": bucket,
            "receivedBy": r.created_by,
        }
        if r.type == ReceiptType.CANCELLATION.value:
            refunds[bucket] += amt
            refund_rows.append(row)
            continue
        if r.type not in (ReceiptType.CREATION.value, ReceiptType.PAYMENT.value):
            continue
        if amt <= 0 or (receipt_type and r.type != receipt_type):
            continue
        if r.type == ReceiptType.CREATION.value:
            collected[bucket] += amt
        else:
            dues[bucket] += amt
        collections.append(row)

    gross = sum(collected.values(), ZERO) + sum(dues.values(), ZERO)
    refunded = sum(refunds.values(), ZERO)
    return {
        "collections": collections,
        "refunds": refund_rows,
        "summary": {
            "amountCollected": {k: money2(v) for k, v in collected.items()},
            "duesCollected": {k: money2(v) for k, v in dues.items()},
            "totalAmount": {
                k: money2(collected[k] + dues[k]) for k in PAY_BUCKETS
            },
            "refunds": {k: money2(v) for k, v in refunds.items()},
            "totalTransactions": len(collections),
            "totalRefundTransactions": len(refund_rows),
            "grossTotal": money2(gross),
            "totalRefunds": money2(refunded),
            "grandTotal": money2(gross - refunded),
        },
    }


# ------------------------------------------------------------------
# Collections per billing user
# ------------------------------------------------------------------
def user_collection_report(bills: Iterable[Bill],
                           *,
                           user: Optional[str] = None) -> Dict[str, Any]:
    by_user: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
    overall = {
        "billCount": 0,
        "totalAmount": ZERO,
        "byPaymentType": {b: ZERO for b in PAY_BUCKETS},
        "byStatus": {s.value: ZERO for s in BillStatus},
    }

    for bill in bills:
        name = bill.created_by or ""
        if user and name != user:
            continue
        t = bill_totals(bill)
        paid = D(bill.paid_amount)
        st = resolve_status(t.grand_total, paid, bool(bill.is_cancelled)).value
        bucket = _bucket(bill.payment_type)

        u = by_user.setdefault(
            name, {
                "user": name,
                "userId": bill.created_by_id,
                "billCount": 0,
                "totalAmount": ZERO,
                "byPaymentType": {b: ZERO for b in PAY_BUCKETS},
                "byStatus": {s.value: ZERO for s in BillStatus},
            })
        for acc in (u, overall):
            acc["billCount"] += 1
            acc["totalAmount"] += paid
            acc["byPaymentType"][bucket] += paid
            acc["byStatus"][st] += paid

    def _money(acc: Dict[str, Any]) -> Dict[str, Any]:
        return {
            **acc,
            "totalAmount": money2(acc["totalAmount"]),
            "byPaymentType": {k: money2(v) for k, v in acc["byPaymentType"].items()},
            "byStatus": {k: money2(v) for k, v in acc["byStatus"].items()},
        }

    return {
        "users": [_money(u) for u in by_user.values()],
        "summary": _money(overall),
    }


def status_counts(bills: Iterable[Bill]) -> Dict[str, int]:
    counts = {s.value: 0 for s in BillStatus}
    for bill in bills:
        t = bill_totals(bill)
        st = resolve_status(t.grand_total, bill.paid_amount,
                            bool(bill.is_cancelled))
        counts[st.value] += 1
    return counts


def report_period(date_from: Optional[datetime],
                  date_to: Optional[datetime]) -> Dict[str, Any]:
    return {"from": date_from, "to": date_to}
