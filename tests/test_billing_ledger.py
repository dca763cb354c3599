from decimal import Decimal

import pytest

from hms_billing.models.billing import (
    BillingNumberSeries,
    BillStatus,
    NumberDocType,
    ReceiptImmutableError,
)
from hms_billing.schemas.billing import AddPaymentIn, BillCreate, BillUpdate
from hms_billing.services.billing_errors import (
    BillNotFoundError,
    BillingConsistencyError,
    BillingStateError,
    BillingValidationError,
    ReceiptNotFoundError,
)
from hms_billing.services.billing_calc import bill_totals
from hms_billing.services.billing_ledger import BillingLedger, BillLocks
from hms_billing.services.billing_receipts import ReceiptTrail, numbers_increasing
from hms_billing.services.billing_repository import SqlBillRepository
from hms_billing.services.billing_status import resolve_status


def _create(ledger, user, make_payload, **kw):
    return ledger.create_bill(BillCreate.model_validate(make_payload(**kw)),
                              user=user)


def _pay(ledger, user, bill, amount, method="cash", **kw):
    data = AddPaymentIn.model_validate({"amount": amount, "method": method, **kw})
    return ledger.add_payment(bill.id, data, user=user)


def test_create_bill_derives_totals_and_creation_receipt(ledger, user, make_payload):
    bill = _create(ledger, user, make_payload,
                   discount={"type": "percent", "value": 10},
                   payment={"type": "cash", "paid": 300})

    assert bill.bill_number == "BILL-000001"
    assert bill.subtotal == Decimal("1000")
    assert bill.discount_amount == Decimal("100")
    assert bill.grand_total == Decimal("900")
    assert bill.due_amount == Decimal("600")
    assert bill.status == BillStatus.PARTIAL.value
    assert bill.created_by == "frontdesk"

    assert len(bill.receipts) == 1
    r = bill.receipts[0]
    assert r.type == "creation"
    assert r.amount == Decimal("300.00")
    assert r.receipt_number == "RCPT-000001"
    assert r.changes["totals"]["grandTotal"] == "900.00"
    assert ledger.verify_bill(bill) == []


def test_create_requires_items(ledger, user, make_payload):
    with pytest.raises(BillingValidationError) as ei:
        _create(ledger, user, make_payload, billingItems=[])
    assert ei.value.field == "billingItems"


def test_create_requires_patient(ledger, user, make_payload):
    with pytest.raises(BillingValidationError) as ei:
        _create(ledger, user, make_payload, patientId="  ")
    assert ei.value.field == "patientId"


def test_card_payment_at_creation_needs_last_four(ledger, user, make_payload):
    with pytest.raises(BillingValidationError):
        _create(ledger, user, make_payload,
                payment={"type": "card", "paid": 100, "cardNumber": "12"})

    bill = _create(ledger, user, make_payload,
                   payment={"type": "card", "paid": 100, "cardNumber": "4242"})
    assert bill.card_number == "4242"


def test_payments_accumulate_until_paid(ledger, user, make_payload):
    bill = _create(ledger, user, make_payload)
    assert bill.status == BillStatus.ACTIVE.value

    bill = _pay(ledger, user, bill, "400")
    assert bill.paid_amount == Decimal("400")
    assert bill.status == BillStatus.PARTIAL.value

    bill = _pay(ledger, user, bill, "600", method="upi", utrNumber="UTR123456")
    assert bill.paid_amount == Decimal("1000")
    assert bill.status == BillStatus.PAID.value
    assert bill.payment_type == "upi"
    assert bill.utr_number == "UTR123456"

    types = [r.type for r in bill.receipts]
    assert types == ["creation", "payment", "payment"]
    assert ReceiptTrail.receipted_paid(bill.receipts) == Decimal("1000")
    assert ledger.verify_bill(bill.id) == []


@pytest.mark.parametrize("amount", ["0", "-5", "0.001"])
def test_payment_amount_must_be_positive(ledger, user, make_payload, amount):
    bill = _create(ledger, user, make_payload)
    with pytest.raises(BillingValidationError):
        _pay(ledger, user, bill, amount)
    assert len(ledger.get_bill(bill.id).receipts) == 1


def test_upi_payment_without_utr_rejected(ledger, user, make_payload):
    bill = _create(ledger, user, make_payload)
    with pytest.raises(BillingValidationError) as ei:
        _pay(ledger, user, bill, "100", method="upi")
    assert ei.value.field == "payment.utrNumber"


def test_overpayment_is_kept_and_flagged(ledger, user, make_payload):
    bill = _create(ledger, user, make_payload)
    bill = _pay(ledger, user, bill, "1200")
    assert bill.status == BillStatus.PAID.value
    assert bill.due_amount == Decimal("0")
    problems = ledger.verify_bill(bill)
    assert any("overpaid" in p for p in problems)


def test_item_edit_emits_modification_receipt_with_delta(ledger, user, make_payload):
    bill = _create(ledger, user, make_payload, payment={"type": "cash", "paid": 1000})
    assert bill.status == BillStatus.PAID.value

    update = BillUpdate.model_validate({
        "billingItems": [
            {"name": "Consultation Fee", "price": 500, "quantity": 1},
            {"name": "CBC", "price": 250, "quantity": 2},
            {"name": "X-Ray", "price": 400, "quantity": 1},
        ]
    })
    bill = ledger.update_items(bill.id, update, user=user)

    assert bill.grand_total == Decimal("1400")
    assert bill.due_amount == Decimal("400")
    assert bill.status == BillStatus.PARTIAL.value

    mod = bill.receipts[-1]
    assert mod.type == "modification"
    assert mod.amount == Decimal("400.00")
    assert mod.changes["before"]["grandTotal"] == "1000.00"
    assert mod.changes["after"]["grandTotal"] == "1400.00"
    assert "1000.00 -> 1400.00" in mod.changes["description"]
    assert ledger.verify_bill(bill) == []


def test_item_edit_without_changes_rejected(ledger, user, make_payload):
    bill = _create(ledger, user, make_payload)
    same = BillUpdate.model_validate({
        "billingItems": make_payload()["billingItems"],
    })
    with pytest.raises(BillingValidationError):
        ledger.update_items(bill.id, same, user=user)


def test_cancel_records_refund_and_blocks_mutations(ledger, user, make_payload):
    bill = _create(ledger, user, make_payload,
                   payment={"type": "card", "paid": 250, "cardNumber": "1234"})
    bill = ledger.cancel_bill(bill.id, "Duplicate bill", user=user)

    assert bill.is_cancelled is True
    assert bill.status == BillStatus.CANCELLED.value
    assert bill.paid_amount == Decimal("250")
    cancel = bill.receipts[-1]
    assert cancel.type == "cancellation"
    assert cancel.amount == Decimal("250.00")
    assert cancel.payment_type == "card"
    assert cancel.remarks == "Duplicate bill"

    with pytest.raises(BillingStateError):
        _pay(ledger, user, bill, "10")
    with pytest.raises(BillingStateError):
        ledger.cancel_bill(bill.id, "again", user=user)
    with pytest.raises(BillingStateError):
        ledger.update_items(
            bill.id,
            BillUpdate.model_validate({"billingItems": [{"name": "X", "price": 1}]}),
            user=user)

    assert len(ledger.get_bill(bill.id).receipts) == 2
    assert ledger.verify_bill(bill) == []


def test_cancel_requires_reason(ledger, user, make_payload):
    bill = _create(ledger, user, make_payload)
    with pytest.raises(BillingValidationError):
        ledger.cancel_bill(bill.id, "   ", user=user)
    assert ledger.get_bill(bill.id).is_cancelled is False


def test_missing_bill_and_receipt(ledger, user):
    with pytest.raises(BillNotFoundError):
        ledger.get_bill(999)
    with pytest.raises(BillNotFoundError):
        ledger.get_bill_by_number("BILL-999999")
    with pytest.raises(ReceiptNotFoundError):
        ledger.get_receipt("RCPT-999999")


def test_receipt_numbers_increase_across_bills(ledger, user, make_payload):
    a = _create(ledger, user, make_payload)
    b = _create(ledger, user, make_payload)
    _pay(ledger, user, a, "100")

    rows = ledger.list_all_receipts()
    numbers = [r.receipt_number for r in rows]
    assert numbers == ["RCPT-000001", "RCPT-000002", "RCPT-000003"]
    assert [r.bill_number for r in ledger.list_receipts(a.bill_number)] == [
        a.bill_number, a.bill_number
    ]
    assert b.bill_number == "BILL-000002"


def test_receipts_are_immutable(ledger, db, user, make_payload):
    bill = _create(ledger, user, make_payload)
    r = bill.receipts[0]
    r.remarks = "tampered"
    with pytest.raises(ReceiptImmutableError):
        db.flush()
    db.rollback()


def test_strict_verify_raises_on_tampered_paid(ledger, db, user, make_payload):
    bill = _create(ledger, user, make_payload)
    bill.paid_amount = Decimal("50")
    with pytest.raises(BillingConsistencyError) as ei:
        ledger.verify_bill(bill, strict=True)
    assert any("receipted" in p for p in ei.value.problems)
    db.rollback()


def test_list_bills_filters(ledger, user, make_payload):
    _create(ledger, user, make_payload)
    _create(ledger, user, make_payload, doctorId="D-9",
            payment={"type": "cash", "paid": 1000})

    assert len(ledger.list_bills()) == 2
    assert [b.doctor_id for b in ledger.list_bills(doctor_id="D-9")] == ["D-9"]
    assert len(ledger.list_bills(status="paid")) == 1
    with pytest.raises(BillingValidationError):
        ledger.list_bills(status="settled")


def _reload(session_factory, bill_id):
    s = session_factory()
    fresh = BillingLedger(SqlBillRepository(s), locks=BillLocks())
    return s, fresh, fresh.get_bill(bill_id)


def test_discount_value_stored_at_column_scale(ledger, session_factory, user,
                                               make_payload):
    bill = _create(ledger, user, make_payload,
                   billingItems=[{"name": "Surgery Package", "price": "1000000"}],
                   discount={"type": "percent", "value": "33.333333"},
                   payment={"type": "cash", "paid": "666666.67"})

    assert bill.discount_value == Decimal("33.3333")
    assert bill.grand_total == Decimal("666667.00")
    assert bill.status == BillStatus.PARTIAL.value

    s, fresh, again = _reload(session_factory, bill.id)
    try:
        t = bill_totals(again)
        assert t.grand_total == bill.grand_total
        assert t.due_amount == bill.due_amount
        assert again.status == bill.status
        assert resolve_status(t.grand_total, again.paid_amount,
                              bool(again.is_cancelled)).value == again.status
        assert fresh.verify_bill(again) == []
    finally:
        s.close()


def test_quantity_and_line_total_stored_at_column_scale(ledger, session_factory,
                                                        user, make_payload):
    bill = _create(ledger, user, make_payload,
                   billingItems=[{"name": "Saline", "price": "10.01",
                                  "quantity": "0.3333"}])

    item = bill.items[0]
    assert item.quantity == Decimal("0.333")
    assert item.total == Decimal("3.3333")

    s, fresh, again = _reload(session_factory, bill.id)
    try:
        assert again.items[0].quantity == Decimal("0.333")
        assert bill_totals(again).grand_total == bill.grand_total
        assert fresh.verify_bill(again) == []
    finally:
        s.close()


def test_quantity_rounding_to_zero_rejected(ledger, user, make_payload):
    with pytest.raises(BillingValidationError) as ei:
        _create(ledger, user, make_payload,
                billingItems=[{"name": "Drops", "price": 5, "quantity": "0.0004"}])
    assert ei.value.field == "billingItems[0].quantity"


def test_bill_locks_released_after_use():
    locks = BillLocks()
    with locks.hold(1):
        with locks.hold(2):
            assert len(locks) == 2
        assert len(locks) == 1
    assert len(locks) == 0

    with pytest.raises(RuntimeError):
        with locks.hold(3):
            raise RuntimeError("boom")
    assert len(locks) == 0


@pytest.mark.parametrize("numbers, expected", [
    (["RCPT-000001", "RCPT-000002"], True),
    (["RCPT-999999", "RCPT-1000000"], True),
    (["RCPT-000002", "RCPT-000001"], False),
    (["RCPT-000003", "RCPT-000003"], False),
    (["RCPT-000001", "RCPT-"], False),
    ([], True),
])
def test_receipt_numbers_compare_by_serial(numbers, expected):
    assert numbers_increasing(numbers) is expected


def test_verify_past_padding_width(ledger, db, user, make_payload):
    _create(ledger, user, make_payload)
    series = db.query(BillingNumberSeries).filter(
        BillingNumberSeries.doc_type == NumberDocType.RECEIPT.value).one()
    series.next_number = 999999
    db.commit()

    bill = _create(ledger, user, make_payload)
    _pay(ledger, user, bill, 100)
    assert [r.receipt_number for r in bill.receipts] == [
        "RCPT-999999", "RCPT-1000000"
    ]
    assert ledger.verify_bill(bill) == []
