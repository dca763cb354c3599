from decimal import Decimal
from io import BytesIO

from openpyxl import load_workbook

from hms_billing.schemas.billing import AddPaymentIn, BillCreate
from hms_billing.services.billing_reports import (
    collection_report,
    discount_report,
    doctor_consultation_report,
    dues_report,
    receipt_stats,
    refund_report,
    user_collection_report,
)
from hms_billing.services.excel_export import build_dues_excel


def _seed(ledger, user, make_payload):
    """
    A: 1000, paid 400 cash          -> partial, due 600
    B: 1000 - 10%, paid 1000 card   -> paid, excess 100
    C: 1000, paid 200 upi, cancelled
    """
    a = ledger.create_bill(
        BillCreate.model_validate(make_payload(payment={"type": "cash", "paid": 400})),
        user=user)
    b = ledger.create_bill(
        BillCreate.model_validate(
            make_payload(doctorId="D-9",
                         doctorName="Dr. Mehta",
                         discount={"type": "percent", "value": 10},
                         payment={"type": "card", "paid": 1000, "cardNumber": "1111"})),
        user=user)
    c = ledger.create_bill(
        BillCreate.model_validate(make_payload()), user=user)
    ledger.add_payment(
        c.id,
        AddPaymentIn.model_validate({"amount": 200, "method": "upi",
                                     "utrNumber": "UTR77889"}),
        user=user)
    ledger.cancel_bill(c.id, "Wrong patient", user=user)
    return a, b, c


def test_dues_report(ledger, user, make_payload):
    a, b, c = _seed(ledger, user, make_payload)
    report = dues_report(ledger.list_bills())

    rows = {r["billNumber"]: r for r in report["bills"]}
    assert rows[a.bill_number]["due"] == Decimal("600.00")
    assert rows[a.bill_number]["status"] == "partial"
    assert rows[b.bill_number]["excess"] == Decimal("100.00")
    assert rows[c.bill_number]["status"] == "cancelled"
    assert report["totals"]["billCount"] == 3

    only_due = dues_report(ledger.list_bills(), only="due")
    assert {r["billNumber"] for r in only_due["bills"]} == {a.bill_number, c.bill_number}

    only_excess = dues_report(ledger.list_bills(), only="excess")
    assert [r["billNumber"] for r in only_excess["bills"]] == [b.bill_number]
    assert only_excess["totals"]["totalExcess"] == Decimal("100.00")

    partial = dues_report(ledger.list_bills(), status="partial")
    assert [r["billNumber"] for r in partial["bills"]] == [a.bill_number]


def test_doctor_consultation_report_skips_cancelled(ledger, user, make_payload):
    _seed(ledger, user, make_payload)
    report = doctor_consultation_report(ledger.list_bills())

    s = report["summary"]
    assert s["billCount"] == 2
    assert s["totalConsultationFees"] == Decimal("1000.00")
    assert s["totalTDS"] == Decimal("100.00")
    assert s["netConsultationFees"] == Decimal("900.00")
    assert s["byPaymentType"]["cash"] == Decimal("450.00")
    assert s["byPaymentType"]["card"] == Decimal("450.00")
    assert s["byPaymentType"]["upi"] == Decimal("0.00")
    assert {d["doctorId"] for d in report["doctors"]} == {"D-7", "D-9"}


def test_discount_report(ledger, user, make_payload):
    _, b, _ = _seed(ledger, user, make_payload)
    report = discount_report(ledger.list_bills())
    assert [r["billNumber"] for r in report["bills"]] == [b.bill_number]
    s = report["summary"]
    assert s["totalDiscountAmount"] == Decimal("100.00")
    assert s["byType"]["percent"] == Decimal("100.00")
    assert s["byDoctor"] == {"Dr. Mehta": Decimal("100.00")}
    assert s["byStatus"]["paid"]["count"] == 1
    assert s["maxDiscount"]["billNumber"] == b.bill_number


def test_refund_report(ledger, user, make_payload):
    _, _, c = _seed(ledger, user, make_payload)
    report = refund_report(ledger.list_all_receipts(receipt_type="cancellation"))
    assert report["summary"]["totalRefundTransactions"] == 1
    assert report["summary"]["totalRefunds"] == Decimal("200.00")
    assert report["summary"]["byPaymentType"]["upi"] == Decimal("200.00")
    assert report["refunds"][0]["billNumber"] == c.bill_number
    assert report["refunds"][0]["reason"] == "Wrong patient"


def test_receipt_stats(ledger, user, make_payload):
    _seed(ledger, user, make_payload)
    stats = receipt_stats(ledger.list_all_receipts())
    assert stats["summary"]["totalReceipts"] == 5
    by_type = {r["_id"]: r["count"] for r in stats["byType"]}
    assert by_type == {"cancellation": 1, "creation": 3, "payment": 1}
    methods = {r["_id"]: r["totalAmount"] for r in stats["paymentMethodStats"]}
    assert methods == {"upi": Decimal("200.00")}


def test_collection_report_nets_refunds(ledger, user, make_payload):
    _seed(ledger, user, make_payload)
    report = collection_report(ledger.list_all_receipts())

    s = report["summary"]
    assert s["amountCollected"]["cash"] == Decimal("400.00")
    assert s["amountCollected"]["card"] == Decimal("1000.00")
    assert s["duesCollected"]["upi"] == Decimal("200.00")
    assert s["totalAmount"]["upi"] == Decimal("200.00")
    assert s["grossTotal"] == Decimal("1600.00")
    assert s["refunds"]["upi"] == Decimal("200.00")
    assert s["totalRefunds"] == Decimal("200.00")
    assert s["grandTotal"] == Decimal("1400.00")
    # the zero-amount creation receipt of the cancelled bill is not a collection
    assert s["totalTransactions"] == 3
    assert s["totalRefundTransactions"] == 1


def test_collection_report_filters(ledger, user, make_payload):
    _seed(ledger, user, make_payload)
    receipts = ledger.list_all_receipts()

    upi = collection_report(receipts, payment_type="upi")["summary"]
    assert upi["grossTotal"] == Decimal("200.00")
    assert upi["grandTotal"] == Decimal("0.00")

    dues_only = collection_report(receipts, receipt_type="payment")["summary"]
    assert dues_only["totalTransactions"] == 1
    assert dues_only["amountCollected"]["cash"] == Decimal("0.00")
    assert dues_only["totalRefundTransactions"] == 1


def test_user_collection_report(ledger, user, make_payload):
    _seed(ledger, user, make_payload)
    report = user_collection_report(ledger.list_bills())

    assert [u["user"] for u in report["users"]] == ["frontdesk"]
    row = report["users"][0]
    assert row["userId"] == 7
    assert row["billCount"] == 3
    assert row["totalAmount"] == Decimal("1600.00")
    assert row["byPaymentType"] == {
        "cash": Decimal("400.00"),
        "card": Decimal("1000.00"),
        "upi": Decimal("200.00"),
        "neft": Decimal("0.00"),
    }
    assert row["byStatus"]["partial"] == Decimal("400.00")
    assert row["byStatus"]["paid"] == Decimal("1000.00")
    assert row["byStatus"]["cancelled"] == Decimal("200.00")
    assert report["summary"]["totalAmount"] == Decimal("1600.00")

    other = user_collection_report(ledger.list_bills(), user="night-shift")
    assert other["users"] == []
    assert other["summary"]["billCount"] == 0


def test_dues_excel_export(ledger, user, make_payload):
    _seed(ledger, user, make_payload)
    content = build_dues_excel(dues_report(ledger.list_bills()))
    ws = load_workbook(BytesIO(content)).active
    assert ws.title == "Dues"
    assert ws["A1"].value == "S.No"
    assert ws.max_row == 5
    assert ws.cell(row=5, column=5).value == "TOTAL"


def test_report_routes(client, make_payload):
    client.post("/api/bills", json=make_payload(payment={"type": "cash", "paid": 100}))

    resp = client.get("/api/reports/dues", params={"only": "due"})
    assert resp.status_code == 200
    assert resp.json()["data"]["totals"]["totalDue"] == "900.00"

    resp = client.get("/api/reports/dues/export")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")

    resp = client.get("/api/reports/doctor-consultation")
    assert resp.json()["data"]["summary"]["totalTDS"] == "50.00"

    resp = client.get("/api/receipts/stats")
    assert resp.json()["data"]["summary"]["totalReceipts"] == 1


def test_collection_routes(client, make_payload):
    client.post("/api/bills", json=make_payload(payment={"type": "cash", "paid": 300}))
    client.post("/api/bills", json=make_payload(
        payment={"type": "upi", "paid": 150, "utrNumber": "UTR12345"}))

    resp = client.get("/api/reports/collection")
    assert resp.status_code == 200
    s = resp.json()["data"]["summary"]
    assert s["amountCollected"]["cash"] == "300.00"
    assert s["amountCollected"]["upi"] == "150.00"
    assert s["grandTotal"] == "450.00"

    resp = client.get("/api/reports/collection", params={"payment_type": "cash"})
    assert resp.json()["data"]["summary"]["grossTotal"] == "300.00"

    resp = client.get("/api/reports/collection", params={"payment_type": "cheque"})
    assert resp.status_code == 422

    resp = client.get("/api/reports/user-collection")
    assert resp.status_code == 200
    summary = resp.json()["data"]["summary"]
    assert summary["billCount"] == 2
    assert summary["totalAmount"] == "450.00"
