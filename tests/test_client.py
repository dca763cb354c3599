import pytest
import requests

from hms_billing.client import BillingApiClient
from hms_billing.services.billing_errors import (
    BillNotFoundError,
    BillingError,
    BillingStateError,
    BillingTransportError,
    BillingValidationError,
)


@pytest.fixture()
def api(client):
    # TestClient speaks the same request()/status_code/json() surface
    return BillingApiClient("http://testserver", session=client)


def test_client_round_trip(api, make_payload):
    bill = api.create_bill(make_payload())
    assert bill["status"] == "active"

    bill = api.add_payment(bill["_id"], "250.50", "cash")
    assert bill["payment"]["paid"] == "250.50"
    assert bill["status"] == "partial"

    bill = api.update_items(bill["_id"], [{"name": "Consultation Fee", "price": 500}])
    assert bill["totals"]["grandTotal"] == "500.00"

    receipts = api.list_receipts(bill["billNumber"])
    assert [r["type"] for r in receipts] == ["creation", "payment", "modification"]

    assert len(api.list_bills(status="partial")) == 1

    bill = api.cancel_bill(bill["_id"], "Duplicate")
    assert bill["status"] == "cancelled"
    assert api.get_bill(bill["_id"])["cancelReason"] == "Duplicate"


def test_client_maps_error_codes(api, make_payload):
    with pytest.raises(BillNotFoundError):
        api.get_bill(12345)

    bill = api.create_bill(make_payload())
    with pytest.raises(BillingValidationError) as ei:
        api.add_payment(bill["_id"], "100", "card", card_number="12")
    assert ei.value.details[0]["field"] == "payment.cardNumber"

    api.cancel_bill(bill["_id"], "No show")
    with pytest.raises(BillingStateError):
        api.add_payment(bill["_id"], "100", "cash")


def test_client_unauthorized_is_plain_billing_error(api, make_payload):
    api.token = "garbage"
    with pytest.raises(BillingError) as ei:
        api.create_bill(make_payload())
    assert ei.value.status_code == 401


class _DeadSession:

    def __init__(self):
        self.calls = 0

    def request(self, *args, **kwargs):
        self.calls += 1
        raise requests.ConnectionError("connection refused")


def test_transport_failure_is_not_retried(make_payload):
    session = _DeadSession()
    api = BillingApiClient("http://billing.local", session=session)
    with pytest.raises(BillingTransportError):
        api.add_payment(1, "100", "cash")
    assert session.calls == 1
