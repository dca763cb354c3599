# FILE: hms_billing/client.py
"""
Thin HTTP client for the billing API (front desk / kiosk integrations).

Mutations are sent exactly once. A network failure surfaces as
BillingTransportError and the caller decides whether to re-fetch the bill
before trying again; retrying blindly could record a payment twice.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from hms_billing.services.billing_errors import (
    ERRORS_BY_CODE,
    BillingConsistencyError,
    BillingError,
    BillingTransportError,
)

logger = logging.getLogger(__name__)


class BillingApiClient:

    def __init__(self,
                 base_url: str,
                 *,
                 session=None,
                 token: Optional[str] = None,
                 timeout: float = 15,
                 api_prefix: str = "/api"):
        self.base_url = base_url.rstrip("/") + api_prefix
        self.session = session or requests.Session()
        self.token = token
        self.timeout = timeout

    # --------------------------------------------------------
    # plumbing
    # --------------------------------------------------------
    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self,
                 method: str,
                 path: str,
                 *,
                 json: Any = None,
                 params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            resp = self.session.request(method,
                                        url,
                                        json=json,
                                        params=params or None,
                                        headers=self._headers(),
                                        timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Billing API %s %s failed: %s", method, url, e)
            raise BillingTransportError(f"Billing API unreachable: {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = None

        if 200 <= resp.status_code < 300 and isinstance(body, dict) and body.get("ok"):
            return body.get("data")

        self._raise_error(resp.status_code, body)

    @staticmethod
    def _raise_error(status_code: int, body: Any) -> None:
        error = (body or {}).get("error") if isinstance(body, dict) else None
        if not isinstance(error, dict):
            logger.error("Billing API returned HTTP %s without an error body",
                         status_code)
            raise BillingTransportError(
                f"Unexpected response from billing API (HTTP {status_code})")

        msg = error.get("msg") or f"HTTP {status_code}"
        details = error.get("details")
        cls = ERRORS_BY_CODE.get(error.get("code") or "", BillingError)
        if cls is BillingConsistencyError:
            problems = details.get("problems") if isinstance(details, dict) else None
            exc = BillingConsistencyError(msg, problems=problems)
        else:
            exc = cls(msg, details=details)
        if cls is BillingError:
            exc.status_code = status_code
        raise exc

    # --------------------------------------------------------
    # operations
    # --------------------------------------------------------
    def create_bill(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/bills", json=payload)

    def get_bill(self, bill_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/bills/{int(bill_id)}")

    def get_bill_by_number(self, bill_number: str) -> Dict[str, Any]:
        return self._request("GET", f"/bills/number/{bill_number}")

    def add_payment(self,
                    bill_id: int,
                    amount,
                    method: str,
                    *,
                    card_number: Optional[str] = None,
                    utr_number: Optional[str] = None,
                    remarks: Optional[str] = None) -> Dict[str, Any]:
        payload = {
            "amount": str(amount),
            "method": method,
            "cardNumber": card_number,
            "utrNumber": utr_number,
            "remarks": remarks,
        }
        return self._request("POST",
                             f"/bills/{int(bill_id)}/payments",
                             json=payload)

    def update_items(self,
                     bill_id: int,
                     items: List[Dict[str, Any]],
                     *,
                     discount: Optional[Dict[str, Any]] = None,
                     remarks: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"billingItems": items, "remarks": remarks}
        if discount is not None:
            payload["discount"] = discount
        return self._request("PUT", f"/bills/{int(bill_id)}", json=payload)

    def cancel_bill(self, bill_id: int, reason: str) -> Dict[str, Any]:
        return self._request("POST",
                             f"/bills/{int(bill_id)}/cancel",
                             json={"reason": reason})

    def list_receipts(self, bill_number: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/receipts/bill/{bill_number}")

    def list_bills(self,
                   *,
                   date_from=None,
                   date_to=None,
                   doctor_id: Optional[str] = None,
                   status: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {
            "date_from": date_from.isoformat() if date_from else None,
            "date_to": date_to.isoformat() if date_to else None,
            "doctor_id": doctor_id,
            "status": status,
        }
        return self._request("GET", "/bills", params=params)
