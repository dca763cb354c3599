# FILE: hms_billing/services/billing_errors.py
from __future__ import annotations

from typing import Any, Dict, List, Optional


# ============================================================
# Errors
# ============================================================
class BillingError(RuntimeError):
    code = "billing_error"
    status_code = 400

    def __init__(self, msg: str, *, details: Any = None):
        super().__init__(msg)
        self.msg = msg
        self.details = details


class BillingValidationError(BillingError):
    """Bad input rejected before it reaches the ledger (field-level)."""
    code = "validation_error"
    status_code = 422

    def __init__(self, msg: str, *, field: Optional[str] = None,
                 details: Any = None):
        if details is None and field:
            details = [{"field": field, "msg": msg}]
        super().__init__(msg, details=details)
        self.field = field


class BillingStateError(BillingError):
    """Mutation not allowed in the bill's current state."""
    code = "state_error"
    status_code = 409


class BillingConflictError(BillingStateError):
    """Another writer changed the bill while this mutation was in flight."""
    code = "conflict"


class BillNotFoundError(BillingError):
    code = "not_found"
    status_code = 404


class ReceiptNotFoundError(BillingError):
    code = "not_found"
    status_code = 404


class BillingConsistencyError(BillingError):
    """Totals / payment / receipt triple found out of invariant."""
    code = "consistency_error"
    status_code = 500

    def __init__(self, msg: str, *, problems: Optional[List[str]] = None):
        super().__init__(msg, details={"problems": problems or []})
        self.problems = problems or []


class BillingTransportError(BillingError):
    """Network / API failure seen by the HTTP client."""
    code = "transport_error"
    status_code = 503


ERRORS_BY_CODE: Dict[str, type] = {
    "validation_error": BillingValidationError,
    "state_error": BillingStateError,
    "conflict": BillingConflictError,
    "not_found": BillNotFoundError,
    "consistency_error": BillingConsistencyError,
}
