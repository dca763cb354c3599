# hms_billing/api/deps.py
from __future__ import annotations

from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from hms_billing.core.config import settings
from hms_billing.db.session import SessionLocal
from hms_billing.services.billing_ledger import BillingLedger
from hms_billing.services.billing_repository import SqlBillRepository
from hms_billing.utils.jwt import SYSTEM_USER, CurrentUser, decode_user


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _extract_bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def current_user(authorization: Optional[str] = Header(
        default=None)) -> CurrentUser:
    token = _extract_bearer(authorization)
    if not token:
        if settings.AUTH_REQUIRED:
            raise HTTPException(status_code=401, detail="Not authenticated")
        return SYSTEM_USER

    user = decode_user(token)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


def get_ledger(db: Session = Depends(get_db)) -> BillingLedger:
    return BillingLedger(SqlBillRepository(db))
