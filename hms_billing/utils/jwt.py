# hms_billing/utils/jwt.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from jose import jwt, JWTError

from hms_billing.core.config import settings


@dataclass(frozen=True)
class CurrentUser:
    """Acting user recorded as createdBy on bills and receipts."""
    id: Optional[int]
    name: str


SYSTEM_USER = CurrentUser(id=None, name="system")


def create_access_token(
    *,
    subject: str,
    user_id: Optional[int] = None,
    expires_minutes: int = 24 * 60,
) -> str:
    now = datetime.utcnow()
    payload = {
        "sub": subject,  # user display / login name
        "uid": user_id,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_user(token: str) -> Optional[CurrentUser]:
    """Returns None when the token is invalid or carries no subject."""
    try:
        payload = jwt.decode(token,
                             settings.JWT_SECRET,
                             algorithms=[settings.JWT_ALG])
    except JWTError:
        return None
    sub = payload.get("sub")
    if not sub:
        return None
    uid = payload.get("uid")
    return CurrentUser(id=int(uid) if uid is not None else None, name=str(sub))
