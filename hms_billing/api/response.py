# FILE: hms_billing/api/response.py
"""
Envelope for every billing response.

    success: {"ok": true,  "data": ..., "meta": {...}?}
    failure: {"ok": false, "error": {"msg", "code", "details"}}

Money leaves the service as strings ("900.00") so clients never see
binary-float artefacts.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

_ENCODERS = {Decimal: str}


def _send(payload: Dict[str, Any], status_code: int) -> JSONResponse:
    body = jsonable_encoder(payload, custom_encoder=_ENCODERS)
    return JSONResponse(status_code=status_code, content=body)


def ok(data: Any = None,
       *,
       meta: Optional[Dict[str, Any]] = None,
       status_code: int = 200) -> JSONResponse:
    payload: Dict[str, Any] = {"ok": True, "data": data}
    if meta is not None:
        payload["meta"] = meta
    return _send(payload, status_code)


def err(msg: str = "Something went wrong",
        *,
        status_code: int = 400,
        code: Optional[str] = None,
        details: Any = None) -> JSONResponse:
    error = {"msg": msg, "code": code, "details": details}
    return _send({"ok": False, "error": error}, status_code)
