# hms_billing/core/config.py
import os
from decimal import Decimal
from typing import List
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "HMS Billing Ledger")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")

    # CORS (env takes priority)
    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ))

    # ---------- Database ----------
    DATABASE_URL: str = os.getenv("DATABASE_URL",
                                  "sqlite:///./hms_billing.db")
    DB_ECHO: bool = _flag("DB_ECHO")

    # ---------- Security ----------
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-this")
    JWT_ALG: str = os.getenv("JWT_ALG", "HS256")
    # when false, requests without a token act as the "system" user
    AUTH_REQUIRED: bool = _flag("AUTH_REQUIRED")

    # ---------- Billing ----------
    BILL_NUMBER_PREFIX: str = os.getenv("BILL_NUMBER_PREFIX", "BILL-")
    RECEIPT_NUMBER_PREFIX: str = os.getenv("RECEIPT_NUMBER_PREFIX", "RCPT-")
    NUMBER_PADDING: int = int(os.getenv("NUMBER_PADDING", "6"))
    BILLING_PAID_EPSILON: Decimal = Decimal(
        os.getenv("BILLING_PAID_EPSILON", "0.01") or "0.01")

    # ---------- Reports ----------
    REPORT_TDS_PERCENT: Decimal = Decimal(
        os.getenv("REPORT_TDS_PERCENT", "10") or "10")

    # ---------- Logging ----------
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
