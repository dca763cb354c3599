# hms_billing/db/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """All billing tables (bills, items, receipts, number series) inherit from this."""
    pass


# Import all models so metadata is complete for create_all()
from hms_billing.models import billing  # noqa: F401,E402
