from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hms_billing.api.deps import get_db
from hms_billing.db.base import Base
from hms_billing.main import app
from hms_billing.services.billing_ledger import BillingLedger, BillLocks
from hms_billing.services.billing_repository import SqlBillRepository
from hms_billing.utils.jwt import CurrentUser


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine,
                        autocommit=False,
                        autoflush=False,
                        expire_on_commit=False,
                        future=True)


@pytest.fixture()
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def ledger(db):
    return BillingLedger(SqlBillRepository(db), locks=BillLocks())


@pytest.fixture()
def user():
    return CurrentUser(id=7, name="frontdesk")


@pytest.fixture()
def client(session_factory):

    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.pop(get_db, None)


def bill_payload(**overrides):
    """Front-desk style create payload (camelCase, like the web client sends)."""
    data = {
        "patientId": "P-1001",
        "patientName": "Asha Raman",
        "patientMobile": "9876543210",
        "doctorId": "D-7",
        "doctorName": "Dr. Kumar",
        "billingItems": [
            {"name": "Consultation Fee", "price": 500, "quantity": 1, "tax": 0},
            {"name": "CBC", "code": "LAB01", "price": 250, "quantity": 2, "tax": 0},
        ],
        "discount": {"type": "percent", "value": 0},
        "payment": {"type": "cash", "paid": 0},
        "remarks": "",
    }
    data.update(overrides)
    return data


@pytest.fixture()
def make_payload():
    return bill_payload
