"""
Shared fixtures: a fresh SQLite database per test, seeded branches and a
customer, and bearer headers for each role.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")

import pytest
from decimal import Decimal
from uuid import uuid4
from fastapi.testclient import TestClient

from branchbill.database.database import Base, SessionLocal, dispose_engine, init_engine
from branchbill.modules.auth.utils import create_access_token
from branchbill.modules.branches.models import Branch
from branchbill.modules.customers.models import Customer
import branchbill.modules.documents.models  # noqa: F401


@pytest.fixture
def engine(tmp_path):
    dispose_engine()
    engine = init_engine(f"sqlite:///{tmp_path / 'billing.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    dispose_engine()


@pytest.fixture
def db_session(engine):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def _add_branch(db_session, **values) -> Branch:
    branch = Branch(**values)
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture
def branch(db_session):
    return _add_branch(
        db_session,
        name="Dubai Main",
        code="DXB",
        currency_code="AED",
        currency_symbol="د.إ",
        currency_name="UAE Dirham",
        tax_rate=Decimal("5"),
    )


@pytest.fixture
def jpy_branch(db_session):
    return _add_branch(
        db_session,
        name="Tokyo",
        code="TYO",
        currency_code="JPY",
        currency_symbol="¥",
        currency_name="Japanese Yen",
        tax_rate=Decimal("5"),
    )


@pytest.fixture
def kwd_branch(db_session):
    return _add_branch(
        db_session,
        name="Kuwait City",
        code="KWI",
        currency_code="KWD",
        currency_symbol="د.ك",
        currency_name="Kuwaiti Dinar",
        tax_rate=Decimal("5"),
    )


@pytest.fixture
def customer(db_session):
    customer = Customer(name="Acme Trading LLC", email="billing@acme.example")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture
def client(engine):
    from branchbill.main import app
    return TestClient(app)


def _bearer(role: str, **claims) -> dict:
    token = create_access_token({"sub": str(uuid4()), "role": role, **claims})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def staff_headers():
    return _bearer("staff")


@pytest.fixture
def admin_headers():
    return _bearer("admin")


@pytest.fixture
def customer_headers(customer):
    return _bearer("customer", customer_id=str(customer.id))
