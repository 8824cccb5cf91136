import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from loyalty_ledger.db import Base, get_db
from loyalty_ledger.main import app
from loyalty_ledger.routes.admin import get_session_factory
from loyalty_ledger.services.contact_service import create_customer
from loyalty_ledger.services.loyalty_service import record_transaction
from loyalty_ledger.services.reward_service import create_reward
from loyalty_ledger.services.tenant_service import create_tenant


NOW = datetime(2026, 3, 2, 12, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def tenant(db):
    tenant = create_tenant(db, business_name="Mama Titi Kitchen", home_currency="NGN")
    db.commit()
    return tenant


@pytest.fixture
def gbp_tenant(db):
    tenant = create_tenant(db, business_name="Corner Cafe", home_currency="GBP")
    db.commit()
    return tenant


@pytest.fixture
def make_customer(db, tenant):
    counter = {"n": 0}

    def _make(*, phone=None, owner=None, opted_in=True, created_at=None, **kwargs):
        counter["n"] += 1
        customer = create_customer(
            db,
            owner or tenant,
            phone_number=phone or f"+23480000000{counter['n']:02d}",
            opted_in=opted_in,
            now=created_at or NOW - timedelta(days=60),
            **kwargs,
        )
        db.commit()
        return customer

    return _make


@pytest.fixture
def customer(make_customer):
    return make_customer(first_name="Ada", last_name="Obi")


@pytest.fixture
def fund(db):
    def _fund(customer, points, *, now=None):
        entry = record_transaction(
            db,
            tenant_id=customer.tenant_id,
            customer_id=customer.id,
            type="adjusted",
            points=points,
            description="Test funding",
            now=now or NOW - timedelta(days=1),
        )
        db.commit()
        return entry

    return _fund


@pytest.fixture
def make_reward(db, tenant):
    def _make(**values):
        data = {"name": "Free Jollof", "points_required": 50}
        data.update(values)
        reward = create_reward(db, tenant, data)
        db.commit()
        return reward

    return _make


@pytest.fixture
def headers(tenant):
    return {"X-Tenant-Id": str(tenant.id), "X-User-Id": "vendor-user-1"}


@pytest.fixture
def now():
    return NOW
