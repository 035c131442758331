import os

# The engine is built at import time, so point it at SQLite before importing coachbot
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["STRIPE_PRICE_STARTER"] = "price_starter"
os.environ["STRIPE_PRICE_PRO"] = "price_pro"
os.environ["STRIPE_PRICE_ELITE"] = "price_elite"
os.environ["SITE_URL"] = "https://coach.example.com"
os.environ["AUTH_JWT_SECRET"] = "test-jwt-secret-that-is-long-enough-for-hs256"
os.environ.pop("AUTH_JWT_AUDIENCE", None)
os.environ.pop("STRIPE_SECRET_KEY", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import coachbot.models  # noqa: F401
from coachbot.api.routes.chat import get_completion
from coachbot.core.entitlements import Plan
from coachbot.db.base import Base
from coachbot.db.session import get_db
from coachbot.main import app
from coachbot.models.account import Account
from coachbot.services import identity_resolver
from coachbot.utils.session_keys import utc_now
from tests.helpers import FakeCompletion


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def no_stripe_customers(monkeypatch):
    monkeypatch.setattr(identity_resolver, "list_customer_ids_by_email", lambda email: [])


@pytest.fixture
def completion():
    return FakeCompletion()


@pytest.fixture
def client(session_factory, completion):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_completion] = lambda: completion
    with_client = TestClient(app)
    yield with_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_account(db):
    def _make(session_id, plan=Plan.FREE, **fields):
        now = utc_now()
        account = Account(
            id=session_id,
            plan=Plan(plan).value,
            created_at=now,
            updated_at=now,
            last_seen_at=now,
            **fields,
        )
        db.add(account)
        db.commit()
        return account

    return _make
