import os
import uuid
from datetime import datetime, timedelta, timezone

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_freshfold.db")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")

import pytest
from fastapi.testclient import TestClient

import freshfold.auth
from freshfold.database import Base, SessionLocal, engine
from freshfold.main import app as fastapi_app
from freshfold.models import Laundromat, PromoCode
from freshfold.schemas import OrderCreate

CUSTOMER_ID = "customer-1"


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def claims():
    return {"sub": CUSTOMER_ID, "role": "admin"}


@pytest.fixture
def client(claims):
    fastapi_app.dependency_overrides[freshfold.auth.verify_token] = lambda: claims
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def make_laundromat():
    def _make(db, **overrides):
        values = {
            "id": str(uuid.uuid4()),
            "name": "Suds & Duds",
            "address": "12 Main St",
            "latitude": 40.0,
            "longitude": -74.0,
            "delivery_radius": 5.0,
            "email": "owner@example.com",
            "stripe_account_id": "acct_laundromat",
            "is_active": True,
        }
        values.update(overrides)
        laundromat = Laundromat(**values)
        db.add(laundromat)
        db.commit()
        return values["id"]

    return _make


@pytest.fixture
def make_promo():
    def _make(db, code="SAVE20", **overrides):
        now = datetime.now(timezone.utc)
        values = {
            "id": str(uuid.uuid4()),
            "code": code,
            "discount_percent": 20,
            "max_discount_cents": 500,
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=30),
            "usage_limit": 100,
            "usage_count": 0,
            "is_active": True,
        }
        values.update(overrides)
        promo = PromoCode(**values)
        db.add(promo)
        db.commit()
        return values["id"]

    return _make


@pytest.fixture
def order_request():
    def _build(laundromat_id, **overrides):
        values = {
            "laundromat_id": laundromat_id,
            "service_id": "svc-wash-fold",
            "service_name": "Wash & Fold",
            "base_price": "30.00",
            "customer_id": CUSTOMER_ID,
            "pickup_address": "99 Elm St",
            "pickup_latitude": 40.01,
            "pickup_longitude": -74.01,
            "scheduled_pickup": "2026-10-20T09:00:00+00:00",
        }
        values.update(overrides)
        return OrderCreate(**values)

    return _build


@pytest.fixture
def payment_intent(mocker):
    intent = mocker.Mock()
    intent.id = "pi_test_123"
    intent.client_secret = "pi_test_123_secret"
    return mocker.patch("stripe.PaymentIntent.create", return_value=intent)
