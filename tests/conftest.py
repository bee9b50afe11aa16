import hashlib
import hmac
import json
import os
import time
import uuid
from datetime import date, timedelta

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["STRIPE_SANDBOX"] = "true"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from villa_api.db.session import Base, get_db
from villa_api.main import app
from villa_api.core.security import create_access_token, hash_password
from villa_api.models.user import User
from villa_api.models.villa import Villa
from villa_api.models.checkout_session import CheckoutSession  # noqa: F401
from villa_api.models.booking import Booking  # noqa: F401
from villa_api.models.payment import Payment  # noqa: F401
from villa_api.models.audit_log import AuditLog  # noqa: F401
from villa_api.models.email_log import EmailLog  # noqa: F401
from villa_api.services import email_service

WEBHOOK_SECRET = "whsec_test_secret"

engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    outbox = []

    def fake_send(to_email, subject, body, attachments):
        outbox.append({"to": to_email, "subject": subject, "body": body, "attachments": attachments})

    monkeypatch.setattr(email_service, "send_email", fake_send)
    return outbox


@pytest.fixture
def villa(db):
    v = Villa(
        id=str(uuid.uuid4()),
        slug="coral-cove",
        name="Coral Cove",
        location="Holetown, Barbados",
        price_per_night=50000,
        currency="USD",
        max_guests=6,
        active=True,
    )
    db.add(v)
    db.commit()
    return v


def make_user(db, role="admin", email=None):
    u = User(
        id=str(uuid.uuid4()),
        email=email or f"{role}-{uuid.uuid4().hex[:6]}@villas.local",
        full_name=role.title(),
        role=role,
        password_hash=hash_password("password123"),
        is_active=True,
    )
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def admin_headers(db):
    u = make_user(db, "admin")
    return {"Authorization": f"Bearer {create_access_token(u.id)}"}


@pytest.fixture
def staff_headers(db):
    u = make_user(db, "staff")
    return {"Authorization": f"Bearer {create_access_token(u.id)}"}


def future(days: int) -> date:
    return date.today() + timedelta(days=days)


def session_request(villa, check_in=None, check_out=None, **overrides):
    check_in = check_in or future(30)
    check_out = check_out or check_in + timedelta(days=3)
    body = {
        "villaId": villa.id,
        "villaName": villa.name,
        "location": villa.location,
        "checkIn": check_in.isoformat(),
        "checkOut": check_out.isoformat(),
        "guests": 2,
        "pricePerNight": villa.price_per_night / 100,
        "currency": villa.currency,
    }
    body.update(overrides)
    return body


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    ts = timestamp or int(time.time())
    sig = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def post_event(client, event_type: str, obj: dict, secret: str = WEBHOOK_SECRET):
    payload = json.dumps({"id": f"evt_{uuid.uuid4().hex[:12]}", "type": event_type, "data": {"object": obj}})
    return client.post(
        "/api/v1/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": sign_payload(payload, secret), "Content-Type": "application/json"},
    )


def completed_session(session_id: str, amount_total: int, email="guest@example.com", name="Ada Guest", **extra):
    obj = {
        "id": session_id,
        "object": "checkout.session",
        "amount_total": amount_total,
        "currency": "usd",
        "payment_status": "paid",
        "status": "complete",
        "payment_intent": "pi_test_123",
        "customer_details": {"email": email, "name": name},
        "metadata": {},
    }
    obj.update(extra)
    return obj
