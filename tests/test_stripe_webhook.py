from conftest import completed_session, future, post_event, session_request
from villa_api.models.booking import Booking
from villa_api.models.checkout_session import CheckoutSession
from villa_api.models.email_log import EmailLog
from villa_api.models.payment import Payment

WEBHOOK = "/api/v1/webhooks/stripe"
SESSIONS = "/api/v1/public/checkout/sessions"


def _open_session(client, villa, **overrides):
    r = client.post(SESSIONS, json=session_request(villa, **overrides))
    assert r.status_code == 200, r.text
    return r.json()


def test_rejects_bad_signature(client, db, villa):
    created = _open_session(client, villa)
    r = post_event(client, "checkout.session.completed", completed_session(created["sessionId"], 150000),
                   secret="whsec_wrong")
    assert r.status_code == 400
    assert db.query(Booking).count() == 0


def test_rejects_missing_signature(client):
    r = client.post(WEBHOOK, content='{"type": "checkout.session.completed"}',
                    headers={"Content-Type": "application/json"})
    assert r.status_code == 400


def test_completed_session_creates_confirmed_booking(client, db, villa, sent_emails):
    created = _open_session(client, villa)
    r = post_event(client, "checkout.session.completed", completed_session(created["sessionId"], 150000))
    assert r.status_code == 200, r.text
    assert r.json()["created"] is True

    b = db.query(Booking).one()
    assert b.booking_ref.startswith("VLA-")
    assert b.booking_status == "confirmed"
    assert b.payment_status == "paid"
    assert b.total_amount == 150000
    assert b.deposit_amount == 150000
    assert b.remaining_amount == 0
    assert b.guest_email == "guest@example.com"
    assert b.provider_payment_ref == "pi_test_123"
    assert b.version == 1

    checkout = db.get(CheckoutSession, created["checkoutId"])
    assert checkout.status == "complete"
    assert checkout.booking_id == b.id

    payment = db.query(Payment).one()
    assert (payment.kind, payment.amount, payment.status) == ("full", 150000, "paid")

    assert len(sent_emails) == 1
    mail = sent_emails[0]
    assert mail["to"] == "guest@example.com"
    assert b.booking_ref in mail["subject"]
    filename, content, mime = mail["attachments"][0]
    assert filename == f"{b.booking_ref}.pdf"
    assert content.startswith(b"%PDF")
    assert mime == "application/pdf"
    assert db.query(EmailLog).one().status == "sent"


def test_redelivery_is_idempotent(client, db, villa, sent_emails):
    created = _open_session(client, villa)
    obj = completed_session(created["sessionId"], 150000)
    first = post_event(client, "checkout.session.completed", obj).json()
    second = post_event(client, "checkout.session.completed", obj).json()
    assert second["created"] is False
    assert second["bookingRef"] == first["bookingRef"]
    assert db.query(Booking).count() == 1
    assert db.query(Payment).count() == 1
    assert len(sent_emails) == 1


def test_deposit_payment_leaves_balance(client, db, villa):
    created = _open_session(client, villa, depositPercentage=50)
    post_event(client, "checkout.session.completed", completed_session(created["sessionId"], 75000))
    b = db.query(Booking).one()
    assert b.booking_status == "deposit_received"
    assert b.payment_status == "deposit_paid"
    assert b.deposit_amount == 75000
    assert b.remaining_amount == 75000
    assert db.query(Payment).one().kind == "deposit"


def test_status_endpoint_reports_confirmed_booking(client, db, villa):
    created = _open_session(client, villa, depositPercentage=30)
    post_event(client, "checkout.session.completed", completed_session(created["sessionId"], 45000))
    data = client.get(f"{SESSIONS}/{created['sessionId']}").json()
    assert data["status"] == "complete"
    assert data["bookingRef"] == db.query(Booking).one().booking_ref
    assert data["bookingStatus"] == "deposit_received"
    assert data["amountCharged"] == 450.0
    assert data["remainingAmount"] == 1050.0


def test_unpaid_completion_waits_for_async_success(client, db, villa):
    created = _open_session(client, villa)
    obj = completed_session(created["sessionId"], 150000, payment_status="unpaid")
    r = post_event(client, "checkout.session.completed", obj)
    assert r.json()["pending"] is True
    assert db.query(Booking).count() == 0

    obj["payment_status"] = "paid"
    post_event(client, "checkout.session.async_payment_succeeded", obj)
    assert db.query(Booking).one().booking_status == "confirmed"


def test_booking_rebuilt_from_metadata(client, db, villa):
    check_in = future(40)
    metadata = {
        "villaId": villa.id, "villaName": villa.name, "location": villa.location,
        "checkIn": check_in.isoformat(), "checkOut": future(42).isoformat(),
        "guests": "3", "nights": "2", "depositPercentage": "100",
        "totalAmountCents": "100000", "depositAmountCents": "100000", "currency": "USD",
    }
    r = post_event(client, "checkout.session.completed",
                   completed_session("cs_live_unknown", 100000, metadata=metadata))
    assert r.status_code == 200, r.text
    b = db.query(Booking).one()
    assert b.nights == 2
    assert b.guests == 3
    assert b.booking_status == "confirmed"


def test_expired_session(client, db, villa):
    created = _open_session(client, villa)
    post_event(client, "checkout.session.expired", {"id": created["sessionId"], "object": "checkout.session"})
    assert db.get(CheckoutSession, created["checkoutId"]).status == "expired"
    assert db.query(Booking).count() == 0


def test_async_payment_failed(client, db, villa):
    created = _open_session(client, villa)
    post_event(client, "checkout.session.async_payment_failed",
               {"id": created["sessionId"], "metadata": {"checkoutId": created["checkoutId"]}})
    checkout = db.get(CheckoutSession, created["checkoutId"])
    assert checkout.status == "failed"
    data = client.get(f"{SESSIONS}/{created['sessionId']}").json()
    assert data["status"] == "failed"
    assert data["failureReason"] == "Payment failed"


def test_declined_card_keeps_session_open(client, db, villa):
    created = _open_session(client, villa)
    post_event(client, "payment_intent.payment_failed", {
        "id": "pi_failed",
        "metadata": {"checkoutId": created["checkoutId"]},
        "last_payment_error": {"message": "Your card was declined."},
    })
    checkout = db.get(CheckoutSession, created["checkoutId"])
    assert checkout.status == "open"
    assert checkout.failure_reason == "Your card was declined."
    assert client.get(f"{SESSIONS}/{created['sessionId']}").json()["status"] == "open"

    # the guest tries another card on the same session
    post_event(client, "checkout.session.completed", completed_session(created["sessionId"], 150000))
    db.refresh(checkout)
    assert checkout.status == "complete"
    assert checkout.failure_reason == ""
    assert db.query(Booking).one().booking_status == "confirmed"


def test_unhandled_event_is_acknowledged(client):
    r = post_event(client, "customer.created", {"id": "cus_1"})
    assert r.status_code == 200
    assert r.json()["ignored"] == "customer.created"


def test_public_booking_lookup_and_pdf(client, db, villa):
    created = _open_session(client, villa)
    ref = post_event(client, "checkout.session.completed",
                     completed_session(created["sessionId"], 150000)).json()["bookingRef"]

    r = client.get(f"/api/v1/public/bookings/{ref.lower()}")
    assert r.status_code == 200
    data = r.json()
    assert data["bookingRef"] == ref
    assert "version" not in data and "id" not in data

    pdf = client.get(f"/api/v1/public/bookings/{ref}/confirmation.pdf")
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")

    b = db.query(Booking).one()
    b.booking_status = "cancelled"
    db.commit()
    assert client.get(f"/api/v1/public/bookings/{ref}/confirmation.pdf").status_code == 409
    assert client.get("/api/v1/public/bookings/VLA-000000").status_code == 404
