import logging
import random
import string
import uuid
from datetime import date, datetime, timezone

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from villa_api.models.booking import BOOKING_STATUSES, Booking
from villa_api.models.checkout_session import CheckoutSession
from villa_api.models.payment import Payment
from villa_api.services.audit_service import log_audit
from villa_api.services.pricing import FULL_PAYMENT, count_nights

logger = logging.getLogger(__name__)

# Admin-driven lifecycle; cancelled and completed are terminal.
ALLOWED_TRANSITIONS = {
    "pending": {"confirmed", "deposit_received", "cancelled"},
    "deposit_received": {"confirmed", "cancelled"},
    "confirmed": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}


class BookingNotFound(LookupError):
    pass


class StaleBookingError(RuntimeError):
    """The booking changed since the editor loaded it."""


def make_booking_ref() -> str:
    return "VLA-" + "".join(random.choices(string.ascii_uppercase + string.digits, k=6))


def _allocate_ref(db: Session) -> str:
    for _ in range(10):
        ref = make_booking_ref()
        if not db.query(Booking).filter(Booking.booking_ref == ref).first():
            return ref
    raise ValueError("could not allocate booking reference")


def _checkout_for_session(db: Session, session: dict) -> CheckoutSession | None:
    checkout = db.query(CheckoutSession).filter(CheckoutSession.provider_session_id == session.get("id")).first()
    if checkout:
        return checkout
    metadata = session.get("metadata") or {}
    checkout_id = metadata.get("checkoutId") or session.get("client_reference_id")
    return db.get(CheckoutSession, checkout_id) if checkout_id else None


def _checkout_from_metadata(session: dict) -> CheckoutSession:
    """Rebuild the pending authorization when only the provider remembers it."""
    md = session.get("metadata") or {}
    if not md.get("villaId") or not md.get("checkIn") or not md.get("checkOut"):
        raise ValueError("completed session carries no booking metadata")
    check_in = date.fromisoformat(md["checkIn"])
    check_out = date.fromisoformat(md["checkOut"])
    charged = int(session.get("amount_total") or 0)
    total = int(md.get("totalAmountCents") or charged)
    nights = int(md.get("nights") or count_nights(check_in, check_out))
    return CheckoutSession(
        id=md.get("checkoutId") or str(uuid.uuid4()),
        provider_session_id=session.get("id"),
        villa_id=md["villaId"],
        villa_name=md.get("villaName", ""),
        location=md.get("location", ""),
        check_in=check_in,
        check_out=check_out,
        nights=nights,
        guests=int(md.get("guests") or 1),
        currency=(md.get("currency") or session.get("currency") or "USD").upper(),
        price_per_night=total // nights if nights > 0 else total,
        total_amount=total,
        deposit_percentage=int(md.get("depositPercentage") or FULL_PAYMENT),
        deposit_amount=int(md.get("depositAmountCents") or charged),
        remaining_amount=int(md.get("remainingAmountCents") or max(total - charged, 0)),
        status="open",
    )


def record_completed_checkout(db: Session, session: dict) -> tuple[Booking, bool]:
    """Create the Booking for a completed provider session.

    Idempotent on the provider session id. Returns (booking, created).
    """
    session_id = session.get("id")
    if not session_id:
        raise ValueError("session id missing")

    existing = db.query(Booking).filter(Booking.provider_session_id == session_id).first()
    if existing:
        return existing, False

    checkout = _checkout_for_session(db, session)
    if not checkout:
        checkout = _checkout_from_metadata(session)
        db.add(checkout)
        logger.warning("rebuilt checkout %s from provider metadata for session %s", checkout.id, session_id)

    charged = session.get("amount_total")
    charged = int(charged) if charged is not None else checkout.deposit_amount
    if charged != checkout.deposit_amount:
        logger.warning("session %s charged %s but checkout %s expected %s", session_id, charged, checkout.id, checkout.deposit_amount)
    remaining = max(checkout.total_amount - charged, 0)
    fully_paid = remaining == 0

    details = session.get("customer_details") or {}
    payment_ref = session.get("payment_intent") or ""
    if isinstance(payment_ref, dict):
        payment_ref = payment_ref.get("id", "")

    now = datetime.now(timezone.utc)
    booking = Booking(
        id=str(uuid.uuid4()),
        booking_ref=_allocate_ref(db),
        villa_id=checkout.villa_id,
        villa_name=checkout.villa_name,
        check_in=checkout.check_in,
        check_out=checkout.check_out,
        nights=checkout.nights,
        guests=checkout.guests,
        guest_email=(details.get("email") or checkout.customer_email or "").lower(),
        guest_name=details.get("name") or "",
        currency=(session.get("currency") or checkout.currency).upper(),
        total_amount=checkout.total_amount,
        deposit_amount=charged,
        deposit_percentage=checkout.deposit_percentage,
        remaining_amount=remaining,
        booking_status="confirmed" if fully_paid else "deposit_received",
        payment_status="paid" if fully_paid else "deposit_paid",
        provider_session_id=session_id,
        provider_payment_ref=str(payment_ref),
        version=1,
        created_at=now,
        updated_at=now,
    )
    db.add(booking)
    db.add(Payment(
        id=str(uuid.uuid4()),
        booking_id=booking.id,
        provider="stripe",
        kind="full" if fully_paid else "deposit",
        amount=charged,
        currency=booking.currency,
        status="paid",
        provider_ref=str(payment_ref) or session_id,
    ))
    checkout.provider_session_id = session_id
    checkout.status = "complete"
    checkout.failure_reason = ""
    checkout.booking_id = booking.id
    log_audit(db, "stripe", "booking.created", "booking", booking.booking_ref, {
        "providerSessionId": session_id,
        "charged": charged,
        "remaining": remaining,
    })
    try:
        db.commit()
    except IntegrityError:
        # a concurrent delivery of the same event won the insert
        db.rollback()
        existing = db.query(Booking).filter(Booking.provider_session_id == session_id).first()
        if existing:
            return existing, False
        raise
    db.refresh(booking)
    logger.info("booking %s created from session %s (%s)", booking.booking_ref, session_id, booking.booking_status)
    return booking, True


def get_booking(db: Session, booking_id: str) -> Booking:
    b = db.get(Booking, booking_id)
    if not b:
        b = db.query(Booking).filter(Booking.booking_ref == booking_id).first()
    if not b:
        raise BookingNotFound("booking not found")
    return b


def list_bookings(db: Session, status: str | None = None, q: str | None = None,
                  limit: int = 50, offset: int = 0) -> tuple[int, list[Booking]]:
    query = db.query(Booking)
    if status and status != "all":
        if status not in BOOKING_STATUSES:
            raise ValueError("invalid status")
        query = query.filter(Booking.booking_status == status)
    if q:
        ql = f"%{q.lower()}%"
        query = query.filter(
            func.lower(Booking.guest_email).like(ql)
            | func.lower(Booking.guest_name).like(ql)
            | func.lower(Booking.villa_name).like(ql)
            | func.lower(Booking.booking_ref).like(ql)
        )
    total = query.count()
    items = query.order_by(Booking.created_at.desc()).limit(max(1, min(limit, 200))).offset(max(offset, 0)).all()
    return total, items


def update_booking_status(db: Session, booking_id: str, new_status: str, expected_version: int,
                          actor: str, note: str = "") -> Booking:
    """Single-row status write guarded by the transition table and the version token."""
    b = get_booking(db, booking_id)
    if new_status not in BOOKING_STATUSES:
        raise ValueError("invalid status")
    if b.version != expected_version:
        raise StaleBookingError("booking was modified by someone else; reload and retry")
    old_status = b.booking_status
    if new_status not in ALLOWED_TRANSITIONS.get(old_status, set()):
        raise ValueError(f"cannot change booking from {old_status} to {new_status}")

    result = db.execute(
        update(Booking)
        .where(Booking.id == b.id, Booking.version == expected_version)
        .values(booking_status=new_status, version=Booking.version + 1, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise StaleBookingError("booking was modified by someone else; reload and retry")
    log_audit(db, actor, "booking.status_changed", "booking", b.booking_ref, {
        "from": old_status, "to": new_status, "version": expected_version + 1, "note": note,
    })
    db.commit()
    db.refresh(b)
    return b


def booking_to_dict(b: Booking) -> dict:
    return {
        "id": b.id,
        "bookingRef": b.booking_ref,
        "villaId": b.villa_id,
        "villaName": b.villa_name,
        "checkIn": b.check_in.isoformat(),
        "checkOut": b.check_out.isoformat(),
        "nights": b.nights,
        "guests": b.guests,
        "guestEmail": b.guest_email or "",
        "guestName": b.guest_name or "",
        "currency": b.currency,
        "totalAmount": b.total_amount / 100,
        "depositAmount": b.deposit_amount / 100,
        "depositPercentage": b.deposit_percentage,
        "remainingAmount": b.remaining_amount / 100,
        "bookingStatus": b.booking_status,
        "paymentStatus": b.payment_status,
        "version": b.version,
        "createdAt": b.created_at.isoformat() if b.created_at else None,
        "updatedAt": b.updated_at.isoformat() if b.updated_at else None,
    }


def metrics_overview(db: Session) -> dict:
    counts = dict(
        db.query(Booking.booking_status, func.count(Booking.id)).group_by(Booking.booking_status).all()
    )
    revenue = (
        db.query(func.coalesce(func.sum(Payment.amount), 0))
        .select_from(Payment)
        .join(Booking, Booking.id == Payment.booking_id)
        .filter(Payment.status == "paid", Booking.booking_status != "cancelled")
        .scalar()
    )
    outstanding = (
        db.query(func.coalesce(func.sum(Booking.remaining_amount), 0))
        .filter(Booking.booking_status.in_(["deposit_received", "confirmed"]))
        .scalar()
    )
    return {
        "totalBookings": int(sum(counts.values())),
        "byStatus": {s: int(counts.get(s, 0)) for s in BOOKING_STATUSES},
        "revenueCollected": int(revenue or 0) / 100,
        "balanceOutstanding": int(outstanding or 0) / 100,
    }
