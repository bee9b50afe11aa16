import logging
import uuid
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import or_
from sqlalchemy.orm import Session

from villa_api.core.config import settings
from villa_api.models.booking import Booking
from villa_api.models.checkout_session import CheckoutSession
from villa_api.models.villa import Villa
from villa_api.schemas.checkout import CheckoutSessionCreate
from villa_api.services.audit_service import log_audit
from villa_api.services.pricing import DEPOSIT_TIERS, FULL_PAYMENT, StayQuote, quote_stay, to_minor_units
from villa_api.services.stripe_client import LineItem, PaymentProviderError, ProviderSession, StripeCheckoutClient

logger = logging.getLogger(__name__)

# browser totals are rounded for display; allow one major unit of drift
AMOUNT_TOLERANCE = 100


class VillaNotFound(LookupError):
    pass


class CheckoutNotFound(LookupError):
    pass


class PriceMismatch(Exception):
    """The browser priced the stay differently from the catalog."""


def as_utc(dt: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


def find_villa(db: Session, villa_id_or_slug: str) -> Villa | None:
    return db.query(Villa).filter(or_(Villa.id == villa_id_or_slug, Villa.slug == villa_id_or_slug)).first()


def _line_item(villa: Villa, quote: StayQuote, check_in: date, check_out: date, guests: int) -> LineItem:
    plural = "s" if quote.nights > 1 else ""
    name = f"{villa.name} - {quote.nights} Night{plural}"
    if quote.deposit_percentage != FULL_PAYMENT:
        name += f" ({quote.deposit_percentage}% Deposit)"
    description = f"{villa.location} | Check-in: {check_in.isoformat()} | Check-out: {check_out.isoformat()} | Guests: {guests}"
    if quote.deposit_percentage != FULL_PAYMENT:
        description += f"\n\n{DEPOSIT_TIERS[quote.deposit_percentage]}"
    return LineItem(name=name, description=description, unit_amount=quote.deposit, currency=quote.currency)


def _check_client_amount(label: str, sent: float | None, expected: int) -> None:
    if sent is None:
        return
    if abs(to_minor_units(sent) - expected) > AMOUNT_TOLERANCE:
        logger.warning("client %s %s does not match server value %s", label, sent, expected)
        raise ValueError("Invalid payment amount")


def start_checkout(db: Session, body: CheckoutSessionCreate, client: StripeCheckoutClient,
                   today: date | None = None) -> tuple[CheckoutSession, ProviderSession]:
    """Validate a booking intent, price it server-side and open an embedded payment session.

    Writes a CheckoutSession in ``open`` state; the Booking itself is only created by the
    completion webhook.
    """
    villa = find_villa(db, body.villaId)
    if not villa or not villa.active:
        raise VillaNotFound("villa not found")

    today = today or datetime.now(timezone.utc).date()
    if body.checkIn < today:
        raise ValueError("Check-in date is in the past")
    if body.guests < 1 or body.guests > villa.max_guests:
        raise ValueError(f"guests must be between 1 and {villa.max_guests}")
    if body.depositPercentage not in DEPOSIT_TIERS:
        raise ValueError("unsupported deposit percentage")

    currency = (body.currency or villa.currency).strip().upper()
    if currency != villa.currency.upper() or to_minor_units(body.pricePerNight) != villa.price_per_night:
        raise PriceMismatch("Villa price has changed; please review your booking")

    quote = quote_stay(body.checkIn, body.checkOut, villa.price_per_night, body.depositPercentage, currency)
    _check_client_amount("total", body.totalAmount, quote.total)
    _check_client_amount("deposit", body.depositAmount, quote.deposit)

    now = datetime.now(timezone.utc)
    checkout = CheckoutSession(
        id=str(uuid.uuid4()),
        villa_id=villa.id,
        villa_name=villa.name,
        location=villa.location,
        check_in=body.checkIn,
        check_out=body.checkOut,
        nights=quote.nights,
        guests=body.guests,
        currency=quote.currency,
        price_per_night=quote.price_per_night,
        total_amount=quote.total,
        deposit_percentage=quote.deposit_percentage,
        deposit_amount=quote.deposit,
        remaining_amount=quote.remaining,
        status="open",
        customer_email=(body.customerEmail or "").strip().lower(),
        expires_at=now + timedelta(minutes=settings.CHECKOUT_SESSION_TTL_MINUTES),
    )
    db.add(checkout)
    db.flush()

    metadata = {
        "checkoutId": checkout.id,
        "villaId": villa.id,
        "villaName": villa.name,
        "location": villa.location,
        "checkIn": body.checkIn.isoformat(),
        "checkOut": body.checkOut.isoformat(),
        "guests": str(body.guests),
        "nights": str(quote.nights),
        "paymentType": "full" if quote.deposit_percentage == FULL_PAYMENT else "deposit",
        "depositPercentage": str(quote.deposit_percentage),
        "depositAmountCents": str(quote.deposit),
        "totalAmountCents": str(quote.total),
        "remainingAmountCents": str(quote.remaining),
        "currency": quote.currency,
    }
    try:
        provider_session = client.create_embedded_session(
            checkout_id=checkout.id,
            line_item=_line_item(villa, quote, body.checkIn, body.checkOut, body.guests),
            metadata=metadata,
            expires_at=checkout.expires_at,
            customer_email=checkout.customer_email or None,
        )
    except PaymentProviderError as e:
        checkout.status = "failed"
        checkout.failure_reason = str(e)
        log_audit(db, "system", "checkout.session_failed", "checkout_session", checkout.id, {"error": str(e)})
        db.commit()
        raise

    checkout.provider_session_id = provider_session.id
    if provider_session.expires_at:
        checkout.expires_at = provider_session.expires_at
    log_audit(db, "public", "checkout.session_created", "checkout_session", checkout.id, {
        "providerSessionId": provider_session.id,
        "villaId": villa.id,
        "total": quote.total,
        "deposit": quote.deposit,
    })
    db.commit()
    db.refresh(checkout)
    logger.info("checkout %s opened for villa %s (%s nights, %s %s)", checkout.id, villa.id, quote.nights, quote.deposit, quote.currency)
    return checkout, provider_session


def get_checkout(db: Session, session_id: str) -> CheckoutSession:
    """Look up by provider session id, falling back to our own checkout id."""
    checkout = db.query(CheckoutSession).filter(CheckoutSession.provider_session_id == session_id).first()
    if not checkout:
        checkout = db.get(CheckoutSession, session_id)
    if not checkout:
        raise CheckoutNotFound("checkout session not found")
    return checkout


def checkout_status(db: Session, session_id: str) -> dict:
    checkout = get_checkout(db, session_id)
    booking = db.get(Booking, checkout.booking_id) if checkout.booking_id else None
    out = {
        "sessionId": checkout.provider_session_id or checkout.id,
        "status": checkout.status,
        "villaId": checkout.villa_id,
        "villaName": checkout.villa_name,
        "checkIn": checkout.check_in.isoformat(),
        "checkOut": checkout.check_out.isoformat(),
        "nights": checkout.nights,
        "guests": checkout.guests,
        "currency": checkout.currency,
        "totalAmount": checkout.total_amount / 100,
        "depositAmount": checkout.deposit_amount / 100,
        "remainingAmount": checkout.remaining_amount / 100,
        "depositPercentage": checkout.deposit_percentage,
        "failureReason": checkout.failure_reason or None,
    }
    if booking:
        out["bookingRef"] = booking.booking_ref
        out["bookingStatus"] = booking.booking_status
        out["amountCharged"] = booking.deposit_amount / 100
        # the booking carries what the provider actually charged
        out["totalAmount"] = booking.total_amount / 100
        out["depositAmount"] = booking.deposit_amount / 100
        out["remainingAmount"] = booking.remaining_amount / 100
    return out


def mark_checkout_expired(db: Session, session_id: str) -> CheckoutSession | None:
    checkout = db.query(CheckoutSession).filter(CheckoutSession.provider_session_id == session_id).first()
    if not checkout or checkout.status != "open":
        return checkout
    checkout.status = "expired"
    log_audit(db, "stripe", "checkout.session_expired", "checkout_session", checkout.id, {"providerSessionId": session_id})
    db.commit()
    return checkout


def note_payment_declined(db: Session, checkout_id: str, reason: str) -> CheckoutSession | None:
    """A declined card leaves the embedded session open for another attempt; keep the reason only."""
    checkout = db.get(CheckoutSession, checkout_id)
    if not checkout or checkout.status != "open":
        return checkout
    checkout.failure_reason = reason or "Payment declined"
    log_audit(db, "stripe", "checkout.payment_declined", "checkout_session", checkout.id, {"reason": checkout.failure_reason})
    db.commit()
    return checkout


def mark_checkout_failed(db: Session, reason: str, *, session_id: str | None = None,
                         checkout_id: str | None = None) -> CheckoutSession | None:
    checkout = None
    if session_id:
        checkout = db.query(CheckoutSession).filter(CheckoutSession.provider_session_id == session_id).first()
    if not checkout and checkout_id:
        checkout = db.get(CheckoutSession, checkout_id)
    if not checkout or checkout.status == "complete":
        return checkout
    checkout.status = "failed"
    checkout.failure_reason = reason or "Payment failed"
    log_audit(db, "stripe", "checkout.payment_failed", "checkout_session", checkout.id, {"reason": checkout.failure_reason})
    db.commit()
    return checkout


def expire_stale_checkouts(db: Session, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    stale = db.query(CheckoutSession).filter(
        CheckoutSession.status == "open",
        CheckoutSession.expires_at != None,  # noqa: E711
        CheckoutSession.expires_at < now,
    ).all()
    for checkout in stale:
        checkout.status = "expired"
        log_audit(db, "system", "checkout.session_expired", "checkout_session", checkout.id, {"reason": "ttl"})
    db.commit()
    return len(stale)
