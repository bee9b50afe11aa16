from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from villa_api.core.config import settings
from villa_api.db.session import get_db
from villa_api.services.audit_service import log_audit
from villa_api.services.booking_service import record_completed_checkout
from villa_api.services.checkout_service import (
    mark_checkout_expired, mark_checkout_failed, note_payment_declined,
)
from villa_api.services.confirmation_service import send_booking_confirmation
from villa_api.services.stripe_client import verify_webhook

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


def _handle_session_completed(db: Session, session: dict) -> dict:
    if session.get("payment_status") not in (None, "paid", "no_payment_required"):
        # async methods (bank debits) complete later via async_payment_succeeded
        logger.info("session %s completed with payment_status=%s; waiting", session.get("id"), session.get("payment_status"))
        return {"pending": True}
    booking, created = record_completed_checkout(db, session)
    if created:
        send_booking_confirmation(db, booking)
    return {"bookingRef": booking.booking_ref, "created": created}


def _handle_event(db: Session, event: dict) -> dict:
    event_type = event.get("type") or ""
    obj = (event.get("data") or {}).get("object") or {}

    if event_type in ("checkout.session.completed", "checkout.session.async_payment_succeeded"):
        return _handle_session_completed(db, obj)

    if event_type == "checkout.session.expired":
        mark_checkout_expired(db, obj.get("id", ""))
        return {"expired": obj.get("id")}

    if event_type == "checkout.session.async_payment_failed":
        mark_checkout_failed(db, "Payment failed", session_id=obj.get("id"),
                             checkout_id=(obj.get("metadata") or {}).get("checkoutId"))
        return {"failed": obj.get("id")}

    if event_type == "payment_intent.payment_failed":
        reason = ((obj.get("last_payment_error") or {}).get("message")) or "Payment failed"
        checkout_id = (obj.get("metadata") or {}).get("checkoutId")
        logger.warning("payment failed for checkout %s: %s", checkout_id, reason)
        if checkout_id:
            note_payment_declined(db, checkout_id, reason)
        return {"declined": checkout_id}

    logger.info("unhandled stripe event type %s", event_type)
    return {"ignored": event_type}


@router.post("/webhooks/stripe")
async def stripe_webhook(req: Request, db: Session = Depends(get_db)):
    """Sole writer of Booking rows. Stripe retries on non-2xx, so handler errors propagate."""
    body = await req.body()
    try:
        text = verify_webhook(
            body,
            req.headers.get("stripe-signature"),
            settings.STRIPE_WEBHOOK_SECRET,
            tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )
    except ValueError as e:
        logger.warning("stripe webhook rejected: %s", e)
        raise HTTPException(status_code=400, detail=str(e))

    try:
        event = json.loads(text or "{}")
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid payload")

    log_audit(db, "stripe", "webhook_received", "stripe_event", event.get("id") or "", {"type": event.get("type")})
    db.commit()
    result = _handle_event(db, event)
    return {"received": True, **result}
