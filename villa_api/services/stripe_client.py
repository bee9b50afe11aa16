import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import stripe

logger = logging.getLogger(__name__)

# Stripe counts its 30 min minimum from when the request arrives, not when we stamped it
MIN_SESSION_LIFETIME = timedelta(minutes=31)
MAX_SESSION_LIFETIME = timedelta(hours=23, minutes=59)


@dataclass
class StripeConfig:
    secret_key: str         # sk_test_... / sk_live_...
    sandbox: bool = False   # fake sessions, no network
    max_network_retries: int = 2


@dataclass
class LineItem:
    name: str
    description: str
    unit_amount: int        # minor units
    currency: str
    quantity: int = 1


@dataclass
class ProviderSession:
    id: str
    client_secret: str
    expires_at: datetime | None = None
    status: str = "open"
    amount_total: int | None = None
    metadata: dict = field(default_factory=dict)


class PaymentProviderError(RuntimeError):
    pass


class StripeCheckoutClient:
    """Embedded Stripe Checkout sessions (ui_mode=embedded, redirect_on_completion=never)."""

    def __init__(self, cfg: StripeConfig):
        self.cfg = cfg
        if not cfg.sandbox and not cfg.secret_key:
            raise PaymentProviderError("Stripe is not configured (missing STRIPE_SECRET_KEY)")

    def create_embedded_session(self, *, checkout_id: str, line_item: LineItem, metadata: dict,
                                expires_at: datetime, customer_email: str | None = None) -> ProviderSession:
        expires_at = provider_expiry(expires_at)
        if self.cfg.sandbox:
            sid = f"cs_sandbox_{uuid.uuid4().hex}"
            logger.info("sandbox checkout session %s for checkout %s", sid, checkout_id)
            return ProviderSession(id=sid, client_secret=f"{sid}_secret_sandbox", expires_at=expires_at,
                                   amount_total=line_item.unit_amount * line_item.quantity, metadata=dict(metadata))

        params = {
            "ui_mode": "embedded",
            "redirect_on_completion": "never",
            "mode": "payment",
            "client_reference_id": checkout_id,
            "expires_at": int(expires_at.timestamp()),
            "line_items": [{
                "price_data": {
                    "currency": line_item.currency.lower(),
                    "product_data": {"name": line_item.name, "description": line_item.description},
                    "unit_amount": line_item.unit_amount,
                },
                "quantity": line_item.quantity,
            }],
            "metadata": metadata,
            # payment_intent events carry no session id; this lets failures find the checkout
            "payment_intent_data": {"metadata": {"checkoutId": checkout_id}},
        }
        if customer_email:
            params["customer_email"] = customer_email
        try:
            session = stripe.checkout.Session.create(
                api_key=self.cfg.secret_key,
                idempotency_key=f"checkout-{checkout_id}",
                **params,
            )
        except stripe.StripeError as e:
            logger.warning("stripe session create failed for checkout %s: %s", checkout_id, e)
            raise PaymentProviderError(e.user_message or str(e)) from e
        return ProviderSession(
            id=session.id,
            client_secret=session.client_secret,
            expires_at=expires_at,
            status=session.status or "open",
            amount_total=session.amount_total,
            metadata=dict(metadata),
        )

    def retrieve_session(self, session_id: str) -> ProviderSession:
        if self.cfg.sandbox:
            return ProviderSession(id=session_id, client_secret="", status="open")
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.cfg.secret_key)
        except stripe.StripeError as e:
            raise PaymentProviderError(e.user_message or str(e)) from e
        return ProviderSession(
            id=session.id,
            client_secret="",
            status=session.status or "",
            amount_total=session.amount_total,
        )


def verify_webhook(payload: bytes, sig_header: str | None, secret: str, tolerance: int = 300) -> str:
    """Check the Stripe-Signature header and return the decoded payload.

    Raises ValueError when the header or secret is missing or the signature does not match.
    """
    if not sig_header or not secret:
        raise ValueError("Missing signature or webhook secret")
    text = payload.decode("utf-8")
    try:
        stripe.WebhookSignature.verify_header(text, sig_header, secret, tolerance)
    except stripe.SignatureVerificationError as e:
        raise ValueError(f"Webhook Error: {e}") from e
    return text


def provider_expiry(expires_at: datetime, now: datetime | None = None) -> datetime:
    """Pull ``expires_at`` into the window Stripe accepts, measured from ``now``."""
    now = now or datetime.now(timezone.utc)
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return min(max(expires_at, now + MIN_SESSION_LIFETIME), now + MAX_SESSION_LIFETIME)
