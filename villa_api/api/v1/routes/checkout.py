from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from villa_api.api.deps import get_payment_client
from villa_api.db.session import get_db
from villa_api.schemas.checkout import CheckoutSessionCreate, CheckoutSessionOut, CheckoutStatusOut
from villa_api.services.checkout_service import (
    CheckoutNotFound, PriceMismatch, VillaNotFound, as_utc, checkout_status, start_checkout,
)
from villa_api.services.stripe_client import PaymentProviderError, StripeCheckoutClient

router = APIRouter(tags=["checkout"])


@router.post("/public/checkout/sessions", response_model=CheckoutSessionOut)
def create_checkout_session(body: CheckoutSessionCreate, db: Session = Depends(get_db),
                            client: StripeCheckoutClient = Depends(get_payment_client)):
    """Open an embedded payment session for a booking intent and return its client secret."""
    try:
        checkout, session = start_checkout(db, body, client)
    except VillaNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PriceMismatch as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentProviderError as e:
        raise HTTPException(status_code=502, detail=str(e))
    expires_at = as_utc(checkout.expires_at)
    return CheckoutSessionOut(
        clientSecret=session.client_secret,
        sessionId=session.id,
        checkoutId=checkout.id,
        nights=checkout.nights,
        totalAmount=checkout.total_amount / 100,
        depositAmount=checkout.deposit_amount / 100,
        remainingAmount=checkout.remaining_amount / 100,
        depositPercentage=checkout.deposit_percentage,
        currency=checkout.currency,
        expiresAt=expires_at.isoformat() if expires_at else None,
    )


@router.get("/public/checkout/sessions/{session_id}", response_model=CheckoutStatusOut)
def get_checkout_session(session_id: str, db: Session = Depends(get_db)):
    """Server-confirmed outcome of a checkout; the success screen reads amounts from here."""
    try:
        return checkout_status(db, session_id)
    except CheckoutNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
