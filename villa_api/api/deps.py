from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from villa_api.core.config import settings
from villa_api.core.security import ACCESS, TokenError, decode_token
from villa_api.db.session import get_db
from villa_api.models.user import User
from villa_api.services.stripe_client import PaymentProviderError, StripeCheckoutClient, StripeConfig

bearer = HTTPBearer(auto_error=False)


def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = decode_token(creds.credentials, expected_type=ACCESS)
    except TokenError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = db.get(User, payload["sub"])
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return user


def require_roles(*roles: str):
    """Dependency factory: 403 unless the caller holds one of ``roles``."""
    def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user
    return _guard


def get_payment_client() -> StripeCheckoutClient:
    # a missing key is a deployment problem, not the guest's
    try:
        return StripeCheckoutClient(StripeConfig(
            secret_key=settings.STRIPE_SECRET_KEY,
            sandbox=settings.STRIPE_SANDBOX,
        ))
    except PaymentProviderError as e:
        raise HTTPException(status_code=500, detail=str(e))
