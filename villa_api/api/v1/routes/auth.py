import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from villa_api.api.deps import get_current_user
from villa_api.core.security import (
    REFRESH, TokenError, create_access_token, create_refresh_token, decode_token, hash_password,
    password_needs_rehash, verify_password,
)
from villa_api.db.session import get_db
from villa_api.models.user import User
from villa_api.schemas.auth import LoginRequest, TokenPair

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def _issue(user: User) -> TokenPair:
    return TokenPair(access_token=create_access_token(user.id), refresh_token=create_refresh_token(user.id))


@router.post("/auth/login", response_model=TokenPair)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == body.email.strip().lower()).first()
    if not user or not user.is_active or not verify_password(body.password, user.password_hash):
        logger.info("failed back-office login for %s", body.email)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if password_needs_rehash(user.password_hash):
        user.password_hash = hash_password(body.password)
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    return _issue(user)


@router.post("/auth/refresh", response_model=TokenPair)
def refresh(refresh_token: str, db: Session = Depends(get_db)):
    try:
        payload = decode_token(refresh_token, expected_type=REFRESH)
    except TokenError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    user = db.get(User, payload["sub"])
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return _issue(user)


@router.get("/auth/me")
def me(me: User = Depends(get_current_user)):
    """Current back-office user and what they may do with bookings."""
    return {
        "id": me.id,
        "email": me.email,
        "fullName": me.full_name or "",
        "role": me.role,
        "canEditBookings": me.can_edit_bookings,
    }
