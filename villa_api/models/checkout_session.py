from sqlalchemy import String, Integer, Date, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime, timezone
from villa_api.db.session import Base

class CheckoutSession(Base):
    """One checkout attempt: the server-side pending authorization behind an embedded payment session."""
    __tablename__ = "checkout_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    provider: Mapped[str] = mapped_column(String(40), default="stripe")
    provider_session_id: Mapped[str | None] = mapped_column(String(255), unique=True, index=True, nullable=True)

    villa_id: Mapped[str] = mapped_column(String(36), index=True)
    villa_name: Mapped[str] = mapped_column(String(200), default="")
    location: Mapped[str] = mapped_column(String(200), default="")
    check_in: Mapped[date] = mapped_column(Date)
    check_out: Mapped[date] = mapped_column(Date)
    nights: Mapped[int] = mapped_column(Integer)
    guests: Mapped[int] = mapped_column(Integer)

    # minor units (cents), computed server-side
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    price_per_night: Mapped[int] = mapped_column(Integer)
    total_amount: Mapped[int] = mapped_column(Integer)
    deposit_percentage: Mapped[int] = mapped_column(Integer, default=100)
    deposit_amount: Mapped[int] = mapped_column(Integer)
    remaining_amount: Mapped[int] = mapped_column(Integer, default=0)

    status: Mapped[str] = mapped_column(String(20), default="open", index=True)  # open, complete, expired, failed
    failure_reason: Mapped[str] = mapped_column(Text, default="")
    booking_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    customer_email: Mapped[str] = mapped_column(String(320), default="")

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
