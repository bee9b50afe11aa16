from sqlalchemy import String, Integer, Date, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from datetime import date, datetime, timezone
from villa_api.db.session import Base

BOOKING_STATUSES = ("pending", "confirmed", "deposit_received", "completed", "cancelled")

class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_ref: Mapped[str] = mapped_column(String(20), unique=True, index=True)

    villa_id: Mapped[str] = mapped_column(String(36), index=True)
    villa_name: Mapped[str] = mapped_column(String(200), default="")
    check_in: Mapped[date] = mapped_column(Date)
    check_out: Mapped[date] = mapped_column(Date)
    nights: Mapped[int] = mapped_column(Integer)
    guests: Mapped[int] = mapped_column(Integer, default=1)

    guest_email: Mapped[str] = mapped_column(String(320), default="", index=True)
    guest_name: Mapped[str] = mapped_column(String(200), default="")

    # minor units (cents)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    total_amount: Mapped[int] = mapped_column(Integer, default=0)
    deposit_amount: Mapped[int] = mapped_column(Integer, default=0)
    deposit_percentage: Mapped[int] = mapped_column(Integer, default=100)
    remaining_amount: Mapped[int] = mapped_column(Integer, default=0)

    booking_status: Mapped[str] = mapped_column(String(30), default="pending", index=True)  # see BOOKING_STATUSES
    payment_status: Mapped[str] = mapped_column(String(30), default="unpaid")               # unpaid, deposit_paid, paid, refunded

    provider_session_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    provider_payment_ref: Mapped[str] = mapped_column(String(255), default="")

    # optimistic concurrency token for admin edits
    version: Mapped[int] = mapped_column(Integer, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
