from sqlalchemy import String, DateTime, Boolean
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from villa_api.db.session import Base

# back-office roles; staff may read bookings, only admins change them
BOOKING_READERS = ("admin", "superadmin", "staff")
BOOKING_WRITERS = ("admin", "superadmin")


class User(Base):
    """Back-office account. Guests never log in; they are identified by booking reference."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    full_name: Mapped[str] = mapped_column(String(200), default="")
    role: Mapped[str] = mapped_column(String(30), index=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def can_edit_bookings(self) -> bool:
        return self.role in BOOKING_WRITERS
