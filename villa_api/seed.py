import logging
import uuid

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import ProgrammingError, OperationalError

from villa_api.db.session import SessionLocal
from villa_api.core.security import hash_password
from villa_api.models.user import User
from villa_api.models.villa import Villa

logger = logging.getLogger(__name__)

# (slug, name, location, price per night in USD, max guests)
VILLAS = [
    ("sandy-lane-estate", "Sandy Lane Estate", "St. James, Barbados", 2500, 10),
    ("coral-cove", "Coral Cove", "Holetown, Barbados", 500, 6),
    ("pitons-view", "Pitons View", "Soufrière, St. Lucia", 1200, 8),
    ("gustavia-heights", "Gustavia Heights", "Gustavia, St. Barthélemy", 3800, 12),
    ("round-hill-cottage", "Round Hill Cottage", "Montego Bay, Jamaica", 750, 4),
]


def ensure_user(db: Session, email: str, password: str, role: str, name: str):
    u = db.query(User).filter(User.email == email).first()
    if u:
        return
    db.add(
        User(
            id=str(uuid.uuid4()),
            email=email,
            full_name=name,
            role=role,
            password_hash=hash_password(password),
            is_active=True,
        )
    )
    db.commit()


def ensure_villa(db: Session, slug: str, name: str, location: str, price_usd: int, max_guests: int):
    if db.query(Villa).filter(Villa.slug == slug).first():
        return
    db.add(Villa(
        id=str(uuid.uuid4()),
        slug=slug,
        name=name,
        location=location,
        price_per_night=price_usd * 100,
        currency="USD",
        max_guests=max_guests,
        active=True,
    ))
    db.commit()


def run(db=None):
    own = db is None
    if own:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM users LIMIT 1"))
        except (ProgrammingError, OperationalError):
            db.rollback()
            logger.warning("users table not found yet. Skipping seeding (run alembic upgrade head).")
            return

        ensure_user(db, "admin@villas.local", "admin12345", "admin", "Admin")
        ensure_user(db, "staff@villas.local", "staff12345", "staff", "Reservations")

        for slug, name, location, price, guests in VILLAS:
            ensure_villa(db, slug, name, location, price, guests)
        logger.info("seed complete")
    finally:
        if own:
            db.close()


if __name__ == "__main__":
    from villa_api.core.logging import configure_logging
    configure_logging()
    run()
