import logging
import uuid

from sqlalchemy import text
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.core.security import hash_password
from app.models.corporation import Corporation
from app.models.pricing import Pricing
from app.models.profile import Profile

logger = logging.getLogger(__name__)

# match priority follows insertion order
DEFAULT_RATES = [
    ("Pasay", 350),
    ("Parañaque", 400),
    ("Taguig", 450),
    ("Makati", 450),
    ("Mandaluyong", 500),
    ("San Juan", 500),
    ("Pasig", 550),
    ("Quezon", 600),
    ("Las Piñas", 450),
    ("Muntinlupa", 550),
    ("Marikina", 650),
    ("Caloocan", 700),
    ("Malabon", 700),
    ("Navotas", 700),
    ("Valenzuela", 750),
    ("Pateros", 500),
    # "manila" is contained in "metro manila", so it must stay last
    ("Manila", 500),
]

DEFAULT_CORPORATIONS = ["Philippine Airlines", "Cebu Pacific", "AirAsia Philippines"]


def ensure_profile(db: Session, email: str, password: str, role: str, first_name: str, last_name: str):
    p = db.query(Profile).filter(Profile.email == email).first()
    if p:
        return p
    p = Profile(
        id=str(uuid.uuid4()),
        email=email,
        password_hash=hash_password(password),
        role=role,
        status="offline",
        verify_status="verified",
        first_name=first_name,
        last_name=last_name,
    )
    db.add(p)
    db.commit()
    return p


def run(db=None):
    if db is None:
        db = SessionLocal()
    try:
        # If migrations haven't been applied yet, seeding must not crash the API.
        try:
            db.execute(text("SELECT 1 FROM profiles LIMIT 1"))
        except (ProgrammingError, OperationalError):
            db.rollback()
            logger.warning("[seed] profiles table not found yet. Skipping seeding (run alembic upgrade head).")
            return

        ensure_profile(db, "admin@luggage.local", "admin12345", "admin", "System", "Admin")

        for name in DEFAULT_CORPORATIONS:
            if not db.query(Corporation).filter(Corporation.corporation_name == name).first():
                db.add(Corporation(id=str(uuid.uuid4()), corporation_name=name))
        db.commit()

        # rates are only seeded into an empty table; admins own them afterwards
        if not db.query(Pricing).first():
            for city, price in DEFAULT_RATES:
                db.add(Pricing(city=city, price=price))
            db.commit()
            logger.info("[seed] %d delivery rates added", len(DEFAULT_RATES))
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run()
