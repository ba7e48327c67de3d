import logging
import uuid
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, ProgrammingError

from rentchain.db.session import SessionLocal
from rentchain.core.security import hash_password
from rentchain.models.user import User
from rentchain.models.property import Property

logger = logging.getLogger(__name__)


def ensure_user(db: Session, email: str, password: str, role: str, name: str, phone: str = "") -> User:
    u = db.query(User).filter(User.email == email).first()
    if u:
        return u
    u = User(
        id=str(uuid.uuid4()),
        email=email,
        full_name=name,
        phone_number=phone,
        role=role,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.add(u)
    db.commit()
    return u


def ensure_property(db: Session, owner: User, title: str, daily_price: str, deposit: str,
                    negotiation_percentage: str = "0", discount_enabled: bool = False, capacity: int = 2) -> Property:
    p = db.query(Property).filter(Property.owner_id == owner.id, Property.title == title).first()
    if p:
        return p
    p = Property(
        id=str(uuid.uuid4()),
        owner_id=owner.id,
        title=title,
        daily_price=Decimal(daily_price),
        deposit_amount=Decimal(deposit),
        negotiation_percentage=Decimal(negotiation_percentage),
        discount_enabled=discount_enabled,
        capacity=capacity,
        status="APPROVED",
    )
    db.add(p)
    db.commit()
    return p


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

        ensure_user(db, "admin@rentchain.local", "admin12345", "ADMIN", "Admin")
        host = ensure_user(db, "host@rentchain.local", "host12345", "POSTER", "Demo Host", "+212600000001")
        ensure_user(db, "tenant@rentchain.local", "tenant12345", "USER", "Demo Tenant", "+212600000002")

        ensure_property(db, host, "Riad near the medina", "450.00", "1500.00",
                        negotiation_percentage="15", discount_enabled=True, capacity=4)
        ensure_property(db, host, "Studio Gueliz", "300.00", "800.00", capacity=2)
        logger.info("seed complete")
    finally:
        if own:
            db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run()
