import os
import uuid
from datetime import date, timedelta
from decimal import Decimal

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SETTLEMENT_SANDBOX"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rentchain.core.config import settings
from rentchain.core.errors import SettlementError
from rentchain.core.security import create_access_token, hash_password
from rentchain.db.session import Base, get_db
from rentchain.main import app
from rentchain.models.audit_log import AuditLog  # noqa: F401
from rentchain.models.booking import Booking  # noqa: F401
from rentchain.models.property import Property
from rentchain.models.reclamation import Reclamation, ReclamationAttachment  # noqa: F401
from rentchain.models.settlement_job import SettlementJob  # noqa: F401
from rentchain.models.user import User
from rentchain.services import booking_service

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeSettlementClient:
    """Stands in for the escrow gateway; records every booking it is asked to settle."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = []

    def complete_booking(self, booking_id: str) -> str:
        self.calls.append(booking_id)
        if self.fail:
            raise SettlementError("gateway down")
        return f"0xtx{len(self.calls)}"


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "RECLAMATION_UPLOAD_DIR", str(tmp_path / "reclamations"))
    return tmp_path / "reclamations"


@pytest.fixture(autouse=True)
def gateway(monkeypatch):
    fake = FakeSettlementClient()
    monkeypatch.setattr("rentchain.services.settlement_service.get_settlement_client", lambda: fake)
    return fake


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _user(db, email, role="USER", phone=""):
    u = User(
        id=str(uuid.uuid4()),
        email=email,
        full_name=email.split("@")[0],
        phone_number=phone,
        role=role,
        password_hash=hash_password("secret123"),
        is_active=True,
    )
    db.add(u)
    db.commit()
    return u


@pytest.fixture()
def host(db):
    return _user(db, "host@example.com", role="POSTER", phone="+212600000001")


@pytest.fixture()
def tenant(db):
    return _user(db, "tenant@example.com", phone="+212600000002")


@pytest.fixture()
def other_tenant(db):
    return _user(db, "other@example.com")


@pytest.fixture()
def admin(db):
    return _user(db, "admin@example.com", role="ADMIN")


def auth(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role)}"}


@pytest.fixture()
def admin_headers(admin):
    return auth(admin)


@pytest.fixture()
def tenant_headers(tenant):
    return auth(tenant)


@pytest.fixture()
def host_headers(host):
    return auth(host)


@pytest.fixture()
def prop(db, host):
    # 100/night, 500 deposit, tenants may ask up to 20% off, long-stay discount on
    p = Property(
        id=str(uuid.uuid4()),
        owner_id=host.id,
        title="Riad",
        daily_price=Decimal("100.00"),
        deposit_amount=Decimal("500.00"),
        negotiation_percentage=Decimal("20"),
        discount_enabled=True,
        capacity=4,
        status="APPROVED",
    )
    db.add(p)
    db.commit()
    return p


def stay(start_in_days: int = 10, nights: int = 3) -> tuple[date, date]:
    check_in = date.today() + timedelta(days=start_in_days)
    return check_in, check_in + timedelta(days=nights)


@pytest.fixture()
def book(db, prop):
    """Create a booking for ``user``; a requested price below list opens a negotiation."""

    def _book(user, nights: int = 3, requested_price=None, start_in_days: int = 10):
        check_in, check_out = stay(start_in_days, nights)
        result = booking_service.create_booking(
            db, user.id, prop.id, check_in, check_out, guests=2, requested_price=requested_price,
        )
        assert result.status == "created"
        return result.booking

    return _book


@pytest.fixture()
def confirmed(db, book, tenant):
    b = book(tenant)
    return booking_service.confirm_payment(db, b.id, tenant.id, "0xpaid")
