from decimal import Decimal
from sqlalchemy import String, Integer, DateTime, Date, Numeric, Index, CheckConstraint, text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, date, timezone
from rentchain.db.session import Base

ACTIVE_STATUS_SQL = "status IN ('CONFIRMED', 'TENANT_CHECKED_OUT')"
ACTIVE_BOOKING_INDEX = "uq_bookings_tenant_active"

class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    tenant_id: Mapped[str] = mapped_column(String(36), index=True)
    property_id: Mapped[str] = mapped_column(String(36), index=True)
    owner_id: Mapped[str] = mapped_column(String(36), index=True)  # copied from the property at creation

    check_in_date: Mapped[date] = mapped_column(Date)
    check_out_date: Mapped[date] = mapped_column(Date)
    number_of_guests: Mapped[int] = mapped_column(Integer, default=1)

    list_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)   # after long-stay discount
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)  # what the tenant pays
    long_stay_discount_percent: Mapped[int] = mapped_column(Integer, default=0)
    requested_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    requested_negotiation_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    negotiation_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    transaction_hash: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(String(30), index=True, default="PENDING_PAYMENT")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("check_out_date > check_in_date", name="ck_bookings_dates"),
        CheckConstraint("total_price >= 0", name="ck_bookings_total_price"),
        # one current booking per tenant
        Index(
            ACTIVE_BOOKING_INDEX,
            "tenant_id",
            unique=True,
            postgresql_where=text(ACTIVE_STATUS_SQL),
            sqlite_where=text(ACTIVE_STATUS_SQL),
        ),
    )
