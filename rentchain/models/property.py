from decimal import Decimal
from sqlalchemy import String, Integer, DateTime, Boolean, Numeric
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from rentchain.db.session import Base

class Property(Base):
    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(36), index=True)
    title: Mapped[str] = mapped_column(String(200), default="")

    daily_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    negotiation_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=0)  # max discount a tenant may ask, 0 = fixed price
    discount_enabled: Mapped[bool] = mapped_column(Boolean, default=False)  # long-stay discount

    capacity: Mapped[int] = mapped_column(Integer, default=1)
    status: Mapped[str] = mapped_column(String(30), default="APPROVED")  # DRAFT, PENDING_APPROVAL, APPROVED, SUSPENDED, ...
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
