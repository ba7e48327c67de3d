from decimal import Decimal
from sqlalchemy import String, Integer, DateTime, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from rentchain.db.session import Base

class Reclamation(Base):
    __tablename__ = "reclamations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(36), index=True)
    complainant_id: Mapped[str] = mapped_column(String(36), index=True)
    complainant_role: Mapped[str] = mapped_column(String(10))  # GUEST, HOST
    target_user_id: Mapped[str] = mapped_column(String(36), index=True)

    type: Mapped[str] = mapped_column(String(40), index=True)
    title: Mapped[str] = mapped_column(String(200), default="")
    description: Mapped[str] = mapped_column(Text, default="")

    status: Mapped[str] = mapped_column(String(20), index=True, default="OPEN")  # OPEN, IN_REVIEW, RESOLVED, REJECTED
    severity: Mapped[str] = mapped_column(String(10), default="MEDIUM")  # LOW, MEDIUM, HIGH, CRITICAL

    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    penalty_points: Mapped[int | None] = mapped_column(Integer, nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("booking_id", "complainant_id", name="uq_reclamations_booking_complainant"),
    )


class ReclamationAttachment(Base):
    __tablename__ = "reclamation_attachments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    reclamation_id: Mapped[str] = mapped_column(String(36), index=True)
    filename: Mapped[str] = mapped_column(String(255))  # stored name on disk
    original_name: Mapped[str] = mapped_column(String(255), default="")
    content_type: Mapped[str] = mapped_column(String(100), default="application/octet-stream")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
