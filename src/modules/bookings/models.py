"""Bookings: the sales records bank transactions are reconciled against.

The reconciliation engine reads this table as a candidate pool and never
writes to it; bookings are owned by the sales subsystem.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import Date, DateTime, Numeric, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import TenantScopedModel


class BookingStatus(StrEnum):
    DRAFT = "draft"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingPaymentStatus(StrEnum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"


class Booking(TenantScopedModel):
    """A customer booking (read-only to reconciliation)."""

    __tablename__ = "bookings"
    __table_args__ = (
        UniqueConstraint("tenant_id", "booking_number", name="uq_bookings_tenant_number"),
    )

    booking_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BookingStatus.PENDING.value, index=True
    )
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BookingPaymentStatus.UNPAID.value, index=True
    )

    # Business date of the sale; falls back to created_at when not recorded.
    booking_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def reference_date(self) -> date:
        """Date used for candidate windows and date-proximity scoring."""
        if self.booking_date is not None:
            return self.booking_date
        return self.created_at.date()
