"""Bank statement transactions and their reconciliation state."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    JSON,
    Numeric,
    String,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import TenantScopedModel


class TransactionStatus(StrEnum):
    UNMATCHED = "unmatched"
    MATCHED = "matched"
    MANUALLY_MATCHED = "manually_matched"
    IGNORED = "ignored"


class MatchMethod(StrEnum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"
    SUGGESTED = "suggested"


MATCHED_STATUSES = (TransactionStatus.MATCHED.value, TransactionStatus.MANUALLY_MATCHED.value)


class BankTransaction(TenantScopedModel):
    """One bank statement line item imported from a CSV or OFX file."""

    __tablename__ = "bank_transactions"
    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_bank_transactions_amount_nonzero"),
        Index("ix_bank_transactions_tenant_status", "tenant_id", "status"),
        Index("ix_bank_transactions_tenant_batch", "tenant_id", "import_batch_id"),
        Index("ix_bank_transactions_tenant_date", "tenant_id", "transaction_date"),
    )

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(2000), nullable=False)

    # Signed amount: credit (money in) is positive, debit is negative.
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(300), nullable=True)

    # Original source fields (CSV header->cell, or the raw OFX block). Audit only.
    raw_data: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict
    )

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TransactionStatus.UNMATCHED.value
    )
    matched_booking_id: Mapped[int | None] = mapped_column(
        BigInteger, nullable=True, index=True
    )
    match_score: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    match_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    matched_by_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    matched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    import_batch_id: Mapped[str] = mapped_column(String(64), nullable=False)
    imported_by_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @property
    def is_matched(self) -> bool:
        return self.status in MATCHED_STATUSES

    def match_with_booking(
        self,
        booking_id: int,
        *,
        method: MatchMethod,
        matched_at: datetime,
        matched_by_id: int | None = None,
        score: int | None = None,
    ) -> None:
        """Record a match; any previous match is overwritten."""
        self.status = (
            TransactionStatus.MANUALLY_MATCHED.value
            if method == MatchMethod.MANUAL
            else TransactionStatus.MATCHED.value
        )
        self.matched_booking_id = booking_id
        self.match_method = method.value
        self.match_score = score
        self.matched_by_id = matched_by_id
        self.matched_at = matched_at

    def clear_match(self) -> None:
        """Return to the unmatched state with every match field cleared."""
        self.status = TransactionStatus.UNMATCHED.value
        self.matched_booking_id = None
        self.match_method = None
        self.match_score = None
        self.matched_by_id = None
        self.matched_at = None
