"""Import bank statements and reconcile their transactions against bookings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.exceptions import CrossTenantError, NotFoundError, ValidationError
from src.modules.bank_reconciliation.models import (
    BankTransaction,
    MatchMethod,
    TransactionStatus,
)
from src.modules.bank_reconciliation.parsers import (
    ParseIssue,
    StatementFormat,
    detect_format,
    parse_statement,
)
from src.modules.bank_reconciliation.scoring import MatchScore, ScoringConfig, score_breakdown
from src.modules.bookings.models import Booking

logger = logging.getLogger(__name__)


@dataclass
class ImportOutcome:
    import_batch_id: str
    format: StatementFormat
    imported_count: int
    rows_total: int
    issues: list[ParseIssue]
    transactions: list[BankTransaction]

    @property
    def skipped_count(self) -> int:
        return len(self.issues)


@dataclass(frozen=True)
class MatchCandidate:
    """Best-scoring booking for one transaction."""

    booking: Booking
    score: int
    breakdown: MatchScore


@dataclass(frozen=True)
class AutoMatchedItem:
    transaction_id: int
    booking_id: int
    score: int


@dataclass(frozen=True)
class TransactionSnapshot:
    """Transaction fields captured before a match attempt."""

    id: int
    transaction_date: date
    description: str
    amount: Decimal
    reference: str | None
    import_batch_id: str

    @classmethod
    def of(cls, transaction: BankTransaction) -> "TransactionSnapshot":
        return cls(
            id=transaction.id,
            transaction_date=transaction.transaction_date,
            description=transaction.description,
            amount=transaction.amount,
            reference=transaction.reference,
            import_batch_id=transaction.import_batch_id,
        )


@dataclass(frozen=True)
class UnmatchedItem:
    transaction: TransactionSnapshot
    suggestion: MatchCandidate | None


@dataclass
class AutoMatchOutcome:
    matches: list[AutoMatchedItem] = field(default_factory=list)
    # Every transaction left unmatched, with its suggestion when one scored high enough.
    unmatched: list[UnmatchedItem] = field(default_factory=list)
    failed_count: int = 0

    @property
    def matched_count(self) -> int:
        return len(self.matches)

    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched)

    @property
    def suggestions(self) -> list[UnmatchedItem]:
        return [item for item in self.unmatched if item.suggestion is not None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BankReconciliationService:
    """Import coordinator, auto-match engine and manual reconciliation workflow."""

    def __init__(
        self,
        db: AsyncSession,
        scoring: ScoringConfig | None = None,
        candidate_window_days: int | None = None,
        candidate_booking_statuses: list[str] | None = None,
        candidate_payment_statuses: list[str] | None = None,
    ):
        self.db = db
        self.scoring = scoring or settings.scoring_config()
        self.candidate_window_days = (
            settings.match_candidate_window_days
            if candidate_window_days is None
            else candidate_window_days
        )
        self.candidate_booking_statuses = (
            candidate_booking_statuses or settings.match_candidate_booking_statuses
        )
        self.candidate_payment_statuses = (
            candidate_payment_statuses or settings.match_candidate_payment_statuses
        )

    # --- Import ---

    async def import_statement(
        self,
        *,
        tenant_id: int,
        imported_by_id: int,
        raw_bytes: bytes,
        file_name: str | None,
        content_type: str | None = None,
        declared_format: str | None = None,
    ) -> ImportOutcome:
        """Parse a statement file and store its transactions as one unmatched batch."""
        statement_format = detect_format(file_name, content_type, declared_format)
        parsed = parse_statement(raw_bytes, statement_format)

        imported_at = _utcnow()
        transactions = [
            BankTransaction(
                tenant_id=tenant_id,
                transaction_date=item.transaction_date,
                description=item.description,
                amount=item.amount,
                reference=item.reference,
                raw_data=item.raw_data,
                status=TransactionStatus.UNMATCHED.value,
                import_batch_id=parsed.import_batch_id,
                imported_by_id=imported_by_id,
                imported_at=imported_at,
            )
            for item in parsed.transactions
        ]
        self.db.add_all(transactions)
        await self.db.flush()

        logger.info(
            "Imported %d of %d %s rows into batch %s for tenant %s (%d skipped)",
            len(transactions),
            parsed.rows_total,
            statement_format.value,
            parsed.import_batch_id,
            tenant_id,
            parsed.skipped_count,
        )
        return ImportOutcome(
            import_batch_id=parsed.import_batch_id,
            format=statement_format,
            imported_count=len(transactions),
            rows_total=parsed.rows_total,
            issues=parsed.issues,
            transactions=transactions,
        )

    # --- Lookups ---

    async def get_transaction(
        self, transaction_id: int, *, tenant_id: int | None = None
    ) -> BankTransaction:
        """Load a transaction; one that belongs to another tenant is reported as not found."""
        stmt = select(BankTransaction).where(BankTransaction.id == transaction_id)
        if tenant_id is not None:
            stmt = stmt.where(BankTransaction.tenant_id == tenant_id)
        transaction = await self.db.scalar(stmt)
        if not transaction:
            raise NotFoundError("Bank transaction", transaction_id)
        return transaction

    async def get_booking(self, booking_id: int) -> Booking:
        booking = await self.db.scalar(select(Booking).where(Booking.id == booking_id))
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    async def list_transactions(
        self,
        tenant_id: int,
        *,
        status: TransactionStatus | None = None,
        import_batch_id: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[BankTransaction], int]:
        where = [BankTransaction.tenant_id == tenant_id]
        if status:
            where.append(BankTransaction.status == status.value)
        if import_batch_id:
            where.append(BankTransaction.import_batch_id == import_batch_id)
        if date_from:
            where.append(BankTransaction.transaction_date >= date_from)
        if date_to:
            where.append(BankTransaction.transaction_date <= date_to)

        total = int(
            (
                await self.db.execute(
                    select(func.count()).select_from(BankTransaction).where(and_(*where))
                )
            ).scalar_one()
        )
        stmt = (
            select(BankTransaction)
            .where(and_(*where))
            .order_by(BankTransaction.transaction_date.desc(), BankTransaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = list((await self.db.execute(stmt)).scalars().all())
        return items, total

    async def list_unmatched(self, tenant_id: int) -> list[BankTransaction]:
        result = await self.db.execute(
            select(BankTransaction)
            .where(
                BankTransaction.tenant_id == tenant_id,
                BankTransaction.status == TransactionStatus.UNMATCHED.value,
            )
            .order_by(BankTransaction.transaction_date.desc(), BankTransaction.id.desc())
        )
        return list(result.scalars().all())

    # --- Matching ---

    async def candidate_bookings(self, transaction: BankTransaction) -> list[Booking]:
        """
        Bookings of the transaction's tenant that could have produced it.

        Completed sales with money received, dated within the candidate window
        of the transaction date. Ordered by (reference date, id) so tie-breaking
        is reproducible.
        """
        window = timedelta(days=self.candidate_window_days)
        date_min = transaction.transaction_date - window
        date_max = transaction.transaction_date + window
        created_min = datetime.combine(date_min, time.min)
        created_max = datetime.combine(date_max + timedelta(days=1), time.min)

        result = await self.db.execute(
            select(Booking)
            .where(
                Booking.tenant_id == transaction.tenant_id,
                Booking.status.in_(self.candidate_booking_statuses),
                Booking.payment_status.in_(self.candidate_payment_statuses),
                or_(
                    Booking.booking_date.between(date_min, date_max),
                    and_(
                        Booking.booking_date.is_(None),
                        Booking.created_at >= created_min,
                        Booking.created_at < created_max,
                    ),
                ),
            )
            .order_by(Booking.id.asc())
        )
        bookings = list(result.scalars().all())
        bookings.sort(key=lambda b: (b.reference_date, b.id))
        return bookings

    async def find_best_match(self, transaction: BankTransaction) -> MatchCandidate | None:
        """Highest-scoring candidate; the first one wins a tie. None if nothing scores."""
        best: MatchCandidate | None = None
        for booking in await self.candidate_bookings(transaction):
            breakdown = score_breakdown(transaction, booking, self.scoring)
            if breakdown.total > (best.score if best else 0):
                best = MatchCandidate(booking=booking, score=breakdown.total, breakdown=breakdown)
        return best

    async def suggest_match(
        self, transaction_id: int, *, tenant_id: int | None = None
    ) -> MatchCandidate | None:
        """Read-only best match for one transaction."""
        transaction = await self.get_transaction(transaction_id, tenant_id=tenant_id)
        return await self.find_best_match(transaction)

    async def auto_match(
        self,
        tenant_id: int,
        *,
        import_batch_id: str | None = None,
        min_score: int | None = None,
    ) -> AutoMatchOutcome:
        """
        Match every unmatched transaction of the tenant (optionally one batch).

        Each transaction is decided and stored in its own savepoint; a failure
        on one is logged, counted as unmatched and does not stop the run.
        """
        threshold = self.scoring.auto_match_min_score if min_score is None else min_score
        if not 0 <= threshold <= self.scoring.max_score:
            raise ValidationError(
                f"min_score must be between 0 and {self.scoring.max_score}", field="min_score"
            )

        stmt = select(BankTransaction).where(
            BankTransaction.tenant_id == tenant_id,
            BankTransaction.status == TransactionStatus.UNMATCHED.value,
        )
        if import_batch_id:
            stmt = stmt.where(BankTransaction.import_batch_id == import_batch_id)
        stmt = stmt.order_by(BankTransaction.transaction_date.asc(), BankTransaction.id.asc())
        transactions = list((await self.db.execute(stmt)).scalars().all())

        outcome = AutoMatchOutcome()
        for transaction in transactions:
            # A rolled-back savepoint expires the instance; keep plain values for reporting.
            snapshot = TransactionSnapshot.of(transaction)
            try:
                async with self.db.begin_nested():
                    candidate = await self.find_best_match(transaction)
                    if candidate and candidate.score >= threshold:
                        transaction.match_with_booking(
                            candidate.booking.id,
                            method=MatchMethod.AUTOMATIC,
                            matched_at=_utcnow(),
                            score=candidate.score,
                        )
                        await self.db.flush()
            except SQLAlchemyError:
                logger.warning(
                    "Auto-match failed for transaction %s; leaving it unmatched",
                    snapshot.id,
                    exc_info=True,
                )
                outcome.failed_count += 1
                outcome.unmatched.append(UnmatchedItem(transaction=snapshot, suggestion=None))
                continue

            if candidate and candidate.score >= threshold:
                outcome.matches.append(
                    AutoMatchedItem(
                        transaction_id=snapshot.id,
                        booking_id=candidate.booking.id,
                        score=candidate.score,
                    )
                )
            elif candidate and candidate.score >= self.scoring.suggestion_min_score:
                outcome.unmatched.append(UnmatchedItem(transaction=snapshot, suggestion=candidate))
            else:
                outcome.unmatched.append(UnmatchedItem(transaction=snapshot, suggestion=None))

        logger.info(
            "Auto-match for tenant %s (batch=%s, min_score=%d): %d matched, %d unmatched, %d suggestions, %d failed",
            tenant_id,
            import_batch_id or "*",
            threshold,
            outcome.matched_count,
            outcome.unmatched_count,
            len(outcome.suggestions),
            outcome.failed_count,
        )
        return outcome

    async def manual_match(
        self,
        transaction_id: int,
        booking_id: int,
        matched_by_id: int,
        *,
        tenant_id: int | None = None,
        score: int | None = None,
    ) -> BankTransaction:
        """Assign a booking by hand. Allowed from any status; a previous match is overwritten."""
        transaction = await self.get_transaction(transaction_id, tenant_id=tenant_id)
        booking = await self.get_booking(booking_id)
        if transaction.tenant_id != booking.tenant_id:
            raise CrossTenantError()

        transaction.match_with_booking(
            booking.id,
            method=MatchMethod.MANUAL,
            matched_at=_utcnow(),
            matched_by_id=matched_by_id,
            score=score,
        )
        await self.db.flush()
        return transaction

    async def unmatch(self, transaction_id: int, *, tenant_id: int | None = None) -> BankTransaction:
        """Clear any match. Unmatching an unmatched transaction is a no-op."""
        transaction = await self.get_transaction(transaction_id, tenant_id=tenant_id)
        if transaction.status != TransactionStatus.UNMATCHED.value or transaction.matched_booking_id:
            transaction.clear_match()
            await self.db.flush()
        return transaction

    # --- Administrative deletes ---

    async def delete_transaction(self, tenant_id: int, transaction_id: int) -> None:
        transaction = await self.get_transaction(transaction_id, tenant_id=tenant_id)
        await self.db.delete(transaction)
        await self.db.flush()

    async def delete_batch(self, tenant_id: int, import_batch_id: str) -> int:
        result = await self.db.execute(
            delete(BankTransaction).where(
                BankTransaction.tenant_id == tenant_id,
                BankTransaction.import_batch_id == import_batch_id,
            )
        )
        logger.info(
            "Deleted %d transactions of batch %s for tenant %s",
            result.rowcount,
            import_batch_id,
            tenant_id,
        )
        return int(result.rowcount or 0)
