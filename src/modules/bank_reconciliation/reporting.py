"""Reconciliation summaries and import batch rollups."""

from datetime import date
from decimal import Decimal

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import ValidationError
from src.modules.bank_reconciliation.models import (
    MATCHED_STATUSES,
    BankTransaction,
    TransactionStatus,
)
from src.modules.bank_reconciliation.schemas import (
    BatchRollupRow,
    ReconciliationSummary,
    StatusTotals,
)
from src.shared.utils.money import round_money


class ReconciliationReportService:
    """Aggregates over a tenant's bank transactions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _scope(self, tenant_id: int, date_from: date | None, date_to: date | None) -> list:
        if date_from and date_to and date_from > date_to:
            raise ValidationError("date_from must not be after date_to", field="date_from")
        where = [BankTransaction.tenant_id == tenant_id]
        if date_from:
            where.append(BankTransaction.transaction_date >= date_from)
        if date_to:
            where.append(BankTransaction.transaction_date <= date_to)
        return where

    async def summary(
        self,
        tenant_id: int,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> ReconciliationSummary:
        """
        Count and amount per status plus an overall total.

        Every status is present in the result, zero-filled when it has no rows.
        """
        result = await self.db.execute(
            select(
                BankTransaction.status,
                func.count(BankTransaction.id),
                func.coalesce(func.sum(BankTransaction.amount), 0),
            )
            .where(*self._scope(tenant_id, date_from, date_to))
            .group_by(BankTransaction.status)
        )
        by_status = {
            status.value: StatusTotals(count=0, total_amount=Decimal("0.00"))
            for status in TransactionStatus
        }
        for status, count, amount in result.all():
            by_status[status] = StatusTotals(count=int(count), total_amount=round_money(amount))

        return ReconciliationSummary(
            by_status=by_status,
            total=StatusTotals(
                count=sum(s.count for s in by_status.values()),
                total_amount=round_money(sum((s.total_amount for s in by_status.values()), Decimal("0"))),
            ),
        )

    async def batch_rollup(
        self,
        tenant_id: int,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[BatchRollupRow]:
        """Per import batch: row count, matched/unmatched counts, amount sum. Newest import first."""
        imported_at = func.min(BankTransaction.imported_at).label("imported_at")
        result = await self.db.execute(
            select(
                BankTransaction.import_batch_id,
                func.count(BankTransaction.id).label("count"),
                func.sum(case((BankTransaction.status.in_(MATCHED_STATUSES), 1), else_=0)).label(
                    "matched"
                ),
                func.sum(
                    case((BankTransaction.status == TransactionStatus.UNMATCHED.value, 1), else_=0)
                ).label("unmatched"),
                func.coalesce(func.sum(BankTransaction.amount), 0).label("total_amount"),
                imported_at,
            )
            .where(*self._scope(tenant_id, date_from, date_to))
            .group_by(BankTransaction.import_batch_id)
            .order_by(imported_at.desc(), BankTransaction.import_batch_id.desc())
        )
        return [
            BatchRollupRow(
                import_batch_id=row.import_batch_id,
                count=int(row.count),
                matched=int(row.matched or 0),
                unmatched=int(row.unmatched or 0),
                total_amount=round_money(row.total_amount),
                imported_at=row.imported_at,
            )
            for row in result.all()
        ]

    async def reconciliation_report(
        self,
        tenant_id: int,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> dict:
        """Summary plus the unmatched and matched transactions of the period, newest first."""
        summary = await self.summary(tenant_id, date_from, date_to)
        scope = self._scope(tenant_id, date_from, date_to)
        order = (BankTransaction.transaction_date.desc(), BankTransaction.id.desc())

        unmatched = await self.db.execute(
            select(BankTransaction)
            .where(*scope, BankTransaction.status == TransactionStatus.UNMATCHED.value)
            .order_by(*order)
        )
        matched = await self.db.execute(
            select(BankTransaction)
            .where(*scope, BankTransaction.status.in_(MATCHED_STATUSES))
            .order_by(*order)
        )
        return {
            "summary": summary,
            "unmatched": list(unmatched.scalars().all()),
            "matched": list(matched.scalars().all()),
            "period": {"date_from": date_from, "date_to": date_to},
        }
