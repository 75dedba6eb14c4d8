"""Pydantic schemas for bank statement import and reconciliation."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import Field

from src.shared.schemas.base import BaseSchema


TransactionStatusValue = Literal["unmatched", "matched", "manually_matched", "ignored"]


class ParseIssueResponse(BaseSchema):
    row_index: int
    reason: str


class ImportResult(BaseSchema):
    import_batch_id: str
    format: str
    rows_total: int
    imported_count: int
    skipped_count: int
    issues: list[ParseIssueResponse] = []


class BankTransactionResponse(BaseSchema):
    id: int
    tenant_id: int
    transaction_date: date
    description: str
    amount: Decimal
    reference: str | None = None
    status: TransactionStatusValue
    matched_booking_id: int | None = None
    match_score: int | None = None
    match_method: str | None = None
    matched_by_id: int | None = None
    matched_at: datetime | None = None
    import_batch_id: str
    imported_by_id: int
    imported_at: datetime


class BankTransactionDetail(BankTransactionResponse):
    raw_data: dict


class ScoreBreakdown(BaseSchema):
    amount: int
    date_proximity: int
    reference: int
    description_reference: int
    customer_name: int
    total: int


class BookingSummary(BaseSchema):
    id: int
    booking_number: str
    customer_name: str | None = None
    total_amount: Decimal
    status: str
    payment_status: str
    booking_date: date | None = None


class MatchSuggestion(BaseSchema):
    """Best candidate booking for a transaction. Never persisted."""

    transaction_id: int
    booking: BookingSummary
    match_score: int
    match_method: Literal["suggested"] = "suggested"
    breakdown: ScoreBreakdown


class AutoMatchRequest(BaseSchema):
    import_batch_id: str | None = None
    min_score: int | None = Field(None, ge=0, le=100)


class AutoMatchedTransaction(BaseSchema):
    transaction_id: int
    booking_id: int
    match_score: int


class UnmatchedTransaction(BaseSchema):
    transaction_id: int
    transaction_date: date
    description: str
    amount: Decimal
    reference: str | None = None
    import_batch_id: str


class AutoMatchResult(BaseSchema):
    matched_count: int
    unmatched_count: int
    failed_count: int = 0
    matches: list[AutoMatchedTransaction]
    suggestions: list[MatchSuggestion]
    unmatched: list[UnmatchedTransaction]


class ManualMatchRequest(BaseSchema):
    transaction_id: int = Field(..., gt=0)
    booking_id: int = Field(..., gt=0)
    match_score: int | None = Field(None, ge=0, le=100)


class StatusTotals(BaseSchema):
    count: int
    total_amount: Decimal


class ReconciliationSummary(BaseSchema):
    by_status: dict[str, StatusTotals]
    total: StatusTotals


class BatchRollupRow(BaseSchema):
    import_batch_id: str
    count: int
    matched: int
    unmatched: int
    total_amount: Decimal
    imported_at: datetime | None = None


class ReportPeriod(BaseSchema):
    date_from: date | None = None
    date_to: date | None = None


class ReconciliationReport(BaseSchema):
    period: ReportPeriod
    summary: ReconciliationSummary
    unmatched: list[BankTransactionResponse]
    matched: list[BankTransactionResponse]


class DeleteBatchResult(BaseSchema):
    import_batch_id: str
    deleted_count: int
