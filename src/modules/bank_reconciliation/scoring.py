"""Match scoring between a bank transaction and a booking.

A score is the sum of three independent components, capped at ``max_score``:

- amount proximity: percentage difference against the booking total
- date proximity: whole days between the statement date and the booking date
- text: booking number found in the transaction reference and/or description,
  plus a customer name token found in the description

The text component alone can exceed the other two combined, so the cap is
applied to the total rather than assumed from the component maxima.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ScorableTransaction(Protocol):
    transaction_date: date
    description: str
    amount: Decimal
    reference: str | None


class ScorableBooking(Protocol):
    booking_number: str
    customer_name: str | None
    total_amount: Decimal

    @property
    def reference_date(self) -> date: ...


class ScoringConfig(BaseModel):
    """Point values and thresholds for match scoring."""

    model_config = ConfigDict(frozen=True)

    amount_exact_points: int = Field(default=50, ge=0)
    # (strict upper bound on % difference, points), checked in order
    amount_tiers: tuple[tuple[Decimal, int], ...] = (
        (Decimal("1"), 45),
        (Decimal("5"), 35),
        (Decimal("10"), 20),
    )
    # (inclusive upper bound in days, points), checked in order
    date_tiers: tuple[tuple[int, int], ...] = ((0, 20), (1, 15), (3, 10), (7, 5))

    reference_points: int = Field(default=30, ge=0)
    description_reference_points: int = Field(default=15, ge=0)
    customer_name_points: int = Field(default=10, ge=0)
    customer_name_min_token_length: int = Field(default=3, ge=1)

    max_score: int = Field(default=100, ge=1)
    auto_match_min_score: int = Field(default=70, ge=0, le=100)
    suggestion_min_score: int = Field(default=50, ge=0, le=100)

    @model_validator(mode="after")
    def _check_thresholds(self) -> "ScoringConfig":
        if self.suggestion_min_score > self.auto_match_min_score:
            raise ValueError("suggestion_min_score must not exceed auto_match_min_score")
        return self


DEFAULT_SCORING_CONFIG = ScoringConfig()


class MatchScore(BaseModel):
    """Score components for one transaction/booking pair."""

    model_config = ConfigDict(frozen=True)

    amount: int
    date_proximity: int
    reference: int
    description_reference: int
    customer_name: int
    total: int


def amount_points(
    transaction_amount: Decimal, booking_amount: Decimal, config: ScoringConfig
) -> int:
    if not booking_amount:
        return 0
    diff_pct = abs(transaction_amount - booking_amount) / abs(booking_amount) * 100
    if diff_pct == 0:
        return config.amount_exact_points
    for bound, points in config.amount_tiers:
        if diff_pct < bound:
            return points
    return 0


def date_points(transaction_date: date, booking_date: date, config: ScoringConfig) -> int:
    days = abs((transaction_date - booking_date).days)
    for bound, points in config.date_tiers:
        if days <= bound:
            return points
    return 0


def _customer_name_tokens(name: str | None, min_length: int) -> list[str]:
    return [part for part in (name or "").lower().split() if len(part) >= min_length]


def score_breakdown(
    transaction: ScorableTransaction,
    booking: ScorableBooking,
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> MatchScore:
    """Score one candidate booking. Pure: neither argument is modified."""
    amount = amount_points(Decimal(transaction.amount), Decimal(booking.total_amount), config)
    days = date_points(transaction.transaction_date, booking.reference_date, config)

    booking_number = (booking.booking_number or "").strip().lower()
    reference = (transaction.reference or "").strip().lower()
    description = (transaction.description or "").lower()

    reference_score = 0
    if reference and booking_number and (booking_number in reference or reference in booking_number):
        reference_score = config.reference_points

    description_score = 0
    if booking_number and booking_number in description:
        description_score = config.description_reference_points

    name_score = 0
    tokens = _customer_name_tokens(booking.customer_name, config.customer_name_min_token_length)
    if any(token in description for token in tokens):
        name_score = config.customer_name_points

    raw_total = amount + days + reference_score + description_score + name_score
    return MatchScore(
        amount=amount,
        date_proximity=days,
        reference=reference_score,
        description_reference=description_score,
        customer_name=name_score,
        total=max(0, min(raw_total, config.max_score)),
    )


def score_match(
    transaction: ScorableTransaction,
    booking: ScorableBooking,
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> int:
    """Compatibility score 0..max_score between a transaction and a booking."""
    return score_breakdown(transaction, booking, config).total
