"""Bank statement parsers (CSV and OFX/QFX) producing canonical transactions.

Parsers never raise for a bad row: rows that cannot be turned into a
transaction are skipped and reported as ``ParseIssue`` entries on the
``ParseResult``. Only whole-file problems (unsupported format, undecodable
bytes) raise.
"""

from __future__ import annotations

import csv
import html
import io
import logging
import re
import secrets
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import StrEnum

from src.core.exceptions import UnsupportedFormatError, ValidationError
from src.shared.utils.money import parse_money

logger = logging.getLogger(__name__)


class StatementFormat(StrEnum):
    CSV = "csv"
    OFX = "ofx"


# Candidate header names per logical field, tried in order.
DATE_COLUMNS = ("date", "transaction date", "trans date", "value date", "posting date")
DESCRIPTION_COLUMNS = (
    "description",
    "details",
    "narrative",
    "transaction details",
    "particulars",
)
AMOUNT_COLUMNS = ("amount", "value", "debit", "credit", "transaction amount")
REFERENCE_COLUMNS = (
    "reference",
    "ref",
    "transaction reference",
    "cheque no",
    "reference number",
)

# Amounts are stored as Numeric(15, 2).
MAX_STATEMENT_AMOUNT = Decimal("1e13")

# Day-first before month-first: 03/04/2025 is 3 April.
CSV_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%m/%d/%Y",
    "%d/%m/%y",
    "%d %b %Y",
    "%d %B %Y",
    "%d-%b-%Y",
    "%b %d, %Y",
    "%Y%m%d",
)

FORMAT_BY_EXTENSION = {
    ".csv": StatementFormat.CSV,
    ".ofx": StatementFormat.OFX,
    ".qfx": StatementFormat.OFX,
}
FORMAT_BY_CONTENT_TYPE = {
    "text/csv": StatementFormat.CSV,
    "application/csv": StatementFormat.CSV,
    "application/x-ofx": StatementFormat.OFX,
    "application/ofx": StatementFormat.OFX,
    "application/vnd.intu.qfx": StatementFormat.OFX,
}

_STMTTRN_RE = re.compile(r"<STMTTRN>(.*?)</STMTTRN>", re.IGNORECASE | re.DOTALL)
_DTPOSTED_RE = re.compile(r"<DTPOSTED>\s*(\d{8})", re.IGNORECASE)
_TRNAMT_RE = re.compile(r"<TRNAMT>\s*([^<\r\n]+)", re.IGNORECASE)
# OFX 1.x (SGML) leaves these elements unclosed, OFX 2.x (XML) closes them.
_NAME_RE = re.compile(r"<NAME>([^<\r\n]*)", re.IGNORECASE)
_MEMO_RE = re.compile(r"<MEMO>([^<\r\n]*)", re.IGNORECASE)
_FITID_RE = re.compile(r"<FITID>([^<\r\n]*)", re.IGNORECASE)


@dataclass(frozen=True)
class ParsedTransaction:
    """Canonical statement line, before it is stored."""

    row_index: int
    transaction_date: date
    description: str
    amount: Decimal
    reference: str | None
    raw_data: dict[str, str]


@dataclass(frozen=True)
class ParseIssue:
    """A source row that was skipped, with the reason."""

    row_index: int
    reason: str


@dataclass
class ParseResult:
    format: StatementFormat
    import_batch_id: str
    transactions: list[ParsedTransaction] = field(default_factory=list)
    issues: list[ParseIssue] = field(default_factory=list)
    # Data rows (CSV) or STMTTRN blocks (OFX) seen, accepted or not.
    rows_total: int = 0

    @property
    def skipped_count(self) -> int:
        return len(self.issues)

    def skip(self, row_index: int, reason: str) -> None:
        logger.warning(
            "Skipping %s row %d in batch %s: %s",
            self.format.value,
            row_index,
            self.import_batch_id,
            reason,
        )
        self.issues.append(ParseIssue(row_index=row_index, reason=reason))


def generate_import_batch_id() -> str:
    """Unique batch token: UTC timestamp (microseconds) plus a random suffix."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    return f"import_{stamp}_{secrets.token_hex(4)}"


def detect_format(
    file_name: str | None,
    content_type: str | None = None,
    declared: str | None = None,
) -> StatementFormat:
    """
    Resolve the statement format.

    Order: explicit declared format, then file extension, then MIME type.
    Raises UnsupportedFormatError when none of them is recognised.
    """
    if declared:
        try:
            return StatementFormat(declared.strip().lower())
        except ValueError:
            if declared.strip().lower() == "qfx":
                return StatementFormat.OFX
            raise UnsupportedFormatError(file_name) from None

    name = (file_name or "").strip().lower()
    for extension, statement_format in FORMAT_BY_EXTENSION.items():
        if name.endswith(extension):
            return statement_format

    mime = (content_type or "").split(";")[0].strip().lower()
    if mime in FORMAT_BY_CONTENT_TYPE:
        return FORMAT_BY_CONTENT_TYPE[mime]

    raise UnsupportedFormatError(file_name)


def decode_statement(raw_bytes: bytes) -> str:
    """Decode uploaded bytes; UTF-8 (with or without BOM), then Windows-1252."""
    try:
        return raw_bytes.decode("utf-8-sig")
    except UnicodeDecodeError:
        pass
    try:
        return raw_bytes.decode("cp1252")
    except UnicodeDecodeError as exc:
        raise ValidationError("Statement file is not valid UTF-8 or Windows-1252 text", field="file") from exc


# --- CSV ---


def find_field(row: dict[str, str], candidates: tuple[str, ...]) -> str | None:
    """
    First non-empty value among candidate columns.

    Each candidate is tried as an exact header first, then case-insensitively.
    """
    for name in candidates:
        value = (row.get(name) or "").strip()
        if value:
            return value
        for key, raw in row.items():
            if key.lower() == name.lower():
                value = (raw or "").strip()
                if value:
                    return value
    return None


def parse_csv_date(value: str) -> date | None:
    raw = value.strip()
    try:
        return datetime.fromisoformat(raw).date()
    except ValueError:
        pass
    for fmt in CSV_DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def _resolve_csv_amount(row: dict[str, str], amount_value: str) -> Decimal | None:
    debit_raw = find_field(row, ("debit",))
    credit_raw = find_field(row, ("credit",))
    if debit_raw or credit_raw:
        # Separate columns carry magnitudes; some banks print debits with a minus sign.
        debit = parse_money(debit_raw) if debit_raw else Decimal("0")
        credit = parse_money(credit_raw) if credit_raw else Decimal("0")
        if debit is None or credit is None:
            return None
        return abs(credit) - abs(debit)
    return parse_money(amount_value)


def _clean_csv_row(row: dict) -> dict[str, str]:
    # DictReader puts overflow cells under a None key as a list.
    return {
        str(key).strip(): (value or "").strip()
        for key, value in row.items()
        if key is not None and not isinstance(value, list)
    }


def iter_csv_transactions(content: str, result: ParseResult) -> Iterator[ParsedTransaction]:
    """Yield transactions from CSV text in source order, recording skips on ``result``."""
    reader = csv.DictReader(io.StringIO(content, newline=""))
    for row_index, raw_row in enumerate(reader, start=1):
        result.rows_total += 1
        row = _clean_csv_row(raw_row)

        date_value = find_field(row, DATE_COLUMNS)
        description = find_field(row, DESCRIPTION_COLUMNS)
        amount_value = find_field(row, AMOUNT_COLUMNS)
        if not date_value or not description or not amount_value:
            missing = [
                name
                for name, value in (
                    ("date", date_value),
                    ("description", description),
                    ("amount", amount_value),
                )
                if not value
            ]
            result.skip(row_index, f"missing required field(s): {', '.join(missing)}")
            continue

        transaction_date = parse_csv_date(date_value)
        if transaction_date is None:
            result.skip(row_index, f"unparseable date {date_value!r}")
            continue

        amount = _resolve_csv_amount(row, amount_value)
        if amount is None:
            result.skip(row_index, f"unparseable amount {amount_value!r}")
            continue
        if amount == 0:
            result.skip(row_index, "zero amount")
            continue
        if abs(amount) >= MAX_STATEMENT_AMOUNT:
            result.skip(row_index, f"amount out of range {amount_value!r}")
            continue

        yield ParsedTransaction(
            row_index=row_index,
            transaction_date=transaction_date,
            description=description,
            amount=amount,
            reference=find_field(row, REFERENCE_COLUMNS),
            raw_data=row,
        )


def parse_csv(content: str, import_batch_id: str | None = None) -> ParseResult:
    result = ParseResult(
        format=StatementFormat.CSV,
        import_batch_id=import_batch_id or generate_import_batch_id(),
    )
    result.transactions = list(iter_csv_transactions(content, result))
    return result


# --- OFX ---


def _ofx_text(pattern: re.Pattern[str], block: str) -> str | None:
    match = pattern.search(block)
    if not match:
        return None
    value = html.unescape(match.group(1)).strip()
    return value or None


def parse_ofx_date(value: str) -> date | None:
    try:
        return datetime.strptime(value[:8], "%Y%m%d").date()
    except ValueError:
        return None


def iter_ofx_transactions(content: str, result: ParseResult) -> Iterator[ParsedTransaction]:
    """Yield one transaction per <STMTTRN> block, recording skips on ``result``."""
    for row_index, match in enumerate(_STMTTRN_RE.finditer(content), start=1):
        result.rows_total += 1
        block = match.group(1)

        date_value = _ofx_text(_DTPOSTED_RE, block)
        amount_value = _ofx_text(_TRNAMT_RE, block)
        if not date_value or not amount_value:
            result.skip(row_index, "missing DTPOSTED or TRNAMT")
            continue

        transaction_date = parse_ofx_date(date_value)
        if transaction_date is None:
            result.skip(row_index, f"invalid DTPOSTED {date_value!r}")
            continue

        amount = parse_money(amount_value)
        if amount is None:
            result.skip(row_index, f"unparseable TRNAMT {amount_value!r}")
            continue
        if amount == 0:
            result.skip(row_index, "zero amount")
            continue
        if abs(amount) >= MAX_STATEMENT_AMOUNT:
            result.skip(row_index, f"amount out of range {amount_value!r}")
            continue

        name = _ofx_text(_NAME_RE, block)
        memo = _ofx_text(_MEMO_RE, block)
        yield ParsedTransaction(
            row_index=row_index,
            transaction_date=transaction_date,
            description=" - ".join(part for part in (name, memo) if part),
            amount=amount,
            reference=_ofx_text(_FITID_RE, block),
            raw_data={"ofx_block": block.strip()},
        )


def parse_ofx(content: str, import_batch_id: str | None = None) -> ParseResult:
    result = ParseResult(
        format=StatementFormat.OFX,
        import_batch_id=import_batch_id or generate_import_batch_id(),
    )
    result.transactions = list(iter_ofx_transactions(content, result))
    return result


def parse_statement(
    raw_bytes: bytes,
    statement_format: StatementFormat,
    import_batch_id: str | None = None,
) -> ParseResult:
    """Decode and parse a statement file of an already-detected format."""
    content = decode_statement(raw_bytes)
    if statement_format == StatementFormat.CSV:
        return parse_csv(content, import_batch_id)
    return parse_ofx(content, import_batch_id)
