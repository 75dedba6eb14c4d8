from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from src.core.exceptions import UnsupportedFormatError, ValidationError
from src.modules.bank_reconciliation.parsers import (
    StatementFormat,
    decode_statement,
    detect_format,
    find_field,
    generate_import_batch_id,
    parse_csv,
    parse_csv_date,
    parse_ofx,
    parse_statement,
)


def _ofx(*blocks: str) -> str:
    body = "\n".join(f"<STMTTRN>\n{b}\n</STMTTRN>" for b in blocks)
    return (
        "OFXHEADER:100\nDATA:OFXSGML\nVERSION:102\n\n"
        "<OFX><BANKMSGSRSV1><STMTTRNRS><STMTRS><BANKTRANLIST>\n"
        f"{body}\n"
        "</BANKTRANLIST></STMTRS></STMTTRNRS></BANKMSGSRSV1></OFX>\n"
    )


class TestCsvParser:
    def test_booking_payment_row(self):
        result = parse_csv(
            "Date,Description,Amount,Reference\n"
            "2025-01-15,Payment for booking BK123 - John Doe,1500.00,BK123\n"
        )
        assert result.format == StatementFormat.CSV
        assert result.rows_total == 1
        assert result.issues == []
        [txn] = result.transactions
        assert txn.transaction_date == date(2025, 1, 15)
        assert txn.description == "Payment for booking BK123 - John Doe"
        assert txn.amount == Decimal("1500.00")
        assert txn.reference == "BK123"
        assert txn.raw_data["Reference"] == "BK123"

    def test_zero_amount_rows_are_dropped_siblings_kept(self):
        result = parse_csv(
            "Date,Description,Amount\n"
            "2025-01-15,Deposit,0\n"
            "2025-01-16,Transfer in,250.00\n"
            "2025-01-17,Adjustment,0.00\n"
        )
        assert result.rows_total == 3
        assert [t.description for t in result.transactions] == ["Transfer in"]
        assert [i.reason for i in result.issues] == ["zero amount", "zero amount"]
        assert result.skipped_count == 2

    def test_oversized_amounts_are_dropped_siblings_kept(self):
        result = parse_csv(
            "Date,Description,Amount\n"
            "2025-01-15,ok row,10.00\n"
            "2025-01-16,bad row,1e30\n"
            "2025-01-17,too large,100000000000000\n"
            "2025-01-18,largest allowed,9999999999999.99\n"
        )
        assert result.rows_total == 4
        assert [t.description for t in result.transactions] == ["ok row", "largest allowed"]
        assert [i.row_index for i in result.issues] == [2, 3]
        assert result.issues[0].reason == "unparseable amount '1e30'"
        assert result.issues[1].reason == "amount out of range '100000000000000'"

    def test_debit_and_credit_columns(self):
        result = parse_csv(
            "Date,Description,Debit,Credit\n"
            "2025-01-10,Bank fee,25.00,\n"
            "2025-01-11,Customer transfer,,\"1,200.00\"\n"
            "2025-01-12,Card payment,-80,\n"
        )
        amounts = [t.amount for t in result.transactions]
        assert amounts == [Decimal("-25.00"), Decimal("1200.00"), Decimal("-80.00")]

    def test_quoted_amount_with_thousands_separator_and_currency(self):
        result = parse_csv(
            'Transaction Date,Details,Transaction Amount,Ref\n'
            '15/01/2025,Invoice settlement,"$1,500.50",INV-9\n'
        )
        [txn] = result.transactions
        assert txn.transaction_date == date(2025, 1, 15)
        assert txn.amount == Decimal("1500.50")
        assert txn.reference == "INV-9"

    def test_rows_missing_required_fields_are_skipped(self):
        result = parse_csv(
            "Date,Description,Amount\n"
            "2025-01-15,,100\n"
            ",No date,100\n"
            "2025-01-15,Valid,100\n"
        )
        assert result.rows_total == 3
        assert len(result.transactions) == 1
        assert "description" in result.issues[0].reason
        assert "date" in result.issues[1].reason
        assert [i.row_index for i in result.issues] == [1, 2]

    def test_unparseable_date_and_amount_are_skipped(self):
        result = parse_csv(
            "Date,Description,Amount\n"
            "yesterday,Bad date,100\n"
            "2025-01-15,Bad amount,abc\n"
        )
        assert result.transactions == []
        assert result.issues[0].reason.startswith("unparseable date")
        assert result.issues[1].reason.startswith("unparseable amount")

    def test_header_only_file_has_no_rows(self):
        result = parse_csv("Date,Description,Amount\n")
        assert result.rows_total == 0
        assert result.transactions == []

    def test_all_rows_dropped_is_distinguishable_from_empty(self):
        result = parse_csv("Date,Description,Amount\n2025-01-15,Nothing,0\n")
        assert result.rows_total == 1
        assert result.transactions == []


class TestCsvHelpers:
    def test_find_field_prefers_exact_then_case_insensitive(self):
        row = {"DATE": "2025-01-01", "date": "", "Amount": "5"}
        assert find_field(row, ("date",)) == "2025-01-01"
        assert find_field(row, ("amount", "value")) == "5"
        assert find_field(row, ("reference",)) is None

    def test_find_field_candidate_order(self):
        row = {"Narrative": "second", "Description": "first"}
        assert find_field(row, ("description", "narrative")) == "first"

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("2025-01-15", date(2025, 1, 15)),
            ("2025/01/15", date(2025, 1, 15)),
            ("03/04/2025", date(2025, 4, 3)),
            ("15.01.2025", date(2025, 1, 15)),
            ("15 Jan 2025", date(2025, 1, 15)),
            ("2025-01-15T10:30:00", date(2025, 1, 15)),
        ],
    )
    def test_parse_csv_date(self, raw, expected):
        assert parse_csv_date(raw) == expected

    def test_parse_csv_date_rejects_garbage(self):
        assert parse_csv_date("31/31/2025") is None


class TestOfxParser:
    def test_refund_without_fitid(self):
        result = parse_ofx(
            _ofx(
                "<TRNTYPE>DEBIT\n<DTPOSTED>20250115120000\n<TRNAMT>-250.00\n<NAME>Hotel Refund</NAME>"
            )
        )
        assert result.format == StatementFormat.OFX
        [txn] = result.transactions
        assert txn.transaction_date == date(2025, 1, 15)
        assert txn.amount == Decimal("-250.00")
        assert txn.description == "Hotel Refund"
        assert txn.reference is None
        assert "<TRNAMT>-250.00" in txn.raw_data["ofx_block"]

    def test_sgml_name_memo_and_fitid(self):
        result = parse_ofx(
            _ofx(
                "<DTPOSTED>20250116\n<TRNAMT>1500.00\n<FITID>BK123\n<NAME>John Doe\n<MEMO>Booking &amp; deposit"
            )
        )
        [txn] = result.transactions
        assert txn.description == "John Doe - Booking & deposit"
        assert txn.reference == "BK123"
        assert txn.amount == Decimal("1500.00")

    def test_blocks_without_date_or_amount_are_skipped(self):
        result = parse_ofx(
            _ofx(
                "<TRNAMT>10.00\n<NAME>No date",
                "<DTPOSTED>20250115\n<NAME>No amount",
                "<DTPOSTED>20250115\n<TRNAMT>0.00\n<NAME>Zero",
                "<DTPOSTED>20251315\n<TRNAMT>5.00\n<NAME>Bad month",
                "<DTPOSTED>20250115\n<TRNAMT>5.00\n<NAME>Kept",
            )
        )
        assert result.rows_total == 5
        assert [t.description for t in result.transactions] == ["Kept"]
        assert [i.row_index for i in result.issues] == [1, 2, 3, 4]

    def test_oversized_trnamt_is_dropped_siblings_kept(self):
        result = parse_ofx(
            _ofx(
                "<DTPOSTED>20250115\n<TRNAMT>1E30\n<NAME>Huge",
                "<DTPOSTED>20250115\n<TRNAMT>-20000000000000.00\n<NAME>Overflow",
                "<DTPOSTED>20250116\n<TRNAMT>75.00\n<NAME>Kept",
            )
        )
        assert result.rows_total == 3
        assert [t.description for t in result.transactions] == ["Kept"]
        assert [i.row_index for i in result.issues] == [1, 2]
        assert result.issues[1].reason.startswith("amount out of range")

    def test_no_transactions(self):
        result = parse_ofx(_ofx())
        assert result.rows_total == 0
        assert result.transactions == []


class TestFormatDetection:
    @pytest.mark.parametrize(
        "file_name, content_type, declared, expected",
        [
            ("statement.csv", None, None, StatementFormat.CSV),
            ("STATEMENT.CSV", None, None, StatementFormat.CSV),
            ("statement.ofx", None, None, StatementFormat.OFX),
            ("statement.qfx", None, None, StatementFormat.OFX),
            ("upload", "text/csv; charset=utf-8", None, StatementFormat.CSV),
            ("upload", "application/x-ofx", None, StatementFormat.OFX),
            ("statement.csv", None, "ofx", StatementFormat.OFX),
            ("statement.bin", None, "QFX", StatementFormat.OFX),
        ],
    )
    def test_detect(self, file_name, content_type, declared, expected):
        assert detect_format(file_name, content_type, declared) == expected

    def test_unknown_extension_rejected(self):
        with pytest.raises(UnsupportedFormatError) as exc_info:
            detect_format("statement.pdf", "application/pdf")
        assert exc_info.value.status_code == 415

    def test_unknown_declared_format_rejected(self):
        with pytest.raises(UnsupportedFormatError):
            detect_format("statement.csv", None, "xlsx")


class TestDecoding:
    def test_utf8_bom_stripped(self):
        assert decode_statement("\ufeffDate".encode("utf-8")) == "Date"

    def test_cp1252_fallback(self):
        assert decode_statement("Café".encode("cp1252")) == "Café"

    def test_undecodable_bytes_rejected(self):
        with pytest.raises(ValidationError):
            decode_statement(b"\x81\x8d")

    def test_parse_statement_with_bom_header(self):
        raw = "\ufeffDate,Description,Amount\n2025-01-15,Deposit,10\n".encode("utf-8")
        result = parse_statement(raw, StatementFormat.CSV)
        assert len(result.transactions) == 1


class TestImportBatchId:
    def test_batch_ids_are_unique(self):
        ids = {generate_import_batch_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(i.startswith("import_") for i in ids)

    def test_explicit_batch_id_is_kept(self):
        result = parse_csv("Date,Description,Amount\n", import_batch_id="batch-1")
        assert result.import_batch_id == "batch-1"
