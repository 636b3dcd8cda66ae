"""Unit tests for CSV ingestion."""

import io

import pytest

from anomaly_detector.errors import (
    EmptyDatasetError,
    IngestionError,
    MissingColumnsError,
    TokenizeError,
)
from anomaly_detector.ingestion import coerce_cell, ingest_csv


class TestCoerceCell:
    """Tests for opportunistic cell typing."""

    def test_integer(self):
        assert coerce_cell("42") == 42
        assert isinstance(coerce_cell("-7"), int)

    def test_float(self):
        assert coerce_cell("1.5") == 1.5
        assert coerce_cell("1e3") == 1000.0

    def test_boolean(self):
        assert coerce_cell("true") is True
        assert coerce_cell("FALSE") is False

    def test_empty_is_none(self):
        assert coerce_cell("") is None

    def test_text_unchanged(self):
        assert coerce_cell("abc") == "abc"
        assert coerce_cell("12abc") == "12abc"

    def test_float_words_stay_text(self):
        assert coerce_cell("nan") == "nan"
        assert coerce_cell("inf") == "inf"
        assert coerce_cell("Infinity") == "Infinity"

    def test_padded_number(self):
        assert coerce_cell(" 12 ") == 12


class TestIngestCsv:
    """Tests for ingest_csv."""

    def test_parses_valid_rows(self, two_row_csv):
        """Test rows come back in file order with typed amounts."""
        result = ingest_csv(two_row_csv)

        assert result.row_count == 2
        assert result.headers == ["BA", "monthly", "actCode", "amount"]
        assert result.rows[0].amount == 500.0
        assert result.rows[1].amount == 999999.0
        assert result.rows[1].monthly == "202401"

    def test_identifier_columns_keep_leading_zeros(self, csv_bytes):
        result = ingest_csv(csv_bytes([("0100", "202401", "0110", "12.5")]))

        row = result.rows[0]
        assert row.BA == "0100"
        assert row.actCode == "0110"
        assert row.amount == 12.5

    def test_extra_columns_are_retained(self, csv_bytes):
        data = csv_bytes(
            [("1000", "202401", "5100", "10", "42", "memo")],
            header="BA,monthly,actCode,amount,qty,note",
        )

        row = ingest_csv(data).rows[0]

        assert row.model_extra == {"qty": 42, "note": "memo"}
        assert row.to_record() == {
            "ba": "1000",
            "monthly": "202401",
            "act_code": "5100",
            "amount": 10.0,
        }

    def test_column_order_does_not_matter(self, csv_bytes):
        data = csv_bytes([("250", "5100", "202402", "2000")], header="amount,actCode,monthly,BA")

        row = ingest_csv(data).rows[0]

        assert (row.BA, row.monthly, row.actCode, row.amount) == ("2000", "202402", "5100", 250.0)

    def test_blank_lines_are_skipped(self):
        data = b"BA,monthly,actCode,amount\n\n1000,202401,5100,1\n\n1000,202402,5100,2\n\n"

        assert ingest_csv(data).row_count == 2

    def test_utf8_bom_is_stripped(self):
        data = "\ufeffBA,monthly,actCode,amount\n1000,202401,5100,1\n".encode("utf-8")

        assert ingest_csv(data).headers[0] == "BA"

    def test_accepts_file_like_object(self, two_row_csv):
        buffer = io.BytesIO(two_row_csv)
        buffer.read()  # already consumed by a previous reader

        assert ingest_csv(buffer).row_count == 2

    def test_accepts_path(self, tmp_path, two_row_csv):
        path = tmp_path / "transactions.csv"
        path.write_bytes(two_row_csv)

        assert ingest_csv(path).row_count == 2
        assert ingest_csv(str(path)).row_count == 2


class TestIngestionErrors:
    """Tests for the three rejection categories and their order."""

    def test_zero_byte_file_is_empty(self):
        with pytest.raises(EmptyDatasetError) as exc_info:
            ingest_csv(b"")

        assert str(exc_info.value) == "The CSV file is empty."

    def test_header_only_is_empty(self):
        with pytest.raises(EmptyDatasetError):
            ingest_csv(b"BA,monthly,actCode,amount\n")

    def test_empty_is_reported_before_missing_columns(self):
        with pytest.raises(EmptyDatasetError):
            ingest_csv(b"foo,bar\n")

    def test_missing_columns_in_canonical_order(self, csv_bytes):
        data = csv_bytes([("5100", "202401", "x")], header="amount_total,monthly,actCode")

        with pytest.raises(MissingColumnsError) as exc_info:
            ingest_csv(data)

        assert exc_info.value.missing == ["BA", "amount"]
        assert str(exc_info.value) == "Missing required columns: BA, amount"

    def test_column_names_are_case_sensitive(self, csv_bytes):
        data = csv_bytes([("1000", "202401", "5100", "1")], header="ba,monthly,actCode,Amount")

        with pytest.raises(MissingColumnsError) as exc_info:
            ingest_csv(data)

        assert exc_info.value.missing == ["BA", "amount"]

    def test_ragged_row_is_a_tokenize_error(self):
        data = b"BA,monthly,actCode,amount\n1000,202401,5100,1\n1000,202401,5100,2,3,4\n"

        with pytest.raises(TokenizeError) as exc_info:
            ingest_csv(data)

        assert str(exc_info.value).startswith("CSV Parsing Error: ")
        assert exc_info.value.detail

    def test_non_numeric_amount_is_a_tokenize_error(self, csv_bytes):
        data = csv_bytes([("1000", "202401", "5100", "1"), ("1000", "202401", "5100", "n/a")])

        with pytest.raises(TokenizeError) as exc_info:
            ingest_csv(data)

        assert "Row 2" in str(exc_info.value)
        assert "n/a" in str(exc_info.value)

    def test_short_row_without_amount_is_rejected(self):
        data = b"BA,monthly,actCode,amount\n1000,202401,5100\n"

        with pytest.raises(TokenizeError):
            ingest_csv(data)

    def test_undecodable_bytes_are_rejected(self):
        data = b"BA,monthly,actCode,amount\n\xff\xfe\xfa,202401,5100,1\n"

        with pytest.raises(TokenizeError):
            ingest_csv(data)

    def test_all_errors_share_the_ingestion_base(self):
        for error in (EmptyDatasetError(), MissingColumnsError(["BA"]), TokenizeError("x")):
            assert isinstance(error, IngestionError)
