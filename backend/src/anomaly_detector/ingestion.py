"""
CSV ingestion for uploaded transaction files.

Tokenizes the upload with pandas, validates the header against the required
columns and converts each record into a typed ``TransactionRow``.
"""

import io
import logging
import re
from pathlib import Path
from typing import IO, Any, Dict, List, Union

import pandas as pd
from pydantic import ValidationError

from .errors import EmptyDatasetError, MissingColumnsError, TokenizeError
from .models import REQUIRED_COLUMNS, IngestionResult, TransactionRow

logger = logging.getLogger(__name__)

CsvSource = Union[bytes, bytearray, str, Path, IO[bytes]]

# Identifier columns keep their text form so codes like "01" survive.
TEXT_COLUMNS = frozenset({"BA", "monthly", "actCode"})

# Plain decimal literals only; words such as "nan" or "inf" stay text.
_NUMBER_RE = re.compile(r"^\s*-?(\d+\.?|\.\d+|\d+\.\d+)([eE][-+]?\d+)?\s*$")
_INT_RE = re.compile(r"^\s*-?\d+\s*$")


def _read_bytes(source: CsvSource) -> bytes:
    """Load the raw upload from bytes, a path or a binary file-like object."""
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if isinstance(source, (str, Path)):
        return Path(source).read_bytes()

    if hasattr(source, "seek"):
        source.seek(0)
    data = source.read()
    if isinstance(data, str):
        return data.encode("utf-8")
    return data


def coerce_cell(value: str) -> Any:
    """
    Convert a cell to a number or boolean when it looks like one.

    Empty cells become None; anything else is returned unchanged.
    """
    if value == "":
        return None
    if _INT_RE.match(value):
        return int(value)
    if _NUMBER_RE.match(value):
        return float(value)
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return value


def _tokenize(raw: bytes) -> pd.DataFrame:
    try:
        return pd.read_csv(
            io.BytesIO(raw),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
        )
    except pd.errors.EmptyDataError:
        # Zero-byte or whitespace-only upload
        return pd.DataFrame()
    except (pd.errors.ParserError, UnicodeDecodeError) as exc:
        raise TokenizeError(str(exc).strip()) from exc


def _build_row(position: int, record: Dict[str, str]) -> TransactionRow:
    values: Dict[str, Any] = {}
    for column, cell in record.items():
        # Short rows are padded with NaN by pandas
        if not isinstance(cell, str):
            cell = ""
        values[str(column)] = cell if column in TEXT_COLUMNS else coerce_cell(cell)

    amount = values.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise TokenizeError(
            f"Row {position + 1}: amount '{record.get('amount', '')}' is not numeric"
        )

    try:
        return TransactionRow.model_validate(values)
    except ValidationError as exc:
        raise TokenizeError(f"Row {position + 1}: {exc.errors()[0]['msg']}") from exc


def ingest_csv(source: CsvSource) -> IngestionResult:
    """
    Parse an uploaded CSV into transaction rows.

    Args:
        source: Raw bytes, a filesystem path or a binary file-like object

    Returns:
        IngestionResult with the ordered rows and detected headers

    Raises:
        TokenizeError: If the tokenizer fails or an amount is not numeric
        EmptyDatasetError: If the file holds no data rows
        MissingColumnsError: If any of BA, monthly, actCode, amount is absent
    """
    frame = _tokenize(_read_bytes(source))

    if frame.empty:
        raise EmptyDatasetError()

    headers: List[str] = [str(column) for column in frame.columns]
    missing = [column for column in REQUIRED_COLUMNS if column not in headers]
    if missing:
        raise MissingColumnsError(missing)

    rows = [
        _build_row(position, record)
        for position, record in enumerate(frame.to_dict(orient="records"))
    ]

    logger.info(
        f"Parsed {len(rows)} transactions from CSV",
        extra={
            "status": "ingested",
            "details": {"row_count": len(rows), "headers": headers},
        },
    )
    return IngestionResult(rows=rows, headers=headers)
