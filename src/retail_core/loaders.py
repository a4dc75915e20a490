"""Read raw transaction rows into validated Transaction records.

The reporting core consumes an ordered sequence of records and is not tied
to any storage format. This module is the thin layer in front of it:

- normalize_columns: map export headers ("Invoice ID", "Tax 5%", "Date",
  "Time", ...) to Transaction field names
- parse_transaction: validate one raw mapping into a Transaction
- parse_transactions: validate a batch, skipping and recording bad rows
- load_transactions_csv: read a CSV export into a normalised DataFrame

Examples:
    >>> df = load_transactions_csv("data/a_raw/supermarket_sales.csv")
    >>> transactions, skipped = parse_transactions(records_from_frame(df))
"""

from __future__ import annotations

import logging
import math
import re
import unicodedata
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd

from retail_core.exceptions import DataQualityError, MalformedRecordError
from retail_core.models import (
    CUSTOMER_TYPES,
    GENDERS,
    OPTIONAL_FIELDS,
    PAYMENT_METHODS,
    TRANSACTION_FIELDS,
    Transaction,
)

logger = logging.getLogger(__name__)

# Allowed difference between the reported total and price * qty * (1 + tax)
TOTAL_TOLERANCE = 0.01

# Export header "Tax 5%" holds the tax amount and names the rate.
_TAX_HEADER_RE = re.compile(r"^\s*tax\s*(?P<rate>\d+(?:\.\d+)?)\s*%\s*$", re.IGNORECASE)

# snake_case export headers that differ from the Transaction field names
COLUMN_ALIASES = {
    "gross_margin_percentage": "gross_margin_pct",
    "payment_method": "payment",
}


@dataclass(frozen=True)
class SkippedRecord:
    """A source row rejected during parsing.

    Attributes:
        index: Position of the row in the input.
        invoice_id: Invoice id of the row, if readable.
        field: Field that failed validation, if known.
        reason: Human-readable reason.
    """

    index: int
    invoice_id: str | None
    field: str | None
    reason: str


def to_snake(s: str) -> str:
    """Convert a header to snake_case.

    Examples:
        >>> to_snake("Invoice ID")
        'invoice_id'
        >>> to_snake("gross margin percentage")
        'gross_margin_percentage'
    """
    s1 = unicodedata.normalize("NFKD", str(s))
    s1 = "".join(c for c in s1 if not unicodedata.combining(c)).lower()
    s1 = re.sub(r"[^\w\s]", " ", s1)
    s1 = re.sub(r"\s+", "_", s1).strip("_")
    return s1


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Rename export headers to Transaction field names.

    - Headers are converted to snake_case and aliased.
    - A "Tax N%" header becomes tax_amount, and tax_pct is filled with N
      unless the frame already carries tax_pct.
    - Separate date and time columns are combined into timestamp.

    Args:
        df: Raw export DataFrame.

    Returns:
        A new DataFrame with canonical column names.

    Raises:
        DataQualityError: If required columns are still missing.

    """
    df = df.copy()
    renames: dict[str, str] = {}
    tax_rate: float | None = None
    for col in df.columns:
        match = _TAX_HEADER_RE.match(str(col))
        if match:
            tax_rate = float(match.group("rate"))
            renames[col] = "tax_amount"
            continue
        snake = to_snake(col)
        renames[col] = COLUMN_ALIASES.get(snake, snake)
    df = df.rename(columns=renames)

    if "tax_pct" not in df.columns and tax_rate is not None:
        df["tax_pct"] = tax_rate

    if "timestamp" not in df.columns and {"date", "time"} <= set(df.columns):
        df["timestamp"] = df["date"].astype(str) + " " + df["time"].astype(str)

    required = [f for f in TRANSACTION_FIELDS if f not in OPTIONAL_FIELDS]
    missing = [f for f in required if f not in df.columns]
    if missing:
        raise DataQualityError(f"Missing required columns: {missing}. Required: {required}")

    for name in OPTIONAL_FIELDS:
        if name not in df.columns:
            df[name] = None

    return df


def records_from_frame(df: pd.DataFrame) -> list[dict[str, Any]]:
    """Turn a DataFrame into one mapping per row, normalising headers first."""
    return normalize_columns(df).to_dict("records")


def load_transactions_csv(path: str | Path) -> pd.DataFrame:
    """Read a transactions CSV export and normalise its columns.

    Raises:
        FileNotFoundError: If the file does not exist.
        DataQualityError: If required columns are missing.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Transactions file not found: {path}")

    df = pd.read_csv(path, encoding="utf-8")
    logger.info("Read %d rows from %s", len(df), path)
    return normalize_columns(df)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return value is pd.NaT or value is pd.NA


class _RecordReader:
    """Field accessors that raise MalformedRecordError with row context."""

    def __init__(self, record: Mapping[str, Any], index: int | None) -> None:
        self.record = record
        self.index = index
        raw_id = record.get("invoice_id")
        self.invoice_id = None if _is_missing(raw_id) else str(raw_id).strip()

    def fail(self, name: str, message: str) -> MalformedRecordError:
        return MalformedRecordError(
            f"Row {self.index} ({self.invoice_id or 'no invoice id'}): {message}",
            field=name,
            invoice_id=self.invoice_id,
            index=self.index,
        )

    def raw(self, name: str, optional: bool = False) -> Any:
        value = self.record.get(name)
        if _is_missing(value):
            if optional:
                return None
            raise self.fail(name, f"missing required field '{name}'")
        return value

    def text(self, name: str, choices: tuple[str, ...] | None = None) -> str:
        value = str(self.raw(name)).strip()
        if choices is not None and value not in choices:
            raise self.fail(name, f"'{name}' must be one of {list(choices)}, got '{value}'")
        return value

    def number(
        self,
        name: str,
        *,
        optional: bool = False,
        positive: bool = False,
        minimum: float | None = None,
        maximum: float | None = None,
    ) -> float | None:
        value = self.raw(name, optional=optional)
        if value is None:
            return None
        if isinstance(value, bool):
            raise self.fail(name, f"'{name}' must be numeric, got {value!r}")
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise self.fail(name, f"'{name}' must be numeric, got {value!r}") from None
        if math.isinf(number):
            raise self.fail(name, f"'{name}' must be finite")
        if positive and number <= 0:
            raise self.fail(name, f"'{name}' must be positive, got {number}")
        if minimum is not None and number < minimum:
            raise self.fail(name, f"'{name}' must be >= {minimum}, got {number}")
        if maximum is not None and number > maximum:
            raise self.fail(name, f"'{name}' must be <= {maximum}, got {number}")
        return number

    def positive_int(self, name: str) -> int:
        number = self.number(name, positive=True)
        if not float(number).is_integer():
            raise self.fail(name, f"'{name}' must be a whole number, got {number}")
        return int(number)

    def timestamp(self, name: str) -> datetime:
        value = self.raw(name)
        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()
        if isinstance(value, datetime):
            return value
        try:
            ts = pd.to_datetime(str(value))
        except (TypeError, ValueError) as e:
            raise self.fail(name, f"'{name}' is not a valid date/time: {value!r}") from e
        # "NaT" and "nan" parse without error
        if pd.isna(ts):
            raise self.fail(name, f"'{name}' is not a valid date/time: {value!r}")
        return ts.to_pydatetime()


def parse_transaction(record: Mapping[str, Any], index: int | None = None) -> Transaction:
    """Validate one raw record into a Transaction.

    Args:
        record: Mapping keyed by Transaction field names (see
            normalize_columns for export headers).
        index: Position of the record in its input, for error messages.

    Returns:
        Transaction.

    Raises:
        MalformedRecordError: If a required field is missing or a value
            violates its type or range constraint.

    """
    r = _RecordReader(record, index)
    if r.invoice_id is None:
        raise r.fail("invoice_id", "missing required field 'invoice_id'")

    unit_price = r.number("unit_price", positive=True)
    quantity = r.positive_int("quantity")
    tax_pct = r.number("tax_pct", minimum=0)
    total = r.number("total", minimum=0)

    expected = unit_price * quantity * (1 + tax_pct / 100)
    if abs(total - expected) > TOTAL_TOLERANCE:
        raise r.fail(
            "total",
            f"total {total} does not match unit_price * quantity * (1 + tax_pct/100) = {expected:.4f}",
        )

    return Transaction(
        invoice_id=r.invoice_id,
        branch=r.text("branch"),
        city=r.text("city"),
        customer_type=r.text("customer_type", CUSTOMER_TYPES),
        gender=r.text("gender", GENDERS),
        product_line=r.text("product_line"),
        unit_price=unit_price,
        quantity=quantity,
        tax_pct=tax_pct,
        total=total,
        timestamp=r.timestamp("timestamp"),
        payment=r.text("payment", PAYMENT_METHODS),
        cogs=r.number("cogs", minimum=0),
        gross_margin_pct=r.number("gross_margin_pct", optional=True),
        gross_income=r.number("gross_income", optional=True),
        rating=r.number("rating", optional=True, minimum=0, maximum=10),
    )


def parse_transactions(
    records: Iterable[Mapping[str, Any] | Transaction],
) -> tuple[list[Transaction], list[SkippedRecord]]:
    """Validate a batch of records.

    Malformed rows do not abort the batch: each one is logged, recorded as a
    SkippedRecord and left out. A repeated invoice_id is malformed; the
    first occurrence is kept.

    Args:
        records: Raw mappings or already-built Transactions, in input order.
            Transactions are validated like raw mappings.

    Returns:
        Tuple of (valid transactions in input order, skipped records).

    """
    transactions: list[Transaction] = []
    skipped: list[SkippedRecord] = []
    seen: set[str] = set()

    for index, record in enumerate(records):
        try:
            if isinstance(record, Transaction):
                record = {name: getattr(record, name) for name in TRANSACTION_FIELDS}
            transaction = parse_transaction(record, index)
            if transaction.invoice_id in seen:
                raise MalformedRecordError(
                    f"Row {index} ({transaction.invoice_id}): duplicate invoice_id",
                    field="invoice_id",
                    invoice_id=transaction.invoice_id,
                    index=index,
                )
        except MalformedRecordError as e:
            logger.warning("Skipping malformed record: %s", e)
            skipped.append(
                SkippedRecord(index=index, invoice_id=e.invoice_id, field=e.field, reason=str(e))
            )
            continue

        seen.add(transaction.invoice_id)
        transactions.append(transaction)

    logger.info("Parsed %d transaction(s), skipped %d", len(transactions), len(skipped))
    return transactions, skipped
