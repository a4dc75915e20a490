"""Record model for retail transactions and report rows.

Grain Reference:
    - Transaction: one invoice line from the source export (one row per invoice_id)
    - EnrichedTransaction: Transaction plus derived calendar and outlier columns
    - AggregateRow: one row per distinct grouping-key tuple
    - RankedRow: one AggregateRow selected within its partition
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any

CUSTOMER_TYPES = ("Member", "Normal")
GENDERS = ("Male", "Female")
PAYMENT_METHODS = ("Cash", "Credit card", "Ewallet")
TIME_OF_DAY_BUCKETS = ("Morning", "Afternoon", "Evening")
WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

# Nullable source fields; every other Transaction field is required.
OPTIONAL_FIELDS = ("gross_margin_pct", "gross_income", "rating")


@dataclass(frozen=True)
class Transaction:
    """One row of the retail transactions table.

    Attributes:
        invoice_id: Unique invoice identifier.
        branch: Short branch code (e.g. "A").
        city: City of the branch.
        customer_type: "Member" or "Normal".
        gender: "Male" or "Female".
        product_line: Product category.
        unit_price: Price per unit, positive.
        quantity: Units sold, positive.
        tax_pct: Tax rate in percent, non-negative.
        total: unit_price * quantity * (1 + tax_pct / 100).
        timestamp: Date and time of the sale.
        payment: "Cash", "Credit card" or "Ewallet".
        cogs: Cost of goods sold.
        gross_margin_pct: Gross margin percentage, nullable.
        gross_income: Gross income, nullable.
        rating: Customer rating in [0, 10], nullable.
    """

    invoice_id: str
    branch: str
    city: str
    customer_type: str
    gender: str
    product_line: str
    unit_price: float
    quantity: int
    tax_pct: float
    total: float
    timestamp: datetime
    payment: str
    cogs: float
    gross_margin_pct: float | None
    gross_income: float | None
    rating: float | None


@dataclass(frozen=True)
class EnrichedTransaction(Transaction):
    """Transaction plus the derived feature columns."""

    sales_month: int
    day_of_week: str
    time_of_day: str
    is_outlier: bool

    def to_transaction(self) -> Transaction:
        """Return the source Transaction this row was derived from."""
        return Transaction(**{f.name: getattr(self, f.name) for f in fields(Transaction)})


TRANSACTION_FIELDS = tuple(f.name for f in fields(Transaction))
ENRICHED_FIELDS = tuple(f.name for f in fields(EnrichedTransaction))


@dataclass(frozen=True)
class AggregateRow:
    """One group of an aggregation: its key values and computed metrics.

    Values are reachable by name, keys first: ``row["branch"]``,
    ``row["revenue"]``.
    """

    group_keys: tuple[str, ...]
    key: tuple
    metrics: dict[str, Any] = field(default_factory=dict)

    @property
    def keys(self) -> dict[str, Any]:
        return dict(zip(self.group_keys, self.key))

    def __getitem__(self, name: str) -> Any:
        if name in self.group_keys:
            return self.key[self.group_keys.index(name)]
        return self.metrics[name]

    def as_dict(self) -> dict[str, Any]:
        return {**self.keys, **self.metrics}


@dataclass(frozen=True)
class RankedRow:
    """An AggregateRow selected within its partition.

    Attributes:
        row: The wrapped aggregate row.
        partition: Partition key values the row was ranked within.
        rank: 1-based position inside the partition.
    """

    row: AggregateRow
    partition: tuple
    rank: int

    @property
    def key(self) -> tuple:
        return self.row.key

    @property
    def metrics(self) -> dict[str, Any]:
        return self.row.metrics

    def __getitem__(self, name: str) -> Any:
        if name == "rank":
            return self.rank
        return self.row[name]

    def as_dict(self) -> dict[str, Any]:
        return {**self.row.as_dict(), "rank": self.rank}
