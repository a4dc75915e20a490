"""Feature derivation for retail transactions.

Adds the calendar and time-of-day columns used by the dashboard reports and
flags statistical outliers on unit_price and quantity.

Outlier bounds are a dataset-wide prerequisite: they are computed once from
the whole input (population mean and standard deviation) and then passed to
the per-row derivation, which stays pure.

Examples:
    >>> from datetime import time
    >>> classify_time_of_day(time(12, 0, 0))
    'Morning'
    >>> classify_time_of_day(time(12, 0, 1))
    'Afternoon'
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, fields
from datetime import datetime, time

import numpy as np

from retail_core.exceptions import DataQualityError
from retail_core.models import TIME_OF_DAY_BUCKETS, WEEKDAYS, EnrichedTransaction, Transaction

logger = logging.getLogger(__name__)

OUTLIER_Z_THRESHOLD = 3.0

# Inclusive upper bounds of the Morning and Afternoon buckets.
# Afternoon starts at 12:00:01; anything after 16:00:00 is Evening.
MORNING_END = time(12, 0, 0)
AFTERNOON_END = time(16, 0, 0)


@dataclass(frozen=True)
class FieldStats:
    """Population statistics of one numeric field."""

    mean: float
    std: float

    def is_outside(self, value: float, z: float) -> bool:
        return value > self.mean + z * self.std or value < self.mean - z * self.std


@dataclass(frozen=True)
class OutlierBounds:
    """Dataset-wide statistics used to flag outliers.

    Attributes:
        unit_price: Mean and standard deviation of unit_price.
        quantity: Mean and standard deviation of quantity.
        z: Number of standard deviations a value may lie from the mean.
    """

    unit_price: FieldStats
    quantity: FieldStats
    z: float = OUTLIER_Z_THRESHOLD

    def flags(self, transaction: Transaction) -> bool:
        return self.unit_price.is_outside(transaction.unit_price, self.z) or self.quantity.is_outside(
            transaction.quantity, self.z
        )


def classify_time_of_day(t: time) -> str:
    """Bucket a time of day into Morning, Afternoon or Evening.

    Resolution is one second; microseconds are ignored. Morning runs through
    12:00:00 inclusive and Afternoon starts at 12:00:01, so the buckets cover
    the whole day without overlap.

    Args:
        t: Local time of the sale.

    Returns:
        One of TIME_OF_DAY_BUCKETS.

    """
    t = t.replace(microsecond=0, tzinfo=None)
    if t <= MORNING_END:
        return TIME_OF_DAY_BUCKETS[0]
    if t <= AFTERNOON_END:
        return TIME_OF_DAY_BUCKETS[1]
    return TIME_OF_DAY_BUCKETS[2]


def weekday_name(ts: datetime) -> str:
    """Full English weekday name, independent of the process locale."""
    return WEEKDAYS[ts.weekday()]


def compute_outlier_bounds(
    transactions: Sequence[Transaction],
    z: float = OUTLIER_Z_THRESHOLD,
) -> OutlierBounds:
    """Compute population mean and standard deviation over the whole input.

    Args:
        transactions: Every transaction of the current dataset.
        z: Threshold in standard deviations.

    Returns:
        OutlierBounds for unit_price and quantity.

    Raises:
        DataQualityError: If there are no transactions.

    """
    if not transactions:
        raise DataQualityError("Cannot compute outlier bounds over an empty dataset")

    prices = np.array([t.unit_price for t in transactions], dtype=float)
    quantities = np.array([t.quantity for t in transactions], dtype=float)

    bounds = OutlierBounds(
        unit_price=FieldStats(mean=float(prices.mean()), std=float(prices.std(ddof=0))),
        quantity=FieldStats(mean=float(quantities.mean()), std=float(quantities.std(ddof=0))),
        z=z,
    )
    logger.debug(
        "Outlier bounds over %d rows: unit_price=%s quantity=%s",
        len(transactions),
        bounds.unit_price,
        bounds.quantity,
    )
    return bounds


def derive(transaction: Transaction, bounds: OutlierBounds) -> EnrichedTransaction:
    """Derive the feature columns for one transaction.

    Args:
        transaction: Source row.
        bounds: Dataset-wide outlier bounds from compute_outlier_bounds.

    Returns:
        EnrichedTransaction carrying every source field unchanged.

    """
    ts = transaction.timestamp
    return EnrichedTransaction(
        **{f.name: getattr(transaction, f.name) for f in fields(Transaction)},
        sales_month=ts.month,
        day_of_week=weekday_name(ts),
        time_of_day=classify_time_of_day(ts.time()),
        is_outlier=bounds.flags(transaction),
    )


def derive_all(
    transactions: Sequence[Transaction],
    z: float = OUTLIER_Z_THRESHOLD,
) -> list[EnrichedTransaction]:
    """Enrich a whole dataset.

    Bounds are recomputed from the sequence given on every call, so flags
    always reflect the current dataset.
    """
    if not transactions:
        return []

    bounds = compute_outlier_bounds(transactions, z=z)
    enriched = [derive(t, bounds) for t in transactions]

    n_outliers = sum(1 for e in enriched if e.is_outlier)
    logger.info("Derived features for %d rows (%d outliers)", len(enriched), n_outliers)
    return enriched
