"""Top-N selection of aggregate rows within partitions.

Used for reports such as "top product line per branch": the aggregate rows
are split by the partition key and the best n rows of each partition are
kept.

Ordering within a partition:
    1. the metric, descending for "max" and ascending for "min"
       (a None metric always ranks last)
    2. ties broken on the full grouping key tuple, ascending
       (None key values sort after real values)

So when "Electronics" and "Food" both reach the top revenue in a branch,
"Electronics" is selected.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any

from retail_core.exceptions import EmptyPartitionError, UnknownFieldError, UnsupportedMetricError
from retail_core.models import AggregateRow, RankedRow

logger = logging.getLogger(__name__)

DIRECTIONS = ("max", "min")


def _sort_token(value: Any) -> tuple:
    return (value is None, value if value is not None else 0)


def _rank_key(row: AggregateRow, metric: str, direction: str) -> tuple:
    value = row.metrics[metric]
    if value is None:
        primary: tuple = (1, 0)
    else:
        primary = (0, -value if direction == "max" else value)
    return (primary, tuple(_sort_token(v) for v in row.key))


def _as_partition(value: Any) -> tuple:
    return value if isinstance(value, tuple) else (value,)


def top_n(
    rows: Iterable[AggregateRow],
    partition_key: str | Sequence[str],
    order_by_metric: str,
    n: int = 1,
    direction: str = "max",
    partitions: Iterable[Any] | None = None,
) -> list[RankedRow]:
    """Select the best n aggregate rows of each partition.

    Args:
        rows: Output of aggregate() (or merge_aggregates()).
        partition_key: Grouping key field(s) that define the partitions.
        order_by_metric: Metric name to rank by.
        n: Maximum number of rows kept per partition.
        direction: "max" keeps the largest metric values, "min" the smallest.
        partitions: Optional partition values to rank, in output order.
            Defaults to every partition present, in first-occurrence order.

    Returns:
        RankedRows grouped by partition, in rank order within each partition.

    Raises:
        ValueError: If n < 1 or direction is not "max" or "min".
        UnknownFieldError: If the partition key is not a grouping key.
        UnsupportedMetricError: If the rows do not carry order_by_metric.
        EmptyPartitionError: If a requested partition has no rows.

    """
    if n < 1:
        raise ValueError(f"n must be a positive integer, got {n}")
    if direction not in DIRECTIONS:
        raise ValueError(f"Invalid direction '{direction}'. Must be 'max' or 'min'.")

    part_keys = (partition_key,) if isinstance(partition_key, str) else tuple(partition_key)

    buckets: dict[tuple, list[AggregateRow]] = {}
    for row in rows:
        missing = [k for k in part_keys if k not in row.group_keys]
        if missing:
            raise UnknownFieldError(
                f"Partition key(s) {missing} not among grouping keys {list(row.group_keys)}"
            )
        if order_by_metric not in row.metrics:
            raise UnsupportedMetricError(
                f"Metric '{order_by_metric}' not computed. Available: {list(row.metrics)}"
            )
        buckets.setdefault(tuple(row[k] for k in part_keys), []).append(row)

    if partitions is None:
        selected = list(buckets)
    else:
        selected = [_as_partition(p) for p in partitions]
        for p in selected:
            if p not in buckets:
                raise EmptyPartitionError(p)

    ranked: list[RankedRow] = []
    for p in selected:
        ordered = sorted(buckets[p], key=lambda r: _rank_key(r, order_by_metric, direction))
        ranked.extend(
            RankedRow(row=r, partition=p, rank=i) for i, r in enumerate(ordered[:n], start=1)
        )

    logger.debug(
        "Ranked %d partition(s) by %s (%s, n=%d): %d rows kept",
        len(selected),
        order_by_metric,
        direction,
        n,
        len(ranked),
    )
    return ranked
