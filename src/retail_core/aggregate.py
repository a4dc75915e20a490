"""Grouped aggregation over transaction rows.

This module groups rows by one or more key fields and computes sum, count,
count_distinct and avg over a metric field. Group order is the order in
which each key tuple first appears in the input, so results are stable for
a given input order.

Examples:
    >>> rows = [
    ...     {"branch": "A", "total": 100},
    ...     {"branch": "A", "total": 50},
    ...     {"branch": "B", "total": 80},
    ... ]
    >>> [r.as_dict() for r in aggregate(rows, ["branch"], "total", {"sum": "revenue"})]
    [{'branch': 'A', 'revenue': 150}, {'branch': 'B', 'revenue': 80}]
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import numpy as np
import pandas as pd

from retail_core.exceptions import ReportError, UnknownFieldError, UnsupportedMetricError
from retail_core.models import AggregateRow

logger = logging.getLogger(__name__)

SUPPORTED_OPS = ("sum", "count", "count_distinct", "avg")
# Ops that read the metric field; count only needs the rows.
FIELD_OPS = {"sum", "count_distinct", "avg"}
AVG_DECIMALS = 2


def round_half_up(value: float | Decimal, decimals: int = AVG_DECIMALS) -> float:
    """Round with halves going away from zero, unlike the built-in round().

    A Decimal is rounded as is; a float is first read through its shortest
    repr, so 2.675 counts as the midpoint it was written as.

    Examples:
        >>> round_half_up(2.675)
        2.68
        >>> round_half_up(0.125)
        0.13
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(float(value)))
    quantum = Decimal(1).scaleb(-decimals)
    return float(value.quantize(quantum, rounding=ROUND_HALF_UP))


def _decimal_mean(values: pd.Series) -> Decimal | None:
    """Exact mean of the non-null values, or None if there are none.

    Summing in binary floating point can move a mean such as
    (1.13 + 1.14) / 2 below its decimal midpoint before rounding.
    """
    present = values.dropna().tolist()
    if not present:
        return None
    total = sum((Decimal(str(v)) for v in present), Decimal(0))
    return total / len(present)


def field_value(row: Any, name: str) -> Any:
    """Read a field from a dataclass-like row or a mapping.

    NaN is read as None so missing values group and aggregate like SQL NULL.

    Raises:
        UnknownFieldError: If the row has no such field.
    """
    if isinstance(row, Mapping):
        if name not in row:
            raise UnknownFieldError(f"Row has no field '{name}'")
        value = row[name]
    else:
        try:
            value = getattr(row, name)
        except AttributeError:
            raise UnknownFieldError(f"Row has no field '{name}'") from None

    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def resolve_ops(metric_ops: Iterable[str] | Mapping[str, str]) -> dict[str, str]:
    """Normalise requested ops into an ordered op -> metric name mapping.

    A plain collection of ops is named after the ops themselves, in
    SUPPORTED_OPS order. A mapping keeps its own order and names.

    Raises:
        UnsupportedMetricError: If an op is not in SUPPORTED_OPS.
    """
    if isinstance(metric_ops, str):
        metric_ops = [metric_ops]

    if isinstance(metric_ops, Mapping):
        resolved = dict(metric_ops)
    else:
        requested = set(metric_ops)
        resolved = {op: op for op in SUPPORTED_OPS if op in requested}
        resolved.update({op: op for op in sorted(requested - set(SUPPORTED_OPS))})

    unsupported = [op for op in resolved if op not in SUPPORTED_OPS]
    if unsupported:
        raise UnsupportedMetricError(
            f"Unsupported aggregation op(s): {unsupported}. Supported: {list(SUPPORTED_OPS)}"
        )
    if not resolved:
        raise UnsupportedMetricError("At least one aggregation op is required")
    return resolved


def _to_python(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    return value


def aggregate(
    rows: Iterable[Any],
    group_keys: Sequence[str],
    metric_field: str | None,
    metric_ops: Iterable[str] | Mapping[str, str],
) -> list[AggregateRow]:
    """Group rows by key fields and compute metrics over one field.

    Args:
        rows: Records exposing fields by attribute or by key.
        group_keys: Ordered grouping field names.
        metric_field: Field the metrics are computed on. May be None when
            only "count" is requested.
        metric_ops: Ops to compute, either a collection of op names or a
            mapping of op name to output metric name.

    Returns:
        One AggregateRow per distinct key tuple, in first-occurrence order.
        Empty input gives an empty list.

    Raises:
        UnsupportedMetricError: If an op is unknown, or needs a metric field
            and none was given.
        UnknownFieldError: If a row lacks a grouping or metric field.
        ReportError: If sum or avg is asked of non-numeric values.

    """
    group_keys = tuple(group_keys)
    ops = resolve_ops(metric_ops)

    needs_field = FIELD_OPS.intersection(ops)
    if needs_field and metric_field is None:
        raise UnsupportedMetricError(f"Op(s) {sorted(needs_field)} require a metric field")

    key_index: dict[tuple, int] = {}
    group_ids: list[int] = []
    values: list[Any] = []
    for row in rows:
        key = tuple(field_value(row, k) for k in group_keys)
        group_ids.append(key_index.setdefault(key, len(key_index)))
        if metric_field is not None:
            values.append(field_value(row, metric_field))

    if not group_ids:
        return []

    ids = pd.Series(group_ids, dtype="int64")
    raw = pd.Series(values if metric_field is not None else [None] * len(group_ids), dtype=object)

    computed: dict[str, Sequence[Any]] = {}
    if "count" in ops:
        computed["count"] = raw.groupby(ids).size().to_numpy()
    if "count_distinct" in ops:
        computed["count_distinct"] = raw.groupby(ids).nunique(dropna=True).to_numpy()
    if "sum" in ops or "avg" in ops:
        try:
            numeric = pd.to_numeric(raw)
        except (ValueError, TypeError) as e:
            raise ReportError(f"Field '{metric_field}' is not numeric: {e}") from e
        grouped = numeric.groupby(ids)
        if "sum" in ops:
            computed["sum"] = grouped.sum(min_count=0).to_numpy()
        if "avg" in ops:
            computed["avg"] = [_decimal_mean(group) for _, group in grouped]

    result = []
    for key, gid in key_index.items():
        metrics: dict[str, Any] = {}
        for op, name in ops.items():
            value = _to_python(computed[op][gid])
            if op == "avg":
                value = None if value is None else round_half_up(value)
            metrics[name] = value
        result.append(AggregateRow(group_keys=group_keys, key=key, metrics=metrics))

    logger.debug(
        "Aggregated %d rows into %d groups by %s on %s %s",
        len(group_ids),
        len(result),
        list(group_keys),
        metric_field,
        list(ops.values()),
    )
    return result


def merge_aggregates(*results: Sequence[AggregateRow]) -> list[AggregateRow]:
    """Combine aggregates computed over the same rows and keys.

    Each input is the output of one aggregate() call on the same rows with
    the same group_keys (typically one call per measured field). The output
    carries every metric of every input, one row per key.

    Raises:
        ReportError: If the inputs disagree on keys.
    """
    if not results:
        return []

    first = results[0]
    merged = [dict(row.metrics) for row in first]
    for other in results[1:]:
        if len(other) != len(first) or any(
            a.group_keys != b.group_keys or a.key != b.key for a, b in zip(first, other)
        ):
            raise ReportError("Cannot merge aggregates with different grouping keys")
        for metrics, row in zip(merged, other):
            clash = set(metrics).intersection(row.metrics)
            if clash:
                raise ReportError(f"Duplicate metric name(s) when merging: {sorted(clash)}")
            metrics.update(row.metrics)

    return [
        AggregateRow(group_keys=row.group_keys, key=row.key, metrics=metrics)
        for row, metrics in zip(first, merged)
    ]
