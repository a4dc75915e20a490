"""Report assembly: named dashboard tables built from transactions.

Each report is one configuration of derive -> aggregate -> (optional) top_n:

    raw records -> Transaction -> EnrichedTransaction -> AggregateRow -> RankedRow

Outlier bounds and derived columns are computed once per run. Reports are
then computed independently of each other, so a broken definition only
fails its own report and the others complete. Reports can optionally be
computed on a thread pool; output order is always definition order.

Example:
    >>> from retail_core.loaders import load_transactions_csv
    >>> from retail_core.reports import build_report
    >>>
    >>> df = load_transactions_csv("data/a_raw/supermarket_sales.csv")
    >>> result = build_report(df)
    >>> result.frames()["top_product_line_per_branch"]
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Union

import pandas as pd

from retail_core.aggregate import aggregate, field_value, merge_aggregates, resolve_ops
from retail_core.exceptions import ConfigError
from retail_core.features import OUTLIER_Z_THRESHOLD, derive_all
from retail_core.loaders import SkippedRecord, parse_transactions, records_from_frame
from retail_core.models import AggregateRow, RankedRow, Transaction
from retail_core.ranking import top_n

logger = logging.getLogger(__name__)

ReportRow = Union[AggregateRow, RankedRow]


@dataclass(frozen=True)
class Measure:
    """One aggregated field of a report.

    Attributes:
        field: Field the ops run on; None for a plain row count.
        ops: Aggregation op -> output metric name.
    """

    field: str | None
    ops: Mapping[str, str]


@dataclass(frozen=True)
class TopRule:
    """Keep the best n rows per partition of a report."""

    partition_key: str | tuple[str, ...]
    order_by: str
    n: int = 1
    direction: str = "max"


@dataclass(frozen=True)
class ReportDefinition:
    """A named report.

    Attributes:
        name: Output table name.
        group_keys: Grouping fields, in output order.
        measures: Aggregated fields; all are merged into one row per key.
        top: Optional top-N rule applied to the aggregate rows.
        exclude_outliers: Drop rows flagged as outliers before aggregating.
        description: Free text for the presentation layer.
    """

    name: str
    group_keys: tuple[str, ...]
    measures: tuple[Measure, ...]
    top: TopRule | None = None
    exclude_outliers: bool = False
    description: str = ""

    @property
    def columns(self) -> list[str]:
        """Output column names: group keys, metrics, then rank for top-N reports."""
        names = list(self.group_keys)
        for measure in self.measures:
            names.extend(resolve_ops(measure.ops).values())
        if self.top is not None:
            names.append("rank")
        return names


_REVENUE = Measure("total", {"sum": "total_revenue"})
_TRANSACTIONS = Measure("invoice_id", {"count_distinct": "total_transactions"})

DEFAULT_REPORTS: tuple[ReportDefinition, ...] = (
    ReportDefinition(
        name="monthly_revenue",
        group_keys=("sales_month",),
        measures=(_REVENUE, Measure("cogs", {"sum": "total_cogs"}), _TRANSACTIONS),
        description="Revenue, cost of goods sold and invoice count per month",
    ),
    ReportDefinition(
        name="revenue_by_branch",
        group_keys=("branch", "city"),
        measures=(_REVENUE, Measure("total", {"avg": "avg_sale"}), _TRANSACTIONS),
        description="Revenue and average sale per branch",
    ),
    ReportDefinition(
        name="revenue_by_product_line",
        group_keys=("product_line",),
        measures=(
            _REVENUE,
            Measure("quantity", {"sum": "units_sold"}),
            Measure("gross_income", {"sum": "gross_income"}),
            Measure("rating", {"avg": "avg_rating"}),
        ),
        description="Revenue, units, gross income and rating per product line",
    ),
    ReportDefinition(
        name="top_product_line_per_branch",
        group_keys=("branch", "product_line"),
        measures=(_REVENUE,),
        top=TopRule(partition_key="branch", order_by="total_revenue"),
        description="Highest-revenue product line in each branch",
    ),
    ReportDefinition(
        name="top_product_line_per_month",
        group_keys=("sales_month", "product_line"),
        measures=(_REVENUE,),
        top=TopRule(partition_key="sales_month", order_by="total_revenue"),
        description="Highest-revenue product line in each month",
    ),
    ReportDefinition(
        name="lowest_rated_product_line_per_branch",
        group_keys=("branch", "product_line"),
        measures=(Measure("rating", {"avg": "avg_rating"}),),
        top=TopRule(partition_key="branch", order_by="avg_rating", direction="min"),
        description="Product line with the lowest average rating in each branch",
    ),
    ReportDefinition(
        name="revenue_by_gender_and_payment",
        group_keys=("gender", "payment"),
        measures=(_REVENUE, _TRANSACTIONS),
        description="Revenue and invoices per gender and payment method",
    ),
    ReportDefinition(
        name="sales_by_time_of_day",
        group_keys=("time_of_day",),
        measures=(_TRANSACTIONS, _REVENUE),
        description="Invoices and revenue per time-of-day bucket",
    ),
    ReportDefinition(
        name="sales_by_day_of_week",
        group_keys=("day_of_week",),
        measures=(_TRANSACTIONS, _REVENUE, Measure("rating", {"avg": "avg_rating"})),
        description="Invoices, revenue and rating per weekday",
    ),
    ReportDefinition(
        name="busiest_day_per_branch",
        group_keys=("branch", "day_of_week"),
        measures=(_TRANSACTIONS,),
        top=TopRule(partition_key="branch", order_by="total_transactions"),
        description="Weekday with the most invoices in each branch",
    ),
    ReportDefinition(
        name="rating_by_branch_and_time_of_day",
        group_keys=("branch", "time_of_day"),
        measures=(Measure("rating", {"avg": "avg_rating"}), Measure(None, {"count": "transactions"})),
        description="Average rating per branch and time of day",
    ),
    ReportDefinition(
        name="revenue_by_customer_type",
        group_keys=("customer_type",),
        measures=(_REVENUE, Measure("gross_income", {"sum": "gross_income"}), _TRANSACTIONS),
        description="Revenue and gross income per customer type",
    ),
    ReportDefinition(
        name="top_product_line_per_gender",
        group_keys=("gender", "product_line"),
        measures=(Measure(None, {"count": "purchases"}),),
        top=TopRule(partition_key="gender", order_by="purchases"),
        description="Most purchased product line per gender",
    ),
    ReportDefinition(
        name="payment_method_usage",
        group_keys=("payment",),
        measures=(Measure("total", {"count": "transactions", "avg": "avg_sale"}),),
        description="Transactions and average sale per payment method",
    ),
    ReportDefinition(
        name="outlier_summary",
        group_keys=("is_outlier",),
        measures=(
            Measure(None, {"count": "transactions"}),
            _REVENUE,
            Measure("unit_price", {"avg": "avg_unit_price"}),
            Measure("quantity", {"avg": "avg_quantity"}),
        ),
        description="Rows inside and outside the 3-sigma unit price / quantity bounds",
    ),
)


@dataclass
class ReportResult:
    """Output of build_report.

    Attributes:
        tables: Report name -> rows, for every report that completed.
        columns: Report name -> output column names, so empty tables keep
            their header.
        errors: Report name -> exception, for every report that failed.
        skipped: Source rows rejected as malformed.
        row_count: Number of transactions the reports were built from.
    """

    tables: dict[str, list[ReportRow]] = field(default_factory=dict)
    columns: dict[str, list[str]] = field(default_factory=dict)
    errors: dict[str, Exception] = field(default_factory=dict)
    skipped: list[SkippedRecord] = field(default_factory=list)
    row_count: int = 0

    @property
    def status(self) -> str:
        """Run status: ok, partial (some reports failed) or failed (all did)."""
        if not self.errors:
            return "ok"
        if not self.tables:
            return "failed"
        return "partial"

    def frames(self) -> dict[str, pd.DataFrame]:
        """Every completed report as a DataFrame, in report order."""
        return {
            name: to_frame(rows, self.columns.get(name)) for name, rows in self.tables.items()
        }


def to_frame(rows: Sequence[ReportRow], columns: Sequence[str] | None = None) -> pd.DataFrame:
    """Convert report rows to a DataFrame: key columns, metrics, then rank."""
    return pd.DataFrame([row.as_dict() for row in rows], columns=columns)


def compute_report(definition: ReportDefinition, rows: Sequence[Any]) -> list[ReportRow]:
    """Compute one report from enriched rows.

    Args:
        definition: The report to compute.
        rows: EnrichedTransaction rows (or mappings with the same fields).

    Returns:
        AggregateRows, or RankedRows when the definition has a top rule.

    Raises:
        ConfigError: If the definition has no measures.
        ReportError: If aggregation or ranking fails.

    """
    if not definition.measures:
        raise ConfigError(f"Report '{definition.name}' has no measures")

    if definition.exclude_outliers:
        rows = [row for row in rows if not field_value(row, "is_outlier")]

    table = merge_aggregates(
        *(aggregate(rows, definition.group_keys, m.field, m.ops) for m in definition.measures)
    )

    if definition.top is None:
        return table

    rule = definition.top
    return top_n(table, rule.partition_key, rule.order_by, n=rule.n, direction=rule.direction)


def _check_names(definitions: Sequence[ReportDefinition]) -> None:
    seen: set[str] = set()
    duplicates: set[str] = set()
    for definition in definitions:
        if definition.name in seen:
            duplicates.add(definition.name)
        seen.add(definition.name)
    if duplicates:
        raise ConfigError(f"Duplicate report name(s): {sorted(duplicates)}")


def build_report(
    records: Iterable[Mapping[str, Any] | Transaction] | pd.DataFrame,
    definitions: Sequence[ReportDefinition] | None = None,
    *,
    outlier_z: float = OUTLIER_Z_THRESHOLD,
    max_workers: int | None = None,
) -> ReportResult:
    """Build every named report from a batch of transactions.

    This function:
    - parses the records, skipping and recording malformed rows,
    - computes outlier bounds once over all valid rows and derives features,
    - computes each report independently, collecting failures per report.

    Args:
        records: Raw mappings, Transactions, or a DataFrame export.
        definitions: Reports to build (default: DEFAULT_REPORTS).
        outlier_z: Outlier threshold in standard deviations.
        max_workers: Compute reports on a thread pool of this size when > 1.

    Returns:
        ReportResult with tables in definition order.

    Raises:
        ConfigError: If two definitions share a name.
        DataQualityError: If a DataFrame input lacks required columns.

    """
    if definitions is None:
        definitions = DEFAULT_REPORTS
    definitions = list(definitions)
    _check_names(definitions)

    if isinstance(records, pd.DataFrame):
        records = records_from_frame(records)

    transactions, skipped = parse_transactions(records)
    enriched = derive_all(transactions, z=outlier_z)

    def _run(definition: ReportDefinition) -> tuple[list[ReportRow] | None, Exception | None]:
        try:
            return compute_report(definition, enriched), None
        except Exception as e:
            logger.error("Error building report %s: %s", definition.name, e)
            return None, e

    if max_workers is not None and max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            outcomes = list(pool.map(_run, definitions))
    else:
        outcomes = [_run(d) for d in definitions]

    result = ReportResult(skipped=skipped, row_count=len(enriched))
    for definition, (table, error) in zip(definitions, outcomes):
        if error is not None:
            result.errors[definition.name] = error
        else:
            result.tables[definition.name] = table
            result.columns[definition.name] = definition.columns
            logger.debug("Report %s: %d rows", definition.name, len(table))

    logger.info(
        "Built %d of %d report(s) from %d rows (%d skipped)",
        len(result.tables),
        len(definitions),
        len(enriched),
        len(skipped),
    )
    return result
