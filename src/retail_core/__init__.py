"""Retail Core - feature derivation and aggregate reporting for retail sales.

This package turns a retail transactions table into the named tables a
sales dashboard reads:

- **Records**: validated Transaction rows (retail_core.loaders)
- **Features**: sales_month, day_of_week, time_of_day, is_outlier (retail_core.features)
- **Aggregates**: grouped sum / count / count_distinct / avg (retail_core.aggregate)
- **Rankings**: top-N rows per partition (retail_core.ranking)
- **Reports**: named report tables (retail_core.reports)

Quick Start:
    >>> from retail_core import DataPaths, build_report
    >>> from retail_core.loaders import load_transactions_csv
    >>>
    >>> paths = DataPaths.from_root("data")
    >>> df = load_transactions_csv(paths.raw_transactions)
    >>> result = build_report(df)
    >>> result.frames()["monthly_revenue"]
    >>> result.errors
    {}

Grain Reference:
    - Transaction / EnrichedTransaction: one row per invoice
    - monthly_revenue: one row per sales_month
    - top_product_line_per_branch: one row per branch
"""

__version__ = "0.1.0"

from retail_core.aggregate import aggregate
from retail_core.config import DataPaths
from retail_core.exceptions import (
    ConfigError,
    DataQualityError,
    EmptyPartitionError,
    MalformedRecordError,
    ReportError,
    RetailCoreError,
    UnknownFieldError,
    UnsupportedMetricError,
)
from retail_core.features import derive, derive_all
from retail_core.ranking import top_n
from retail_core.reports import DEFAULT_REPORTS, ReportDefinition, ReportResult, build_report

__all__ = [
    "ConfigError",
    "DEFAULT_REPORTS",
    "DataPaths",
    "DataQualityError",
    "EmptyPartitionError",
    "MalformedRecordError",
    "ReportDefinition",
    "ReportError",
    "ReportResult",
    "RetailCoreError",
    "UnknownFieldError",
    "UnsupportedMetricError",
    "__version__",
    "aggregate",
    "build_report",
    "derive",
    "derive_all",
    "top_n",
]
