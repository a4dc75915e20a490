"""Simple example: build the dashboard reports from the sales export.

This demonstrates the three layers of the pipeline (features, aggregates,
rankings) and the report assembler that ties them together.
"""

from pathlib import Path

from retail_core import DataPaths, build_report
from retail_core.aggregate import aggregate
from retail_core.features import derive_all
from retail_core.loaders import load_transactions_csv, parse_transactions, records_from_frame
from retail_core.ranking import top_n
from retail_core.reports import Measure, ReportDefinition, TopRule

# Setup
paths = DataPaths.from_root(Path("data"))
df = load_transactions_csv(paths.raw_transactions)

# Example 1: All default reports
print("Example 1: Default dashboard reports")
print("-" * 60)
result = build_report(df)
for name, frame in result.frames().items():
    print(f"{name}: {frame.shape}")
print(f"Skipped rows: {len(result.skipped)}, failed reports: {list(result.errors)}\n")

# Example 2: The same top-N report built by hand
print("Example 2: Top product line per branch, step by step")
print("-" * 60)
transactions, skipped = parse_transactions(records_from_frame(df))
enriched = derive_all(transactions)
revenue = aggregate(enriched, ["branch", "product_line"], "total", {"sum": "revenue"})
for row in top_n(revenue, "branch", "revenue"):
    print(row.as_dict())
print()

# Example 3: A custom report, excluding outliers
print("Example 3: Top 2 payment methods per city by average sale, no outliers")
print("-" * 60)
custom = ReportDefinition(
    name="top_payments_per_city",
    group_keys=("city", "payment"),
    measures=(Measure("total", {"avg": "avg_sale", "count": "transactions"}),),
    top=TopRule(partition_key="city", order_by="avg_sale", n=2),
    exclude_outliers=True,
)
print(build_report(df, [custom]).frames()["top_payments_per_city"])
