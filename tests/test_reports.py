"""Tests for report assembly."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pandas as pd
import pytest

from retail_core.exceptions import ConfigError, UnknownFieldError, UnsupportedMetricError
from retail_core.models import RankedRow
from retail_core.reports import (
    DEFAULT_REPORTS,
    Measure,
    ReportDefinition,
    TopRule,
    build_report,
    compute_report,
    to_frame,
)


def _csv_dump(result: Any) -> dict[str, str]:
    return {name: frame.to_csv(index=False) for name, frame in result.frames().items()}


def test_default_reports_all_build(sample_records: list[dict]) -> None:
    result = build_report(sample_records)

    assert result.errors == {}
    assert result.status == "ok"
    assert list(result.tables) == [d.name for d in DEFAULT_REPORTS]
    assert result.row_count == 6


def test_monthly_revenue(sample_records: list[dict]) -> None:
    rows = build_report(sample_records).tables["monthly_revenue"]
    by_month = {row["sales_month"]: row for row in rows}

    assert list(by_month) == [1, 2, 3]
    assert by_month[1]["total_revenue"] == pytest.approx(262.5)
    assert by_month[2]["total_revenue"] == pytest.approx(273.0)
    assert by_month[3]["total_transactions"] == 2
    assert by_month[1]["total_cogs"] == pytest.approx(250.0)


def test_top_product_line_per_branch(sample_records: list[dict]) -> None:
    rows = build_report(sample_records).tables["top_product_line_per_branch"]

    assert all(isinstance(row, RankedRow) for row in rows)
    assert {row["branch"]: row["product_line"] for row in rows} == {
        "A": "Electronic accessories",
        "B": "Sports and travel",
        "C": "Health and beauty",
    }


def test_sales_by_time_of_day(sample_records: list[dict]) -> None:
    rows = build_report(sample_records).tables["sales_by_time_of_day"]
    counts = {row["time_of_day"]: row["total_transactions"] for row in rows}
    assert counts == {"Morning": 2, "Afternoon": 2, "Evening": 2}


def test_lowest_rated_product_line_ignores_unrated(sample_records: list[dict]) -> None:
    rows = build_report(sample_records).tables["lowest_rated_product_line_per_branch"]
    lowest = {row["branch"]: (row["product_line"], row["avg_rating"]) for row in rows}

    assert lowest["A"] == ("Food and beverages", 6.0)
    assert lowest["B"] == ("Sports and travel", 9.0)


def test_revenue_by_gender_and_payment(sample_records: list[dict]) -> None:
    frame = build_report(sample_records).frames()["revenue_by_gender_and_payment"]
    assert list(frame.columns) == ["gender", "payment", "total_revenue", "total_transactions"]
    assert frame["total_transactions"].sum() == 6


def test_ranked_frames_carry_rank(sample_records: list[dict]) -> None:
    frame = build_report(sample_records).frames()["busiest_day_per_branch"]
    assert list(frame.columns) == ["branch", "day_of_week", "total_transactions", "rank"]
    assert (frame["rank"] == 1).all()


def test_build_report_is_idempotent(sample_records: list[dict]) -> None:
    assert _csv_dump(build_report(sample_records)) == _csv_dump(build_report(sample_records))


def test_parallel_matches_sequential(sample_records: list[dict]) -> None:
    sequential = build_report(sample_records)
    parallel = build_report(sample_records, max_workers=4)

    assert list(parallel.tables) == list(sequential.tables)
    assert _csv_dump(parallel) == _csv_dump(sequential)


class TestIsolation:
    @pytest.fixture
    def definitions(self) -> list[ReportDefinition]:
        return [
            ReportDefinition(
                name="by_region",
                group_keys=("region",),
                measures=(Measure("total", {"sum": "revenue"}),),
            ),
            ReportDefinition(
                name="median_by_branch",
                group_keys=("branch",),
                measures=(Measure("total", {"median": "median_total"}),),
            ),
            ReportDefinition(
                name="by_branch",
                group_keys=("branch",),
                measures=(Measure("total", {"sum": "revenue"}),),
            ),
        ]

    def test_failing_reports_do_not_block_others(
        self, sample_records: list[dict], definitions: list[ReportDefinition]
    ) -> None:
        result = build_report(sample_records, definitions)

        assert list(result.tables) == ["by_branch"]
        assert isinstance(result.errors["by_region"], UnknownFieldError)
        assert isinstance(result.errors["median_by_branch"], UnsupportedMetricError)
        assert result.status == "partial"

    def test_all_reports_failing(
        self, sample_records: list[dict], definitions: list[ReportDefinition]
    ) -> None:
        result = build_report(sample_records, definitions[:2], max_workers=2)
        assert result.tables == {}
        assert result.status == "failed"

    def test_duplicate_report_names(self, sample_records: list[dict]) -> None:
        definition = DEFAULT_REPORTS[0]
        with pytest.raises(ConfigError):
            build_report(sample_records, [definition, definition])


def test_malformed_records_are_skipped(
    sample_records: list[dict], make_record: Callable[..., dict]
) -> None:
    records = sample_records + [make_record("BAD", quantity=-1, total=-10.5)]
    result = build_report(records)

    assert result.row_count == 6
    assert [s.invoice_id for s in result.skipped] == ["BAD"]
    assert result.errors == {}


def test_unparseable_timestamp_is_skipped(
    sample_records: list[dict], make_record: Callable[..., dict]
) -> None:
    records = sample_records + [make_record("BAD-TS", timestamp="NaT")]
    result = build_report(records)

    assert result.row_count == 6
    assert [(s.invoice_id, s.field) for s in result.skipped] == [("BAD-TS", "timestamp")]
    assert result.status == "ok"


def test_outliers_stay_unless_excluded(make_record: Callable[..., dict]) -> None:
    records = [make_record(f"R-{i:02d}", unit_price=10.0) for i in range(30)]
    records.append(make_record("R-SPIKE", unit_price=1000.0))
    definition = ReportDefinition(
        name="revenue",
        group_keys=("branch",),
        measures=(Measure(None, {"count": "rows"}),),
    )
    excluding = ReportDefinition(
        name="revenue_without_outliers",
        group_keys=("branch",),
        measures=(Measure(None, {"count": "rows"}),),
        exclude_outliers=True,
    )
    result = build_report(records, [definition, excluding])

    assert result.tables["revenue"][0]["rows"] == 31
    assert result.tables["revenue_without_outliers"][0]["rows"] == 30

    summary = build_report(records).tables["outlier_summary"]
    assert {row["is_outlier"]: row["transactions"] for row in summary} == {False: 30, True: 1}


def test_dataframe_input(sample_records: list[dict]) -> None:
    result = build_report(pd.DataFrame(sample_records))
    assert result.errors == {}
    assert result.row_count == 6


def test_empty_input_gives_empty_tables() -> None:
    result = build_report([])
    assert result.status == "ok"
    assert all(rows == [] for rows in result.tables.values())
    assert to_frame([]).empty

    frames = result.frames()
    assert list(frames["monthly_revenue"].columns) == [
        "sales_month",
        "total_revenue",
        "total_cogs",
        "total_transactions",
    ]
    assert list(frames["busiest_day_per_branch"].columns)[-1] == "rank"


def test_definition_columns_match_frames(sample_records: list[dict]) -> None:
    frames = build_report(sample_records).frames()
    for definition in DEFAULT_REPORTS:
        assert list(frames[definition.name].columns) == definition.columns


def test_compute_report_with_top_n(sample_enriched: list) -> None:
    definition = ReportDefinition(
        name="top_two_lines_per_branch",
        group_keys=("branch", "product_line"),
        measures=(Measure("quantity", {"sum": "units"}),),
        top=TopRule(partition_key="branch", order_by="units", n=2),
    )
    rows = compute_report(definition, sample_enriched)
    assert [(r["branch"], r["product_line"], r.rank) for r in rows] == [
        ("A", "Electronic accessories", 1),
        ("A", "Food and beverages", 2),
        ("B", "Sports and travel", 1),
        ("B", "Food and beverages", 2),
        ("C", "Health and beauty", 1),
    ]


def test_definition_without_measures(sample_enriched: list) -> None:
    with pytest.raises(ConfigError):
        compute_report(ReportDefinition(name="empty", group_keys=("branch",), measures=()), sample_enriched)
