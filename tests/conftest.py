"""Shared fixtures: raw transaction records shaped like the sales export."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from retail_core.features import derive_all
from retail_core.loaders import parse_transactions
from retail_core.models import EnrichedTransaction


def build_record(
    invoice_id: str,
    /,
    *,
    branch: str = "A",
    city: str = "Yangon",
    customer_type: str = "Member",
    gender: str = "Female",
    product_line: str = "Food and beverages",
    unit_price: float = 10.0,
    quantity: int = 1,
    tax_pct: float = 5.0,
    timestamp: str = "2019-01-05 10:00:00",
    payment: str = "Cash",
    rating: float | None = 7.0,
    **overrides: Any,
) -> dict[str, Any]:
    """Build one valid record; total, cogs and gross income are consistent."""
    cogs = unit_price * quantity
    record = {
        "invoice_id": invoice_id,
        "branch": branch,
        "city": city,
        "customer_type": customer_type,
        "gender": gender,
        "product_line": product_line,
        "unit_price": unit_price,
        "quantity": quantity,
        "tax_pct": tax_pct,
        "total": cogs * (1 + tax_pct / 100),
        "timestamp": timestamp,
        "payment": payment,
        "cogs": cogs,
        "gross_margin_pct": 4.761904762,
        "gross_income": cogs * tax_pct / 100,
        "rating": rating,
    }
    record.update(overrides)
    return record


@pytest.fixture
def make_record() -> Callable[..., dict[str, Any]]:
    """Factory for valid raw records."""
    return build_record


@pytest.fixture
def sample_records() -> list[dict[str, Any]]:
    """Six sales across three branches and three months.

    Revenue: A/Electronic accessories 231.0, A/Food and beverages 52.5,
    B/Sports and travel 252.0, B/Food and beverages 63.0,
    C/Health and beauty 210.0.
    """
    return [
        build_record(
            "INV-001",
            product_line="Electronic accessories",
            unit_price=100.0,
            quantity=2,
            timestamp="2019-01-05 10:00:00",
            rating=8.0,
        ),
        build_record(
            "INV-002",
            unit_price=50.0,
            timestamp="2019-01-06 13:00:00",
            gender="Male",
            payment="Ewallet",
            customer_type="Normal",
            rating=6.0,
        ),
        build_record(
            "INV-003",
            product_line="Electronic accessories",
            unit_price=20.0,
            timestamp="2019-02-10 18:30:00",
            gender="Male",
            payment="Credit card",
            customer_type="Normal",
            rating=7.5,
        ),
        build_record(
            "INV-004",
            branch="B",
            city="Mandalay",
            product_line="Sports and travel",
            unit_price=80.0,
            quantity=3,
            timestamp="2019-02-11 12:00:00",
            rating=9.0,
        ),
        build_record(
            "INV-005",
            branch="B",
            city="Mandalay",
            unit_price=30.0,
            quantity=2,
            timestamp="2019-03-02 12:00:01",
            payment="Ewallet",
            rating=None,
        ),
        build_record(
            "INV-006",
            branch="C",
            city="Naypyitaw",
            product_line="Health and beauty",
            unit_price=40.0,
            quantity=5,
            timestamp="2019-03-03 16:00:01",
            gender="Male",
            customer_type="Normal",
            rating=4.0,
        ),
    ]


@pytest.fixture
def sample_enriched(sample_records: list[dict[str, Any]]) -> list[EnrichedTransaction]:
    """The sample records parsed and enriched."""
    transactions, skipped = parse_transactions(sample_records)
    assert not skipped
    return derive_all(transactions)
