"""Domain-specific exceptions for Retail Core.

This module defines custom exceptions that are part of the public API.
All exceptions inherit from RetailCoreError for easy catching.
"""

from __future__ import annotations


class RetailCoreError(Exception):
    """Base exception for all Retail Core errors.

    Users can catch this exception to handle any error raised by the
    feature, aggregation, ranking or report layers.
    """

    pass


class ConfigError(RetailCoreError):
    """Raised when there is a configuration error.

    This exception is raised when:
    - Report definitions are invalid (e.g. duplicate names)
    - Required paths are missing
    """

    pass


class DataQualityError(RetailCoreError):
    """Raised when data quality checks fail.

    This exception is raised when:
    - Required columns are missing from input data
    - A dataset-wide computation has no rows to work with
    """

    pass


class MalformedRecordError(DataQualityError):
    """Raised when a single source row cannot become a Transaction.

    The row is missing a required field, has a value of the wrong type, or
    violates a range constraint (negative quantity, rating above 10, a total
    that disagrees with price, quantity and tax, a repeated invoice id).

    Attributes:
        field: Name of the offending field, if known.
        invoice_id: Invoice identifier of the row, if it could be read.
        index: Position of the row in the input sequence, if known.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        invoice_id: str | None = None,
        index: int | None = None,
    ) -> None:
        super().__init__(message)
        self.field = field
        self.invoice_id = invoice_id
        self.index = index


class ReportError(RetailCoreError):
    """Raised when a report cannot be computed from its definition."""

    pass


class UnsupportedMetricError(ReportError):
    """Raised when an aggregation op or metric name is not available.

    This exception is raised when:
    - A report requests an op other than sum, count, count_distinct or avg
    - An op that needs a metric field is requested without one
    - Ranking refers to a metric the aggregate rows do not carry
    """

    pass


class UnknownFieldError(ReportError):
    """Raised when a grouping or metric field does not exist on the rows."""

    pass


class EmptyPartitionError(ReportError):
    """Raised when asked to rank a partition value with no input rows."""

    def __init__(self, partition: tuple) -> None:
        super().__init__(f"Partition {partition!r} has no rows to rank")
        self.partition = partition
