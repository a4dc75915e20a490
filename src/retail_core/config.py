"""Filesystem configuration for Retail Core.

The reporting core itself never touches the filesystem. This module only
serves the thin wrappers around it (CSV loader, CLI, report export).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

RAW_TRANSACTIONS_FILE = "supermarket_sales.csv"


@dataclass
class DataPaths:
    """All filesystem paths used by the reporting pipeline.

    Attributes:
        data_root: Root directory for input and output data.

    Directory Structure:
        data_root/
        ├── a_raw/                  # raw transactions export
        │   └── supermarket_sales.csv
        └── c_processed/
            └── reports/            # one CSV per report
                └── _meta/run.json  # run metadata
    """

    data_root: Path

    @classmethod
    def from_root(cls, data_root: str | Path) -> DataPaths:
        """Create DataPaths from a root directory.

        Args:
            data_root: Root directory for report data.

        Returns:
            DataPaths instance.

        Examples:
            >>> paths = DataPaths.from_root("data")
            >>> paths.reports_dir
            PosixPath('data/c_processed/reports')
        """
        if isinstance(data_root, str):
            data_root = Path(data_root)

        return cls(data_root=data_root)

    @property
    def raw_transactions(self) -> Path:
        """Raw transactions CSV export."""
        return self.data_root / "a_raw" / RAW_TRANSACTIONS_FILE

    @property
    def reports_dir(self) -> Path:
        """Exported report tables."""
        return self.data_root / "c_processed" / "reports"

    def ensure_dirs(self) -> None:
        """Create all directories in the data structure."""
        for path in [self.raw_transactions.parent, self.reports_dir]:
            path.mkdir(parents=True, exist_ok=True)
