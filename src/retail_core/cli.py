"""Command-line wrapper: build the dashboard reports from a CSV export.

Usage (from repo root):

    python -m retail_core.cli --input data/a_raw/supermarket_sales.csv --outdir reports

    # Use the data root layout (<root>/a_raw -> <root>/c_processed/reports)
    python -m retail_core.cli --data-root data

    # Compute reports on 4 threads, less logging
    python -m retail_core.cli --data-root data --workers 4 --quiet

Writes one <report>.csv per report and _meta/run.json to the output
directory. Exits with code 1 if any report failed.
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

from retail_core.config import DataPaths
from retail_core.features import OUTLIER_Z_THRESHOLD
from retail_core.loaders import load_transactions_csv
from retail_core.metadata import RUN_VERSION, RunMetadata, write_metadata
from retail_core.reports import ReportResult, build_report

logger = logging.getLogger(__name__)


def write_reports(result: ReportResult, outdir: Path) -> list[Path]:
    """Write every completed report as CSV plus the run metadata."""
    outdir.mkdir(parents=True, exist_ok=True)
    written = []
    for name, frame in result.frames().items():
        out_path = outdir / f"{name}.csv"
        frame.to_csv(out_path, index=False, encoding="utf-8")
        logger.info("Wrote %s (%d rows)", out_path, len(frame))
        written.append(out_path)

    write_metadata(
        outdir,
        RunMetadata(
            version=RUN_VERSION,
            last_run=datetime.now().isoformat(),
            status=result.status,
            row_count=result.row_count,
            skipped_count=len(result.skipped),
            reports=list(result.tables),
            failed_reports={name: str(e) for name, e in result.errors.items()},
        ),
    )
    return written


def main(argv: list[str] | None = None) -> int:
    """Execute the report command-line tool.

    Command-line arguments:
        --input: Transactions CSV (default: <data-root>/a_raw/supermarket_sales.csv)
        --outdir: Output directory (default: <data-root>/c_processed/reports)
        --data-root: Root directory for report data (default: "data")
        --outlier-z: Outlier threshold in standard deviations (default: 3.0)
        --workers: Thread pool size for report computation (default: 1)
        --quiet: Less logging

    Returns:
        0 if every report was built, 1 otherwise.
    """
    parser = argparse.ArgumentParser(description="Build retail dashboard reports from a CSV export.")
    parser.add_argument("--input", type=Path, default=None, help="Transactions CSV file.")
    parser.add_argument("--outdir", type=Path, default=None, help="Where to write report CSVs.")
    parser.add_argument(
        "--data-root",
        type=str,
        default="data",
        help="Root directory for report data (default: 'data').",
    )
    parser.add_argument(
        "--outlier-z",
        type=float,
        default=OUTLIER_Z_THRESHOLD,
        help="Outlier threshold in standard deviations (default: 3.0).",
    )
    parser.add_argument("--workers", type=int, default=1, help="Threads used to compute reports.")
    parser.add_argument("--quiet", action="store_true", help="Less logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    paths = DataPaths.from_root(args.data_root)
    input_path = args.input or paths.raw_transactions
    outdir = args.outdir or paths.reports_dir

    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")

    df = load_transactions_csv(input_path)
    result = build_report(df, outlier_z=args.outlier_z, max_workers=args.workers)
    write_reports(result, outdir)

    if result.skipped:
        logger.warning("%d malformed row(s) skipped", len(result.skipped))
    for name, error in result.errors.items():
        logger.error("Report %s failed: %s", name, error)

    return 1 if result.errors else 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)
