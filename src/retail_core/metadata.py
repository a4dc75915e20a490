"""Run metadata for exported reports.

A JSON record written next to the report CSVs so that a later reader can
tell which run produced them and whether every report completed.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

RUN_VERSION = "reports_v1"


@dataclass
class RunMetadata:
    """Metadata for one report run.

    Attributes:
        version: Version string for the report logic.
        last_run: ISO timestamp of when the run finished.
        status: "ok", "partial" or "failed".
        row_count: Transactions the reports were built from.
        skipped_count: Source rows rejected as malformed.
        reports: Names of the reports written.
        failed_reports: Report name -> error message.
    """

    version: str
    last_run: str
    status: str
    row_count: int
    skipped_count: int
    reports: list[str] = field(default_factory=list)
    failed_reports: dict[str, str] = field(default_factory=dict)


def _meta_path(reports_dir: Path) -> Path:
    """Get path to the run metadata file."""
    meta_dir = reports_dir / "_meta"
    meta_dir.mkdir(parents=True, exist_ok=True)
    return meta_dir / "run.json"


def write_metadata(reports_dir: Path, metadata: RunMetadata) -> Path:
    """Write the run metadata file and return its path."""
    path = _meta_path(reports_dir)
    path.write_text(json.dumps(asdict(metadata), indent=2))
    logger.debug("Wrote metadata: %s", path)
    return path


def read_metadata(reports_dir: Path) -> Optional[RunMetadata]:
    """Read the run metadata file, if it exists and parses."""
    path = reports_dir / "_meta" / "run.json"
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text())
        return RunMetadata(**data)
    except (OSError, ValueError, TypeError) as e:
        logger.warning("Error reading metadata %s: %s", path, e)
        return None
