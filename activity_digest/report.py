"""Report archiving."""

import logging
from datetime import date
from pathlib import Path
from typing import Union

from activity_digest.utils import atomic_write_text

logger = logging.getLogger("activity_digest.report")


def report_filename(report_date: date) -> str:
    return f"weekly-report-{report_date.isoformat()}.md"


def save_report(summary: str, archive_dir: Union[str, Path], report_date: date) -> Path:
    """Write a summary into the archive directory.

    An existing report for the same date is replaced.

    Args:
        summary: Report text.
        archive_dir: Directory to write into; created if missing.
        report_date: Date used in the file name.

    Returns:
        Path of the written report.
    """
    directory = Path(archive_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / report_filename(report_date)
    atomic_write_text(path, summary)
    logger.info(f"Saved to: {path}")
    return path
