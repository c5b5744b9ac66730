"""Shared utilities for activity-digest."""

import os
import tempfile
from pathlib import Path


def atomic_write_text(path: Path, content: str) -> None:
    """Write a text file so readers never observe a partial write.

    Args:
        path: Destination file. Its parent directory must exist.
        content: Text to write (UTF-8).
    """
    # Temp file in the same directory so os.replace stays on one filesystem
    tmp_fd, tmp_path = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as tmp_f:
            tmp_f.write(content)
        os.replace(tmp_path, path)
    finally:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass


def progress_bar(processed: int, total: int, width: int = 50) -> str:
    """Render a textual progress bar such as '█████░░░░░ 50% (5/10)'.

    Args:
        processed: Items done so far.
        total: Total number of items.
        width: Number of characters in the bar.

    Returns:
        Progress bar string.
    """
    percentage = round(processed / total * 100) if total else 100
    filled = min(width, percentage * width // 100)
    bar = "█" * filled + "░" * (width - filled)
    return f"{bar} {percentage}% ({processed}/{total})"


def split_csv(value: str) -> list[str]:
    """Split a comma-separated string, dropping blanks and whitespace."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]
