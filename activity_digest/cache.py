"""File-backed cache of collected activity, keyed by repository set and period."""

import hashlib
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Optional, Union

from pydantic import BaseModel

from activity_digest.models import RepoActivity, RunActivity
from activity_digest.utils import atomic_write_text

logger = logging.getLogger("activity_digest.cache")

DEFAULT_CACHE_TTL = 30 * 60  # seconds
DEFAULT_CACHE_DIR = ".cache"
CACHE_FILE_PREFIX = "activity-"
CACHE_FILE_SUFFIX = ".json"


class CacheEntry(BaseModel):
    """On-disk layout of one cache file."""

    data: dict[str, RepoActivity]
    timestamp: float
    repos: list[str]
    since: str


@dataclass
class CacheEntryStats:
    """Age and size of one cache file."""

    file: str
    age_seconds: float
    size_kb: int


@dataclass
class CacheStats:
    """Summary of the cache directory contents."""

    size: int
    entries: list[CacheEntryStats] = field(default_factory=list)


def _since_date(since: Union[date, datetime]) -> str:
    if isinstance(since, datetime):
        since = since.date()
    return since.isoformat()


def cache_key(repos: Iterable[str], since: Union[date, datetime]) -> str:
    """Fingerprint a repository set and period start.

    Repository order does not matter and only the date part of since is
    used, so runs started at different times of the same day share a key.

    Args:
        repos: Repository full names (owner/repo).
        since: Start of the collection period.

    Returns:
        16 hex characters of a SHA-256 digest.
    """
    repo_names = ",".join(sorted(repos))
    digest = hashlib.sha256(f"{repo_names}|{_since_date(since)}".encode("utf-8"))
    return digest.hexdigest()[:16]


class ActivityCache:
    """Time-bounded cache of run activity, one JSON file per key."""

    def __init__(
        self,
        cache_dir: Union[str, Path] = DEFAULT_CACHE_DIR,
        ttl_seconds: float = DEFAULT_CACHE_TTL,
        clock: Optional[Callable[[], float]] = None,
    ):
        """Initialize the cache.

        Args:
            cache_dir: Directory holding cache files; created on first write.
            ttl_seconds: Maximum age of a usable entry.
            clock: Epoch clock, defaults to time.time.
        """
        self.cache_dir = Path(cache_dir)
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.time

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{CACHE_FILE_PREFIX}{key}{CACHE_FILE_SUFFIX}"

    def _files(self) -> list[Path]:
        if not self.cache_dir.is_dir():
            return []
        return sorted(self.cache_dir.glob(f"{CACHE_FILE_PREFIX}*{CACHE_FILE_SUFFIX}"))

    def _evict(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove cache file {path}: {e}")

    def lookup(self, repos: Iterable[str], since: Union[date, datetime]) -> Optional[RunActivity]:
        """Return cached activity, or None on a miss.

        Expired and unreadable entries count as misses and are deleted.
        """
        key = cache_key(repos, since)
        path = self._path(key)
        if not path.exists():
            return None

        try:
            entry = CacheEntry.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Discarding unreadable cache entry {path.name}: {e}")
            self._evict(path)
            return None

        age = self._clock() - entry.timestamp
        if age >= self.ttl_seconds:
            logger.debug(f"Cache entry {key} expired ({age:.0f}s old)")
            self._evict(path)
            return None

        logger.debug(f"Cache hit for {key} ({age:.0f}s old)")
        return entry.data

    def store(
        self,
        repos: Iterable[str],
        since: Union[date, datetime],
        data: RunActivity,
    ) -> Path:
        """Write activity for a repository set and period, replacing any old entry.

        Returns:
            Path of the cache file.
        """
        repo_list = list(repos)
        key = cache_key(repo_list, since)
        path = self._path(key)
        entry = CacheEntry(
            data=data,
            timestamp=self._clock(),
            repos=repo_list,
            since=since.isoformat(),
        )

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        atomic_write_text(path, entry.model_dump_json(indent=2))
        logger.debug(f"Cached activity for {len(repo_list)} repositories as {key}")
        return path

    def clear(self) -> int:
        """Delete every cache file.

        Returns:
            Number of files removed.
        """
        files = self._files()
        for path in files:
            self._evict(path)
        logger.info(f"Cleared {len(files)} cache entries")
        return len(files)

    def stats(self) -> CacheStats:
        """Report the number, age and size of cache files."""
        now = self._clock()
        entries = []
        for path in self._files():
            try:
                stat = path.stat()
            except FileNotFoundError:
                continue
            entries.append(
                CacheEntryStats(
                    file=path.name,
                    age_seconds=max(now - stat.st_mtime, 0.0),
                    size_kb=round(stat.st_size / 1024),
                )
            )
        return CacheStats(size=len(entries), entries=entries)
