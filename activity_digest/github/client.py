"""PyGithub wrapper that classifies every failure at the boundary."""

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, TypeVar

import requests
from github import Github, GithubException, RateLimitExceededException

from activity_digest.errors import (
    SourceError,
    TransientError,
    classify_http_error,
    rate_limit_from_headers,
)
from activity_digest.models import ChangeStats, CommitSummary, PullRequestSummary, Repository

T = TypeVar("T")

logger = logging.getLogger("activity_digest.github.client")

LOW_QUOTA_THRESHOLD = 100


def _error_message(exc: GithubException) -> str:
    data = exc.data
    if isinstance(data, dict):
        return str(data.get("message") or "")
    return str(data or "")


def classify_github_exception(exc: Exception, strict: bool = True) -> SourceError:
    """Convert a PyGithub or requests exception into a SourceError.

    Args:
        exc: Exception raised while talking to GitHub.
        strict: See errors.is_rate_limit_response.

    Returns:
        The classified exception (not raised).
    """
    if isinstance(exc, SourceError):
        return exc
    if isinstance(exc, RateLimitExceededException):
        return rate_limit_from_headers(
            f"HTTP {exc.status}: {_error_message(exc)}", exc.status, exc.headers
        )
    if isinstance(exc, GithubException):
        if exc.status is None:
            return TransientError(f"GitHub error: {_error_message(exc)}")
        return classify_http_error(
            exc.status, exc.headers, _error_message(exc), strict=strict
        )
    if isinstance(exc, requests.RequestException):
        return TransientError(f"GitHub request failed: {exc}")
    return TransientError(f"GitHub call failed: {exc}")


@dataclass
class RateLimitInfo:
    """Snapshot of the core API quota. remaining == -1 means unknown."""

    remaining: int
    limit: int
    reset_at: datetime

    @property
    def known(self) -> bool:
        return self.remaining >= 0

    def describe(self, now: Optional[datetime] = None) -> str:
        """Human-readable quota line, e.g. '4200/5000 (84%) - resets in 12min'."""
        now = now or datetime.now(timezone.utc)
        percent = round(self.remaining / self.limit * 100) if self.limit > 0 else 0
        reset_in = max(0, math.ceil((self.reset_at - now).total_seconds() / 60))
        return f"{self.remaining}/{self.limit} ({percent}%) - resets in {reset_in}min"


def log_rate_limit(info: RateLimitInfo) -> None:
    """Log the API quota; warn when it is running low."""
    if not info.known:
        return
    if info.remaining < LOW_QUOTA_THRESHOLD:
        logger.warning(f"API rate limit low: {info.describe()}")
    else:
        logger.info(f"API rate limit: {info.describe()}")


def _commit_summary(commit) -> CommitSummary:
    """Build a CommitSummary (without stats) from a PyGithub Commit."""
    git_commit = commit.commit
    author = getattr(git_commit, "author", None)
    authored = getattr(author, "date", None)
    return CommitSummary(
        sha=commit.sha,
        message=git_commit.message or "",
        date=authored.isoformat() if authored else None,
    )


class GitHubSource:
    """Read-only access to the GitHub data the digest needs.

    Every public method either returns plain models or raises a
    SourceError subclass; no PyGithub object or exception leaves this
    class. Calls are not retried here.
    """

    def __init__(self, github: Github, strict_rate_limit_detection: bool = True):
        """Initialize the source.

        Args:
            github: Shared Github client instance.
            strict_rate_limit_detection: How to read ambiguous 403 responses.
        """
        self.github = github
        self.strict_rate_limit_detection = strict_rate_limit_detection

    def _call(self, func: Callable[[], T]) -> T:
        """Run func, translating third-party exceptions into SourceError."""
        try:
            return func()
        except (GithubException, requests.RequestException) as e:
            raise classify_github_exception(e, strict=self.strict_rate_limit_detection) from e

    def _repo(self, full_name: str):
        return self.github.get_repo(full_name)

    # Repository discovery

    @staticmethod
    def _repository(repo) -> Repository:
        return Repository(full_name=repo.full_name, name=repo.name, private=bool(repo.private))

    def _repositories(self, repos: Iterable) -> list[Repository]:
        return [self._repository(repo) for repo in repos]

    def list_org_repositories(self, org: str) -> list[Repository]:
        """List every repository of an organization."""
        return self._call(
            lambda: self._repositories(self.github.get_organization(org).get_repos(type="all"))
        )

    def list_user_repositories(self, username: str) -> list[Repository]:
        """List every repository of a user."""
        return self._call(
            lambda: self._repositories(self.github.get_user(username).get_repos(type="all"))
        )

    def search_repositories_by_topic(self, topic: str) -> list[Repository]:
        """List repositories tagged with a topic."""
        return self._call(
            lambda: self._repositories(self.github.search_repositories(query=f"topic:{topic}"))
        )

    def get_repository(self, full_name: str) -> Repository:
        """Fetch a single repository by owner/repo name."""
        return self._call(lambda: self._repository(self._repo(full_name)))

    def get_default_branch(self, full_name: str) -> str:
        return self._call(lambda: self._repo(full_name).default_branch)

    # Activity

    def list_merged_pulls(self, full_name: str, since: datetime) -> list[PullRequestSummary]:
        """List pull requests merged at or after since.

        Commits and stats are left empty; see list_pull_commits and
        get_pull_stats.
        """
        def fetch() -> list[PullRequestSummary]:
            pulls = self._repo(full_name).get_pulls(
                state="closed", sort="updated", direction="desc"
            )
            merged = []
            for pr in pulls:
                # Sorted by last update; a PR merged after since was updated after it too
                if pr.updated_at and pr.updated_at < since:
                    break
                if pr.merged_at is None or pr.merged_at < since:
                    continue
                merged.append(
                    PullRequestSummary(
                        number=pr.number,
                        title=pr.title or "",
                        body=pr.body or "",
                        merged_at=pr.merged_at.isoformat(),
                        merge_commit_sha=pr.merge_commit_sha,
                    )
                )
            return merged

        return self._call(fetch)

    def list_pull_commits(self, full_name: str, number: int) -> list[CommitSummary]:
        """List the commits of a pull request."""
        return self._call(
            lambda: [
                _commit_summary(c) for c in self._repo(full_name).get_pull(number).get_commits()
            ]
        )

    def get_pull_stats(self, full_name: str, number: int) -> ChangeStats:
        """Get line and file counts of a pull request."""
        def fetch() -> ChangeStats:
            pr = self._repo(full_name).get_pull(number)
            return ChangeStats(
                additions=pr.additions or 0,
                deletions=pr.deletions or 0,
                changed_files=pr.changed_files or 0,
            )

        return self._call(fetch)

    def list_commits(self, full_name: str, since: datetime, branch: str) -> list[CommitSummary]:
        """List commits on a branch since a point in time, newest first, without stats."""
        # PyGithub formats since as UTC without converting it
        since_utc = since.astimezone(timezone.utc)
        return self._call(
            lambda: [
                _commit_summary(c)
                for c in self._repo(full_name).get_commits(sha=branch, since=since_utc)
            ]
        )

    def get_commit_stats(self, full_name: str, sha: str) -> ChangeStats:
        """Get line and file counts of a single commit."""
        def fetch() -> ChangeStats:
            commit = self._repo(full_name).get_commit(sha)
            stats = commit.stats
            return ChangeStats(
                additions=stats.additions or 0,
                deletions=stats.deletions or 0,
                changed_files=len(list(commit.files or [])),
            )

        return self._call(fetch)

    def get_rate_limit(self) -> RateLimitInfo:
        """Get the current core API quota; unknown on failure."""
        try:
            core = self._call(lambda: self.github.get_rate_limit().rate)
        except SourceError as e:
            logger.debug(f"Could not check rate limit: {e}")
            return RateLimitInfo(remaining=-1, limit=-1, reset_at=datetime.now(timezone.utc))
        return RateLimitInfo(remaining=core.remaining, limit=core.limit, reset_at=core.reset)
