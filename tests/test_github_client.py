"""Tests for the PyGithub boundary."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, Mock

import pytest
import requests
from github import GithubException, RateLimitExceededException

from activity_digest.config import Settings
from activity_digest.errors import (
    NotFoundError,
    PermissionDeniedError,
    RateLimitedError,
    TransientError,
    UnauthorizedError,
)
from activity_digest.github.client import (
    GitHubSource,
    RateLimitInfo,
    classify_github_exception,
    log_rate_limit,
)
from activity_digest.models import ChangeStats

SINCE = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _pull(number, merged_at, updated_at=None, body="Body", merge_commit_sha=None):
    pr = Mock()
    pr.number = number
    pr.title = f"PR {number}"
    pr.body = body
    pr.merged_at = merged_at
    pr.updated_at = updated_at or merged_at or SINCE + timedelta(days=1)
    pr.merge_commit_sha = merge_commit_sha
    return pr


def _gh_commit(sha, message, authored=None):
    commit = Mock()
    commit.sha = sha
    commit.commit.message = message
    commit.commit.author.date = authored or datetime(2024, 3, 2, tzinfo=timezone.utc)
    return commit


class TestClassifyGithubException:
    """Tests for classify_github_exception."""

    def test_not_found(self):
        exc = GithubException(404, {"message": "Not Found"}, {})
        error = classify_github_exception(exc)
        assert isinstance(error, NotFoundError)
        assert "Not Found" in str(error)

    def test_unauthorized(self):
        exc = GithubException(401, {"message": "Bad credentials"}, {})
        assert isinstance(classify_github_exception(exc), UnauthorizedError)

    def test_forbidden_with_quota_left(self):
        exc = GithubException(
            403,
            {"message": "Resource not accessible by integration"},
            {"x-ratelimit-remaining": "4000", "x-ratelimit-reset": "1700000000"},
        )
        assert isinstance(classify_github_exception(exc), PermissionDeniedError)

    def test_forbidden_non_strict(self):
        exc = GithubException(
            403,
            {"message": "Resource not accessible by integration"},
            {"x-ratelimit-remaining": "4000", "x-ratelimit-reset": "1700000000"},
        )
        assert isinstance(classify_github_exception(exc, strict=False), RateLimitedError)

    def test_forbidden_quota_exhausted(self):
        exc = GithubException(
            403,
            {"message": "API rate limit exceeded"},
            {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1700000000"},
        )
        error = classify_github_exception(exc)
        assert isinstance(error, RateLimitedError)
        assert error.reset_at == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    def test_rate_limit_exceeded_exception(self):
        exc = RateLimitExceededException(
            403, {"message": "API rate limit exceeded"}, {"retry-after": "60"}
        )
        error = classify_github_exception(exc)
        assert isinstance(error, RateLimitedError)
        assert error.retry_after == 60.0

    def test_server_error(self):
        exc = GithubException(502, {"message": "Bad Gateway"}, {})
        assert isinstance(classify_github_exception(exc), TransientError)

    def test_network_error(self):
        exc = requests.ConnectionError("connection reset")
        assert isinstance(classify_github_exception(exc), TransientError)

    def test_timeout(self):
        exc = requests.Timeout("read timed out")
        assert isinstance(classify_github_exception(exc), TransientError)


class TestGitHubSource:
    """Tests for GitHubSource."""

    def test_list_merged_pulls_filters_by_merge_time(self):
        github = MagicMock()
        repo = github.get_repo.return_value
        repo.get_pulls.return_value = [
            _pull(3, SINCE + timedelta(days=2), merge_commit_sha="m3"),
            _pull(2, None, updated_at=SINCE + timedelta(days=1)),
            _pull(1, SINCE - timedelta(days=1), updated_at=SINCE + timedelta(hours=1)),
            _pull(0, SINCE - timedelta(days=5), updated_at=SINCE - timedelta(days=4)),
        ]

        pulls = GitHubSource(github).list_merged_pulls("octo/api", SINCE)

        assert [p.number for p in pulls] == [3]
        assert pulls[0].merge_commit_sha == "m3"
        assert pulls[0].merged_at == (SINCE + timedelta(days=2)).isoformat()
        repo.get_pulls.assert_called_once_with(state="closed", sort="updated", direction="desc")

    def test_list_merged_pulls_stops_at_older_updates(self):
        github = MagicMock()
        old = _pull(1, SINCE + timedelta(days=1), updated_at=SINCE - timedelta(days=1))
        never_reached = Mock()
        type(never_reached).updated_at = property(lambda self: pytest.fail("iterated too far"))
        github.get_repo.return_value.get_pulls.return_value = [old, never_reached]

        assert GitHubSource(github).list_merged_pulls("octo/api", SINCE) == []

    def test_null_body_becomes_empty(self):
        github = MagicMock()
        github.get_repo.return_value.get_pulls.return_value = [
            _pull(1, SINCE + timedelta(days=1), body=None)
        ]

        pulls = GitHubSource(github).list_merged_pulls("octo/api", SINCE)

        assert pulls[0].body == ""

    def test_list_commits(self):
        github = MagicMock()
        repo = github.get_repo.return_value
        repo.get_commits.return_value = [_gh_commit("abc123", "fix: bug\n\ndetails")]

        commits = GitHubSource(github).list_commits("octo/api", SINCE, "main")

        assert commits[0].sha == "abc123"
        assert commits[0].first_line == "fix: bug"
        repo.get_commits.assert_called_once_with(sha="main", since=SINCE)

    def test_list_commits_sends_local_midnight_as_utc(self):
        github = MagicMock()
        repo = github.get_repo.return_value
        repo.get_commits.return_value = []
        start, _ = Settings(_env_file=None, timezone="Asia/Tokyo", period_days=7).get_period(
            now=datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)
        )

        GitHubSource(github).list_commits("octo/api", start, "main")

        since = repo.get_commits.call_args[1]["since"]
        assert since == datetime(2024, 3, 2, 15, 0, tzinfo=timezone.utc)
        assert since.utcoffset() == timedelta(0)
        assert since.strftime("%Y-%m-%dT%H:%M:%SZ") == "2024-03-02T15:00:00Z"

    def test_repository_fetched_without_lazy_argument(self):
        github = MagicMock()
        github.get_repo.return_value.default_branch = "develop"

        assert GitHubSource(github).get_default_branch("octo/api") == "develop"
        github.get_repo.assert_called_once_with("octo/api")

    def test_get_commit_stats(self):
        github = MagicMock()
        commit = github.get_repo.return_value.get_commit.return_value
        commit.stats.additions = 12
        commit.stats.deletions = 4
        commit.files = [Mock(), Mock(), Mock()]

        stats = GitHubSource(github).get_commit_stats("octo/api", "abc")

        assert stats == ChangeStats(additions=12, deletions=4, changed_files=3)

    def test_get_pull_stats(self):
        github = MagicMock()
        pr = github.get_repo.return_value.get_pull.return_value
        pr.additions = 5
        pr.deletions = 1
        pr.changed_files = 2

        assert GitHubSource(github).get_pull_stats("octo/api", 7) == ChangeStats(
            additions=5, deletions=1, changed_files=2
        )

    def test_errors_are_classified(self):
        github = MagicMock()
        github.get_repo.side_effect = GithubException(404, {"message": "Not Found"}, {})

        with pytest.raises(NotFoundError) as exc_info:
            GitHubSource(github).get_default_branch("octo/missing")

        assert isinstance(exc_info.value.__cause__, GithubException)

    def test_get_rate_limit(self):
        github = MagicMock()
        reset = datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
        core = github.get_rate_limit.return_value.rate
        core.remaining = 4200
        core.limit = 5000
        core.reset = reset

        info = GitHubSource(github).get_rate_limit()

        assert info == RateLimitInfo(remaining=4200, limit=5000, reset_at=reset)

    def test_get_rate_limit_failure_is_unknown(self):
        github = MagicMock()
        github.get_rate_limit.side_effect = requests.ConnectionError("down")

        info = GitHubSource(github).get_rate_limit()

        assert info.known is False


class TestRateLimitInfo:
    """Tests for RateLimitInfo and log_rate_limit."""

    def test_describe(self):
        now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        info = RateLimitInfo(remaining=4200, limit=5000, reset_at=now + timedelta(minutes=12))
        assert info.describe(now) == "4200/5000 (84%) - resets in 12min"

    def test_low_quota_warns(self, caplog):
        info = RateLimitInfo(
            remaining=50, limit=5000, reset_at=datetime.now(timezone.utc) + timedelta(minutes=5)
        )
        with caplog.at_level("INFO", logger="activity_digest.github.client"):
            log_rate_limit(info)
        assert caplog.records[-1].levelname == "WARNING"
        assert "API rate limit low" in caplog.text

    def test_unknown_not_logged(self, caplog):
        info = RateLimitInfo(remaining=-1, limit=-1, reset_at=datetime.now(timezone.utc))
        with caplog.at_level("INFO", logger="activity_digest.github.client"):
            log_rate_limit(info)
        assert caplog.records == []
