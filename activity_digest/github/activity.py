"""Batched, concurrent collection of repository activity."""

import contextvars
import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime
from typing import Callable, Optional

from activity_digest.aggregator import (
    MAX_DIRECT_COMMITS,
    PR_BODY_MAX_LENGTH,
    aggregate_activity,
    excluded_shas,
    select_direct_commits,
)
from activity_digest.errors import SourceError
from activity_digest.github.client import GitHubSource
from activity_digest.models import ChangeStats, CommitSummary, RepoActivity, RunActivity
from activity_digest.retry import RetryPolicy, retry_call
from activity_digest.utils import progress_bar

logger = logging.getLogger("activity_digest.github.activity")

DEFAULT_BATCH_SIZE = 10


class ActivityCollector:
    """Fetches activity for many repositories, a fixed-size batch at a time."""

    def __init__(
        self,
        source: GitHubSource,
        retry_policy: Optional[RetryPolicy] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_direct_commits: int = MAX_DIRECT_COMMITS,
        body_max_length: int = PR_BODY_MAX_LENGTH,
        progress: Optional[Callable[[int, int], None]] = None,
    ):
        """Initialize the collector.

        Args:
            source: GitHub data source.
            retry_policy: Policy applied to every GitHub call.
            batch_size: Repositories fetched concurrently; the next batch
                starts only after the whole batch has settled.
            max_direct_commits: Direct commits kept per repository.
            body_max_length: Pull request description truncation length.
            progress: Optional callback receiving (processed, total) after each batch.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.source = source
        self.retry_policy = retry_policy or RetryPolicy()
        self.batch_size = batch_size
        self.max_direct_commits = max_direct_commits
        self.body_max_length = body_max_length
        self._progress = progress

    def _retry(self, description: str, func: Callable):
        return retry_call(func, self.retry_policy, description=description)

    def collect(self, repositories: Sequence[str], since: datetime) -> RunActivity:
        """Collect activity for every repository.

        A repository whose fetch fails gets an empty RepoActivity; the
        failure never reaches sibling tasks or later batches.

        Args:
            repositories: Repository full names (owner/repo).
            since: Start of the collection period.

        Returns:
            Mapping of every requested repository to its activity.
        """
        total = len(repositories)
        activities: RunActivity = {}
        processed = 0

        logger.info(f"Fetching activity from {total} repositories...")

        with ThreadPoolExecutor(
            max_workers=self.batch_size, thread_name_prefix="collect"
        ) as executor:
            for start in range(0, total, self.batch_size):
                batch = repositories[start:start + self.batch_size]

                futures = {}
                for repo_name in batch:
                    # Each thread needs its own context copy for run_id propagation
                    ctx = contextvars.copy_context()
                    future = executor.submit(ctx.run, self.fetch_repo_activity, repo_name, since)
                    futures[future] = repo_name

                wait(futures)

                for future, repo_name in futures.items():
                    try:
                        activity = future.result()
                    except Exception as e:
                        logger.warning(f"Could not fetch activity for {repo_name}: {e}")
                        activity = RepoActivity()
                    activities[repo_name] = activity
                    processed += 1

                    logger.log(
                        logging.INFO if activity.is_active else logging.DEBUG,
                        f"{repo_name}: {len(activity.merged_prs)} PR(s), "
                        f"{len(activity.direct_commits)} commit(s)",
                    )

                logger.info(progress_bar(processed, total))
                if self._progress:
                    self._progress(processed, total)

        logger.info(f"Completed! Processed {total} repositories")
        return activities

    def fetch_repo_activity(self, repo_name: str, since: datetime) -> RepoActivity:
        """Fetch and aggregate the activity of one repository.

        Failures for an individual pull request or commit degrade to
        empty commits or zero stats. A failure listing the merged pull
        requests propagates.
        """
        merged = self._retry(
            f"list merged PRs of {repo_name}",
            lambda: self.source.list_merged_pulls(repo_name, since),
        )

        prs = []
        for pr in merged:
            prs.append(
                pr.model_copy(
                    update={
                        "commits": self._pull_commits(repo_name, pr.number),
                        "stats": self._pull_stats(repo_name, pr.number),
                    }
                )
            )

        direct = self._direct_commits(repo_name, since, excluded_shas(prs))
        return aggregate_activity(
            prs,
            direct,
            max_direct_commits=self.max_direct_commits,
            body_max_length=self.body_max_length,
        )

    def _pull_commits(self, repo_name: str, number: int) -> list[CommitSummary]:
        try:
            return self._retry(
                f"list commits of {repo_name}#{number}",
                lambda: self.source.list_pull_commits(repo_name, number),
            )
        except SourceError as e:
            logger.debug(f"No commits for {repo_name}#{number}: {e}")
            return []

    def _pull_stats(self, repo_name: str, number: int) -> ChangeStats:
        try:
            return self._retry(
                f"stats of {repo_name}#{number}",
                lambda: self.source.get_pull_stats(repo_name, number),
            )
        except SourceError as e:
            logger.debug(f"No stats for {repo_name}#{number}: {e}")
            return ChangeStats()

    def _direct_commits(
        self, repo_name: str, since: datetime, excluded: set[str]
    ) -> list[CommitSummary]:
        """Commits pushed straight to the default branch, with stats.

        Commits belonging to merged pull requests are removed before any
        stats are requested.
        """
        try:
            branch = self._retry(
                f"default branch of {repo_name}",
                lambda: self.source.get_default_branch(repo_name),
            )
            commits = self._retry(
                f"list commits of {repo_name}",
                lambda: self.source.list_commits(repo_name, since, branch),
            )
        except SourceError as e:
            # 409 Conflict means the repository is empty
            logger.debug(f"No direct commits for {repo_name}: {e}")
            return []

        selected = select_direct_commits(commits, excluded, self.max_direct_commits)
        return [
            commit.model_copy(update={"stats": self._commit_stats(repo_name, commit.sha)})
            for commit in selected
        ]

    def _commit_stats(self, repo_name: str, sha: str) -> ChangeStats:
        try:
            return self._retry(
                f"stats of {repo_name}@{sha[:7]}",
                lambda: self.source.get_commit_stats(repo_name, sha),
            )
        except SourceError as e:
            logger.debug(f"No stats for {repo_name}@{sha[:7]}: {e}")
            return ChangeStats()
