"""Fold pull requests and direct commits into per-repository activity."""

from collections.abc import Iterable, Sequence
from typing import Optional

from activity_digest.models import ChangeStats, CommitSummary, PullRequestSummary, RepoActivity

# Message prefix GitHub uses for the merge commit of a pull request
MERGE_COMMIT_MARKER = "Merge pull request"
MAX_DIRECT_COMMITS = 50
PR_BODY_MAX_LENGTH = 500


def truncate_body(body: Optional[str], max_length: int = PR_BODY_MAX_LENGTH) -> str:
    """Truncate a pull request description; None becomes an empty string."""
    if not body:
        return ""
    return body[:max_length]


def excluded_shas(merged_prs: Iterable[PullRequestSummary]) -> set[str]:
    """Shas that already reached the branch through a merged pull request."""
    shas: set[str] = set()
    for pr in merged_prs:
        if pr.merge_commit_sha:
            shas.add(pr.merge_commit_sha)
        shas.update(commit.sha for commit in pr.commits)
    return shas


def select_direct_commits(
    commits: Iterable[CommitSummary],
    excluded: set[str],
    limit: int = MAX_DIRECT_COMMITS,
) -> list[CommitSummary]:
    """Keep commits pushed straight to the branch, in order, up to limit.

    Args:
        commits: Commits on the default branch, newest first.
        excluded: Shas belonging to merged pull requests.
        limit: Maximum number of commits to keep.

    Returns:
        Direct commits with pull request and merge commits removed.
    """
    selected = []
    for commit in commits:
        if len(selected) >= limit:
            break
        if commit.sha in excluded:
            continue
        if commit.message.startswith(MERGE_COMMIT_MARKER):
            continue
        selected.append(commit)
    return selected


def aggregate_activity(
    merged_prs: Sequence[PullRequestSummary],
    direct_commits: Iterable[CommitSummary],
    max_direct_commits: int = MAX_DIRECT_COMMITS,
    body_max_length: int = PR_BODY_MAX_LENGTH,
) -> RepoActivity:
    """Build the activity of one repository.

    Direct commits that belong to a merged pull request, or that are
    merge commits, are dropped before counting, and at most
    max_direct_commits are kept. Totals are the sum over the pull
    requests and the kept direct commits.
    """
    prs = [
        pr.model_copy(update={"body": truncate_body(pr.body, body_max_length)})
        for pr in merged_prs
    ]
    commits = select_direct_commits(direct_commits, excluded_shas(prs), max_direct_commits)

    total = ChangeStats()
    for pr in prs:
        total = total + pr.stats
    for commit in commits:
        total = total + commit.stats

    return RepoActivity(merged_prs=prs, direct_commits=commits, total_stats=total)
