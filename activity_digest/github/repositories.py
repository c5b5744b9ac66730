"""Resolve the configured repository source into a list of repositories."""

import logging
from pathlib import Path
from typing import Optional

from activity_digest.config import Settings
from activity_digest.errors import SourceError
from activity_digest.github.client import GitHubSource
from activity_digest.models import Repository
from activity_digest.retry import with_throttle_awareness

logger = logging.getLogger("activity_digest.github.repositories")


def get_org_repositories(source: GitHubSource, org: str) -> list[Repository]:
    try:
        return with_throttle_awareness(
            lambda: source.list_org_repositories(org),
            description=f"list repositories of {org}",
        )
    except SourceError as e:
        logger.error(f"Error fetching org repositories: {e}")
        return []


def get_user_repositories(source: GitHubSource, username: str) -> list[Repository]:
    try:
        repos = with_throttle_awareness(
            lambda: source.list_user_repositories(username),
            description=f"list repositories of {username}",
        )
    except SourceError as e:
        logger.error(f"Error fetching user repositories: {e}")
        return []
    logger.info(f"Fetched {len(repos)} repositories for user {username}")
    return repos


def get_repositories_by_topics(source: GitHubSource, topics: list[str]) -> list[Repository]:
    """Search each topic and merge the results, deduplicated by full name."""
    unique: dict[str, Repository] = {}
    try:
        for topic in topics:
            found = with_throttle_awareness(
                lambda: source.search_repositories_by_topic(topic),
                description=f"search topic {topic}",
            )
            for repo in found:
                unique.setdefault(repo.full_name, repo)
    except SourceError as e:
        logger.error(f"Error fetching repositories by topics: {e}")
        return []
    return list(unique.values())


def fetch_repository(source: GitHubSource, full_name: str) -> Optional[Repository]:
    """Fetch one repository by name, or None if it is invalid or unavailable."""
    owner, _, name = full_name.partition("/")
    if not owner or not name:
        logger.warning(f"Skipping invalid repository name: {full_name}")
        return None

    try:
        return with_throttle_awareness(
            lambda: source.get_repository(full_name),
            description=f"get repository {full_name}",
        )
    except SourceError as e:
        logger.warning(f"Could not fetch repository {full_name}: {e}")
        return None


def get_repositories_from_list(source: GitHubSource, names: list[str]) -> list[Repository]:
    repos = [fetch_repository(source, name) for name in names]
    return [repo for repo in repos if repo is not None]


def read_repository_file(path: str) -> list[str]:
    """Read owner/repo names from a file, skipping blank lines and # comments.

    Raises:
        OSError: If the file cannot be read.
    """
    lines = Path(path).expanduser().read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]


def get_repositories_from_file(source: GitHubSource, path: str) -> list[Repository]:
    try:
        names = read_repository_file(path)
    except OSError as e:
        logger.error(f"Error reading repositories file: {e}")
        return []
    return get_repositories_from_list(source, names)


def _matches(repo: Repository, patterns: list[str]) -> bool:
    return any(p in repo.name or p in repo.full_name for p in patterns)


def apply_filters(
    repos: list[Repository],
    include: Optional[list[str]] = None,
    exclude: Optional[list[str]] = None,
    only_public: bool = False,
    only_private: bool = False,
) -> list[Repository]:
    """Filter repositories by name substrings and visibility.

    Args:
        repos: Repositories to filter.
        include: Keep only repositories whose name or full name contains one of these.
        exclude: Drop repositories whose name or full name contains one of these.
        only_public: Drop private repositories.
        only_private: Drop public repositories.

    Returns:
        Repositories passing every filter, in input order.
    """
    filtered = []
    for repo in repos:
        if include and not _matches(repo, include):
            continue
        if exclude and _matches(repo, exclude):
            continue
        if only_public and repo.private:
            continue
        if only_private and not repo.private:
            continue
        filtered.append(repo)
    return filtered


def discover_repositories(source: GitHubSource, settings: Settings) -> list[Repository]:
    """Resolve, filter and limit the repositories selected by settings.

    Args:
        source: GitHub data source.
        settings: Application settings.

    Returns:
        Repositories to collect activity from.
    """
    if settings.mode == "organization":
        repos = get_org_repositories(source, settings.organization)
    elif settings.mode == "user":
        repos = get_user_repositories(source, settings.github_user)
    elif settings.mode == "topics":
        repos = get_repositories_by_topics(source, settings.topic_list)
    elif settings.mode == "file":
        repos = get_repositories_from_file(source, settings.repositories_file)
    else:  # list
        repos = get_repositories_from_list(source, settings.repo_list)

    filtered = apply_filters(
        repos,
        include=settings.include_list,
        exclude=settings.exclude_list,
        only_public=settings.only_public,
        only_private=settings.only_private,
    )

    if settings.max_repos and len(filtered) > settings.max_repos:
        logger.warning(
            f"Limiting to {settings.max_repos} repositories (found {len(filtered)}). "
            f"Increase max_repos to process more."
        )
        return filtered[:settings.max_repos]

    return filtered
