"""GitHub integration: data source, repository discovery and activity collection."""

from activity_digest.github.activity import ActivityCollector
from activity_digest.github.client import GitHubSource, RateLimitInfo, log_rate_limit
from activity_digest.github.repositories import discover_repositories

__all__ = [
    "ActivityCollector",
    "GitHubSource",
    "RateLimitInfo",
    "log_rate_limit",
    "discover_repositories",
]
