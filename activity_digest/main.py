"""Main entry point and orchestration for activity-digest."""

import argparse
import logging
import sys
from datetime import datetime
from typing import Optional

from github import Auth, Github

from activity_digest import run_scope, setup_logging
from activity_digest.cache import ActivityCache
from activity_digest.config import Settings, load_settings
from activity_digest.github import (
    ActivityCollector,
    GitHubSource,
    discover_repositories,
    log_rate_limit,
)
from activity_digest.llm import BaseLLM, get_llm
from activity_digest.models import RunActivity
from activity_digest.report import save_report
from activity_digest.summary import generate_summary

logger = logging.getLogger("activity_digest.main")


def build_cache(settings: Settings) -> ActivityCache:
    return ActivityCache(
        cache_dir=settings.cache_dir,
        ttl_seconds=settings.cache_ttl_minutes * 60,
    )


class ActivityDigest:
    """Main orchestrator: discover, collect, summarize, archive."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        github: Optional[Github] = None,
        llm: Optional[BaseLLM] = None,
        cache: Optional[ActivityCache] = None,
    ):
        """Initialize the digest.

        Args:
            settings: Optional settings override.
            github: Optional pre-built Github client.
            llm: Optional pre-built LLM provider.
            cache: Optional activity cache.

        Raises:
            ValueError: If the GitHub token or the AI API key is missing.
        """
        self.settings = settings or load_settings()

        if github is None:
            if not self.settings.github_token:
                raise ValueError("GITHUB_TOKEN environment variable is required")
            # retry=None: failures are classified and retried by our own engine
            github = Github(
                auth=Auth.Token(self.settings.github_token),
                timeout=30,
                per_page=100,
                retry=None,
                lazy=True,
            )
        self._github = github

        self.source = GitHubSource(
            self._github,
            strict_rate_limit_detection=self.settings.strict_rate_limit_detection,
        )
        self.collector = ActivityCollector(
            self.source,
            retry_policy=self.settings.get_retry_policy(),
            batch_size=self.settings.batch_size,
            max_direct_commits=self.settings.max_direct_commits,
            body_max_length=self.settings.pr_body_max_length,
        )
        self.cache = cache or build_cache(self.settings)
        self.llm = llm or get_llm(self.settings.ai_provider, self.settings.get_llm_config())

    def run(self, now: Optional[datetime] = None) -> int:
        """Run one digest.

        Args:
            now: Override for the current time (timezone-aware).

        Returns:
            Process exit code.
        """
        with run_scope():
            return self._run(now)

    def _run(self, now: Optional[datetime]) -> int:
        try:
            self.settings.check_source()
        except ValueError as e:
            logger.error(str(e))
            return 1

        if not self.llm.is_available():
            logger.error(f"LLM provider {self.llm.provider_name} is not available")
            return 1

        logger.info("Fetching repositories...")
        repos = discover_repositories(self.source, self.settings)
        if not repos:
            logger.error("No repositories found matching the criteria")
            return 1
        logger.info(f"Found {len(repos)} repositories matching the criteria")

        start, end = self.settings.get_period(now)
        activities = self.load_activity([r.full_name for r in repos], start)

        active = [name for name, activity in activities.items() if activity.is_active]
        if not active:
            logger.warning("No activity found in the specified period")
            return 0
        logger.info(f"Activity found in {len(active)} repositories")

        summary = generate_summary(
            self.llm,
            activities,
            start.date().isoformat(),
            end.date().isoformat(),
            language=self.settings.language,
            template_path=self.settings.prompt_template,
        )
        logger.info("Summary generated successfully!")
        print(f"\n{summary}\n")

        if self.settings.archive_dir:
            save_report(summary, self.settings.archive_dir, end.date())
        return 0

    def load_activity(self, repo_names: list[str], since: datetime) -> RunActivity:
        """Return activity from the cache, or collect and cache it."""
        if self.settings.no_cache:
            logger.info("Cache bypassed (--no-cache flag)")
        else:
            cached = self.cache.lookup(repo_names, since)
            if cached is not None:
                logger.info("Using cached activity data")
                return cached

        log_rate_limit(self.source.get_rate_limit())
        activities = self.collector.collect(repo_names, since)
        log_rate_limit(self.source.get_rate_limit())

        if not self.settings.no_cache:
            try:
                self.cache.store(repo_names, since, activities)
            except OSError as e:
                logger.warning(f"Could not write activity cache: {e}")
        return activities

    def close(self) -> None:
        """Clean up all resources."""
        logger.debug("Closing activity-digest resources")

        if hasattr(self, "_github"):
            self._github.close()

        # Close LLM client (HTTP client)
        if hasattr(self, "llm") and hasattr(self.llm, "close"):
            self.llm.close()

    def __enter__(self) -> "ActivityDigest":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="activity-digest",
        description="Generate AI-powered summaries of GitHub repository activity",
    )
    parser.add_argument("--org", help="GitHub organization name")
    parser.add_argument("--user", help="GitHub username")
    parser.add_argument("--topics", help="Comma-separated list of topics")
    parser.add_argument("--file", help="Path to file with repository list")
    parser.add_argument("--repos", help="Comma-separated list of owner/repo")
    parser.add_argument("--days", type=int, help="Number of days to look back")
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Bypass cache and fetch fresh data",
    )
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        help="Delete all cached activity and exit",
    )
    parser.add_argument(
        "--cache-stats",
        action="store_true",
        help="Show cache statistics and exit",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def cli_overrides(args: argparse.Namespace) -> dict:
    """Translate command-line arguments into settings overrides.

    Source flags select the mode; when several are given the last one
    in the order org, user, topics, file, repos wins.
    """
    overrides: dict = {}
    sources = [
        ("org", "organization", "organization"),
        ("user", "user", "github_user"),
        ("topics", "topics", "topics"),
        ("file", "file", "repositories_file"),
        ("repos", "list", "repos"),
    ]
    for arg, mode, field in sources:
        value = getattr(args, arg)
        if value:
            overrides["mode"] = mode
            overrides[field] = value
    if args.days:
        overrides["period_days"] = args.days
    if args.no_cache:
        overrides["no_cache"] = True
    return overrides


def show_cache_stats(cache: ActivityCache) -> None:
    stats = cache.stats()
    print(f"Cache entries: {stats.size}")
    for entry in stats.entries:
        print(f"  {entry.file}  age={round(entry.age_seconds / 60)}min  size={entry.size_kb}KB")


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(**cli_overrides(args))
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    log_level = "DEBUG" if args.debug else settings.log_level
    setup_logging(log_level, log_format=settings.log_format)

    if args.clear_cache:
        build_cache(settings).clear()
        sys.exit(0)
    if args.cache_stats:
        show_cache_stats(build_cache(settings))
        sys.exit(0)

    logger.info("GitHub Weekly Activity Report Generator")

    try:
        digest = ActivityDigest(settings)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    with digest:
        try:
            exit_code = digest.run()
        except RuntimeError as e:
            logger.error(f"Error generating AI summary: {e}")
            exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
