"""Shared data models used across multiple layers."""

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field


class ChangeStats(BaseModel):
    """Line and file counts for a change."""

    additions: int = 0
    deletions: int = 0
    changed_files: int = 0

    def __add__(self, other: "ChangeStats") -> "ChangeStats":
        return ChangeStats(
            additions=self.additions + other.additions,
            deletions=self.deletions + other.deletions,
            changed_files=self.changed_files + other.changed_files,
        )


class CommitSummary(BaseModel):
    """A commit, either part of a pull request or pushed directly."""

    sha: str
    message: str = ""
    date: Optional[str] = None
    stats: ChangeStats = Field(default_factory=ChangeStats)

    @property
    def short_sha(self) -> str:
        return self.sha[:7]

    @property
    def first_line(self) -> str:
        """First line of the commit message."""
        return self.message.split("\n", 1)[0].strip()


class PullRequestSummary(BaseModel):
    """A merged pull request and the commits it brought in."""

    number: int
    title: str
    body: str = ""
    merged_at: str
    merge_commit_sha: Optional[str] = None
    commits: list[CommitSummary] = Field(default_factory=list)
    stats: ChangeStats = Field(default_factory=ChangeStats)


class RepoActivity(BaseModel):
    """Everything that landed in one repository during the period."""

    merged_prs: list[PullRequestSummary] = Field(default_factory=list)
    direct_commits: list[CommitSummary] = Field(default_factory=list)
    total_stats: ChangeStats = Field(default_factory=ChangeStats)

    @property
    def is_active(self) -> bool:
        return bool(self.merged_prs or self.direct_commits)


# Mapping of "owner/repo" to its activity for one run
RunActivity = dict[str, RepoActivity]


@dataclass
class Repository:
    """Minimal repository descriptor returned by discovery."""

    full_name: str
    name: str
    private: bool = False
