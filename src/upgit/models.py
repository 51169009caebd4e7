"""Data model for a single update run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import PurePosixPath
from typing import Optional, Tuple, Union

from pydantic import BaseModel, Field, field_validator


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def as_aware(moment: datetime) -> datetime:
    """Return ``moment`` with a timezone; naive values are read as local time."""
    if moment.tzinfo is None:
        return moment.astimezone()
    return moment


def operation_identity(source_name: str, now: datetime) -> str:
    """Build the run identity ``<epoch-millis>-<source_name>``.

    The identity doubles as the temp directory prefix, the branch name and
    the pushed ref name.
    """
    # Integer arithmetic; float timestamps lose the last millisecond
    millis = (as_aware(now) - _EPOCH) // timedelta(milliseconds=1)
    return f"{millis}-{source_name}"


class RepositoryRef(BaseModel):
    """A repository taking part in the sync."""

    name: str = Field(description="Logical repository name (GitHub repo name)")
    repo_url: str = Field(description="Clone URL (SSH, HTTPS or local path)")
    file_path: str = Field(description="File or directory path relative to the repo root")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("repository name must not be empty")
        if "/" in v or any(ch.isspace() for ch in v):
            raise ValueError(f"repository name must not contain '/' or whitespace: {v!r}")
        return v

    @field_validator("repo_url")
    @classmethod
    def validate_repo_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("repository URL must not be empty")
        return v

    @field_validator("file_path")
    @classmethod
    def validate_file_path(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("file path must not be empty")
        path = PurePosixPath(v.replace("\\", "/"))
        if path.is_absolute():
            raise ValueError(f"file path must be relative to the repository root: {v}")
        if ".." in path.parts:
            raise ValueError(f"file path must stay inside the repository: {v}")
        return v


class SourceRepositoryRef(RepositoryRef):
    """The drifted repository that receives the pull request."""

    base_branch: str = Field(
        default="master",
        description="Branch the pull request targets",
    )


class AuthorIdentity(BaseModel):
    """Identity used as both commit author and committer."""

    name: str
    email: str


class HostCredentials(BaseModel):
    """GitHub account used to open the pull request.

    ``user`` is also assumed to own the source repository.
    """

    user: str
    token: str = Field(default="", repr=False)
    api_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API root (override for GitHub Enterprise)",
    )


@dataclass(frozen=True)
class FileDelta:
    """One changed path between the head tree and the working tree."""

    status: str  # git change letter: A, M, D, T or R
    old_path: Optional[str]
    new_path: str

    @property
    def deleted(self) -> bool:
        return self.status == "D"


@dataclass(frozen=True)
class ChangeSet:
    """Ordered collection of file deltas. Empty is a valid result."""

    deltas: Tuple[FileDelta, ...] = ()

    def __len__(self) -> int:
        return len(self.deltas)

    def __bool__(self) -> bool:
        return bool(self.deltas)

    def __iter__(self):
        return iter(self.deltas)

    @property
    def paths(self) -> list[str]:
        return [delta.new_path for delta in self.deltas]


@dataclass(frozen=True)
class PullRequest:
    number: int
    url: str
    html_url: str
    head: str
    base: str
    title: str


@dataclass(frozen=True)
class Opened:
    """The run committed, pushed and opened a pull request."""

    identity: str
    branch: str
    commit_sha: str
    pull_request: PullRequest


@dataclass(frozen=True)
class UpToDate:
    """The source already matches the target; nothing was changed."""

    identity: str
    message: str = field(default="up to date")


Outcome = Union[Opened, UpToDate]
