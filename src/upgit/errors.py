"""Exception taxonomy for an update run.

Each pipeline step raises its own subclass of :class:`UpdaterError` so callers
can tell which step failed. The collaborator error that caused it is kept as
``__cause__``.
"""

from __future__ import annotations


class UpdaterError(Exception):
    """Base exception for update pipeline failures."""

    step = "update"


class CloneError(UpdaterError):
    """Failed to clone the source or target repository."""

    step = "clone"


class BranchError(UpdaterError):
    """Failed to create or check out the working branch."""

    step = "branch"


class OverlayError(UpdaterError):
    """Failed to copy the target's path over the source's path."""

    step = "overlay"


class DiffError(UpdaterError):
    """Failed to compute the working tree diff."""

    step = "diff"


class CommitError(UpdaterError):
    """Failed to stage or commit the changed paths."""

    step = "commit"


class PushError(UpdaterError):
    """Failed to push the working branch to origin."""

    step = "push"


class PullRequestError(UpdaterError):
    """The hosting API rejected the pull request."""

    step = "pull_request"


class ConfigError(Exception):
    """Configuration loading or validation error."""

    pass
