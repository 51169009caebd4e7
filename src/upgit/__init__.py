"""upgit: keep a file in a source repository in sync with a target repository."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("upgit")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"  # Fallback for editable installs without metadata

from .errors import (  # noqa: F401
    BranchError,
    CloneError,
    CommitError,
    ConfigError,
    DiffError,
    OverlayError,
    PullRequestError,
    PushError,
    UpdaterError,
)
from .models import (  # noqa: F401
    AuthorIdentity,
    ChangeSet,
    HostCredentials,
    Opened,
    RepositoryRef,
    SourceRepositoryRef,
    UpToDate,
)
from .updater import Updater  # noqa: F401

__all__ = [
    "Updater",
    "RepositoryRef",
    "SourceRepositoryRef",
    "AuthorIdentity",
    "HostCredentials",
    "ChangeSet",
    "Opened",
    "UpToDate",
    "UpdaterError",
    "CloneError",
    "BranchError",
    "OverlayError",
    "DiffError",
    "CommitError",
    "PushError",
    "PullRequestError",
    "ConfigError",
    "__version__",
]
