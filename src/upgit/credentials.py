"""Credentials lookup for upgit.

The GitHub token and SSH key can come from the environment or from
``~/.upgit/credentials.toml``::

    [github]
    token = "ghp_..."
    ssh_key = "~/.ssh/id_ed25519"

Environment variables always win over the file.
"""

from __future__ import annotations

import os
import stat
import sys
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

# TOML reading
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


CREDENTIALS_FILENAME = "credentials.toml"
USER_CONFIG_DIR = ".upgit"


class GitHubCredentials(BaseModel):
    """GitHub authentication credentials."""

    token: str = Field(
        default="",
        description="GitHub personal access token",
    )
    ssh_key: str = Field(
        default="",
        description="Path to SSH private key",
    )


class Credentials(BaseModel):
    """All upgit credentials."""

    github: GitHubCredentials = Field(default_factory=GitHubCredentials)


def _get_user_credentials_path() -> Path:
    """Get path to user credentials file."""
    return Path.home() / USER_CONFIG_DIR / CREDENTIALS_FILENAME


def secure_file_permissions(path: Path) -> None:
    """Set owner read/write only permissions.

    On Windows, this is a no-op as permissions work differently.
    """
    if os.name == "posix":
        try:
            os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)  # 0o600
        except OSError as e:
            warnings.warn(
                f"Could not set secure permissions on {path}: {e}. "
                "File may be readable by other users.",
                UserWarning,
            )


def _load_toml_credentials(path: Path) -> Dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_credentials() -> Credentials:
    """Load credentials from the user credentials file.

    A missing file yields empty credentials; an unreadable one warns and
    yields empty credentials.
    """
    toml_path = _get_user_credentials_path()
    if not toml_path.exists():
        return Credentials()
    try:
        data = _load_toml_credentials(toml_path)
        return Credentials.model_validate(data)
    except Exception as e:
        warnings.warn(f"Error loading credentials from {toml_path}: {e}", UserWarning)
        return Credentials()


def get_github_token() -> Optional[str]:
    """Get GitHub token from environment or credentials file.

    Priority: GITHUB_TOKEN > GH_TOKEN > credentials file
    """
    env_token = os.getenv("GITHUB_TOKEN") or os.getenv("GH_TOKEN")
    if env_token:
        return env_token

    creds = load_credentials()
    return creds.github.token or None


def get_ssh_key_path() -> Optional[Path]:
    """Get SSH key path from credentials file."""
    creds = load_credentials()
    if creds.github.ssh_key:
        return Path(creds.github.ssh_key).expanduser()
    return None
