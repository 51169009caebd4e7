"""Configuration schema for upgit.

Defines the configuration options with types, defaults, and validation.
Uses Pydantic for schema enforcement and clear error messages.
"""

from __future__ import annotations

import warnings
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from pydantic import BaseModel, Field, field_validator

from .models import AuthorIdentity, HostCredentials, RepositoryRef, SourceRepositoryRef
from .transport import TransportOptions, accept_any_host, ssh_key_from_agent, ssh_key_from_file, token_for_https

if TYPE_CHECKING:
    from .updater import Updater


class TransportConfig(BaseModel):
    """Git transport settings shared by clone and push."""

    ssh_key: str = Field(
        default="",
        description="Path to SSH private key (empty = use ssh-agent)",
    )
    accept_unknown_hosts: bool = Field(
        default=True,
        description="Accept SSH host keys that are not in known_hosts",
    )
    https_token: bool = Field(
        default=False,
        description="Reuse github.token for HTTPS clone and push",
    )
    tmp_root: str = Field(
        default="",
        description="Directory for working clones (empty = system temp dir)",
    )

    @field_validator("ssh_key")
    @classmethod
    def validate_ssh_key(cls, v: str) -> str:
        """Warn if SSH key path doesn't exist."""
        if v:
            path = Path(v).expanduser()
            if not path.exists():
                warnings.warn(
                    f"SSH key path does not exist: {v}",
                    UserWarning,
                )
            elif not path.is_file():
                warnings.warn(
                    f"SSH key path is not a file: {v}",
                    UserWarning,
                )
        return v

    def build_options(self, token: str = "") -> TransportOptions:
        if self.ssh_key:
            resolver = ssh_key_from_file(Path(self.ssh_key).expanduser())
        else:
            resolver = ssh_key_from_agent
        if self.https_token and token:
            resolver = token_for_https(token, fallback=resolver)

        if self.accept_unknown_hosts:
            check = accept_any_host
        else:
            check = _reject_unknown_hosts
        return TransportOptions(certificate_check=check, credentials=resolver)


def _reject_unknown_hosts(host: str) -> bool:
    return False


class UpgitConfig(BaseModel):
    """Root configuration model."""

    version: int = Field(
        default=1,
        ge=1,
        description="Config schema version",
    )

    source: SourceRepositoryRef
    target: RepositoryRef
    author: AuthorIdentity
    github: HostCredentials
    transport: TransportConfig = Field(default_factory=TransportConfig)

    def redacted(self) -> dict:
        """Dump the config with secrets masked, for display."""
        data = self.model_dump()
        if data["github"].get("token"):
            data["github"]["token"] = "***"
        return data

    def build_updater(
        self,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        tmp_root: Optional[Path] = None,
    ) -> "Updater":
        """Create an Updater wired from this configuration."""
        from .updater import Updater

        if tmp_root is None and self.transport.tmp_root:
            tmp_root = Path(self.transport.tmp_root).expanduser()
        return Updater(
            self.source,
            self.target,
            self.author,
            self.github,
            clock=clock,
            tmp_root=tmp_root,
            transport=self.transport.build_options(self.github.token),
        )
