"""Git transport options: host key policy and credential resolution.

GitPython drives the ``git`` binary, so credentials and host key checks are
expressed as environment variables for that process. A :class:`TransportOptions`
bundle holds the two pluggable callbacks and renders the environment for a
given remote URL:

* ``certificate_check(host) -> bool`` decides whether an unknown SSH host key
  is accepted (default: always accept).
* ``credentials(url, username) -> GitCredential`` picks how to authenticate
  (default: the running ssh-agent, for the username in the remote URL).
"""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import urlsplit


DEFAULT_SSH_USER = "git"
TOKEN_ENV = "UPGIT_GIT_PASSWORD"

_SCP_LIKE = re.compile(r"^(?:(?P<user>[^@/:]+)@)?(?P<host>[^@/:]+):(?!//)")

# Fail fast instead of prompting; nothing can answer a prompt here.
_BASE_ENV = {
    "GIT_TERMINAL_PROMPT": "0",
    "GCM_INTERACTIVE": "never",
}


class GitCredential:
    """Base class for a resolved git transport credential."""

    def ssh_options(self) -> list[str]:
        return []

    def environment(self) -> Dict[str, str]:
        return {}


@dataclass(frozen=True)
class SshAgentCredential(GitCredential):
    """Authenticate over SSH with whatever identity the ssh-agent offers."""

    username: str

    def ssh_options(self) -> list[str]:
        return ["-l", self.username]


@dataclass(frozen=True)
class SshKeyCredential(GitCredential):
    """Authenticate over SSH with an explicit private key."""

    username: str
    key_path: Path

    def ssh_options(self) -> list[str]:
        return [
            "-l", self.username,
            "-i", str(Path(self.key_path).expanduser()),
            "-o", "IdentitiesOnly=yes",
        ]


@dataclass(frozen=True)
class TokenCredential(GitCredential):
    """Authenticate over HTTPS with a token served by an inline credential helper.

    The helper is injected with ``GIT_CONFIG_*`` variables (git 2.31+) and
    reads the token from the environment, so it never shows up in argv.
    """

    token: str = field(repr=False)
    username: str = "x-access-token"

    def environment(self) -> Dict[str, str]:
        helper = (
            f"!f() {{ test \"$1\" = get || exit 0; "
            f"echo username={self.username}; "
            f"echo \"password=${TOKEN_ENV}\"; }}; f"
        )
        return {
            TOKEN_ENV: self.token,
            "GIT_CONFIG_COUNT": "2",
            # An empty value clears helpers inherited from user config
            "GIT_CONFIG_KEY_0": "credential.helper",
            "GIT_CONFIG_VALUE_0": "",
            "GIT_CONFIG_KEY_1": "credential.helper",
            "GIT_CONFIG_VALUE_1": helper,
        }


CertificateCheck = Callable[[str], bool]
CredentialResolver = Callable[[str, Optional[str]], GitCredential]


def accept_any_host(host: str) -> bool:
    """Host key policy that accepts every host (trust on first use)."""
    return True


def ssh_key_from_agent(url: str, username: Optional[str]) -> GitCredential:
    """Default credential resolver: the ssh-agent, keyed by the URL's username."""
    return SshAgentCredential(username or DEFAULT_SSH_USER)


def ssh_key_from_file(key_path: Path) -> CredentialResolver:
    """Build a resolver that always authenticates with ``key_path``."""

    def resolve(url: str, username: Optional[str]) -> GitCredential:
        return SshKeyCredential(username or DEFAULT_SSH_USER, Path(key_path))

    return resolve


def token_for_https(token: str, fallback: CredentialResolver = ssh_key_from_agent) -> CredentialResolver:
    """Build a resolver that uses ``token`` for HTTPS remotes and ``fallback`` otherwise."""

    def resolve(url: str, username: Optional[str]) -> GitCredential:
        if url.startswith("https://") and token:
            return TokenCredential(token)
        return fallback(url, username)

    return resolve


def split_remote_url(url: str) -> Tuple[Optional[str], Optional[str], str]:
    """Return ``(username, host, scheme)`` for a git remote URL.

    ``scheme`` is ``"ssh"`` for scp-like URLs (``git@github.com:org/repo.git``)
    and ``"file"`` for plain local paths.
    """
    if "://" in url:
        parts = urlsplit(url)
        return parts.username, parts.hostname, parts.scheme or "file"
    match = _SCP_LIKE.match(url)
    if match and not Path(url).exists():
        return match.group("user"), match.group("host"), "ssh"
    return None, None, "file"


@dataclass
class TransportOptions:
    """Reusable transport settings shared by clone and push."""

    certificate_check: CertificateCheck = accept_any_host
    credentials: CredentialResolver = ssh_key_from_agent

    def environment(self, url: str) -> Dict[str, str]:
        """Render the git environment overrides for talking to ``url``."""
        env = dict(_BASE_ENV)
        username, host, scheme = split_remote_url(url)
        if scheme == "file":
            return env

        credential = self.credentials(url, username)
        env.update(credential.environment())

        if scheme in ("ssh", "git+ssh", "ssh+git"):
            ssh_cmd = ["ssh", "-o", "BatchMode=yes"]
            accepted = self.certificate_check(host or "")
            ssh_cmd += ["-o", f"StrictHostKeyChecking={'no' if accepted else 'yes'}"]
            ssh_cmd += credential.ssh_options()
            env["GIT_SSH_COMMAND"] = " ".join(shlex.quote(part) for part in ssh_cmd)
        return env
