"""Minimal GitHub REST client for opening pull requests.

Usage:
    client = GitHubClient(token)
    pr = client.get_repo("octocat", "hello-world").create_pull_request(
        title="Automatic update", head="feature", base="main",
    )
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from .errors import PullRequestError
from .models import PullRequest


DEFAULT_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"


def _error_message(response: httpx.Response) -> str:
    """Pull a readable message out of a GitHub error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase

    if not isinstance(data, dict):
        return str(data)
    message = data.get("message") or response.reason_phrase
    details = []
    for err in data.get("errors") or []:
        if isinstance(err, dict):
            details.append(err.get("message") or err.get("code") or str(err))
        else:
            details.append(str(err))
    if details:
        message = f"{message} ({'; '.join(details)})"
    return message


class GitHubRepository:
    """A repository on GitHub, addressed as ``owner/name``."""

    def __init__(self, client: "GitHubClient", owner: str, name: str):
        self.client = client
        self.owner = owner
        self.name = name

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def create_pull_request(
        self,
        *,
        title: str,
        head: str,
        base: str,
        body: Optional[str] = None,
    ) -> PullRequest:
        """Open a pull request from ``head`` into ``base``.

        Raises:
            PullRequestError: If the request fails or GitHub rejects it
        """
        payload: Dict[str, Any] = {"title": title, "head": head, "base": base}
        if body is not None:
            payload["body"] = body

        path = f"/repos/{self.owner}/{self.name}/pulls"
        try:
            response = self.client.http.post(path, json=payload)
        except httpx.HTTPError as e:
            raise PullRequestError(
                f"Failed to open pull request on {self.full_name}: {e}"
            ) from e

        if response.status_code >= 400:
            raise PullRequestError(
                f"GitHub rejected pull request on {self.full_name} "
                f"(HTTP {response.status_code}): {_error_message(response)}"
            )

        try:
            data = response.json()
            number = int(data["number"])
        except (ValueError, KeyError, TypeError) as e:
            raise PullRequestError(
                f"Unexpected pull request response from {self.full_name}: {response.text[:200]}"
            ) from e
        return PullRequest(
            number=number,
            url=data.get("url", ""),
            html_url=data.get("html_url", ""),
            head=head,
            base=base,
            title=data.get("title", title),
        )


class GitHubClient:
    """Token-authenticated client for the GitHub REST API."""

    def __init__(
        self,
        token: str,
        *,
        api_url: str = DEFAULT_API_URL,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 30.0,
    ):
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": "upgit",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.api_url = api_url.rstrip("/")
        self.http = httpx.Client(
            base_url=self.api_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def get_repo(self, owner: str, name: str) -> GitHubRepository:
        return GitHubRepository(self, owner, name)

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
