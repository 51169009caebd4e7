from __future__ import annotations

import json
import os
import shutil
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest
from git import Repo


def pytest_sessionstart(session):  # type: ignore[override]
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))
    os.environ.setdefault("PYTHONPATH", str(src))
    os.environ["UPGIT_LOG_DISABLE_FILE"] = "1"


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep user config, credentials and tokens out of every test."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("UPGIT_LOG_DISABLE_FILE", "1")
    for name in list(os.environ):
        if name.startswith("UPGIT_") and name != "UPGIT_LOG_DISABLE_FILE":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GH_TOKEN", raising=False)
    return home


def seed_remote(root: Path, name: str, files: dict[str, str]) -> Path:
    """Create a bare repository at ``root/<name>.git`` holding ``files``."""
    workdir = root / f"{name}-seed"
    repo = Repo.init(workdir)
    for rel, content in files.items():
        path = workdir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    repo.index.add(list(files))
    repo.index.commit("seed")
    remote = root / f"{name}.git"
    repo.clone(str(remote), bare=True)
    repo.close()
    shutil.rmtree(workdir)
    return remote


def fixed_clock(millis: int = 0):
    moment = datetime(1970, 1, 1, tzinfo=timezone.utc) + timedelta(milliseconds=millis)
    return lambda: moment


class FakeGitHub:
    """Records GitHub API requests and answers pull request creation."""

    def __init__(self, status_code: int = 201, body: dict | None = None):
        self.requests: list[httpx.Request] = []
        self.status_code = status_code
        self.body = body

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.body is not None:
            return httpx.Response(self.status_code, json=self.body)
        payload = json.loads(request.content)
        number = len(self.requests)
        owner_repo = request.url.path.split("/repos/", 1)[1].rsplit("/pulls", 1)[0]
        return httpx.Response(
            self.status_code,
            json={
                "number": number,
                "url": f"https://api.github.com/repos/{owner_repo}/pulls/{number}",
                "html_url": f"https://github.com/{owner_repo}/pull/{number}",
                "title": payload["title"],
            },
        )

    def client(self):
        from upgit.github import GitHubClient

        return GitHubClient("test-token", transport=httpx.MockTransport(self.handler))

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def fake_github():
    return FakeGitHub()


@pytest.fixture
def seed(tmp_path):
    """Factory for seeded bare remotes under ``tmp_path/remotes``."""
    root = tmp_path / "remotes"
    root.mkdir()

    def _seed(name: str, files: dict[str, str]) -> Path:
        return seed_remote(root, name, files)

    return _seed


@pytest.fixture
def clock():
    return fixed_clock(0)
