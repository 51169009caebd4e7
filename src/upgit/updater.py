"""Propagate a file from a target repository into a drifted source repository.

An :class:`Updater` handles one run for one (source, target) pair:

1. clone both repositories into fresh temp directories (in parallel)
2. branch the source clone at its current head
3. copy the target's path over the source's path
4. diff the pre-overlay head against the working tree
5. stop with :class:`UpToDate` if nothing changed, otherwise commit
6. push the branch to ``origin``
7. open a pull request into the source's base branch

Each step raises its own :mod:`upgit.errors` type. Nothing is rolled back and
the temp clones are left on disk; a retry needs a new Updater.
"""

from __future__ import annotations

import tempfile
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from git import Actor, Commit, Repo

from . import fs, gitops
from .errors import CloneError, UpdaterError
from .github import GitHubClient
from .models import (
    AuthorIdentity,
    ChangeSet,
    HostCredentials,
    Opened,
    Outcome,
    PullRequest,
    RepositoryRef,
    SourceRepositoryRef,
    UpToDate,
    as_aware,
    operation_identity,
)
from .observability import log_action, log_error, log_warning, timeit
from .transport import TransportOptions


Clock = Callable[[], datetime]

REMOTE_NAME = "origin"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Updater:
    """Runs one update of ``source`` from ``target``.

    Attributes:
        id: Run identity ``<epoch-millis>-<source.name>``; also the branch name
        source_repo / target_repo: Working clones, set by :meth:`clone`
        source_head: Source head commit captured right after cloning

    Thread Safety:
        Not reusable and not thread-safe. Use one instance per run.
    """

    def __init__(
        self,
        source: SourceRepositoryRef,
        target: RepositoryRef,
        author: AuthorIdentity,
        github: HostCredentials,
        *,
        clock: Optional[Clock] = None,
        tmp_root: Optional[Path] = None,
        transport: Optional[TransportOptions] = None,
        github_client: Optional[GitHubClient] = None,
    ):
        self.clock = clock or _utcnow
        self.id = operation_identity(source.name, self.clock())

        self.source = source
        self.target = target
        self.author = author
        self.tmp_root = Path(tmp_root) if tmp_root else Path(tempfile.gettempdir())
        self.transport = transport or TransportOptions()

        self.github_user = github.user
        self.gh = github_client or GitHubClient(github.token, api_url=github.api_url)

        self.source_repo: Optional[Repo] = None
        self.target_repo: Optional[Repo] = None
        self.source_head: Optional[Commit] = None

    @property
    def commit_message(self) -> str:
        return f"Automatic update of {self.source.name} from {self.target.name}."

    @property
    def pull_request_title(self) -> str:
        return f"Automatic update of {self.source.name} from {self.target.name}"

    @property
    def refspec(self) -> str:
        return f"refs/heads/{self.id}:refs/heads/{self.id}"

    def clone_path(self, ref: RepositoryRef) -> Path:
        return fs.clone_path(self.tmp_root, self.id, ref.name)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def run(self) -> Outcome:
        """Run the whole update.

        Returns:
            :class:`Opened` when a pull request was opened, or
            :class:`UpToDate` when the source already matches the target.

        Raises:
            UpdaterError: The subclass names the step that failed
        """
        log_action(
            "updater.start",
            identity=self.id,
            source=self.source.name,
            target=self.target.name,
        )
        try:
            self.clone()
            self.create_source_branch()
            self.apply_target()
            changes = self.get_diff()
            if not changes:
                log_action("updater.finish", outcome="up_to_date", identity=self.id)
                return UpToDate(self.id)

            sha = self.commit(changes)
            self.push()
            pr = self.open_pull_request()
        except UpdaterError as e:
            log_error(f"Update failed at {e.step}: {e}", identity=self.id)
            raise

        log_action(
            "updater.finish",
            outcome="opened",
            identity=self.id,
            commit=sha,
            pull_request=pr.number,
        )
        return Opened(identity=self.id, branch=self.id, commit_sha=sha, pull_request=pr)

    def clone(self) -> None:
        """Clone source and target concurrently and capture the source head."""
        source_path = self.clone_path(self.source)
        target_path = self.clone_path(self.target)
        with timeit("updater.clone", identity=self.id):
            with ThreadPoolExecutor(max_workers=2, thread_name_prefix="upgit-clone") as executor:
                source_future = executor.submit(
                    gitops.clone,
                    self.source.repo_url,
                    source_path,
                    self.transport.environment(self.source.repo_url),
                )
                target_future = executor.submit(
                    gitops.clone,
                    self.target.repo_url,
                    target_path,
                    self.transport.environment(self.target.repo_url),
                )
                # Wait for both before surfacing either failure.
                errors = [f.exception() for f in (source_future, target_future)]
            if any(errors):
                for path, error in zip((source_path, target_path), errors):
                    if error is None:
                        log_warning("Discarding clone after sibling clone failed", identity=self.id, path=path)
            for error in errors:
                if error is None:
                    continue
                if isinstance(error, CloneError):
                    raise error
                raise CloneError(f"Clone failed: {error}") from error

            self.source_repo = source_future.result()
            self.target_repo = target_future.result()
            self.source_head = gitops.head_commit(self.source_repo)

    def create_source_branch(self) -> None:
        """Create the run's branch at the captured head and check it out."""
        with timeit("updater.branch", identity=self.id):
            gitops.create_branch(self.source_repo, self.id, self.source_head)

    def apply_target(self) -> None:
        """Copy the target's path over the source's path."""
        with timeit("updater.overlay", identity=self.id):
            source_path = fs.resolve_within(
                Path(self.source_repo.working_tree_dir), self.source.file_path
            )
            target_path = fs.resolve_within(
                Path(self.target_repo.working_tree_dir), self.target.file_path
            )
            fs.overlay(target_path, source_path)

    def get_diff(self) -> ChangeSet:
        """Diff the captured head's tree against the source working tree."""
        with timeit("updater.diff", identity=self.id) as info:
            changes = gitops.diff_tree_to_workdir(self.source_repo, self.source_head)
            info["deltas"] = len(changes)
        return changes

    def commit(self, changes: ChangeSet) -> str:
        """Commit exactly the changed paths on the run's branch."""
        name, email = self.author.name, self.author.email
        with timeit("updater.commit", identity=self.id, paths=len(changes)) as info:
            sha = gitops.commit_changes(
                self.source_repo,
                changes,
                baseline=self.source_head,
                author=Actor(name, email),
                committer=Actor(name, email),
                message=self.commit_message,
                when=as_aware(self.clock()),
            )
            info["commit"] = sha
        return sha

    def push(self) -> None:
        """Push the run's branch to the source's origin."""
        with timeit("updater.push", identity=self.id):
            gitops.push(
                self.source_repo,
                REMOTE_NAME,
                [self.refspec],
                self.transport.environment(self.source.repo_url),
            )

    def open_pull_request(self) -> PullRequest:
        """Open the pull request on the hosted source repository."""
        with timeit("updater.pull_request", identity=self.id) as info:
            repo = self.gh.get_repo(self.github_user, self.source.name)
            pr = repo.create_pull_request(
                title=self.pull_request_title,
                head=self.id,
                base=self.source.base_branch,
            )
            info["number"] = pr.number
        return pr
