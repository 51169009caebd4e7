"""GitPython adapters for each git step of an update run.

Every function translates GitPython failures into the step's
:mod:`upgit.errors` type, keeping the original error as ``__cause__``.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Dict, Sequence

from git import Actor, Commit, GitCommandError, Head, PushInfo, Repo

from .errors import BranchError, CloneError, CommitError, DiffError, PushError
from .models import ChangeSet, FileDelta
from .observability import log_debug


_PUSH_FAILED = (
    PushInfo.ERROR
    | PushInfo.REJECTED
    | PushInfo.REMOTE_REJECTED
    | PushInfo.REMOTE_FAILURE
)


def clone(url: str, path: Path, env: Dict[str, str]) -> Repo:
    """Clone ``url`` into ``path`` (which must not exist or be empty)."""
    log_debug("GIT_OP_START: clone", url=url, path=str(path))
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        repo = Repo.clone_from(url, str(path), env=env)
    except (GitCommandError, OSError) as e:
        raise CloneError(f"Failed to clone {url} into {path}: {e}") from e
    log_debug("GIT_OP_END: clone", url=url)
    return repo


def head_commit(repo: Repo) -> Commit:
    try:
        return repo.head.commit
    except ValueError as e:
        # Raised by GitPython when HEAD points at an unborn branch
        raise CloneError(f"Repository has no commits: {repo.working_tree_dir}") from e


def create_branch(repo: Repo, name: str, commit: Commit) -> Head:
    """Create ``name`` at ``commit`` and check it out."""
    if name in repo.heads:
        raise BranchError(f"Branch already exists: {name}")
    try:
        head = repo.create_head(name, commit)
        head.checkout()
    except ValueError as e:
        # GitPython rejects malformed ref names before calling git
        raise BranchError(f"Invalid branch name {name!r}: {e}") from e
    except GitCommandError as e:
        raise BranchError(f"Failed to create branch {name}: {e}") from e
    return head


def diff_tree_to_workdir(repo: Repo, baseline: Commit) -> ChangeSet:
    """Diff ``baseline``'s tree against the working tree.

    The index is not consulted. Untracked files that are not ignored are
    reported as additions after the tracked changes, sorted by path.
    """
    try:
        diffs = baseline.diff(None)
        untracked = repo.untracked_files
    except GitCommandError as e:
        raise DiffError(f"Failed to diff working tree against {baseline.hexsha}: {e}") from e

    deltas = []
    for diff in diffs:
        status = (diff.change_type or "M")[0]
        new_path = diff.b_path or diff.a_path
        deltas.append(FileDelta(status=status, old_path=diff.a_path, new_path=new_path))

    seen = {delta.new_path for delta in deltas}
    for path in sorted(untracked):
        if path not in seen:
            deltas.append(FileDelta(status="A", old_path=None, new_path=path))

    return ChangeSet(tuple(deltas))


def commit_changes(
    repo: Repo,
    changes: ChangeSet,
    *,
    baseline: Commit,
    author: Actor,
    committer: Actor,
    message: str,
    when: datetime,
) -> str:
    """Stage exactly the paths in ``changes`` and commit them on HEAD.

    ``when`` must be timezone aware. Returns the new commit's sha.
    """
    to_add = [delta.new_path for delta in changes if not delta.deleted]
    to_remove = [delta.new_path for delta in changes if delta.deleted]
    # A rename stages its new side above; drop the old side too
    to_remove += [
        delta.old_path for delta in changes
        if delta.status == "R" and delta.old_path and delta.old_path != delta.new_path
    ]
    index = repo.index
    try:
        if to_add:
            index.add(to_add)
        if to_remove:
            index.remove(to_remove, working_tree=False)
        staged = index.diff(baseline)
    except (GitCommandError, OSError) as e:
        raise CommitError(f"Failed to stage {len(changes)} path(s): {e}") from e

    if not staged:
        raise CommitError(
            f"Nothing staged for {len(changes)} changed path(s): {', '.join(changes.paths)}"
        )

    try:
        commit = index.commit(
            message,
            author=author,
            committer=committer,
            author_date=when,
            commit_date=when,
        )
    except (GitCommandError, OSError, ValueError) as e:
        raise CommitError(f"Failed to create commit: {e}") from e
    return commit.hexsha


def push(repo: Repo, remote_name: str, refspecs: Sequence[str], env: Dict[str, str]) -> None:
    """Push ``refspecs`` to ``remote_name``, failing on any rejected ref."""
    try:
        remote = repo.remote(remote_name)
    except ValueError as e:
        raise PushError(f"Remote not found: {remote_name}") from e

    log_debug("GIT_OP_START: push", remote=remote_name, refspecs=list(refspecs))
    try:
        with repo.git.custom_environment(**env):
            infos = remote.push(list(refspecs))
    except GitCommandError as e:
        raise PushError(f"Failed to push {', '.join(refspecs)} to {remote_name}: {e}") from e

    if not infos:
        raise PushError(f"Push to {remote_name} reported no updated refs")
    failed = [info for info in infos if info.flags & _PUSH_FAILED]
    if failed:
        summary = "; ".join(
            f"{info.local_ref or info.remote_ref_string}: {info.summary.strip()}" for info in failed
        )
        raise PushError(f"Push to {remote_name} rejected: {summary}")
    log_debug("GIT_OP_END: push", remote=remote_name)
