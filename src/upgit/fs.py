from __future__ import annotations

import shutil
from pathlib import Path

from .errors import OverlayError


_SKIP_DIRS = (".git",)


def clone_path(tmp_root: Path, identity: str, repo_name: str) -> Path:
    return Path(tmp_root) / f"{identity}-{repo_name}"


def resolve_within(root: Path, relative: str) -> Path:
    """Resolve ``relative`` against ``root``, refusing paths that leave it."""
    root = Path(root).resolve()
    resolved = (root / relative).resolve()
    if resolved != root and root not in resolved.parents:
        raise OverlayError(f"{relative} resolves outside of {root}")
    return resolved


def overlay(src: Path, dst: Path) -> None:
    """Copy ``src`` over ``dst``, clobbering whatever is there.

    Files are copied with metadata. Directories are merged recursively into
    ``dst``; files only present in ``dst`` are left alone and ``.git`` is never
    copied.
    """
    if not src.exists():
        raise OverlayError(f"Target path does not exist: {src}")
    try:
        if src.is_dir():
            if dst.exists() and not dst.is_dir():
                raise OverlayError(f"Cannot copy directory {src} over file {dst}")
            shutil.copytree(
                src,
                dst,
                dirs_exist_ok=True,
                ignore=shutil.ignore_patterns(*_SKIP_DIRS),
            )
        else:
            if dst.is_dir():
                raise OverlayError(f"Cannot copy file {src} over directory {dst}")
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)
    except OSError as e:
        raise OverlayError(f"Failed to copy {src} to {dst}: {e}") from e
