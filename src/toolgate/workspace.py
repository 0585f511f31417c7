"""
Workspace containment checks.

Paths are compared lexically after normalization (no filesystem access), so
the checks are safe to run from validate_params(). A path is accepted only
when it lies strictly inside the workspace root: the root itself and anything
that relativizes upward ("..") are rejected.
"""

import os
from pathlib import Path


def normalize(path: str | os.PathLike[str]) -> str:
    return os.path.normpath(os.path.abspath(os.fspath(path)))


def resolve_in_workspace(root: str | os.PathLike[str], path: str | os.PathLike[str]) -> str:
    """Absolute, normalized form of path; relative paths resolve against root."""
    path = os.fspath(path)
    if not os.path.isabs(path):
        path = os.path.join(normalize(root), path)
    return normalize(path)


def relative_to_workspace(root: str | os.PathLike[str], path: str | os.PathLike[str]) -> str | None:
    """Relative path from root to path, or None if it cannot be expressed (other drive)."""
    try:
        return os.path.relpath(resolve_in_workspace(root, path), normalize(root))
    except ValueError:
        return None


def is_strictly_within(root: str | os.PathLike[str], path: str | os.PathLike[str]) -> bool:
    relative = relative_to_workspace(root, path)
    if relative is None or relative == os.curdir or os.path.isabs(relative):
        return False
    first = Path(relative).parts[0]
    return first != os.pardir


def display_path(root: str | os.PathLike[str], path: str | os.PathLike[str]) -> str:
    """Path as shown to a user: relative to root when inside it."""
    if is_strictly_within(root, path):
        relative = relative_to_workspace(root, path)
        if relative is not None:
            return relative
    return resolve_in_workspace(root, path)
