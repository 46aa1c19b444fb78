"""Path helpers shared by the registry and the association manager."""

from __future__ import annotations

import hashlib
import os
import re
from pathlib import Path

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def resolve_path(path: str | os.PathLike[str]) -> str:
    """Absolute form of ``path`` used when persisting repository locations."""

    return os.path.abspath(os.path.expanduser(os.fspath(path)))


def normalize_path(path: str | os.PathLike[str]) -> str:
    """Comparison key for a path: absolute and case-folded where the OS is case-insensitive."""

    return os.path.normcase(resolve_path(path))


def same_path(left: str | os.PathLike[str] | None, right: str | os.PathLike[str] | None) -> bool:
    if left is None or right is None:
        return False
    return normalize_path(left) == normalize_path(right)


def repository_id_for(path: str | os.PathLike[str]) -> str:
    """Derive a registry id from a directory name, e.g. ``Backend API`` -> ``backend-api``."""

    name = Path(resolve_path(path)).name
    return _NON_ALNUM.sub("-", name.lower()) or "unknown"


def workspace_key(path: str | os.PathLike[str]) -> str:
    """Stable file-system safe key for the project-scoped store of a workspace."""

    normalized = normalize_path(path)
    digest = hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:16]
    return f"{repository_id_for(path)}-{digest}"


__all__ = ["normalize_path", "repository_id_for", "resolve_path", "same_path", "workspace_key"]
