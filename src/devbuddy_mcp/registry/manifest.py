"""Team-shared repository manifest stored at ``<parent>/.devbuddy/repos.json``."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from ..paths import resolve_path
from .models import ManifestEntry, ManifestFile, RepositoryInfo

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".devbuddy"
CONFIG_FILE_NAME = "repos.json"
# The workspace itself plus three ancestors.
MANIFEST_SEARCH_DEPTH = 4


def manifest_path_for(parent_dir: Path | str) -> Path:
    return Path(parent_dir) / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def manifest_root(manifest_path: Path) -> Path:
    """Directory that relative manifest paths are resolved against."""

    return Path(manifest_path).parent.parent


def find_manifest(start: Path | str, *, depth: int = MANIFEST_SEARCH_DEPTH) -> Path | None:
    """Walk up from ``start`` looking for a readable manifest."""

    current = Path(resolve_path(start))
    for _ in range(depth):
        candidate = manifest_path_for(current)
        try:
            found = candidate.is_file() and os.access(candidate, os.R_OK)
        except OSError as exc:
            logger.warning("Cannot inspect manifest location", extra={"path": str(candidate), "error": str(exc)})
            found = False
        if found:
            logger.debug("Found repository manifest", extra={"path": str(candidate)})
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


def load_manifest(path: Path) -> dict[str, RepositoryInfo]:
    """Read a manifest; any problem makes it contribute nothing."""

    try:
        document = json.loads(Path(path).read_text(encoding="utf-8"))
        manifest = ManifestFile.model_validate(document)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
        logger.error("Failed to load repository manifest", extra={"path": str(path), "error": str(exc)})
        return {}

    base_dir = manifest_root(path)
    repositories: dict[str, RepositoryInfo] = {}
    for repo_id, entry in manifest.repositories.items():
        repo_path = entry.path if os.path.isabs(entry.path) else os.path.join(base_dir, entry.path)
        try:
            repositories[repo_id] = RepositoryInfo(
                id=repo_id,
                name=entry.name or repo_id,
                path=os.path.normpath(resolve_path(repo_path)),
                remote=entry.remote,
                ticket_prefixes=entry.ticket_prefixes,
                is_auto_discovered=False,
            )
        except ValidationError as exc:
            logger.warning(
                "Skipping invalid manifest entry",
                extra={"path": str(path), "repository": repo_id, "error": str(exc)},
            )
    return repositories


def relative_manifest_path(parent_dir: Path | str, repo_path: str) -> str:
    """``./relative`` when ``repo_path`` sits under ``parent_dir``, else the absolute path."""

    absolute = resolve_path(repo_path)
    try:
        relative = os.path.relpath(absolute, resolve_path(parent_dir))
    except ValueError:
        # Different drives on Windows.
        return absolute
    if relative == os.pardir or relative.startswith(os.pardir + os.sep):
        return absolute
    if relative == os.curdir:
        return "."
    return "./" + Path(relative).as_posix()


def write_manifest(parent_dir: Path | str, repositories: Iterable[RepositoryInfo]) -> Path:
    """Write the manifest for ``repositories`` and return its path."""

    manifest = ManifestFile(
        repositories={
            repo.id: ManifestEntry(
                path=relative_manifest_path(parent_dir, repo.path),
                name=repo.name,
                ticket_prefixes=repo.ticket_prefixes,
                remote=repo.remote,
            )
            for repo in repositories
        }
    )
    target = manifest_path_for(resolve_path(parent_dir))
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = manifest.model_dump(mode="json", by_alias=True, exclude_none=True)
    target.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    logger.info("Wrote repository manifest", extra={"path": str(target), "count": len(manifest.repositories)})
    return target


__all__ = [
    "CONFIG_DIR_NAME",
    "CONFIG_FILE_NAME",
    "MANIFEST_SEARCH_DEPTH",
    "find_manifest",
    "load_manifest",
    "manifest_path_for",
    "manifest_root",
    "relative_manifest_path",
    "write_manifest",
]
