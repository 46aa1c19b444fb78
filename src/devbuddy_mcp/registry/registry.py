"""Repository registry: which repository owns a ticket prefix."""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError

from ..config import UserSettings, load_user_settings
from ..git import GitCli, GitError, GitPort
from ..paths import normalize_path, repository_id_for, resolve_path, same_path
from ..storage import KeyValueStore, StoreWriteError
from ..tickets import TicketId, prefixes_from_branches
from .manifest import find_manifest, load_manifest, write_manifest
from .models import DiscoveryResult, RepositoryComparison, RepositoryInfo, RepositoryRegistryConfig

logger = logging.getLogger(__name__)

REGISTRY_STORAGE_KEY = "repositoryRegistry"


class RepositoryRegistry:
    """Merges three configuration layers into one prefix -> repository map.

    Precedence, lowest first: user settings, the cross-project store, the
    ``.devbuddy/repos.json`` manifest found above the workspace. The merged view
    is cached until :meth:`clear_cache`; every mutating method clears it.
    """

    def __init__(
        self,
        global_store: KeyValueStore,
        *,
        workspace_path: Path | str,
        settings_path: Path | None = None,
        settings_loader: Callable[[], UserSettings] | None = None,
        git_factory: Callable[[Path], GitPort] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._global_store = global_store
        self._workspace_path = resolve_path(workspace_path)
        self._settings_loader = settings_loader or (lambda: load_user_settings(settings_path))
        self._git_factory = git_factory or (lambda path: GitCli(path))
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._cached_config: RepositoryRegistryConfig | None = None

    @property
    def workspace_path(self) -> str:
        return self._workspace_path

    # ------------------------------------------------------------------
    # Configuration layers
    # ------------------------------------------------------------------

    def _load_settings_layer(self, settings: UserSettings) -> dict[str, RepositoryInfo]:
        repositories: dict[str, RepositoryInfo] = {}
        for repo_id, repo in settings.repositories.items():
            if not isinstance(repo, Mapping) or not repo.get("path"):
                continue
            try:
                repositories[repo_id] = RepositoryInfo(
                    id=repo_id,
                    name=repo.get("name") or repo_id,
                    path=resolve_path(str(repo["path"])),
                    remote=repo.get("remote"),
                    ticket_prefixes=repo.get("ticketPrefixes") or repo.get("ticket_prefixes") or [],
                    is_auto_discovered=False,
                )
            except ValidationError as exc:
                logger.warning(
                    "Skipping invalid repository in settings",
                    extra={"repository": repo_id, "error": str(exc)},
                )
        return repositories

    def _stored_layer(self) -> dict[str, Any]:
        stored = self._global_store.get(REGISTRY_STORAGE_KEY, {})
        if not isinstance(stored, dict) or not isinstance(stored.get("repositories"), dict):
            return {}
        return stored["repositories"]

    def _load_global_layer(self) -> dict[str, RepositoryInfo]:
        repositories: dict[str, RepositoryInfo] = {}
        for repo_id, raw in self._stored_layer().items():
            try:
                repositories[repo_id] = RepositoryInfo.model_validate(raw)
            except ValidationError as exc:
                logger.warning(
                    "Skipping invalid stored repository",
                    extra={"repository": repo_id, "error": str(exc)},
                )
        return repositories

    async def find_manifest(self) -> Path | None:
        return await asyncio.to_thread(find_manifest, self._workspace_path)

    async def get_config(self) -> RepositoryRegistryConfig:
        """Return the merged configuration, building it on first use."""

        if self._cached_config is not None:
            return self._cached_config

        settings = self._settings_loader()
        settings_repos = self._load_settings_layer(settings)
        global_repos = self._load_global_layer()

        manifest_path = await self.find_manifest()
        manifest_repos = await asyncio.to_thread(load_manifest, manifest_path) if manifest_path else {}

        self._cached_config = RepositoryRegistryConfig(
            repositories={**settings_repos, **global_repos, **manifest_repos},
            auto_discover=settings.multi_repo.auto_discover,
            parent_dir=settings.multi_repo.parent_dir,
            multi_repo_enabled=settings.multi_repo.enabled,
            manifest_path=str(manifest_path) if manifest_path else None,
        )
        return self._cached_config

    def clear_cache(self) -> None:
        self._cached_config = None

    def is_multi_repo_enabled(self) -> bool:
        return self._settings_loader().multi_repo.enabled

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_all_repositories(self) -> list[RepositoryInfo]:
        config = await self.get_config()
        return list(config.repositories.values())

    async def get_repository(self, repo_id: str) -> RepositoryInfo | None:
        config = await self.get_config()
        return config.repositories.get(repo_id)

    async def get_repository_by_prefix(self, prefix: str) -> RepositoryInfo | None:
        config = await self.get_config()
        for repo in config.repositories.values():
            if repo.owns_prefix(prefix):
                return repo
        return None

    async def get_repository_for_ticket(self, ticket_id: str | TicketId) -> RepositoryInfo | None:
        ticket = TicketId.try_parse(ticket_id)
        if ticket is None:
            return None
        return await self.get_repository_by_prefix(ticket.prefix)

    async def get_repository_by_path(self, repo_path: Path | str) -> RepositoryInfo | None:
        config = await self.get_config()
        target = normalize_path(repo_path)
        for repo in config.repositories.values():
            if normalize_path(repo.path) == target:
                return repo
        return None

    async def get_current_repository(self) -> RepositoryInfo | None:
        return await self.get_repository_by_path(self._workspace_path)

    async def is_ticket_in_different_repo(self, ticket_id: str | TicketId) -> RepositoryComparison:
        """Compare the ticket's repository with the workspace's, by path.

        Either side unresolved means "same": a false cross-repository prompt is
        worse than a missed one.
        """

        current_repo = await self.get_current_repository()
        ticket_repo = await self.get_repository_for_ticket(ticket_id)
        if current_repo is None or ticket_repo is None:
            return RepositoryComparison(is_different=False, current_repo=current_repo, ticket_repo=ticket_repo)
        return RepositoryComparison(
            is_different=not same_path(current_repo.path, ticket_repo.path),
            current_repo=current_repo,
            ticket_repo=ticket_repo,
        )

    # ------------------------------------------------------------------
    # Mutations of the cross-project layer
    # ------------------------------------------------------------------

    async def _write_global_layer(self, mutate: Callable[[dict[str, Any]], None]) -> bool:
        def apply(current: Any) -> dict[str, Any]:
            stored = current if isinstance(current, dict) else {}
            repositories = stored.get("repositories")
            if not isinstance(repositories, dict):
                repositories = {}
            mutate(repositories)
            return {**stored, "repositories": repositories}

        try:
            await self._global_store.update(REGISTRY_STORAGE_KEY, apply, default={})
        except StoreWriteError as exc:
            logger.error("Failed to persist repository registry", extra={"error": str(exc)})
            return False
        finally:
            self.clear_cache()
        return True

    async def register_repository(self, repo: RepositoryInfo) -> RepositoryInfo | None:
        stamped = repo.model_copy(update={"last_accessed": self._clock()})

        def put(repositories: dict[str, Any]) -> None:
            repositories[stamped.id] = stamped.to_store()

        if not await self._write_global_layer(put):
            return None
        logger.info("Registered repository", extra={"repository": stamped.id, "repo_path": stamped.path})
        return stamped

    async def update_repository(self, repo_id: str, **changes: Any) -> RepositoryInfo | None:
        existing = await self.get_repository(repo_id)
        if existing is None:
            return None
        try:
            updated = RepositoryInfo.model_validate(
                {**existing.model_dump(), **changes, "id": repo_id, "last_accessed": self._clock()}
            )
        except ValidationError as exc:
            logger.warning("Rejected repository update", extra={"repository": repo_id, "error": str(exc)})
            return None

        def put(repositories: dict[str, Any]) -> None:
            repositories[repo_id] = updated.to_store()

        if not await self._write_global_layer(put):
            return None
        return updated

    async def remove_repository(self, repo_id: str) -> bool:
        """Remove ``repo_id`` from the cross-project layer.

        Entries coming from settings or the manifest are owned by those files
        and stay visible.
        """

        if repo_id not in self._stored_layer():
            return False

        def drop(repositories: dict[str, Any]) -> None:
            repositories.pop(repo_id, None)

        removed = await self._write_global_layer(drop)
        if removed:
            logger.info("Removed repository", extra={"repository": repo_id})
        return removed

    # ------------------------------------------------------------------
    # Discovery and manifest
    # ------------------------------------------------------------------

    async def _describe_repository(self, repo_path: Path) -> RepositoryInfo | None:
        git = self._git_factory(repo_path)
        remote: str | None = None
        try:
            remote = await git.remote_url("origin")
        except GitError as exc:
            logger.debug("No origin remote", extra={"repo_path": str(repo_path), "error": str(exc)})

        try:
            branches = await git.list_local_branches()
        except GitError as exc:
            logger.warning("Failed to list branches", extra={"repo_path": str(repo_path), "error": str(exc)})
            branches = []

        return RepositoryInfo(
            id=repository_id_for(repo_path),
            name=repo_path.name,
            path=str(repo_path),
            remote=remote,
            ticket_prefixes=prefixes_from_branches(branches),
            is_auto_discovered=True,
        )

    async def discover_repositories(self, parent_dir: Path | str) -> list[RepositoryInfo]:
        """List git repositories directly under ``parent_dir``; registers nothing."""

        root = Path(resolve_path(parent_dir))
        logger.info("Discovering repositories", extra={"parent_dir": str(root)})
        try:
            entries = sorted(await asyncio.to_thread(lambda: list(root.iterdir())))
        except OSError as exc:
            logger.error("Failed to discover repositories", extra={"parent_dir": str(root), "error": str(exc)})
            return []

        discovered: list[RepositoryInfo] = []
        for entry in entries:
            if entry.name.startswith("."):
                continue
            try:
                is_repository = entry.is_dir() and (entry / ".git").exists()
            except OSError as exc:
                logger.warning("Skipping unreadable directory", extra={"repo_path": str(entry), "error": str(exc)})
                continue
            if not is_repository:
                continue
            try:
                repo = await self._describe_repository(entry)
            except (GitError, OSError) as exc:
                logger.warning("Skipping repository", extra={"repo_path": str(entry), "error": str(exc)})
                continue
            if repo is not None:
                discovered.append(repo)
                logger.debug(
                    "Discovered repository",
                    extra={"repository": repo.id, "prefixes": repo.ticket_prefixes},
                )
        return discovered

    def get_default_parent_dir(self) -> str:
        return os.path.dirname(self._workspace_path)

    async def discover_and_suggest(self, parent_dir: Path | str | None = None) -> DiscoveryResult:
        """Discover repositories and split them into new ones and already known ids."""

        config = await self.get_config()
        target = parent_dir or config.parent_dir or self.get_default_parent_dir()
        result = DiscoveryResult()
        for repo in await self.discover_repositories(target):
            existing = await self.get_repository_by_path(repo.path)
            if existing is not None:
                result.already_registered.append(existing.id)
            else:
                result.discovered.append(repo)
        return result

    async def create_parent_dir_config(
        self,
        parent_dir: Path | str,
        repositories: Mapping[str, RepositoryInfo] | Iterable[RepositoryInfo],
    ) -> Path | None:
        """Write ``<parent_dir>/.devbuddy/repos.json`` so a team can share the map."""

        repos = list(repositories.values()) if isinstance(repositories, Mapping) else list(repositories)
        try:
            path = await asyncio.to_thread(write_manifest, parent_dir, repos)
        except OSError as exc:
            logger.error(
                "Failed to write repository manifest",
                extra={"parent_dir": str(parent_dir), "error": str(exc)},
            )
            return None
        finally:
            self.clear_cache()
        return path


__all__ = ["REGISTRY_STORAGE_KEY", "RepositoryRegistry"]
