"""FastMCP server bootstrap for DevBuddy."""

import json
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Optional

from fastmcp import FastMCP

from . import __version__
from .associations import BranchAssociationManager
from .config import DevBuddySettings, get_settings
from .git import GitCli, GitNotFoundError
from .locator import TicketLocator
from .registry import RepositoryRegistry
from .storage import JsonFileStore
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the DevBuddy server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def create_server(
    settings: Optional[DevBuddySettings] = None,
    *,
    manager: BranchAssociationManager | None = None,
    registry: RepositoryRegistry | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the association and registry tools."""

    settings = settings or get_settings()

    git_metadata = {
        "available": False,
        "path": settings.git_path,
        "timeout": settings.git_timeout,
        "error": None,
    }

    global_store = JsonFileStore(settings.global_store_path, name="global")
    workspace_store = JsonFileStore(settings.workspace_store_path(), name="workspace")

    if manager is None:
        try:
            git = GitCli(settings.workspace_path, executable=settings.git_path, timeout=settings.git_timeout)
            git_metadata["available"] = git.executable is not None
            if git.executable is None:
                git_metadata["error"] = "git executable not found on PATH"
        except GitNotFoundError as exc:
            git_metadata["error"] = str(exc)
            git = GitCli(settings.workspace_path, timeout=settings.git_timeout)

        manager = BranchAssociationManager(
            workspace_store,
            global_store,
            git,
            workspace_path=settings.workspace_path,
            storage_mode=settings.storage_mode,
        )
    else:
        git_metadata["available"] = True

    if registry is None:
        registry = RepositoryRegistry(
            global_store,
            workspace_path=settings.workspace_path,
            settings_path=settings.settings_file,
            git_factory=partial(_git_for, settings),
        )

    locator = TicketLocator(manager, registry)

    server = FastMCP(
        name="DevBuddy MCP",
        instructions=(
            "DevBuddy links tickets (e.g. ENG-42) to git branches across one or more "
            "repositories. Use the tools to associate branches, check them out safely, "
            "and find which repository owns a ticket."
        ),
    )

    handles = register_tools(
        server,
        manager=manager,
        registry=registry,
        locator=locator,
        settings=settings,
    )

    @server.resource(
        "resource://devbuddy/status",
        name="devbuddy_status",
        title="DevBuddy MCP Status",
        description="Provides the current runtime status for the DevBuddy MCP server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    async def status_resource() -> str:
        """Return a JSON string summarizing basic runtime state."""

        config = await registry.get_config()
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "workspace": {
                "path": str(settings.workspace_path),
                "repository_id": manager.repository_id,
            },
            "storage": {
                "mode": manager.storage_mode,
                "workspace_store": str(settings.workspace_store_path()),
                "global_store": str(settings.global_store_path),
            },
            "git": git_metadata,
            "associations": {
                "count": len(manager.get_all_associations()),
                "global_count": len(manager.get_all_global_associations()),
            },
            "repositories": {
                "count": len(config.repositories),
                "ids": sorted(config.repositories),
                "manifest_path": config.manifest_path,
                "multi_repo_enabled": config.multi_repo_enabled,
            },
        }
        return json.dumps(payload)

    setattr(server, "association_manager", manager)
    setattr(server, "repository_registry", registry)
    setattr(server, "ticket_locator", locator)
    setattr(server, "git_metadata", git_metadata)
    setattr(server, "tool_handles", handles)
    return server


def _git_for(settings: DevBuddySettings, repo_path) -> GitCli:
    try:
        return GitCli(repo_path, executable=settings.git_path, timeout=settings.git_timeout)
    except GitNotFoundError:
        return GitCli(repo_path, timeout=settings.git_timeout)


def main() -> None:
    """Entry point for running the DevBuddy MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching DevBuddy MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "workspace": str(settings.workspace_path),
            "storage_mode": settings.storage_mode,
            "git_available": getattr(server, "git_metadata", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
