"""Tool registration for DevBuddy MCP."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..associations import BranchAssociationManager, PresetPrompter, UncommittedAction
from ..config import DevBuddySettings
from ..locator import TicketLocator
from ..paths import repository_id_for, resolve_path
from ..registry import RepositoryInfo, RepositoryRegistry
from ..storage import BranchHistory


@dataclass(slots=True)
class ToolHandles:
    get_branch_for_ticket: Any
    associate_branch: Any
    remove_association: Any
    auto_associate_current_branch: Any
    detect_branch_associations: Any
    suggest_branches: Any
    checkout_branch: Any
    cleanup_stale_associations: Any
    branch_analytics: Any
    cleanup_suggestions: Any
    branch_history: Any
    migrate_to_global_storage: Any
    locate_ticket: Any
    list_repositories: Any
    discover_repositories: Any
    register_repository: Any
    remove_repository: Any
    write_repository_manifest: Any


def _history_payload(history: BranchHistory | None) -> list[dict[str, Any]]:
    if history is None:
        return []
    return [entry.model_dump(mode="json") for entry in history.branches]


def _repository_payload(repo: RepositoryInfo) -> dict[str, Any]:
    return repo.model_dump(mode="json")


def register_tools(
    server: FastMCP,
    *,
    manager: BranchAssociationManager,
    registry: RepositoryRegistry,
    locator: TicketLocator,
    settings: DevBuddySettings,
) -> ToolHandles:
    """Register DevBuddy's MCP tools on the server."""

    def _get_branch_for_ticket(ticket_id: str, context: Context | None = None) -> dict[str, Any]:
        """Return the branch associated with a ticket, if any."""

        association = manager.get_association(ticket_id)
        _emit_log(
            context,
            "debug",
            "Resolved branch for ticket",
            extra={"ticket_id": ticket_id, "found": association is not None},
        )
        if association is None:
            return {"ticket_id": ticket_id, "branch_name": None, "association": None}
        return {
            "ticket_id": association.ticket_id,
            "branch_name": association.branch_name,
            "association": association.model_dump(mode="json"),
        }

    async def _associate_branch(
        ticket_id: str,
        branch_name: str,
        context: Context | None = None,
    ) -> dict[str, Any]:
        if not branch_name.strip():
            raise ValueError("branch_name must not be empty")
        associated = await manager.associate_branch(ticket_id, branch_name)
        _emit_log(
            context,
            "info" if associated else "warning",
            "Associate branch request handled",
            extra={"ticket_id": ticket_id, "branch_name": branch_name, "associated": associated},
        )
        return {"ticket_id": ticket_id, "branch_name": branch_name, "associated": associated}

    async def _remove_association(ticket_id: str, context: Context | None = None) -> dict[str, Any]:
        removed = await manager.remove_association(ticket_id)
        _emit_log(context, "info", "Remove association request handled", extra={"ticket_id": ticket_id, "removed": removed})
        return {"ticket_id": ticket_id, "removed": removed}

    async def _auto_associate_current_branch(context: Context | None = None) -> dict[str, Any]:
        branch = await manager.get_current_branch()
        ticket_id = await manager.auto_associate_current_branch()
        _emit_log(
            context,
            "debug",
            "Auto-association attempted",
            extra={"branch_name": branch, "ticket_id": ticket_id},
        )
        return {"branch_name": branch, "ticket_id": ticket_id, "associated": ticket_id is not None}

    async def _detect_branch_associations(context: Context | None = None) -> list[dict[str, Any]]:
        """List local branches whose ticket key has no association yet."""

        suggestions = await manager.auto_detect_all_branch_associations()
        _emit_log(context, "debug", "Detected branch associations", extra={"count": len(suggestions)})
        return [asdict(item) for item in suggestions]

    async def _suggest_branches(ticket_id: str, context: Context | None = None) -> dict[str, Any]:
        branches = await manager.suggest_associations_for_ticket(ticket_id)
        return {"ticket_id": ticket_id, "branches": branches}

    async def _checkout_branch(
        ticket_id: str,
        on_uncommitted: str = "cancel",
        remove_if_stale: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Run the guarded checkout with the caller's answers to its questions."""

        try:
            action = UncommittedAction(on_uncommitted.strip().lower())
        except ValueError:
            choices = ", ".join(item.value for item in UncommittedAction)
            raise ValueError(f"Invalid on_uncommitted '{on_uncommitted}'. Must be one of: {choices}") from None

        prompter = PresetPrompter(remove_stale=remove_if_stale, uncommitted_action=action)
        checked_out = await manager.with_prompter(prompter).checkout_branch(ticket_id)
        _emit_log(
            context,
            "info" if checked_out else "warning",
            "Checkout request handled",
            extra={"ticket_id": ticket_id, "checked_out": checked_out, "on_uncommitted": action.value},
        )
        return {
            "ticket_id": ticket_id,
            "checked_out": checked_out,
            "branch_name": manager.get_branch_for_ticket(ticket_id),
            "questions": prompter.questions,
            "notices": [{"level": level, "message": message} for level, message in prompter.notices],
        }

    async def _cleanup_stale_associations(context: Context | None = None) -> dict[str, Any]:
        removed = await manager.cleanup_stale_associations()
        _emit_log(context, "info", "Cleaned stale associations", extra={"removed": removed})
        return {"removed": removed}

    async def _branch_analytics(context: Context | None = None) -> dict[str, Any]:
        return {"storage_mode": settings.storage_mode, **asdict(await manager.get_branch_analytics())}

    async def _cleanup_suggestions(context: Context | None = None) -> dict[str, Any]:
        return asdict(await manager.get_cleanup_suggestions())

    def _branch_history(ticket_id: str, context: Context | None = None) -> dict[str, Any]:
        return {
            "ticket_id": ticket_id,
            "workspace": _history_payload(manager.get_history_for_ticket(ticket_id)),
            "global": _history_payload(manager.get_global_history_for_ticket(ticket_id)),
        }

    async def _migrate_to_global_storage(context: Context | None = None) -> dict[str, Any]:
        migrated = await manager.migrate_to_global_storage()
        _emit_log(context, "info", "Migrated associations", extra={"migrated": migrated})
        return {"migrated": migrated}

    async def _locate_ticket(ticket_id: str, context: Context | None = None) -> dict[str, Any]:
        location = await locator.locate(ticket_id)
        _emit_log(context, "debug", "Located ticket", extra={"ticket_id": ticket_id, "action": location.action})
        return location.to_dict()

    async def _list_repositories(context: Context | None = None) -> dict[str, Any]:
        config = await registry.get_config()
        return {
            "multi_repo_enabled": config.multi_repo_enabled,
            "manifest_path": config.manifest_path,
            "repositories": [_repository_payload(repo) for repo in config.repositories.values()],
        }

    async def _discover_repositories(
        parent_dir: str | None = None,
        register: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Discover sibling repositories; optionally register the new ones."""

        result = await registry.discover_and_suggest(parent_dir)
        registered: list[str] = []
        if register:
            for repo in result.discovered:
                stored = await registry.register_repository(repo)
                if stored is not None:
                    registered.append(stored.id)
        _emit_log(
            context,
            "info",
            "Repository discovery finished",
            extra={"discovered": len(result.discovered), "registered": len(registered)},
        )
        return {
            "discovered": [_repository_payload(repo) for repo in result.discovered],
            "already_registered": result.already_registered,
            "registered": registered,
        }

    async def _register_repository(
        path: str,
        ticket_prefixes: list[str],
        name: str | None = None,
        repo_id: str | None = None,
        remote: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        resolved = resolve_path(path)
        repo = RepositoryInfo(
            id=repo_id or repository_id_for(resolved),
            name=name or os.path.basename(resolved) or resolved,
            path=resolved,
            remote=remote,
            ticket_prefixes=ticket_prefixes,
        )
        stored = await registry.register_repository(repo)
        if stored is None:
            raise RuntimeError(f"Failed to persist repository '{repo.id}'")
        _emit_log(context, "info", "Registered repository", extra={"repository": stored.id})
        return _repository_payload(stored)

    async def _remove_repository(repo_id: str, context: Context | None = None) -> dict[str, Any]:
        removed = await registry.remove_repository(repo_id)
        return {"repo_id": repo_id, "removed": removed}

    async def _write_repository_manifest(
        parent_dir: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Write the current repository map to <parent_dir>/.devbuddy/repos.json."""

        target = parent_dir or registry.get_default_parent_dir()
        repositories = await registry.get_all_repositories()
        path = await registry.create_parent_dir_config(target, repositories)
        if path is None:
            raise RuntimeError(f"Failed to write repository manifest under '{target}'")
        _emit_log(context, "info", "Wrote repository manifest", extra={"manifest": str(path), "count": len(repositories)})
        return {"path": str(path), "count": len(repositories)}

    tool_get_branch = server.tool(
        name="get_branch_for_ticket",
        description="Return the branch associated with a ticket id (e.g. ENG-42), or null.",
    )(_get_branch_for_ticket)

    tool_associate = server.tool(
        name="associate_branch",
        description=(
            "Associate a ticket with a branch, replacing any previous association and "
            "recording the branch in the ticket's history."
        ),
    )(_associate_branch)

    tool_remove = server.tool(
        name="remove_association",
        description="Remove a ticket's branch association. History is kept but marked inactive.",
    )(_remove_association)

    tool_auto_associate = server.tool(
        name="auto_associate_current_branch",
        description="Associate the checked-out branch with the ticket key found in its name.",
    )(_auto_associate_current_branch)

    tool_detect = server.tool(
        name="detect_branch_associations",
        description="Suggest associations for local branches named after tickets that have none. Changes nothing.",
    )(_detect_branch_associations)

    tool_suggest = server.tool(
        name="suggest_branches",
        description="List local branches whose name contains the ticket id.",
    )(_suggest_branches)

    tool_checkout = server.tool(
        name="checkout_branch",
        description=(
            "Check out the branch associated with a ticket. 'on_uncommitted' decides what "
            "happens to uncommitted changes (stash, force or cancel); 'remove_if_stale' "
            "removes the association when its branch no longer exists."
        ),
        annotations={
            "safety": {
                "level": "caution",
                "notes": "Modifies the working tree; 'force' may cause conflicts with uncommitted changes",
            }
        },
    )(_checkout_branch)

    tool_cleanup = server.tool(
        name="cleanup_stale_associations",
        description="Remove associations whose branch no longer exists in the current repository.",
    )(_cleanup_stale_associations)

    tool_analytics = server.tool(
        name="branch_analytics",
        description="Counts, staleness, most reused and oldest associations.",
    )(_branch_analytics)

    tool_cleanup_suggestions = server.tool(
        name="cleanup_suggestions",
        description="List stale, old (over 30 days) and duplicate associations without changing them.",
    )(_cleanup_suggestions)

    tool_history = server.tool(
        name="branch_history",
        description="Every branch ever associated with a ticket, most recently used first.",
    )(_branch_history)

    tool_migrate = server.tool(
        name="migrate_to_global_storage",
        description="Copy workspace associations into the cross-project store.",
    )(_migrate_to_global_storage)

    tool_locate = server.tool(
        name="locate_ticket",
        description=(
            "Find where a ticket's branch lives and whether the repository must be "
            "switched. Returns a suggested action: checkout, switch_repository, associate or unknown."
        ),
    )(_locate_ticket)

    tool_list_repos = server.tool(
        name="list_repositories",
        description="List the merged repository map (settings, cross-project store, manifest).",
    )(_list_repositories)

    tool_discover = server.tool(
        name="discover_repositories",
        description=(
            "Scan a parent directory for git repositories and infer their ticket prefixes. "
            "Set 'register' to store the newly found ones."
        ),
    )(_discover_repositories)

    tool_register = server.tool(
        name="register_repository",
        description="Register a repository and the ticket prefixes it owns.",
    )(_register_repository)

    tool_remove_repo = server.tool(
        name="remove_repository",
        description="Remove a repository from the cross-project store.",
    )(_remove_repository)

    tool_manifest = server.tool(
        name="write_repository_manifest",
        description="Write the repository map to a shareable .devbuddy/repos.json manifest.",
    )(_write_repository_manifest)

    return ToolHandles(
        get_branch_for_ticket=tool_get_branch,
        associate_branch=tool_associate,
        remove_association=tool_remove,
        auto_associate_current_branch=tool_auto_associate,
        detect_branch_associations=tool_detect,
        suggest_branches=tool_suggest,
        checkout_branch=tool_checkout,
        cleanup_stale_associations=tool_cleanup,
        branch_analytics=tool_analytics,
        cleanup_suggestions=tool_cleanup_suggestions,
        branch_history=tool_history,
        migrate_to_global_storage=tool_migrate,
        locate_ticket=tool_locate,
        list_repositories=tool_list_repos,
        discover_repositories=tool_discover,
        register_repository=tool_register,
        remove_repository=tool_remove_repo,
        write_repository_manifest=tool_manifest,
    )


__all__ = ["register_tools", "ToolHandles"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
