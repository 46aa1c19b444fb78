"""DevBuddy MCP diagnostics CLI."""

from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import asdict

from devbuddy_mcp.associations import BranchAssociationManager
from devbuddy_mcp.config import DevBuddySettings, get_settings
from devbuddy_mcp.git import GitCli, GitNotFoundError
from devbuddy_mcp.locator import TicketLocator
from devbuddy_mcp.registry import RepositoryRegistry
from devbuddy_mcp.storage import JsonFileStore


def load_stores(settings: DevBuddySettings) -> tuple[JsonFileStore, JsonFileStore]:
    try:
        settings.storage_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        print(f"Storage unavailable: {exc}")
        raise SystemExit(1)
    return (
        JsonFileStore(settings.workspace_store_path(), name="workspace"),
        JsonFileStore(settings.global_store_path, name="global"),
    )


def _git(settings: DevBuddySettings, repo_path) -> GitCli:
    try:
        return GitCli(repo_path, executable=settings.git_path, timeout=settings.git_timeout)
    except GitNotFoundError as exc:
        print(f"Git unavailable: {exc}")
        raise SystemExit(1)


def load_manager(settings: DevBuddySettings) -> BranchAssociationManager:
    workspace_store, global_store = load_stores(settings)
    return BranchAssociationManager(
        workspace_store,
        global_store,
        _git(settings, settings.workspace_path),
        workspace_path=settings.workspace_path,
        storage_mode=settings.storage_mode,
    )


def load_registry(settings: DevBuddySettings) -> RepositoryRegistry:
    _, global_store = load_stores(settings)
    return RepositoryRegistry(
        global_store,
        workspace_path=settings.workspace_path,
        settings_path=settings.settings_file,
        git_factory=lambda path: _git(settings, path),
    )


def cmd_associations(args: argparse.Namespace) -> None:
    manager = load_manager(get_settings())
    associations = manager.get_all_associations()
    if args.json:
        print(json.dumps([item.model_dump(mode="json") for item in associations], indent=2))
    else:
        for item in associations:
            origin = " (auto)" if item.is_auto_detected else ""
            print(f"{item.ticket_id} -> {item.branch_name}{origin} [{item.repository or '-'}]")


def cmd_history(args: argparse.Namespace) -> None:
    manager = load_manager(get_settings())
    histories = manager.get_all_history() + manager.get_all_global_history()
    if args.ticket_id:
        histories = [item for item in histories if item.ticket_id == args.ticket_id.upper()]
    print(json.dumps([item.model_dump(mode="json") for item in histories], indent=2))


def cmd_repos(args: argparse.Namespace) -> None:
    registry = load_registry(get_settings())
    config = asyncio.run(registry.get_config())
    payload = {
        "multi_repo_enabled": config.multi_repo_enabled,
        "manifest_path": config.manifest_path,
        "repositories": [repo.model_dump(mode="json") for repo in config.repositories.values()],
    }
    print(json.dumps(payload, indent=2))


def cmd_discover(args: argparse.Namespace) -> None:
    registry = load_registry(get_settings())

    async def _discover():
        result = await registry.discover_and_suggest(args.parent_dir)
        registered = []
        if args.register:
            for repo in result.discovered:
                stored = await registry.register_repository(repo)
                if stored is not None:
                    registered.append(stored.id)
        return result, registered

    result, registered = asyncio.run(_discover())
    payload = {
        "discovered": [repo.model_dump(mode="json") for repo in result.discovered],
        "already_registered": result.already_registered,
        "registered": registered,
    }
    print(json.dumps(payload, indent=2))


def cmd_locate(args: argparse.Namespace) -> None:
    settings = get_settings()
    locator = TicketLocator(load_manager(settings), load_registry(settings))
    location = asyncio.run(locator.locate(args.ticket_id))
    print(json.dumps(location.to_dict(), indent=2))


def cmd_analytics(args: argparse.Namespace) -> None:
    manager = load_manager(get_settings())
    analytics = asyncio.run(manager.get_branch_analytics())
    print(json.dumps(asdict(analytics), indent=2))


def cmd_cleanup(args: argparse.Namespace) -> None:
    manager = load_manager(get_settings())
    if args.dry_run:
        suggestions = asyncio.run(manager.get_cleanup_suggestions())
        print(json.dumps(asdict(suggestions), indent=2))
        return
    removed = asyncio.run(manager.cleanup_stale_associations())
    print(json.dumps({"removed": removed}, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="DevBuddy MCP diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_assoc = sub.add_parser("associations", help="List ticket/branch associations")
    p_assoc.add_argument("--json", action="store_true", help="Output JSON")
    p_assoc.set_defaults(func=cmd_associations)

    p_history = sub.add_parser("history", help="Show branch history")
    p_history.add_argument("--ticket-id")
    p_history.set_defaults(func=cmd_history)

    p_repos = sub.add_parser("repos", help="Show the merged repository map")
    p_repos.set_defaults(func=cmd_repos)

    p_discover = sub.add_parser("discover", help="Discover repositories next to the workspace")
    p_discover.add_argument("--parent-dir")
    p_discover.add_argument("--register", action="store_true", help="Register newly found repositories")
    p_discover.set_defaults(func=cmd_discover)

    p_locate = sub.add_parser("locate", help="Find where a ticket's branch lives")
    p_locate.add_argument("ticket_id")
    p_locate.set_defaults(func=cmd_locate)

    p_analytics = sub.add_parser("analytics", help="Show association analytics")
    p_analytics.set_defaults(func=cmd_analytics)

    p_cleanup = sub.add_parser("cleanup", help="Remove associations whose branch is gone")
    p_cleanup.add_argument(
        "--dry-run",
        action="store_true",
        help="Only list cleanup suggestions; change nothing",
    )
    p_cleanup.set_defaults(func=cmd_cleanup)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
