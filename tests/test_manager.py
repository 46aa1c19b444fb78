from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from devbuddy_mcp.associations import (
    ASSOCIATIONS_KEY,
    GLOBAL_ASSOCIATIONS_KEY,
    GLOBAL_HISTORY_KEY,
    HISTORY_KEY,
    BranchAssociationManager,
)
from devbuddy_mcp.git import FakeGit, GitCommandError
from devbuddy_mcp.storage import JsonFileStore, MemoryStore, StoreWriteError

WORKSPACE = "/work/app"
OTHER_REPO = "/work/backend"


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_manager(
    mode: str = "both",
    *,
    git: FakeGit | None = None,
    workspace_store: MemoryStore | None = None,
    global_store: MemoryStore | None = None,
    clock: Clock | None = None,
) -> BranchAssociationManager:
    return BranchAssociationManager(
        workspace_store or MemoryStore(name="workspace"),
        global_store or MemoryStore(name="global"),
        git or FakeGit(WORKSPACE, branches=["main"]),
        workspace_path=WORKSPACE,
        storage_mode=mode,
        clock=clock or Clock(),
    )


def global_record(ticket: str, branch: str, repo_path: str = OTHER_REPO) -> dict:
    return {
        "ticketId": ticket,
        "branchName": branch,
        "repository": repo_path.rsplit("/", 1)[-1],
        "repositoryPath": repo_path,
        "lastUpdated": "2024-04-01T00:00:00+00:00",
        "isAutoDetected": False,
    }


def test_associate_is_an_idempotent_upsert() -> None:
    workspace_store = MemoryStore(name="workspace")
    global_store = MemoryStore(name="global")
    manager = make_manager(workspace_store=workspace_store, global_store=global_store)

    assert asyncio.run(manager.associate_branch("ENG-1", "feature/ENG-1-login"))
    assert asyncio.run(manager.associate_branch("ENG-1", "feature/ENG-1-login"))

    assert len(workspace_store.get(ASSOCIATIONS_KEY)) == 1
    assert len(global_store.get(GLOBAL_ASSOCIATIONS_KEY)) == 1
    history = manager.get_history_for_ticket("ENG-1")
    assert [entry.branch_name for entry in history.branches] == ["feature/ENG-1-login"]
    assert history.branches[0].use_count == 2
    assert history.active.branch_name == "feature/ENG-1-login"
    assert manager.get_branch_for_ticket("ENG-1") == "feature/ENG-1-login"
    assert manager.get_ticket_for_branch("feature/ENG-1-login") == "ENG-1"


def test_reassociation_keeps_one_active_history_entry() -> None:
    clock = Clock()
    manager = make_manager(clock=clock)

    asyncio.run(manager.associate_branch("ENG-1", "ENG-1-first"))
    clock.advance(hours=1)
    asyncio.run(manager.associate_branch("ENG-1", "ENG-1-second"))
    clock.advance(hours=1)
    asyncio.run(manager.associate_branch("ENG-1", "ENG-1-first"))

    for history in (manager.get_history_for_ticket("ENG-1"), manager.get_global_history_for_ticket("ENG-1")):
        assert [entry.branch_name for entry in history.branches] == ["ENG-1-first", "ENG-1-second"]
        assert [entry.is_active for entry in history.branches] == [True, False]
    assert manager.get_branch_for_ticket("ENG-1") == "ENG-1-first"
    assert len(manager.get_all_associations()) == 1


def test_ticket_ids_are_canonicalized() -> None:
    manager = make_manager()

    asyncio.run(manager.associate_branch("eng-5", "ENG-5-work"))

    assert manager.get_branch_for_ticket("ENG-5") == "ENG-5-work"
    assert manager.get_association("Eng-5").ticket_id == "ENG-5"


def test_invalid_input_changes_nothing() -> None:
    workspace_store = MemoryStore(name="workspace")
    manager = make_manager(workspace_store=workspace_store)

    assert asyncio.run(manager.associate_branch("not-a-ticket!", "main")) is False
    assert asyncio.run(manager.associate_branch("ENG-1", "   ")) is False
    assert workspace_store.commits == 0
    assert manager.get_branch_for_ticket("garbage") is None


def test_remove_keeps_history_as_audit_trail() -> None:
    manager = make_manager()
    asyncio.run(manager.associate_branch("ENG-1", "ENG-1-work"))

    assert asyncio.run(manager.remove_association("ENG-1")) is True

    assert manager.get_association("ENG-1") is None
    assert manager.get_global_association_for_ticket("ENG-1") is None
    history = manager.get_history_for_ticket("ENG-1")
    assert [entry.branch_name for entry in history.branches] == ["ENG-1-work"]
    assert history.active is None
    assert manager.get_global_history_for_ticket("ENG-1").active is None
    assert asyncio.run(manager.remove_association("ENG-1")) is False


def test_workspace_mode_never_touches_global_store() -> None:
    global_store = MemoryStore(name="global")
    manager = make_manager("workspace", global_store=global_store)

    asyncio.run(manager.associate_branch("ENG-1", "ENG-1-work"))

    assert global_store.commits == 0
    assert manager.get_all_global_associations() == []


def test_global_mode_reads_unfiltered_by_project() -> None:
    global_store = MemoryStore(name="global", initial={GLOBAL_ASSOCIATIONS_KEY: [global_record("BE-1", "BE-1-api")]})
    workspace_store = MemoryStore(name="workspace")
    manager = make_manager("global", workspace_store=workspace_store, global_store=global_store)

    asyncio.run(manager.associate_branch("ENG-1", "ENG-1-work"))

    tickets = {item.ticket_id: item for item in manager.get_all_associations()}
    assert set(tickets) == {"BE-1", "ENG-1"}
    assert tickets["BE-1"].repository_path == OTHER_REPO
    assert workspace_store.commits == 0
    assert [item.ticket_id for item in manager.get_associations_for_current_repo()] == ["ENG-1"]


def test_both_mode_prefers_workspace_entry() -> None:
    workspace_store = MemoryStore(
        name="workspace",
        initial={
            ASSOCIATIONS_KEY: [
                {"ticketId": "ENG-1", "branchName": "local-branch", "lastUpdated": "2024-04-01T00:00:00Z"}
            ]
        },
    )
    global_store = MemoryStore(
        name="global",
        initial={
            GLOBAL_ASSOCIATIONS_KEY: [
                global_record("ENG-1", "global-branch", WORKSPACE),
                global_record("BE-1", "BE-1-api"),
            ]
        },
    )
    manager = make_manager(workspace_store=workspace_store, global_store=global_store)

    associations = {item.ticket_id: item.branch_name for item in manager.get_all_associations()}

    assert associations == {"ENG-1": "local-branch", "BE-1": "BE-1-api"}


def test_unparseable_stored_records_are_skipped() -> None:
    workspace_store = MemoryStore(
        name="workspace",
        initial={ASSOCIATIONS_KEY: [{"ticketId": "ENG-1"}, "junk", {"ticketId": "ENG-2", "branchName": "b", "lastUpdated": "2024-01-01T00:00:00Z"}]},
    )
    manager = make_manager("workspace", workspace_store=workspace_store)

    assert [item.ticket_id for item in manager.get_all_associations()] == ["ENG-2"]


def test_concurrent_associations_are_not_lost() -> None:
    manager = make_manager()

    async def scenario() -> list[bool]:
        return await asyncio.gather(
            *(manager.associate_branch(f"ENG-{index}", f"ENG-{index}-work") for index in range(20))
        )

    results = asyncio.run(scenario())

    assert all(results)
    assert len(manager.get_all_associations()) == 20
    assert len(manager.get_all_global_associations()) == 20
    assert len(manager.get_all_history()) == 20


def test_store_write_failure_is_reported_not_raised(tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    manager = BranchAssociationManager(
        JsonFileStore(blocker / "workspace.json"),
        MemoryStore(name="global"),
        FakeGit(WORKSPACE),
        workspace_path=WORKSPACE,
        storage_mode="workspace",
    )

    assert asyncio.run(manager.associate_branch("ENG-1", "ENG-1-work")) is False


def test_undecodable_store_file_reads_as_empty(tmp_path) -> None:
    path = tmp_path / "workspace.json"
    path.write_bytes(b"\xff")
    manager = BranchAssociationManager(
        JsonFileStore(path),
        MemoryStore(name="global"),
        FakeGit(WORKSPACE),
        workspace_path=WORKSPACE,
        storage_mode="workspace",
    )

    assert manager.get_branch_for_ticket("ENG-1") is None
    assert manager.get_all_history() == []


def test_auto_associate_current_branch() -> None:
    git = FakeGit(WORKSPACE, branches=["main", "feature/ENG-12-login"], current="feature/ENG-12-login")
    manager = make_manager(git=git)

    assert asyncio.run(manager.auto_associate_current_branch()) == "ENG-12"
    association = manager.get_association("ENG-12")
    assert association.is_auto_detected
    assert association.branch_name == "feature/ENG-12-login"

    git.current = "feature/eng-13-lowercase"
    assert asyncio.run(manager.auto_associate_current_branch()) is None
    git.current = "HEAD"
    assert asyncio.run(manager.auto_associate_current_branch()) is None


def test_auto_associate_tolerates_git_failure() -> None:
    git = FakeGit(WORKSPACE, failures={"current_branch": GitCommandError(("rev-parse",), 128, "not a repo")})

    assert asyncio.run(make_manager(git=git).auto_associate_current_branch()) is None


def test_auto_detect_only_suggests_unassociated_tickets() -> None:
    git = FakeGit(WORKSPACE, branches=["main", "ENG-1-existing", "ENG-2-new", "bugfix/OPS-7", "remotes/origin/ENG-9"])
    manager = make_manager(git=git)
    asyncio.run(manager.associate_branch("ENG-1", "something-else"))

    suggestions = asyncio.run(manager.auto_detect_all_branch_associations())

    assert [(item.ticket_id, item.branch_name) for item in suggestions] == [
        ("ENG-2", "ENG-2-new"),
        ("OPS-7", "bugfix/OPS-7"),
    ]
    assert manager.get_branch_for_ticket("ENG-1") == "something-else"


def test_suggest_associations_for_ticket_matches_case_insensitively() -> None:
    git = FakeGit(WORKSPACE, branches=["main", "feature/eng-4-ui", "ENG-4-api", "ENG-40"])
    manager = make_manager(git=git)

    assert asyncio.run(manager.suggest_associations_for_ticket("ENG-4")) == [
        "feature/eng-4-ui",
        "ENG-4-api",
        "ENG-40",
    ]
    assert asyncio.run(manager.suggest_associations_for_ticket("bogus")) == []


def test_is_ticket_in_different_repository() -> None:
    global_store = MemoryStore(name="global", initial={GLOBAL_ASSOCIATIONS_KEY: [global_record("BE-1", "BE-1-api")]})
    manager = make_manager(global_store=global_store)
    asyncio.run(manager.associate_branch("ENG-1", "ENG-1-work"))

    remote = manager.is_ticket_in_different_repository("BE-1")
    assert remote.is_different
    assert remote.repository_path == OTHER_REPO
    assert remote.branch_name == "BE-1-api"

    assert not manager.is_ticket_in_different_repository("ENG-1").is_different
    assert not manager.is_ticket_in_different_repository("NEW-1").is_different
    assert manager.is_ticket_in_current_repo("ENG-1")
    assert not manager.is_ticket_in_current_repo("BE-1")


def test_migrate_to_global_storage() -> None:
    workspace_store = MemoryStore(name="workspace")
    global_store = MemoryStore(name="global")
    workspace_only = make_manager("workspace", workspace_store=workspace_store, global_store=global_store)
    asyncio.run(workspace_only.associate_branch("ENG-1", "ENG-1-work"))
    asyncio.run(workspace_only.associate_branch("ENG-2", "ENG-2-work"))

    manager = make_manager(workspace_store=workspace_store, global_store=global_store)

    assert asyncio.run(manager.migrate_to_global_storage()) == 2
    assert asyncio.run(manager.migrate_to_global_storage()) == 0
    migrated = manager.get_global_association_for_ticket("ENG-2")
    assert migrated.repository_path == WORKSPACE
    assert migrated.repository == "app"


def test_cleanup_drops_stale_and_leaves_other_repositories() -> None:
    git = FakeGit(WORKSPACE, branches=["main", "ENG-1-live"])
    global_store = MemoryStore(
        name="global", initial={GLOBAL_ASSOCIATIONS_KEY: [global_record("BE-1", "BE-1-unverifiable")]}
    )
    manager = make_manager(git=git, global_store=global_store)
    asyncio.run(manager.associate_branch("ENG-1", "ENG-1-live"))
    asyncio.run(manager.associate_branch("ENG-2", "ENG-2-deleted"))

    removed = asyncio.run(manager.cleanup_stale_associations())

    assert removed == 2
    assert {item.ticket_id for item in manager.get_all_associations()} == {"ENG-1", "BE-1"}
    assert manager.get_global_association_for_ticket("BE-1") is not None
    assert manager.get_global_association_for_ticket("ENG-2") is None
    assert manager.get_history_for_ticket("ENG-2").active is None
    assert asyncio.run(manager.cleanup_stale_associations()) == 0


def test_cleanup_treats_verification_failure_as_missing() -> None:
    git = FakeGit(WORKSPACE, branches=["ENG-1-live"], failures={"branch_exists": GitCommandError(("show-ref",), 128, "x")})
    manager = make_manager("workspace", git=git)
    asyncio.run(manager.associate_branch("ENG-1", "ENG-1-live"))

    assert asyncio.run(manager.cleanup_stale_associations()) == 1
    assert manager.get_all_associations() == []


def test_cleanup_never_raises_on_write_failure() -> None:
    workspace_store = MemoryStore(name="workspace")
    manager = BranchAssociationManager(
        workspace_store,
        MemoryStore(name="global"),
        FakeGit(WORKSPACE, branches=["main"]),
        workspace_path=WORKSPACE,
        storage_mode="workspace",
    )
    asyncio.run(manager.associate_branch("ENG-1", "gone"))

    async def failing_update(*args, **kwargs):
        raise StoreWriteError("disk full")

    workspace_store.update = failing_update  # type: ignore[method-assign]

    assert asyncio.run(manager.cleanup_stale_associations()) == 0


def test_analytics_and_cleanup_suggestions() -> None:
    clock = Clock()
    git = FakeGit(WORKSPACE, branches=["main", "ENG-1-live", "shared"])
    manager = make_manager("workspace", git=git, clock=clock)
    asyncio.run(manager.associate_branch("ENG-1", "ENG-1-live"))
    asyncio.run(manager.associate_branch("ENG-1", "ENG-1-live"))
    asyncio.run(manager.associate_branch("ENG-1", "ENG-1-live"))
    asyncio.run(manager.associate_branch("ENG-2", "gone"))
    clock.advance(days=45)
    asyncio.run(manager.associate_branch("ENG-3", "shared"))
    asyncio.run(manager.associate_branch("ENG-4", "shared"))

    analytics = asyncio.run(manager.get_branch_analytics())

    assert analytics.total_associations == 4
    assert analytics.stale_branches == 1
    assert analytics.active_associations == 3
    top = analytics.most_used_branches[0]
    assert (top.branch_name, top.ticket_id, top.usage_count) == ("ENG-1-live", "ENG-1", 3)
    assert [(item.ticket_id, item.days_since_last_update) for item in analytics.oldest_associations] == [
        ("ENG-1", 45),
        ("ENG-2", 45),
    ]

    suggestions = asyncio.run(manager.get_cleanup_suggestions())

    assert [(item.ticket_id, item.branch_name) for item in suggestions.stale_branches] == [("ENG-2", "gone")]
    assert {item.ticket_id for item in suggestions.old_associations} == {"ENG-1", "ENG-2"}
    assert [(item.branch_name, item.ticket_ids) for item in suggestions.duplicate_branches] == [
        ("shared", ["ENG-3", "ENG-4"])
    ]
    assert manager.get_branch_for_ticket("ENG-2") == "gone"


def test_local_branch_queries_degrade_on_git_failure() -> None:
    failure = GitCommandError(("status",), 128, "fatal")
    git = FakeGit(
        WORKSPACE,
        failures={"list_local_branches": failure, "working_tree_status": failure, "branch_exists": failure},
    )
    manager = make_manager(git=git)

    assert asyncio.run(manager.get_all_local_branches()) == []
    assert asyncio.run(manager.has_uncommitted_changes()) is False
    assert asyncio.run(manager.get_uncommitted_changes_summary()) == "unknown changes"
    assert asyncio.run(manager.verify_branch_exists("main")) is False


def test_unknown_storage_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        make_manager("cloud")
