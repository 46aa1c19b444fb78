"""Ticket to branch association ledger."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from ..config import StorageMode
from ..git import GitError, GitPort
from ..paths import repository_id_for, resolve_path, same_path
from ..storage import (
    BranchAssociation,
    BranchHistory,
    BranchHistoryEntry,
    GlobalBranchAssociation,
    KeyValueStore,
    StoreWriteError,
    dump_records,
    load_records,
)
from ..tickets import TicketId
from .prompts import PresetPrompter, Prompter, UncommittedAction
from .reports import (
    AgedAssociation,
    BranchAnalytics,
    BranchSuggestion,
    BranchUsage,
    CleanupSuggestions,
    DuplicateBranch,
    RepositoryLocation,
    StaleAssociation,
)

logger = logging.getLogger(__name__)

ASSOCIATIONS_KEY = "branchAssociations"
GLOBAL_ASSOCIATIONS_KEY = "globalBranchAssociations"
HISTORY_KEY = "branchHistory"
GLOBAL_HISTORY_KEY = "globalBranchHistory"

OLD_ASSOCIATION_DAYS = 30
REPORT_LIMIT = 10
CHANGED_FILES_PREVIEW = 5


def _ticket_key(ticket_id: str | TicketId) -> str | None:
    ticket = TicketId.try_parse(ticket_id)
    return str(ticket) if ticket else None


def _age_in_days(timestamp: datetime, now: datetime) -> int:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return int((now - timestamp).total_seconds() // 86400)


def _replace_entry(raw: Any, ticket_key: str, record: dict[str, Any]) -> list[Any]:
    entries = raw if isinstance(raw, list) else []
    kept = [entry for entry in entries if not (isinstance(entry, dict) and entry.get("ticketId") == ticket_key)]
    kept.append(record)
    return kept


def _activate_in_history(
    raw: Any,
    ticket_key: str,
    branch_name: str,
    now: datetime,
    *,
    repository: str | None = None,
    repository_path: str | None = None,
    match_repository: bool = False,
) -> list[dict[str, Any]]:
    histories = load_records(raw, BranchHistory, source="history")
    history = next((item for item in histories if item.ticket_id == ticket_key), None)
    if history is None:
        history = BranchHistory(ticket_id=ticket_key)
        histories.append(history)

    for entry in history.branches:
        entry.is_active = False

    existing = next(
        (
            entry
            for entry in history.branches
            if entry.branch_name == branch_name
            and (not match_repository or same_path(entry.repository_path, repository_path))
        ),
        None,
    )
    if existing is not None:
        existing.last_used = now
        existing.is_active = True
        existing.use_count += 1
    else:
        history.branches.append(
            BranchHistoryEntry(
                branch_name=branch_name,
                associated_at=now,
                last_used=now,
                is_active=True,
                repository=repository,
                repository_path=repository_path,
            )
        )
    history.sort()
    return dump_records(histories)


def _deactivate_in_history(
    raw: Any,
    pairs: set[tuple[str, str]],
    *,
    repository_path: str | None = None,
) -> list[dict[str, Any]]:
    histories = load_records(raw, BranchHistory, source="history")
    for history in histories:
        for entry in history.branches:
            if (history.ticket_id, entry.branch_name) not in pairs:
                continue
            if repository_path is not None and not same_path(entry.repository_path, repository_path):
                continue
            entry.is_active = False
    return dump_records(histories)


class BranchAssociationManager:
    """Owns the ticket/branch ledger at workspace and global scope.

    ``storage_mode`` picks the tiers: ``workspace`` (project-scoped store only),
    ``global`` (cross-project store only, read unfiltered) or ``both`` (writes
    go to both; reads prefer the workspace entry for a ticket and fall back to
    global ones). The two tiers are written independently and each read treats
    them as separately authoritative.
    """

    def __init__(
        self,
        workspace_store: KeyValueStore,
        global_store: KeyValueStore,
        git: GitPort,
        *,
        workspace_path: Path | str,
        storage_mode: StorageMode = "both",
        prompter: Prompter | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if storage_mode not in ("workspace", "global", "both"):
            raise ValueError(f"Unknown storage mode '{storage_mode}'")
        self._workspace_store = workspace_store
        self._global_store = global_store
        self._git = git
        self._workspace_path = resolve_path(workspace_path)
        self._repository_id = repository_id_for(self._workspace_path)
        self._storage_mode = storage_mode
        self._prompter: Prompter = prompter or PresetPrompter()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def storage_mode(self) -> StorageMode:
        return self._storage_mode

    @property
    def workspace_path(self) -> str:
        return self._workspace_path

    @property
    def repository_id(self) -> str:
        return self._repository_id

    @property
    def _uses_workspace(self) -> bool:
        return self._storage_mode in ("workspace", "both")

    @property
    def _uses_global(self) -> bool:
        return self._storage_mode in ("global", "both")

    def with_prompter(self, prompter: Prompter) -> "BranchAssociationManager":
        """Return a manager over the same stores that asks ``prompter`` instead."""

        return BranchAssociationManager(
            self._workspace_store,
            self._global_store,
            self._git,
            workspace_path=self._workspace_path,
            storage_mode=self._storage_mode,
            prompter=prompter,
            clock=self._clock,
        )

    # ------------------------------------------------------------------
    # Ledger reads
    # ------------------------------------------------------------------

    def _workspace_associations(self) -> list[BranchAssociation]:
        return load_records(
            self._workspace_store.get(ASSOCIATIONS_KEY, []), BranchAssociation, source=ASSOCIATIONS_KEY
        )

    def get_all_global_associations(self) -> list[GlobalBranchAssociation]:
        return load_records(
            self._global_store.get(GLOBAL_ASSOCIATIONS_KEY, []),
            GlobalBranchAssociation,
            source=GLOBAL_ASSOCIATIONS_KEY,
        )

    def get_all_associations(self) -> list[BranchAssociation]:
        """Associations visible in this workspace, merged according to the storage mode."""

        if self._storage_mode == "global":
            return [item.as_association() for item in self.get_all_global_associations()]

        workspace = self._workspace_associations()
        if self._storage_mode == "workspace":
            return workspace

        seen = {item.ticket_id for item in workspace}
        merged = list(workspace)
        for item in self.get_all_global_associations():
            if item.ticket_id not in seen:
                merged.append(item.as_association())
                seen.add(item.ticket_id)
        return merged

    def get_association(self, ticket_id: str | TicketId) -> BranchAssociation | None:
        key = _ticket_key(ticket_id)
        if key is None:
            return None
        return next((item for item in self.get_all_associations() if item.ticket_id == key), None)

    def get_branch_for_ticket(self, ticket_id: str | TicketId) -> str | None:
        association = self.get_association(ticket_id)
        return association.branch_name if association else None

    def get_ticket_for_branch(self, branch_name: str) -> str | None:
        association = next(
            (item for item in self.get_all_associations() if item.branch_name == branch_name), None
        )
        return association.ticket_id if association else None

    def get_global_association_for_ticket(self, ticket_id: str | TicketId) -> GlobalBranchAssociation | None:
        key = _ticket_key(ticket_id)
        if key is None:
            return None
        return next((item for item in self.get_all_global_associations() if item.ticket_id == key), None)

    def get_global_associations_for_repository(self, repository_path: Path | str) -> list[GlobalBranchAssociation]:
        return [
            item
            for item in self.get_all_global_associations()
            if same_path(item.repository_path, repository_path)
        ]

    def get_associations_for_current_repo(self) -> list[BranchAssociation]:
        if self._uses_global:
            return [
                item.as_association()
                for item in self.get_global_associations_for_repository(self._workspace_path)
            ]
        return self._workspace_associations()

    def is_ticket_in_current_repo(self, ticket_id: str | TicketId) -> bool:
        global_association = self.get_global_association_for_ticket(ticket_id)
        if global_association is None:
            key = _ticket_key(ticket_id)
            return any(item.ticket_id == key for item in self._workspace_associations())
        return same_path(global_association.repository_path, self._workspace_path)

    def is_ticket_in_different_repository(self, ticket_id: str | TicketId) -> RepositoryLocation:
        """Compare the global association's repository with the workspace.

        No global association means "not different".
        """

        global_association = self.get_global_association_for_ticket(ticket_id)
        if global_association is None:
            return RepositoryLocation(is_different=False)
        return RepositoryLocation(
            is_different=not same_path(global_association.repository_path, self._workspace_path),
            repository=global_association.repository,
            repository_path=global_association.repository_path,
            branch_name=global_association.branch_name,
        )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def get_all_history(self) -> list[BranchHistory]:
        return load_records(self._workspace_store.get(HISTORY_KEY, []), BranchHistory, source=HISTORY_KEY)

    def get_all_global_history(self) -> list[BranchHistory]:
        return load_records(
            self._global_store.get(GLOBAL_HISTORY_KEY, []), BranchHistory, source=GLOBAL_HISTORY_KEY
        )

    def get_history_for_ticket(self, ticket_id: str | TicketId) -> BranchHistory | None:
        key = _ticket_key(ticket_id)
        return next((item for item in self.get_all_history() if item.ticket_id == key), None)

    def get_global_history_for_ticket(self, ticket_id: str | TicketId) -> BranchHistory | None:
        key = _ticket_key(ticket_id)
        return next((item for item in self.get_all_global_history() if item.ticket_id == key), None)

    def _visible_history(self) -> list[BranchHistory]:
        if self._storage_mode == "global":
            return self.get_all_global_history()
        workspace = self.get_all_history()
        if self._storage_mode == "workspace":
            return workspace
        seen = {item.ticket_id for item in workspace}
        return workspace + [item for item in self.get_all_global_history() if item.ticket_id not in seen]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def associate_branch(
        self,
        ticket_id: str | TicketId,
        branch_name: str,
        is_auto_detected: bool = False,
    ) -> bool:
        """Bind ``ticket_id`` to ``branch_name``, replacing any previous binding.

        Every other mutation path funnels through here so the one-association
        per ticket and one-active-history-entry per ticket rules hold.
        """

        key = _ticket_key(ticket_id)
        branch = branch_name.strip()
        if key is None or not branch:
            logger.warning(
                "Refusing to associate invalid ticket or branch",
                extra={"ticket_id": str(ticket_id), "branch_name": branch_name},
            )
            return False

        now = self._clock()
        if self._uses_workspace:
            association = BranchAssociation(
                ticket_id=key,
                branch_name=branch,
                last_updated=now,
                is_auto_detected=is_auto_detected,
                repository=self._repository_id,
                repository_path=self._workspace_path,
            )
            try:
                await self._workspace_store.update(
                    ASSOCIATIONS_KEY,
                    lambda current: _replace_entry(current, key, association.to_store()),
                    default=[],
                )
                await self._workspace_store.update(
                    HISTORY_KEY,
                    lambda current: _activate_in_history(current, key, branch, now),
                    default=[],
                )
            except StoreWriteError as exc:
                logger.error("Failed to associate branch", extra={"ticket_id": key, "error": str(exc)})
                return False

        if self._uses_global:
            stored = await self.associate_branch_globally(
                key, branch, self._repository_id, self._workspace_path, is_auto_detected
            )
            if not stored:
                return False

        logger.info(
            "Associated branch",
            extra={"ticket_id": key, "branch_name": branch, "auto_detected": is_auto_detected},
        )
        return True

    async def associate_branch_globally(
        self,
        ticket_id: str | TicketId,
        branch_name: str,
        repository: str,
        repository_path: Path | str,
        is_auto_detected: bool = False,
    ) -> bool:
        key = _ticket_key(ticket_id)
        if key is None or not branch_name.strip():
            return False

        now = self._clock()
        resolved = resolve_path(repository_path)
        association = GlobalBranchAssociation(
            ticket_id=key,
            branch_name=branch_name.strip(),
            repository=repository,
            repository_path=resolved,
            last_updated=now,
            is_auto_detected=is_auto_detected,
        )
        try:
            await self._global_store.update(
                GLOBAL_ASSOCIATIONS_KEY,
                lambda current: _replace_entry(current, key, association.to_store()),
                default=[],
            )
            await self._global_store.update(
                GLOBAL_HISTORY_KEY,
                lambda current: _activate_in_history(
                    current,
                    key,
                    association.branch_name,
                    now,
                    repository=repository,
                    repository_path=resolved,
                    match_repository=True,
                ),
                default=[],
            )
        except StoreWriteError as exc:
            logger.error("Failed to associate branch globally", extra={"ticket_id": key, "error": str(exc)})
            return False

        logger.debug(
            "Globally associated branch",
            extra={"ticket_id": key, "branch_name": association.branch_name, "repository": repository},
        )
        return True

    async def remove_association(self, ticket_id: str | TicketId) -> bool:
        """Drop the ledger entry; its history entry stays, marked inactive.

        Returns ``True`` when an association was removed from any tier.
        """

        key = _ticket_key(ticket_id)
        if key is None:
            return False

        removed = False
        if self._uses_workspace:
            dropped: list[BranchAssociation] = []

            def drop(current: Any) -> list[Any]:
                kept = []
                for entry in current if isinstance(current, list) else []:
                    if isinstance(entry, dict) and entry.get("ticketId") == key:
                        dropped.extend(load_records([entry], BranchAssociation, source=ASSOCIATIONS_KEY))
                    else:
                        kept.append(entry)
                return kept

            try:
                await self._workspace_store.update(ASSOCIATIONS_KEY, drop, default=[])
                if dropped:
                    pairs = {(key, item.branch_name) for item in dropped}
                    await self._workspace_store.update(
                        HISTORY_KEY, lambda current: _deactivate_in_history(current, pairs), default=[]
                    )
            except StoreWriteError as exc:
                logger.error("Failed to remove association", extra={"ticket_id": key, "error": str(exc)})
                return False
            removed = removed or bool(dropped)

        if self._uses_global:
            removed = await self.remove_global_association(key) or removed

        if removed:
            logger.info("Removed association", extra={"ticket_id": key})
        return removed

    async def remove_global_association(self, ticket_id: str | TicketId) -> bool:
        key = _ticket_key(ticket_id)
        if key is None:
            return False

        dropped: list[GlobalBranchAssociation] = []

        def drop(current: Any) -> list[Any]:
            kept = []
            for entry in current if isinstance(current, list) else []:
                if isinstance(entry, dict) and entry.get("ticketId") == key:
                    dropped.extend(load_records([entry], GlobalBranchAssociation, source=GLOBAL_ASSOCIATIONS_KEY))
                else:
                    kept.append(entry)
            return kept

        try:
            await self._global_store.update(GLOBAL_ASSOCIATIONS_KEY, drop, default=[])
            for item in dropped:
                await self._global_store.update(
                    GLOBAL_HISTORY_KEY,
                    lambda current, item=item: _deactivate_in_history(
                        current, {(key, item.branch_name)}, repository_path=item.repository_path
                    ),
                    default=[],
                )
        except StoreWriteError as exc:
            logger.error("Failed to remove global association", extra={"ticket_id": key, "error": str(exc)})
            return False
        return bool(dropped)

    async def migrate_to_global_storage(self) -> int:
        """Copy workspace associations missing from the global tier; returns the count."""

        migrated = 0
        for association in self._workspace_associations():
            if self.get_global_association_for_ticket(association.ticket_id) is not None:
                continue
            stored = await self.associate_branch_globally(
                association.ticket_id,
                association.branch_name,
                self._repository_id,
                self._workspace_path,
                association.is_auto_detected,
            )
            if stored:
                migrated += 1
        logger.info("Migrated associations to global storage", extra={"count": migrated})
        return migrated

    # ------------------------------------------------------------------
    # Git-backed queries
    # ------------------------------------------------------------------

    async def get_all_local_branches(self) -> list[str]:
        try:
            branches = await self._git.list_local_branches()
        except GitError as exc:
            logger.error("Failed to list branches", extra={"error": str(exc)})
            return []
        return [branch for branch in branches if not branch.startswith("remotes/")]

    async def get_current_branch(self) -> str | None:
        try:
            return await self._git.current_branch()
        except GitError as exc:
            logger.error("Failed to read current branch", extra={"error": str(exc)})
            return None

    async def verify_branch_exists(self, branch_name: str) -> bool:
        try:
            return await self._git.branch_exists(branch_name)
        except GitError as exc:
            logger.warning("Failed to verify branch", extra={"branch_name": branch_name, "error": str(exc)})
            return False

    async def has_uncommitted_changes(self) -> bool:
        try:
            status = await self._git.working_tree_status()
        except GitError as exc:
            logger.error("Failed to check uncommitted changes", extra={"error": str(exc)})
            return False
        return status.has_changes

    async def get_uncommitted_changes_summary(self) -> str:
        try:
            status = await self._git.working_tree_status()
        except GitError:
            return "unknown changes"
        return status.summary()

    async def auto_associate_current_branch(self) -> str | None:
        """Associate the checked-out branch with the ticket key in its name.

        Returns the ticket id that was associated, or ``None`` when the branch
        carries no ticket key.
        """

        branch = await self.get_current_branch()
        if not branch or branch == "HEAD":
            return None
        ticket = TicketId.from_branch(branch)
        if ticket is None:
            return None
        if not await self.associate_branch(ticket, branch, is_auto_detected=True):
            return None
        return str(ticket)

    async def auto_detect_all_branch_associations(self) -> list[BranchSuggestion]:
        """Suggest associations for local branches whose ticket has none yet. Changes nothing."""

        suggestions: list[BranchSuggestion] = []
        for branch in await self.get_all_local_branches():
            ticket = TicketId.from_branch(branch)
            if ticket is None:
                continue
            if self.get_branch_for_ticket(ticket) is None:
                suggestions.append(BranchSuggestion(ticket_id=str(ticket), branch_name=branch))
        return suggestions

    async def suggest_associations_for_ticket(self, ticket_id: str | TicketId) -> list[str]:
        key = _ticket_key(ticket_id)
        if key is None:
            return []
        needle = key.lower()
        return [branch for branch in await self.get_all_local_branches() if needle in branch.lower()]

    # ------------------------------------------------------------------
    # Checkout protocol
    # ------------------------------------------------------------------

    async def checkout_branch(self, ticket_id: str | TicketId) -> bool:
        """Check out the branch associated with ``ticket_id`` in this workspace.

        Guards run in order: association exists, association belongs to this
        repository, branch still exists, uncommitted changes resolved. Existence
        comes before the uncommitted-changes question so a stale association
        never triggers a stash.
        """

        association = self.get_association(ticket_id)
        if association is None:
            self._prompter.notify("warning", f"No branch associated with {ticket_id}")
            return False

        branch_name = association.branch_name
        if association.repository_path and not same_path(association.repository_path, self._workspace_path):
            self._prompter.notify(
                "warning",
                f"Branch '{branch_name}' for {association.ticket_id} lives in "
                f"{association.repository or association.repository_path} ({association.repository_path}). "
                "Open that repository to check it out.",
            )
            return False

        try:
            if not await self._git.is_repository():
                self._prompter.notify("error", "Current workspace is not a git repository")
                return False

            if not await self._git.branch_exists(branch_name):
                remove = await self._prompter.confirm_stale_removal(
                    f"Branch '{branch_name}' no longer exists. Remove association?"
                )
                if remove:
                    await self.remove_association(association.ticket_id)
                return False

            status = await self._git.working_tree_status()
            if status.has_changes:
                changed = status.changed_files
                file_list = "\n  ".join(changed[:CHANGED_FILES_PREVIEW])
                more = (
                    f"\n  ... and {len(changed) - CHANGED_FILES_PREVIEW} more"
                    if len(changed) > CHANGED_FILES_PREVIEW
                    else ""
                )
                action = await self._prompter.choose_uncommitted_action(
                    "You have uncommitted changes. What would you like to do?\n\n"
                    f"Files with changes:\n  {file_list}{more}",
                    detail="Switching branches with uncommitted changes may cause conflicts or data loss.\n\n"
                    "Options: " + " / ".join(choice.label for choice in UncommittedAction),
                )
                if action is None or action is UncommittedAction.CANCEL:
                    return False
                if action is UncommittedAction.STASH:
                    source = await self._git.current_branch()
                    await self._git.stash_push(f"Auto-stash from {source} before switching to {branch_name}")
                    self._prompter.notify("info", "Changes stashed. Use 'git stash pop' to restore them.")

            await self._git.checkout(branch_name)
        except GitError as exc:
            logger.error("Failed to checkout branch", extra={"branch_name": branch_name, "error": str(exc)})
            self._prompter.notify("error", f"Failed to checkout branch: {exc}")
            return False

        self._prompter.notify("info", f"Checked out branch: {branch_name}")
        return True

    # ------------------------------------------------------------------
    # Maintenance and reporting
    # ------------------------------------------------------------------

    async def _branch_existence(self, branch_names: set[str]) -> dict[str, bool]:
        return {name: await self.verify_branch_exists(name) for name in sorted(branch_names)}

    def _is_local(self, association: BranchAssociation) -> bool:
        return association.repository_path is None or same_path(association.repository_path, self._workspace_path)

    async def cleanup_stale_associations(self) -> int:
        """Drop associations whose branch is gone; returns how many were removed.

        Global associations of other repositories cannot be verified from here
        and are left untouched.
        """

        removed = 0
        try:
            if self._uses_workspace:
                removed += await self._drop_stale(
                    self._workspace_store,
                    ASSOCIATIONS_KEY,
                    HISTORY_KEY,
                    self._workspace_associations(),
                    repository_path=None,
                )
            if self._uses_global:
                removed += await self._drop_stale(
                    self._global_store,
                    GLOBAL_ASSOCIATIONS_KEY,
                    GLOBAL_HISTORY_KEY,
                    self.get_global_associations_for_repository(self._workspace_path),
                    repository_path=self._workspace_path,
                )
        except StoreWriteError as exc:
            logger.error("Failed to cleanup associations", extra={"error": str(exc)})

        if removed:
            logger.info("Cleaned up stale branch associations", extra={"count": removed})
        return removed

    async def _drop_stale(
        self,
        store: KeyValueStore,
        key: str,
        history_key: str,
        candidates: list[Any],
        *,
        repository_path: str | None,
    ) -> int:
        existence = await self._branch_existence({item.branch_name for item in candidates})
        stale = {(item.ticket_id, item.branch_name) for item in candidates if not existence[item.branch_name]}
        if not stale:
            return 0

        dropped: list[Any] = []

        def drop(current: Any) -> list[Any]:
            kept = []
            for entry in current if isinstance(current, list) else []:
                pair = (entry.get("ticketId"), entry.get("branchName")) if isinstance(entry, dict) else None
                in_scope = repository_path is None or (
                    isinstance(entry, dict) and same_path(entry.get("repositoryPath"), repository_path)
                )
                if pair in stale and in_scope:
                    dropped.append(entry)
                else:
                    kept.append(entry)
            return kept

        await store.update(key, drop, default=[])
        if dropped:
            await store.update(
                history_key,
                lambda current: _deactivate_in_history(current, stale, repository_path=repository_path),
                default=[],
            )
        return len(dropped)

    async def _stale_associations(self, associations: list[BranchAssociation]) -> list[BranchAssociation]:
        local = [item for item in associations if self._is_local(item)]
        existence = await self._branch_existence({item.branch_name for item in local})
        return [item for item in local if not existence[item.branch_name]]

    def _aged(self, associations: list[BranchAssociation]) -> list[AgedAssociation]:
        now = self._clock()
        aged = [
            AgedAssociation(
                ticket_id=item.ticket_id,
                branch_name=item.branch_name,
                days_since_last_update=_age_in_days(item.last_updated, now),
            )
            for item in associations
        ]
        aged = [item for item in aged if item.days_since_last_update > OLD_ASSOCIATION_DAYS]
        aged.sort(key=lambda item: item.days_since_last_update, reverse=True)
        return aged

    async def get_branch_analytics(self) -> BranchAnalytics:
        associations = self.get_all_associations()
        stale = await self._stale_associations(associations)

        usage: dict[tuple[str, str], int] = defaultdict(int)
        for history in self._visible_history():
            for entry in history.branches:
                usage[(entry.branch_name, history.ticket_id)] += entry.use_count
        most_used = sorted(
            (
                BranchUsage(branch_name=branch, ticket_id=ticket, usage_count=count)
                for (branch, ticket), count in usage.items()
            ),
            key=lambda item: item.usage_count,
            reverse=True,
        )

        return BranchAnalytics(
            total_associations=len(associations),
            active_associations=len(associations) - len(stale),
            stale_branches=len(stale),
            most_used_branches=most_used[:REPORT_LIMIT],
            oldest_associations=self._aged(associations)[:REPORT_LIMIT],
        )

    async def get_cleanup_suggestions(self) -> CleanupSuggestions:
        associations = self.get_all_associations()
        stale = await self._stale_associations(associations)

        by_branch: dict[str, list[str]] = defaultdict(list)
        for item in associations:
            by_branch[item.branch_name].append(item.ticket_id)

        return CleanupSuggestions(
            stale_branches=[
                StaleAssociation(ticket_id=item.ticket_id, branch_name=item.branch_name) for item in stale
            ],
            old_associations=self._aged(associations),
            duplicate_branches=[
                DuplicateBranch(branch_name=branch, ticket_ids=tickets)
                for branch, tickets in by_branch.items()
                if len(tickets) > 1
            ],
        )


__all__ = [
    "ASSOCIATIONS_KEY",
    "BranchAssociationManager",
    "GLOBAL_ASSOCIATIONS_KEY",
    "GLOBAL_HISTORY_KEY",
    "HISTORY_KEY",
]
