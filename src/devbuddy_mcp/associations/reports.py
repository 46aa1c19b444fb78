"""Read-only views returned by the association manager."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class BranchSuggestion:
    ticket_id: str
    branch_name: str


@dataclass(slots=True)
class RepositoryLocation:
    """Where the global ledger says a ticket's branch lives."""

    is_different: bool
    repository: str | None = None
    repository_path: str | None = None
    branch_name: str | None = None


@dataclass(slots=True)
class BranchUsage:
    branch_name: str
    ticket_id: str
    usage_count: int


@dataclass(slots=True)
class AgedAssociation:
    ticket_id: str
    branch_name: str
    days_since_last_update: int


@dataclass(slots=True)
class StaleAssociation:
    ticket_id: str
    branch_name: str


@dataclass(slots=True)
class DuplicateBranch:
    branch_name: str
    ticket_ids: list[str]


@dataclass(slots=True)
class BranchAnalytics:
    total_associations: int = 0
    active_associations: int = 0
    stale_branches: int = 0
    most_used_branches: list[BranchUsage] = field(default_factory=list)
    oldest_associations: list[AgedAssociation] = field(default_factory=list)


@dataclass(slots=True)
class CleanupSuggestions:
    stale_branches: list[StaleAssociation] = field(default_factory=list)
    old_associations: list[AgedAssociation] = field(default_factory=list)
    duplicate_branches: list[DuplicateBranch] = field(default_factory=list)


__all__ = [
    "AgedAssociation",
    "BranchAnalytics",
    "BranchSuggestion",
    "BranchUsage",
    "CleanupSuggestions",
    "DuplicateBranch",
    "RepositoryLocation",
    "StaleAssociation",
]
