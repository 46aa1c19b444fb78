"""Branch association ledger and the guarded checkout protocol."""

from .manager import (
    ASSOCIATIONS_KEY,
    GLOBAL_ASSOCIATIONS_KEY,
    GLOBAL_HISTORY_KEY,
    HISTORY_KEY,
    BranchAssociationManager,
)
from .prompts import NoticeLevel, PresetPrompter, Prompter, UncommittedAction
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

__all__ = [
    "ASSOCIATIONS_KEY",
    "AgedAssociation",
    "BranchAnalytics",
    "BranchAssociationManager",
    "BranchSuggestion",
    "BranchUsage",
    "CleanupSuggestions",
    "DuplicateBranch",
    "GLOBAL_ASSOCIATIONS_KEY",
    "GLOBAL_HISTORY_KEY",
    "HISTORY_KEY",
    "NoticeLevel",
    "PresetPrompter",
    "Prompter",
    "RepositoryLocation",
    "StaleAssociation",
    "UncommittedAction",
]
