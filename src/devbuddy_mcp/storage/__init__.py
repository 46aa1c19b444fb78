"""Storage abstractions for DevBuddy MCP."""

from .kv import BaseStore, JsonFileStore, KeyValueStore, MemoryStore, StoreWriteError
from .models import (
    BranchAssociation,
    BranchHistory,
    BranchHistoryEntry,
    GlobalBranchAssociation,
    dump_records,
    load_records,
)

__all__ = [
    "BaseStore",
    "BranchAssociation",
    "BranchHistory",
    "BranchHistoryEntry",
    "GlobalBranchAssociation",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "StoreWriteError",
    "dump_records",
    "load_records",
]
