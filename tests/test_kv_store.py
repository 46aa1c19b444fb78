from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from devbuddy_mcp.storage import JsonFileStore, MemoryStore, StoreWriteError


def test_memory_store_reads_are_copies() -> None:
    store = MemoryStore(initial={"items": [1, 2]})

    value = store.get("items")
    value.append(3)

    assert store.get("items") == [1, 2]
    assert store.get("missing", []) == []


def test_concurrent_updates_are_serialized() -> None:
    store = MemoryStore()

    async def append(value: int) -> None:
        await store.update("items", lambda current: [*current, value], default=[])

    async def scenario() -> None:
        await asyncio.gather(*(append(index) for index in range(25)))

    asyncio.run(scenario())

    assert sorted(store.get("items")) == list(range(25))
    assert store.commits == 25


def test_json_store_persists_and_reloads(tmp_path: Path) -> None:
    path = tmp_path / "state" / "global.json"
    store = JsonFileStore(path)

    asyncio.run(store.set("repositoryRegistry", {"repositories": {}}))
    asyncio.run(store.update("branchAssociations", lambda current: current + ["x"], default=[]))

    document = json.loads(path.read_text(encoding="utf-8"))
    assert document == {"branchAssociations": ["x"], "repositoryRegistry": {"repositories": {}}}

    reopened = JsonFileStore(path)
    assert reopened.get("branchAssociations") == ["x"]
    assert reopened.name == "global"

    asyncio.run(reopened.delete("branchAssociations"))
    store.reload()
    assert store.keys() == ["repositoryRegistry"]


def test_json_store_treats_corrupt_file_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    path.write_text("{not json", encoding="utf-8")

    assert JsonFileStore(path).get("anything", "fallback") == "fallback"

    path.write_text("[1, 2]", encoding="utf-8")
    assert JsonFileStore(path).keys() == []


def test_json_store_write_failure_keeps_memory_unchanged(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    store = JsonFileStore(blocker / "store.json")

    with pytest.raises(StoreWriteError):
        asyncio.run(store.set("key", "value"))

    assert store.get("key") is None


def test_json_store_treats_undecodable_file_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    path.write_bytes(b'{"branchAssociations": "\xff"}')

    store = JsonFileStore(path)

    assert store.get("branchAssociations", []) == []
    asyncio.run(store.set("branchAssociations", []))
    assert json.loads(path.read_text(encoding="utf-8")) == {"branchAssociations": []}
