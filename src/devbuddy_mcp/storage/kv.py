"""Key/value stores with synchronous reads and serialized asynchronous writes."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


class StoreWriteError(RuntimeError):
    """Raised when a store cannot persist an update."""


class KeyValueStore(Protocol):
    """Port shared by the project-scoped and the cross-project store."""

    name: str

    def get(self, key: str, default: Any = None) -> Any:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...

    async def update(self, key: str, mutate: Callable[[Any], Any], *, default: Any = None) -> Any:
        ...


class BaseStore:
    """Shared mutation discipline.

    Every write goes through one lock per store instance, so a read-modify-write
    issued by ``update`` cannot interleave with another one on the same store.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None

    def _mutation_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    def _data(self) -> dict[str, Any]:
        raise NotImplementedError

    async def _commit(self, data: dict[str, Any]) -> None:
        raise NotImplementedError

    def get(self, key: str, default: Any = None) -> Any:
        data = self._data()
        if key not in data:
            return copy.deepcopy(default)
        return copy.deepcopy(data[key])

    def keys(self) -> list[str]:
        return list(self._data())

    async def set(self, key: str, value: Any) -> None:
        async with self._mutation_lock():
            data = dict(self._data())
            data[key] = copy.deepcopy(value)
            await self._commit(data)

    async def update(self, key: str, mutate: Callable[[Any], Any], *, default: Any = None) -> Any:
        """Apply ``mutate`` to the current value of ``key`` and persist the result."""

        async with self._mutation_lock():
            current = self.get(key, default)
            updated = mutate(current)
            data = dict(self._data())
            data[key] = copy.deepcopy(updated)
            await self._commit(data)
            return updated

    async def delete(self, key: str) -> None:
        async with self._mutation_lock():
            data = dict(self._data())
            if key in data:
                del data[key]
                await self._commit(data)


class MemoryStore(BaseStore):
    """In-process store, used for tests and for ephemeral sessions."""

    def __init__(self, name: str = "memory", initial: dict[str, Any] | None = None) -> None:
        super().__init__(name)
        self._values: dict[str, Any] = copy.deepcopy(initial or {})
        self.commits = 0

    def _data(self) -> dict[str, Any]:
        return self._values

    async def _commit(self, data: dict[str, Any]) -> None:
        # Yield so concurrent callers genuinely overlap, like a real write would.
        await asyncio.sleep(0)
        self._values = data
        self.commits += 1


class JsonFileStore(BaseStore):
    """Store persisted as a single JSON document on disk."""

    def __init__(self, path: Path, *, name: str | None = None) -> None:
        super().__init__(name or Path(path).stem)
        self._path = Path(path)
        self._values: dict[str, Any] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _data(self) -> dict[str, Any]:
        if self._values is None:
            self._values = self._load()
        return self._values

    def _load(self) -> dict[str, Any]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Failed to read store", extra={"path": str(self._path), "error": str(exc)})
            return {}

        try:
            document = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as exc:
            logger.error("Store file is not valid JSON", extra={"path": str(self._path), "error": str(exc)})
            return {}

        if not isinstance(document, dict):
            logger.error("Store file does not hold a JSON object", extra={"path": str(self._path)})
            return {}
        return document

    def _flush(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=str(self._path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def _commit(self, data: dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self._flush, data)
        except OSError as exc:
            raise StoreWriteError(f"Failed to write {self._path}: {exc}") from exc
        self._values = data

    def reload(self) -> None:
        """Drop the in-memory copy so the next read goes back to disk."""

        self._values = None


__all__ = ["BaseStore", "JsonFileStore", "KeyValueStore", "MemoryStore", "StoreWriteError"]
