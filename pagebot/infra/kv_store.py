# pagebot/infra/kv_store.py
"""
Process-local key-value store.

Default backend for development and tests. Values are deep-copied on the
way in and out so callers never share mutable state with the store.
"""
from __future__ import annotations

import asyncio
import copy
import inspect
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from pagebot.core.ports import AsyncKVStore, UpdateFn
from pagebot.infra.logging_config import get_logger

logger = get_logger(__name__)


class InMemoryKVStore(AsyncKVStore):
    """Dict-backed store; dict order gives insertion order for prefix scans."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = {}
        # Per-key update locks, present only while an update holds or awaits one
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        for key, value in (initial or {}).items():
            self._data[key] = copy.deepcopy(value)

    async def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        # Overwriting keeps the key's original position
        self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def get_by_prefix(self, prefix: str) -> list[Any]:
        return [copy.deepcopy(v) for k, v in self._data.items() if k.startswith(prefix)]

    async def update(self, key: str, fn: UpdateFn) -> Optional[Any]:
        async with self._key_lock(key):
            current = copy.deepcopy(self._data.get(key))
            new_value = fn(current)
            if inspect.isawaitable(new_value):
                new_value = await new_value
            if new_value is None:
                return None
            self._data[key] = copy.deepcopy(new_value)
            return copy.deepcopy(new_value)

    @asynccontextmanager
    async def _key_lock(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._data)
