"""In-memory key-value store. State is lost on restart."""

import asyncio

from confluency.ports.storage import KeyValueStore


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store used by tests and mock-service runs."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._data[key] = value

    async def remove(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def multi_set(self, items: dict[str, str]) -> None:
        async with self._lock:
            self._data.update(items)

    async def clear(self) -> None:
        async with self._lock:
            self._data.clear()

    def snapshot(self) -> dict[str, str]:
        """Copy of the current contents."""
        return dict(self._data)
