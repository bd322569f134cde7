"""JSON file key-value store.

The whole store is one JSON object on disk. Writes go to a temporary file that
replaces the original atomically, so a crash mid-write leaves the previous
contents intact. File IO runs in a worker thread to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
import tempfile

from confluency.core.exceptions import StorageError
from confluency.ports.storage import KeyValueStore

logger = logging.getLogger(__name__)


class JsonFileKeyValueStore(KeyValueStore):
    """Key-value store persisted to a single JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._cache: dict[str, str] | None = None

    def _read_file(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            msg = f"Failed to read {self.path}: {e}"
            raise StorageError(msg) from e
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Storage file %s is corrupt; starting empty", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Storage file %s does not hold an object; starting empty", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write_file(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle, ensure_ascii=False, sort_keys=True)
                os.replace(tmp_path, self.path)
            except BaseException:
                Path(tmp_path).unlink(missing_ok=True)
                raise
        except OSError as e:
            msg = f"Failed to write {self.path}: {e}"
            raise StorageError(msg) from e

    async def _load(self) -> dict[str, str]:
        if self._cache is None:
            self._cache = await asyncio.to_thread(self._read_file)
        return self._cache

    async def _mutate(self, data: dict[str, str]) -> None:
        await asyncio.to_thread(self._write_file, data)
        self._cache = data

    async def get(self, key: str) -> str | None:
        async with self._lock:
            data = await self._load()
            return data.get(key)

    async def multi_get(self, keys: list[str]) -> dict[str, str | None]:
        async with self._lock:
            data = await self._load()
            return {key: data.get(key) for key in keys}

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = dict(await self._load())
            data[key] = value
            await self._mutate(data)

    async def multi_set(self, items: dict[str, str]) -> None:
        async with self._lock:
            data = dict(await self._load())
            data.update(items)
            await self._mutate(data)

    async def remove(self, key: str) -> None:
        async with self._lock:
            data = await self._load()
            if key not in data:
                return
            data = dict(data)
            del data[key]
            await self._mutate(data)

    async def clear(self) -> None:
        async with self._lock:
            await self._mutate({})
