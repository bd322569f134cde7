"""Key-value store implementations."""

from confluency.core.config import Settings
from confluency.ports.storage import KeyValueStore
from confluency.storage.file_store import JsonFileKeyValueStore
from confluency.storage.memory_store import InMemoryKeyValueStore


def create_key_value_store(settings: Settings) -> KeyValueStore:
    """Build the store selected by ``STORAGE_BACKEND``."""
    if settings.storage_backend == "redis":
        # Imported lazily so memory and file backends work without a Redis server
        from confluency.storage.redis_store import RedisKeyValueStore

        return RedisKeyValueStore(
            redis_url=settings.redis_url, key_prefix=settings.redis_key_prefix
        )
    if settings.storage_backend == "file":
        return JsonFileKeyValueStore(settings.storage_path)
    return InMemoryKeyValueStore()


__all__ = [
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "create_key_value_store",
]
