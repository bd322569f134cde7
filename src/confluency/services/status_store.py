"""Persistent record of the latest user data initialization outcome.

A single JSON record under one key. Writes are serialised and stamped with a
monotonic sequence so a late write from an older transition can never
overwrite a newer one.
"""

import asyncio
import logging

from pydantic import ValidationError

from confluency.models.initialization import InitializationAttemptRecord
from confluency.ports.storage import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_STATUS_KEY = "@confluency:user_initialization_status"


class PersistentStatusStore:
    """Load, save and clear the initialization attempt record.

    Any failure of the key-value store is logged and swallowed: losing the
    persisted status only costs a re-verification on the next start.
    """

    def __init__(self, kv_store: KeyValueStore, key: str = DEFAULT_STATUS_KEY) -> None:
        self._kv_store = kv_store
        self.key = key
        self._lock = asyncio.Lock()
        self._sequence = 0
        self._last_applied = 0

    def next_sequence(self) -> int:
        """Hand out the next write stamp."""
        self._sequence += 1
        return self._sequence

    @property
    def last_applied_sequence(self) -> int:
        return self._last_applied

    async def load(self) -> InitializationAttemptRecord | None:
        """Read the persisted record.

        Returns:
            The record, or None when there is none or it cannot be read
        """
        try:
            raw = await self._kv_store.get(self.key)
        except Exception as e:
            logger.error("Failed to load initialization status: %s", e)
            return None

        if raw is None:
            logger.info("No persisted initialization status found")
            return None

        try:
            record = InitializationAttemptRecord.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "Discarding unreadable initialization status record: %s",
                e.errors(include_url=False),
            )
            return None

        # Later writes in this process must outrank the loaded record
        self._sequence = max(self._sequence, record.sequence)
        self._last_applied = max(self._last_applied, record.sequence)
        logger.debug("Loaded initialization status %s (seq=%d)", record.status, record.sequence)
        return record

    async def save(self, record: InitializationAttemptRecord) -> bool:
        """Persist ``record`` unless a newer one has already been written.

        A record without a sequence is stamped with the next one.

        Returns:
            True when the record was written
        """
        if record.sequence == 0:
            record = record.model_copy(update={"sequence": self.next_sequence()})

        async with self._lock:
            if record.sequence < self._last_applied:
                logger.debug(
                    "Discarding stale initialization status write %s (seq=%d < %d)",
                    record.status,
                    record.sequence,
                    self._last_applied,
                )
                return False
            try:
                await self._kv_store.set(self.key, record.model_dump_json())
            except Exception as e:
                logger.error("Failed to save initialization status %s: %s", record.status, e)
                return False
            self._last_applied = record.sequence
            return True

    async def clear(self) -> None:
        """Remove the record and invalidate writes stamped before now."""
        async with self._lock:
            self._last_applied = self.next_sequence()
            try:
                await self._kv_store.remove(self.key)
            except Exception as e:
                logger.error("Failed to clear initialization status: %s", e)
