"""Subscription entitlement service.

Fetches entitlement snapshots from the billing provider and keeps the last
good one per user in the key-value store, served when the provider fails.
"""

from datetime import UTC, datetime, timedelta
import logging

from pydantic import ValidationError

from confluency.core.exceptions import StorageError
from confluency.models.subscription import EntitlementSnapshot
from confluency.ports.billing_ports import EntitlementProvider
from confluency.ports.storage import KeyValueStore

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "cached_subscription"
MAX_CACHE_AGE = timedelta(hours=24)


class SubscriptionService:
    """Entitlement lookups with a local fallback cache."""

    def __init__(
        self,
        provider: EntitlementProvider,
        kv_store: KeyValueStore,
        max_cache_age: timedelta = MAX_CACHE_AGE,
    ) -> None:
        self.provider = provider
        self.kv_store = kv_store
        self.max_cache_age = max_cache_age

    @staticmethod
    def _cache_key(user_id: str) -> str:
        return f"{CACHE_KEY_PREFIX}:{user_id}"

    async def get_snapshot(self, user_id: str) -> EntitlementSnapshot:
        """Current entitlements for ``user_id``.

        Falls back to a fresh-enough cached snapshot when the provider fails,
        and to the free tier when there is none.
        """
        try:
            entitlements = await self.provider.get_entitlements(user_id)
        except Exception as e:
            logger.error("Failed to fetch entitlements for %s: %s", user_id, e)
            cached = await self.get_cached_snapshot(user_id)
            if cached is not None:
                logger.info("Using cached subscription for %s (%s)", user_id, cached.tier)
                return cached
            logger.warning("No cached subscription for %s; assuming free tier", user_id)
            return EntitlementSnapshot(user_id=user_id)

        snapshot = EntitlementSnapshot(user_id=user_id, entitlements=entitlements)
        await self._cache(snapshot)
        return snapshot

    async def get_cached_snapshot(self, user_id: str) -> EntitlementSnapshot | None:
        """Cached snapshot, or None when missing, unreadable, stale or expired."""
        try:
            raw = await self.kv_store.get(self._cache_key(user_id))
        except StorageError as e:
            logger.warning("Failed to read cached subscription: %s", e)
            return None
        if raw is None:
            return None

        try:
            snapshot = EntitlementSnapshot.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable cached subscription for %s", user_id)
            return None

        now = datetime.now(UTC)
        if now - snapshot.fetched_at > self.max_cache_age:
            logger.info("Cached subscription for %s is too old", user_id)
            return None
        expires = snapshot.expiration_date
        if expires is not None and expires < now:
            logger.info("Cached subscription for %s has expired", user_id)
            return None
        return snapshot

    async def sync_on_resume(self) -> bool:
        """Best-effort purchase sync when the app returns to the foreground."""
        try:
            updated = await self.provider.sync_on_resume()
        except Exception as e:
            logger.warning("Subscription sync on resume failed: %s", e)
            return False
        logger.debug("Subscription sync on resume finished (updated=%s)", updated)
        return updated

    async def _cache(self, snapshot: EntitlementSnapshot) -> None:
        try:
            await self.kv_store.set(self._cache_key(snapshot.user_id), snapshot.model_dump_json())
        except StorageError as e:
            logger.warning("Failed to cache subscription for %s: %s", snapshot.user_id, e)
