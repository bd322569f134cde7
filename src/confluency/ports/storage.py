"""Key-value storage port.

Small JSON blobs keyed by string, the on-device persistence the client keeps
between runs. Implementations live in ``confluency.storage``.
"""

from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """Abstract interface for the local key-value persistence layer.

    Implementations raise ``StorageError`` when the backend fails; callers
    decide whether that matters.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Read a value.

        Args:
            key: Storage key

        Returns:
            The stored string, or None if the key is absent
        """

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Write a value, replacing any previous one.

        Args:
            key: Storage key
            value: Serialized value
        """

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete a key. Removing an absent key is not an error.

        Args:
            key: Storage key
        """

    async def multi_get(self, keys: list[str]) -> dict[str, str | None]:
        """Read several values.

        Args:
            keys: Storage keys

        Returns:
            Mapping of every requested key to its value or None
        """
        return {key: await self.get(key) for key in keys}

    async def multi_set(self, items: dict[str, str]) -> None:
        """Write several values.

        Args:
            items: Mapping of key to serialized value
        """
        for key, value in items.items():
            await self.set(key, value)

    @abstractmethod
    async def clear(self) -> None:
        """Remove every key. Used on logout and account deletion."""
