"""Backing-data collaborator ports."""

from abc import ABC, abstractmethod


class UserDataVerifier(ABC):
    """Read-only check for the per-user records the app needs."""

    @abstractmethod
    async def user_data_exists(self, user_id: str) -> bool:
        """Report whether every required record exists.

        Returns False only when the check ran and found data missing; any
        failure to run the check is raised, never reported as False.
        """


class UserDataInitializer(ABC):
    """Idempotent creation of the per-user records."""

    @abstractmethod
    async def initialize_user_data(self, user_id: str) -> bool:
        """Create (or re-create) the records for ``user_id``.

        Returns:
            True when the records exist afterwards
        """
