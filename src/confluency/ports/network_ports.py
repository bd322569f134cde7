"""Connectivity and navigation runtime ports."""

from abc import ABC, abstractmethod
from collections.abc import Callable

from confluency.models.diagnostics import NetworkSnapshot
from confluency.models.navigation import RouteState

ConnectivityListener = Callable[[NetworkSnapshot], None]


class ConnectivityMonitor(ABC):
    """Source of the device's connectivity state."""

    @property
    @abstractmethod
    def current(self) -> NetworkSnapshot:
        """Last known snapshot, without touching the network."""

    @abstractmethod
    async def fetch(self) -> NetworkSnapshot:
        """Refresh and return the connectivity snapshot."""

    @abstractmethod
    def add_listener(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register for connectivity changes; returns an unsubscribe function."""

    @property
    def is_offline(self) -> bool:
        return self.current.is_offline


class NavigationRuntime(ABC):
    """The host navigation container the reconciler commands."""

    @abstractmethod
    def is_ready(self) -> bool:
        """Mount flag set by the host. Necessary but not sufficient for readiness."""

    @abstractmethod
    def get_root_state(self) -> RouteState | None:
        """Current root route stack; may raise or return None before mount."""

    @abstractmethod
    def reset(self, routes: list[str], index: int = 0) -> None:
        """Replace the whole root stack."""
