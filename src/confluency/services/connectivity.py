"""Connectivity monitors.

``ManualConnectivityMonitor`` is driven by the host (or tests);
``HttpConnectivityMonitor`` probes a URL with httpx.
"""

from collections.abc import Callable
import logging

import httpx

from confluency.models.diagnostics import NetworkSnapshot
from confluency.ports.network_ports import ConnectivityListener, ConnectivityMonitor

logger = logging.getLogger(__name__)


class _ListeningMonitor(ConnectivityMonitor):
    """Listener bookkeeping shared by the concrete monitors."""

    def __init__(self, initial: NetworkSnapshot | None = None) -> None:
        self._current = initial or NetworkSnapshot()
        self._listeners: list[ConnectivityListener] = []

    @property
    def current(self) -> NetworkSnapshot:
        return self._current

    def add_listener(self, listener: ConnectivityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, snapshot: NetworkSnapshot) -> None:
        previous = self._current
        self._current = snapshot
        if previous.is_offline == snapshot.is_offline:
            return
        logger.info("Connectivity changed: offline=%s", snapshot.is_offline)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Connectivity listener failed")


class ManualConnectivityMonitor(_ListeningMonitor):
    """Monitor whose state is set explicitly."""

    async def fetch(self) -> NetworkSnapshot:
        return self._current

    def set_snapshot(self, snapshot: NetworkSnapshot) -> None:
        self._publish(snapshot)

    def set_online(self, online: bool, *, connection_type: str = "unknown") -> None:
        self._publish(
            NetworkSnapshot(
                is_connected=online,
                is_internet_reachable=online,
                connection_type=connection_type,
            )
        )


class HttpConnectivityMonitor(_ListeningMonitor):
    """Monitor that probes ``probe_url`` on every fetch.

    A connection failure means disconnected; any other transport failure
    (timeouts included) means connected but the internet is unreachable.
    An HTTP response of any status counts as reachable.
    """

    def __init__(
        self,
        probe_url: str,
        timeout: float = 3.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self.probe_url = probe_url
        self._timeout = timeout
        self._client = client

    async def fetch(self) -> NetworkSnapshot:
        try:
            if self._client is not None:
                await self._client.head(self.probe_url, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    await client.head(self.probe_url)
        except httpx.ConnectError as e:
            logger.debug("Connectivity probe could not connect: %s", e)
            snapshot = NetworkSnapshot(
                is_connected=False, is_internet_reachable=False, connection_type="none"
            )
        except httpx.HTTPError as e:
            logger.debug("Connectivity probe failed: %s", e)
            snapshot = NetworkSnapshot(
                is_connected=True, is_internet_reachable=False, connection_type="unknown"
            )
        else:
            snapshot = NetworkSnapshot(
                is_connected=True, is_internet_reachable=True, connection_type="http"
            )
        self._publish(snapshot)
        return snapshot
