"""Diagnostics sink.

Captures failure events with device and network context for
troubleshooting. Capturing a diagnostic must never disturb the flow that
reported it, so ``capture`` swallows and logs its own failures.
"""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
import json
import logging
import platform
from typing import Any

from confluency.models.diagnostics import (
    DeviceSnapshot,
    DiagnosticEvent,
    DiagnosticType,
    NetworkSnapshot,
)
from confluency.observability.metrics import DIAGNOSTIC_EVENTS
from confluency.ports.network_ports import ConnectivityMonitor

logger = logging.getLogger(__name__)

DiagnosticTransport = Callable[[DiagnosticEvent], Awaitable[None]]

_RECENT_EVENTS_LIMIT = 50


def collect_device_snapshot(app_version: str = "unknown") -> DeviceSnapshot:
    """Describe the host this process runs on."""
    return DeviceSnapshot(
        platform=platform.system() or "unknown",
        os_version=platform.release() or "unknown",
        machine=platform.machine() or "unknown",
        python_version=platform.python_version(),
        app_version=app_version,
    )


class DiagnosticsSink:
    """Write-only sink for ``DiagnosticEvent`` records.

    Events are logged as JSON, counted, kept in a short in-memory ring for
    inspection and forwarded to an optional async transport.
    """

    def __init__(
        self,
        connectivity: ConnectivityMonitor | None = None,
        device_info: DeviceSnapshot | None = None,
        transport: DiagnosticTransport | None = None,
        fetch_timeout: float = 2.0,
        transport_timeout: float = 5.0,
    ) -> None:
        self._connectivity = connectivity
        self._device_info = device_info
        self._transport = transport
        self._fetch_timeout = fetch_timeout
        self._transport_timeout = transport_timeout
        self._recent: deque[DiagnosticEvent] = deque(maxlen=_RECENT_EVENTS_LIMIT)

    @property
    def recent_events(self) -> list[DiagnosticEvent]:
        """Most recent events, oldest first."""
        return list(self._recent)

    async def capture(
        self,
        type: DiagnosticType,
        user_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> DiagnosticEvent | None:
        """Record a diagnostic event.

        Args:
            type: Event category
            user_id: User the event concerns, if known
            details: Free-form context

        Returns:
            The captured event, or None when capturing failed
        """
        try:
            event = DiagnosticEvent(
                type=type,
                user_id=user_id,
                details=details or {},
                device=self._device_snapshot(),
                network=await self._network_snapshot(),
            )
            payload = json.dumps(event.model_dump(mode="json"), sort_keys=True)
            level = logging.INFO if type == DiagnosticType.NETWORK_ISSUE else logging.WARNING
            logger.log(level, "Diagnostic [%s]: %s", type.value, payload)

            self._recent.append(event)
            DIAGNOSTIC_EVENTS.labels(type=type.value).inc()

            if self._transport is not None:
                await self._forward(event)
        except Exception:
            logger.exception("Failed to capture diagnostic information")
            return None
        return event

    async def _forward(self, event: DiagnosticEvent) -> None:
        try:
            await asyncio.wait_for(self._transport(event), timeout=self._transport_timeout)
        except TimeoutError:
            logger.warning(
                "Diagnostic transport timed out after %ss; event kept locally",
                self._transport_timeout,
            )

    def _device_snapshot(self) -> DeviceSnapshot:
        if self._device_info is None:
            self._device_info = collect_device_snapshot()
        return self._device_info

    async def _network_snapshot(self) -> NetworkSnapshot | None:
        if self._connectivity is None:
            return None
        try:
            return await asyncio.wait_for(
                self._connectivity.fetch(), timeout=self._fetch_timeout
            )
        except TimeoutError:
            logger.debug("Network snapshot fetch timed out after %ss", self._fetch_timeout)
        except Exception as e:
            logger.debug("Network snapshot fetch failed: %s", e)
        return self._connectivity.current
