"""
Output sink for decoded values and connection status.

The poll cycle driver publishes every decoded measurement as
``(group, channel, value)`` and every connection status change to an
:class:`OutputSink`.  :class:`SnapshotSink` is the daemon's implementation:
it keeps the latest value per channel in memory and mirrors status and
liveness into the health file.

CHANGELOG:
- 2026-10-11: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Protocol

from sunsynk.src.models import ConnectionStatus, StatusDetail, StatusUpdate

if TYPE_CHECKING:
    from sunsynk.src.health import HealthWriter
    from sunsynk.src.models import TypedValue

logger = logging.getLogger(__name__)


class OutputSink(Protocol):
    """Consumer of published values and status changes."""

    def update_value(self, group: str, channel: str, value: TypedValue) -> None: ...

    def update_status(
        self,
        status: ConnectionStatus,
        detail: StatusDetail = StatusDetail.NONE,
        reason: str = "",
    ) -> None: ...


class SnapshotSink:
    """In-memory latest-value store with optional health file mirroring.

    Args:
        health: HealthWriter instance, or None to skip health writes.
        health_interval_s: Minimum seconds between health file rewrites
            triggered by value updates.  Status changes always rewrite.
    """

    def __init__(
        self,
        health: HealthWriter | None = None,
        *,
        health_interval_s: float = 1.0,
    ) -> None:
        self._health = health
        self._health_interval_s = health_interval_s
        self._last_health_write: float | None = None
        self.values: dict[tuple[str, str], TypedValue] = {}
        self.status = StatusUpdate()

    def update_value(self, group: str, channel: str, value: TypedValue) -> None:
        self.values[(group, channel)] = value
        logger.debug("%s/%s = %s", group, channel, value.value)

        if self._health is None:
            return
        now = time.monotonic()
        if (
            self._last_health_write is None
            or now - self._last_health_write >= self._health_interval_s
        ):
            self._last_health_write = now
            try:
                self._health.record_update(len(self.values))
            except OSError:
                logger.warning("Failed to write health file", exc_info=True)

    def update_status(
        self,
        status: ConnectionStatus,
        detail: StatusDetail = StatusDetail.NONE,
        reason: str = "",
    ) -> None:
        self.status = StatusUpdate(status=status, detail=detail, reason=reason)
        logger.info("Status changed: %s (%s) %s", status.value, detail.value, reason)

        if self._health is not None:
            try:
                self._health.record_status(status, detail, reason)
            except OSError:
                logger.warning("Failed to write health file", exc_info=True)

    def get(self, group: str, channel: str) -> TypedValue | None:
        """Latest value published for a channel, if any."""
        return self.values.get((group, channel))
