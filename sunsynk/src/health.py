"""
Health file writer for the adapter daemon.

Writes a JSON health file at a configurable path with five fields:
- status: Latest connection status (UNKNOWN / ONLINE / OFFLINE).
- detail: Status detail (NONE / CONFIGURATION_ERROR / COMMUNICATION_ERROR).
- reason: Human-readable reason accompanying an OFFLINE status.
- last_update_ts: ISO timestamp of the most recent published value.
- value_count: Number of channels holding a value.

The file is overwritten on every state change, providing a simple liveness
signal that Docker HEALTHCHECK or monitoring can inspect.

CHANGELOG:
- 2026-10-11: Track connection status and published channel count
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

from sunsynk.src.models import ConnectionStatus, StatusDetail


class HealthWriter:
    """Writes adapter health status to a JSON file.

    Each mutating method updates the in-memory state and immediately
    rewrites the health file so it always reflects the latest status.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._status = ConnectionStatus.UNKNOWN
        self._detail = StatusDetail.NONE
        self._reason = ""
        self._last_update_ts: str | None = None
        self._value_count: int = 0

    def record_status(
        self,
        status: ConnectionStatus,
        detail: StatusDetail = StatusDetail.NONE,
        reason: str = "",
    ) -> None:
        """Record a connection status change and write health file."""
        self._status = status
        self._detail = detail
        self._reason = reason
        self._write()

    def record_update(self, value_count: int) -> None:
        """Record a published value batch and write health file.

        Args:
            value_count: Number of channels currently holding a value.
        """
        self._last_update_ts = datetime.now(tz=UTC).isoformat()
        self._value_count = value_count
        self._write()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "status": self._status.value,
            "detail": self._detail.value,
            "reason": self._reason,
            "last_update_ts": self._last_update_ts,
            "value_count": self._value_count,
        }
        self.path.write_text(json.dumps(data))
