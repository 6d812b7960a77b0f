"""
Unit tests for the adapter health writer module.

Tests verify:
- HealthWriter.record_status() writes status, detail and reason.
- HealthWriter.record_update() sets last_update_ts and value_count.
- The health file always contains all five fields.

CHANGELOG:
- 2026-10-11: Track connection status and published channel count
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from sunsynk.src.health import HealthWriter
from sunsynk.src.models import ConnectionStatus, StatusDetail

_FIELDS = {"status", "detail", "reason", "last_update_ts", "value_count"}


def _read(path: Path) -> dict:
    return json.loads(path.read_text())


class TestRecordStatus:
    """record_status() mirrors the latest connection status."""

    def test_writes_file(self, tmp_path: Path) -> None:
        health_path = tmp_path / "health.json"
        writer = HealthWriter(health_path)

        writer.record_status(ConnectionStatus.ONLINE)

        data = _read(health_path)
        assert set(data) == _FIELDS
        assert data["status"] == "ONLINE"
        assert data["detail"] == "NONE"
        assert data["reason"] == ""
        assert data["last_update_ts"] is None
        assert data["value_count"] == 0

    def test_offline_with_reason(self, tmp_path: Path) -> None:
        health_path = tmp_path / "health.json"
        writer = HealthWriter(str(health_path))

        writer.record_status(
            ConnectionStatus.OFFLINE,
            StatusDetail.COMMUNICATION_ERROR,
            "Failed to retrieve data: timed out",
        )

        data = _read(health_path)
        assert data["status"] == "OFFLINE"
        assert data["detail"] == "COMMUNICATION_ERROR"
        assert data["reason"] == "Failed to retrieve data: timed out"


class TestRecordUpdate:
    """record_update() refreshes the liveness timestamp."""

    def test_sets_timestamp_and_count(self, tmp_path: Path) -> None:
        health_path = tmp_path / "health.json"
        writer = HealthWriter(health_path)

        writer.record_update(42)

        data = _read(health_path)
        assert data["value_count"] == 42
        assert datetime.fromisoformat(data["last_update_ts"]).tzinfo is not None
        assert data["status"] == "UNKNOWN"

    def test_status_survives_update(self, tmp_path: Path) -> None:
        health_path = tmp_path / "health.json"
        writer = HealthWriter(health_path)

        writer.record_status(ConnectionStatus.ONLINE)
        writer.record_update(3)

        data = _read(health_path)
        assert data["status"] == "ONLINE"
        assert data["value_count"] == 3
