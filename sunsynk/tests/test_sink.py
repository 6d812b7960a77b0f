"""
Tests for the snapshot output sink.

Verifies latest-value storage, status tracking and throttled health file
mirroring, including tolerance of health write failures.

CHANGELOG:
- 2026-10-11: Initial creation

TODO:
- None
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock

from sunsynk.src.models import ConnectionStatus, Quantity, StatusDetail, StatusUpdate
from sunsynk.src.sink import SnapshotSink

_VALUE = Quantity(value=Decimal("1.5"), unit="kWh")


class TestValues:
    """update_value() keeps the latest value per channel."""

    def test_stores_latest(self) -> None:
        sink = SnapshotSink()
        sink.update_value("battery-information", "battery-soc", _VALUE)
        newer = Quantity(value=Decimal(80), unit="%")
        sink.update_value("battery-information", "battery-soc", newer)
        assert sink.get("battery-information", "battery-soc") == newer
        assert len(sink.values) == 1

    def test_missing_channel(self) -> None:
        assert SnapshotSink().get("overview", "nothing") is None


class TestStatus:
    """update_status() records the status and mirrors it to health."""

    def test_initial_status(self) -> None:
        assert SnapshotSink().status == StatusUpdate()

    def test_records_status(self) -> None:
        health = MagicMock()
        sink = SnapshotSink(health)
        sink.update_status(
            ConnectionStatus.OFFLINE, StatusDetail.COMMUNICATION_ERROR, "down"
        )
        assert sink.status.status is ConnectionStatus.OFFLINE
        assert sink.status.reason == "down"
        health.record_status.assert_called_once_with(
            ConnectionStatus.OFFLINE, StatusDetail.COMMUNICATION_ERROR, "down"
        )

    def test_health_failure_tolerated(self) -> None:
        health = MagicMock()
        health.record_status.side_effect = OSError("read-only fs")
        sink = SnapshotSink(health)
        sink.update_status(ConnectionStatus.ONLINE)
        assert sink.status.status is ConnectionStatus.ONLINE


class TestHealthThrottle:
    """Value updates rewrite the health file at most once per interval."""

    def test_first_update_writes(self) -> None:
        health = MagicMock()
        sink = SnapshotSink(health, health_interval_s=60)
        sink.update_value("g", "a", _VALUE)
        health.record_update.assert_called_once_with(1)

    def test_burst_throttled(self) -> None:
        health = MagicMock()
        sink = SnapshotSink(health, health_interval_s=60)
        for channel in ("a", "b", "c"):
            sink.update_value("g", channel, _VALUE)
        assert health.record_update.call_count == 1

    def test_zero_interval_writes_every_time(self) -> None:
        health = MagicMock()
        sink = SnapshotSink(health, health_interval_s=0)
        for channel in ("a", "b", "c"):
            sink.update_value("g", channel, _VALUE)
        assert health.record_update.call_count == 3

    def test_write_failure_tolerated(self) -> None:
        health = MagicMock()
        health.record_update.side_effect = OSError("disk full")
        sink = SnapshotSink(health)
        sink.update_value("g", "a", _VALUE)
        assert sink.get("g", "a") == _VALUE
