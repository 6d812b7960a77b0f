"""
Unit tests for the adapter daemon entrypoint.

Tests verify:
- run_adapter() initializes, starts and disposes the driver on shutdown.
- A configuration error stops run_adapter() before any poll.
- Shutdown waits for the poll schedules to exit.
- Signal handling sets the shutdown event.
- Startup logs a config summary.
- The JSON log formatter emits one JSON object per record.
- async_main() wires settings into the transport and sink.

CHANGELOG:
- 2026-10-17: The configured time zone reaches the driver
- 2026-10-14: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch
from zoneinfo import ZoneInfo

import pytest
from sunsynk.src.main import (
    _handle_signal,
    async_main,
    configure_logging,
    log_config_summary,
    run_adapter,
)
from sunsynk.src.models import ConnectionStatus, StatusDetail
from sunsynk.src.poller import DriverState
from sunsynk.src.sink import SnapshotSink

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_settings(**overrides: object) -> MagicMock:
    """Create a mock AdapterSettings with sensible defaults."""
    defaults = {
        "sunsynk_host": "192.168.1.60",
        "sunsynk_port": 502,
        "sunsynk_slave_id": 1,
        "poll_interval_s": 7,
        "modbus_timeout_s": 4.0,
        "health_path": "/tmp/test-health.json",
        "sunsynk_timezone": "Europe/Amsterdam",
    }
    defaults.update(overrides)
    settings = MagicMock()
    for key, value in defaults.items():
        setattr(settings, key, value)
    return settings


async def _serve_zeros(address: int, count: int, tries: int) -> list[int]:
    return [0] * count


# ===========================================================================
# run_adapter
# ===========================================================================


class TestRunAdapter:
    """run_adapter() drives the poll cycle until shutdown."""

    @pytest.mark.asyncio
    async def test_polls_until_shutdown(self, transport: AsyncMock) -> None:
        transport.read_registers.side_effect = _serve_zeros
        sink = SnapshotSink()
        shutdown_event = asyncio.Event()

        async def _trigger_shutdown() -> None:
            await asyncio.sleep(0.05)
            shutdown_event.set()

        trigger = asyncio.create_task(_trigger_shutdown())
        driver = await asyncio.wait_for(
            run_adapter(
                transport=transport,
                sink=sink,
                poll_interval_s=0.01,
                slave_id=1,
                shutdown_event=shutdown_event,
            ),
            timeout=5.0,
        )
        await trigger

        assert driver.state is DriverState.DISPOSED
        assert transport.read_registers.await_count >= 2
        assert sink.status.status is ConnectionStatus.ONLINE
        assert sink.values

    @pytest.mark.asyncio
    async def test_configuration_error_returns_early(self, transport: AsyncMock) -> None:
        sink = SnapshotSink()
        shutdown_event = asyncio.Event()

        driver = await asyncio.wait_for(
            run_adapter(
                transport=transport,
                sink=sink,
                poll_interval_s=0,
                slave_id=1,
                shutdown_event=shutdown_event,
            ),
            timeout=5.0,
        )

        assert driver.state is DriverState.FAILED
        assert sink.status.detail is StatusDetail.CONFIGURATION_ERROR
        transport.read_registers.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_shutdown_logged(
        self, transport: AsyncMock, caplog: pytest.LogCaptureFixture
    ) -> None:
        transport.read_registers.side_effect = _serve_zeros
        shutdown_event = asyncio.Event()
        shutdown_event.set()

        with caplog.at_level(logging.INFO, logger="sunsynk.src.main"):
            await run_adapter(
                transport=transport,
                sink=SnapshotSink(),
                poll_interval_s=10,
                slave_id=1,
                shutdown_event=shutdown_event,
            )
        assert "Shutdown complete" in caplog.text


# ===========================================================================
# Signals
# ===========================================================================


class TestSignalHandling:
    """SIGTERM/SIGINT trigger graceful shutdown."""

    def test_handle_signal_sets_event(self) -> None:
        event = asyncio.Event()
        _handle_signal(event)
        assert event.is_set()


# ===========================================================================
# Logging
# ===========================================================================


class TestStartupLogging:
    """Startup logs a config summary."""

    def test_contains_host_and_interval(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="sunsynk.src.main"):
            log_config_summary(_make_settings())
        assert "192.168.1.60" in caplog.text
        assert "poll_interval_s=7" in caplog.text
        assert "/tmp/test-health.json" in caplog.text
        assert "sunsynk_timezone=Europe/Amsterdam" in caplog.text


class TestJsonLogging:
    """configure_logging() installs a JSON formatter on the root logger."""

    def test_json_output(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            configure_logging(logging.DEBUG)
            (handler,) = root.handlers
            record = logging.LogRecord(
                "sunsynk.src.poller", logging.WARNING, __file__, 1, "read %s", ("failed",), None
            )
            entry = json.loads(handler.formatter.format(record))
            assert entry["level"] == "WARNING"
            assert entry["logger"] == "sunsynk.src.poller"
            assert entry["msg"] == "read failed"
            assert "ts" in entry
            assert root.level == logging.DEBUG
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)


# ===========================================================================
# async_main wiring
# ===========================================================================


class TestAsyncMain:
    """async_main() builds components from settings."""

    @pytest.mark.asyncio
    async def test_wires_settings(self, tmp_path: Path) -> None:
        settings = _make_settings(health_path=str(tmp_path / "health.json"))
        transport_cls = MagicMock()
        transport_cm = transport_cls.return_value
        transport_cm.__aenter__ = AsyncMock(return_value=transport_cm)
        transport_cm.__aexit__ = AsyncMock(return_value=None)

        with (
            patch("sunsynk.src.main.configure_logging"),
            patch("sunsynk.src.config.AdapterSettings", return_value=settings),
            patch("sunsynk.src.transport.ModbusTransport", transport_cls),
            patch("sunsynk.src.main.run_adapter", new_callable=AsyncMock) as run,
        ):
            await async_main()

        transport_cls.assert_called_once_with(
            host="192.168.1.60", port=502, slave_id=1, timeout=4.0
        )
        kwargs = run.await_args.kwargs
        assert kwargs["transport"] is transport_cm
        assert kwargs["poll_interval_s"] == 7
        assert kwargs["slave_id"] == 1
        assert kwargs["zone"] == ZoneInfo("Europe/Amsterdam")
        assert isinstance(kwargs["sink"], SnapshotSink)
        transport_cm.__aexit__.assert_awaited_once()
