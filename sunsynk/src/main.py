"""
Adapter daemon entrypoint for the Sunsynk Modbus poller.

Loads settings, builds the Modbus transport, the snapshot sink with its
health file and the poll cycle driver, then runs the driver's periodic
schedules until SIGTERM/SIGINT.  Shutdown disposes the driver, waits for the
schedules to exit and closes the transport.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-17: Pass the configured time zone to the driver
- 2026-10-14: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from datetime import UTC, datetime, tzinfo
from typing import TYPE_CHECKING

from sunsynk.src.converter import local_zone
from sunsynk.src.health import HealthWriter
from sunsynk.src.poller import PollCycleDriver
from sunsynk.src.sink import SnapshotSink

if TYPE_CHECKING:
    from sunsynk.src.transport import ModbusTransport

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging for the adapter daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


# ---------------------------------------------------------------------------
# Startup config logging
# ---------------------------------------------------------------------------


def log_config_summary(settings: object) -> None:
    """Log a config summary at startup.

    Args:
        settings: An AdapterSettings instance (or any object with the same attrs).
    """
    logger.info(
        "Sunsynk adapter starting with config: "
        "sunsynk_host=%s, sunsynk_port=%s, sunsynk_slave_id=%s, "
        "poll_interval_s=%s, modbus_timeout_s=%s, health_path=%s, "
        "sunsynk_timezone=%s",
        settings.sunsynk_host,  # type: ignore[attr-defined]
        settings.sunsynk_port,  # type: ignore[attr-defined]
        settings.sunsynk_slave_id,  # type: ignore[attr-defined]
        settings.poll_interval_s,  # type: ignore[attr-defined]
        settings.modbus_timeout_s,  # type: ignore[attr-defined]
        settings.health_path,  # type: ignore[attr-defined]
        settings.sunsynk_timezone,  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Runner with graceful shutdown
# ---------------------------------------------------------------------------


async def run_adapter(
    *,
    transport: ModbusTransport,
    sink: SnapshotSink,
    poll_interval_s: float,
    slave_id: int,
    shutdown_event: asyncio.Event,
    zone: tzinfo | None = None,
) -> PollCycleDriver:
    """Run the poll cycle driver until *shutdown_event* is set.

    Returns the driver after it has been disposed, or immediately if
    initialization failed.
    """
    driver = PollCycleDriver(
        transport=transport,
        sink=sink,
        poll_interval_s=poll_interval_s,
        slave_id=slave_id,
        zone=zone,
    )
    if not driver.initialize():
        logger.error("Adapter initialization failed: %s", sink.status.reason)
        return driver

    driver.start()
    await shutdown_event.wait()

    driver.dispose()
    await driver.wait_closed()
    logger.info("Shutdown complete")
    return driver


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> None:
    """Async entrypoint: load config, build components, run the adapter.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.
    """
    configure_logging()

    from sunsynk.src.config import AdapterSettings
    from sunsynk.src.transport import ModbusTransport

    settings = AdapterSettings()
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    sink = SnapshotSink(HealthWriter(settings.health_path))

    async with ModbusTransport(
        host=settings.sunsynk_host,
        port=settings.sunsynk_port,
        slave_id=settings.sunsynk_slave_id,
        timeout=settings.modbus_timeout_s,
    ) as transport:
        await run_adapter(
            transport=transport,
            sink=sink,
            poll_interval_s=settings.poll_interval_s,
            slave_id=settings.sunsynk_slave_id,
            shutdown_event=shutdown_event,
            zone=local_zone(settings.sunsynk_timezone),
        )


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the adapter daemon."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
