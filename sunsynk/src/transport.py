"""
Async Modbus TCP transport for the Sunsynk inverter.

Wraps a pymodbus :class:`AsyncModbusTcpClient` and exposes the two calls the
poll cycle driver needs: read a block of holding registers and write a block
of holding registers.  Designed to be robust:

- Connects lazily and reconnects after a failed attempt.
- An :class:`asyncio.Lock` serializes wire access, so overlapping requests
  from independent schedules never interleave on the socket.
- Each call makes up to ``tries`` attempts and then raises a
  :class:`~sunsynk.src.exceptions.CommunicationError` subclass carrying the
  last cause.  No retry happens beyond that budget.

CHANGELOG:
- 2026-10-12: Add write_registers for the command path
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException

from sunsynk.src.exceptions import (
    CommunicationError,
    TransportConnectionError,
    TransportReadError,
    TransportWriteError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MODBUS_TIMEOUT_S: float = 10.0
"""Timeout per Modbus TCP request in seconds."""

_TRANSIENT_ERRORS = (ModbusException, OSError, asyncio.TimeoutError)


class ModbusTransport:
    """Serialized, retrying access to one Modbus TCP device.

    Args:
        host: Inverter (or data logger) IP address or hostname.
        port: Modbus TCP port (default 502).
        slave_id: Modbus slave / unit ID (default 1).
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = 502,
        slave_id: int = 1,
        timeout: float = MODBUS_TIMEOUT_S,
    ) -> None:
        self._host = host
        self._port = port
        self._slave_id = slave_id
        self._client = AsyncModbusTcpClient(host, port=port, timeout=timeout)
        self._lock = asyncio.Lock()

    @property
    def slave_id(self) -> int:
        return self._slave_id

    async def __aenter__(self) -> ModbusTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    async def connect(self) -> None:
        """Open the TCP connection if it is not already open.

        Raises:
            TransportConnectionError: If the connection cannot be opened.
        """
        if self._client.connected:
            return
        try:
            ok = await self._client.connect()
        except _TRANSIENT_ERRORS as err:
            msg = f"Failed to connect to {self._host}:{self._port}: {err}"
            raise TransportConnectionError(msg) from err
        if not ok:
            msg = f"Failed to connect to {self._host}:{self._port}"
            raise TransportConnectionError(msg)
        logger.info("Connected to Modbus device %s:%d", self._host, self._port)

    def close(self) -> None:
        """Close the TCP connection."""
        self._client.close()

    async def read_registers(self, address: int, count: int, tries: int) -> list[int]:
        """Read *count* holding registers starting at 0-based *address*.

        Raises:
            TransportReadError: After *tries* failed attempts.
        """
        last_error: Exception | None = None
        async with self._lock:
            for attempt in range(1, tries + 1):
                try:
                    await self.connect()
                    response = await self._client.read_holding_registers(
                        address,
                        count=count,
                        device_id=self._slave_id,
                    )
                    if response.isError():
                        msg = f"Modbus error response: {response}"
                        raise TransportReadError(msg)
                    registers = list(response.registers)
                    if len(registers) < count:
                        msg = f"Short response: {len(registers)} of {count} registers"
                        raise TransportReadError(msg)
                    return registers
                except (CommunicationError, *_TRANSIENT_ERRORS) as err:
                    last_error = err
                    logger.debug(
                        "Read attempt %d/%d failed (address=%d, count=%d): %s",
                        attempt,
                        tries,
                        address,
                        count,
                        err,
                    )
                    if not isinstance(err, CommunicationError):
                        self._reset()

        msg = f"Read of {count} registers at {address} failed: {last_error}"
        raise TransportReadError(msg) from last_error

    async def write_registers(self, address: int, values: list[int], tries: int) -> None:
        """Write *values* to consecutive holding registers at 0-based *address*.

        Raises:
            TransportWriteError: After *tries* failed attempts.
        """
        last_error: Exception | None = None
        async with self._lock:
            for attempt in range(1, tries + 1):
                try:
                    await self.connect()
                    response = await self._client.write_registers(
                        address,
                        values,
                        device_id=self._slave_id,
                    )
                    if response.isError():
                        msg = f"Modbus error response: {response}"
                        raise TransportWriteError(msg)
                    return
                except (CommunicationError, *_TRANSIENT_ERRORS) as err:
                    last_error = err
                    logger.debug(
                        "Write attempt %d/%d failed (address=%d): %s",
                        attempt,
                        tries,
                        address,
                        err,
                    )
                    if not isinstance(err, CommunicationError):
                        self._reset()

        msg = f"Write of {len(values)} registers at {address} failed: {last_error}"
        raise TransportWriteError(msg) from last_error

    def _reset(self) -> None:
        """Drop a possibly broken connection so the next attempt reconnects."""
        if self._client.connected:
            self._client.close()
