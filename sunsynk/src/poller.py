"""
Poll cycle driver for the Sunsynk inverter.

Builds the request plan once at initialization, then runs every read
request on its own periodic asyncio schedule.  Each completed read is
decoded measurement by measurement and published to the output sink,
followed by the derived load powers when the request covers the load-power
window.  Designed to be robust:

- Never crashes a schedule on any error.
- A failed read turns the status OFFLINE with a communication-error detail;
  the next tick retries.  Only configuration problems are fatal.
- A measurement that cannot be decoded is dropped for that pass without
  affecting the rest of the request.
- Read completions are handled without awaiting, so the event loop applies
  them to the shared poll state one at a time.

Lifecycle::

    UNINITIALIZED -> PLANNING -> IDLE <-> POLLING
                  \\-> FAILED (configuration error)
    any -> DISPOSED

CHANGELOG:
- 2026-10-17: Refuse writes before a plan exists; cache raw inputs only once decoded
- 2026-10-17: Decode timer starts in a named time zone
- 2026-10-14: Discard read results that complete after dispose()
- 2026-10-13: Publish derived load powers from tagged inputs
- 2026-10-12: Route writes through the command path
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, tzinfo
from decimal import Decimal
from typing import TYPE_CHECKING

from sunsynk.src.batcher import (
    DEFAULT_MAX_REGISTERS,
    DEFAULT_TRIES,
    ReadRequest,
    RequestPlan,
    build_plan,
)
from sunsynk.src.commands import CommandValue, CommandWriter
from sunsynk.src.converter import decode, extract_raw, local_zone
from sunsynk.src.exceptions import CommunicationError, ConfigurationError, DecodeError
from sunsynk.src.models import ConnectionStatus, Quantity, StatusDetail
from sunsynk.src.registers import (
    CATALOG,
    DERIVED_GROUP,
    ESSENTIAL_LOAD_CHANNEL,
    LOAD_WINDOW_ADDRESS,
    NON_ESSENTIAL_LOAD_CHANNEL,
    MeasurementDef,
)
from sunsynk.src.state import PollState

if TYPE_CHECKING:
    from sunsynk.src.sink import OutputSink
    from sunsynk.src.transport import ModbusTransport

logger = logging.getLogger(__name__)

REFRESH = "REFRESH"
"""Command value that triggers a one-time poll of every request."""

MIN_SLAVE_ID = 1
MAX_SLAVE_ID = 247


class DriverState(enum.Enum):
    UNINITIALIZED = "UNINITIALIZED"
    PLANNING = "PLANNING"
    IDLE = "IDLE"
    POLLING = "POLLING"
    FAILED = "FAILED"
    DISPOSED = "DISPOSED"


class PollCycleDriver:
    """Schedules reads, decodes results and tracks connection status.

    Args:
        transport: Modbus transport issuing reads and writes.
        sink: Receives decoded values and status changes.
        poll_interval_s: Seconds between reads of each request (must be > 0).
        slave_id: Modbus unit ID (1-247).
        catalog: Measurements to poll, in batching order.
        max_registers: Register ceiling per read request.
        tries: Retry budget per request and per write.
        clock: Returns the current aware datetime; used to decode timer
            start times.  Defaults to the current time in *zone*.
        zone: Time zone timer start times are placed in.  Defaults to
            :func:`~sunsynk.src.converter.local_zone`.
    """

    def __init__(
        self,
        *,
        transport: ModbusTransport,
        sink: OutputSink,
        poll_interval_s: float,
        slave_id: int = 1,
        catalog: Iterable[MeasurementDef] = CATALOG,
        max_registers: int = DEFAULT_MAX_REGISTERS,
        tries: int = DEFAULT_TRIES,
        clock: Callable[[], datetime] | None = None,
        zone: tzinfo | None = None,
    ) -> None:
        self._transport = transport
        self._sink = sink
        self._poll_interval_s = poll_interval_s
        self._slave_id = slave_id
        self._catalog = tuple(catalog)
        self._max_registers = max_registers
        self._tries = tries
        self._zone = zone if zone is not None else local_zone()
        self._clock = clock if clock is not None else self._local_now

        self.state = DriverState.UNINITIALIZED
        self.status = ConnectionStatus.UNKNOWN
        self.plan: RequestPlan | None = None
        self.poll_state = PollState()
        self._commands = CommandWriter(transport, self.poll_state, tries=tries)
        self._shutdown = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []
        self._in_flight = 0

    def _local_now(self) -> datetime:
        return datetime.now(self._zone)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> bool:
        """Validate configuration and build the request plan.

        Returns:
            True on success.  On a configuration error the status becomes
            OFFLINE / CONFIGURATION_ERROR, no plan is built and the driver
            stays FAILED.
        """
        if self._poll_interval_s <= 0:
            return self._fail(f"Invalid poll interval: {self._poll_interval_s}")
        if not MIN_SLAVE_ID <= self._slave_id <= MAX_SLAVE_ID:
            return self._fail(f"Invalid slave id: {self._slave_id}")

        self._set_status(ConnectionStatus.UNKNOWN)
        self.state = DriverState.PLANNING
        try:
            self.plan = build_plan(
                self._catalog,
                self._max_registers,
                slave_id=self._slave_id,
                tries=self._tries,
            )
        except ConfigurationError as err:
            return self._fail(str(err))

        self.state = DriverState.IDLE
        logger.info(
            "Request plan built: %d requests covering %d measurements",
            len(self.plan),
            self.plan.measurement_count,
        )
        return True

    def start(self) -> None:
        """Register one periodic schedule per read request."""
        if self.plan is None or self.state in (DriverState.FAILED, DriverState.DISPOSED):
            logger.warning("Driver not initialized (state=%s), not starting", self.state.value)
            return
        for idx, request in enumerate(self.plan):
            task = asyncio.create_task(self._run_schedule(request), name=f"poll-request-{idx}")
            self._tasks.append(task)
        logger.info(
            "Started %d poll schedules (interval=%ss)",
            len(self._tasks),
            self._poll_interval_s,
        )

    def dispose(self) -> None:
        """Stop all schedules.

        Reads already on the wire are allowed to finish, but their results
        are discarded.
        """
        self.state = DriverState.DISPOSED
        self._shutdown.set()
        logger.info("Poll cycle driver disposed")

    async def wait_closed(self) -> None:
        """Wait for every schedule to exit after :meth:`dispose`."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    @property
    def disposed(self) -> bool:
        return self.state is DriverState.DISPOSED

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _run_schedule(self, request: ReadRequest) -> None:
        while not self._shutdown.is_set():
            await self.poll_request(request)
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    self._shutdown.wait(),
                    timeout=self._poll_interval_s,
                )

    async def refresh(self) -> None:
        """Poll every request once, outside the regular schedule."""
        if self.plan is None or self.disposed or not len(self.plan):
            return
        await asyncio.gather(*(self.poll_request(r) for r in self.plan))

    async def poll_request(self, request: ReadRequest) -> None:
        """Read one request and publish its values.

        Never raises: failures become status updates.
        """
        if self.disposed:
            return

        self._in_flight += 1
        self.state = DriverState.POLLING
        try:
            words = await self._transport.read_registers(
                request.start_address,
                request.length,
                request.tries,
            )
        except CommunicationError as err:
            self._handle_read_error(err)
        except Exception as err:
            logger.warning(
                "Unexpected error reading %d registers at %d",
                request.length,
                request.start_address,
                exc_info=True,
            )
            self._handle_read_error(err)
        else:
            if self.disposed:
                logger.debug(
                    "Discarding result for request at %d after dispose",
                    request.start_address,
                )
            else:
                try:
                    self._handle_read_success(request, words)
                except Exception:
                    logger.error("Poll cycle error", exc_info=True)
        finally:
            self._in_flight -= 1
            if self._in_flight == 0 and self.state is DriverState.POLLING:
                self.state = DriverState.IDLE

    def _handle_read_success(self, request: ReadRequest, words: Sequence[int]) -> None:
        if self.status is not ConnectionStatus.ONLINE:
            self._set_status(ConnectionStatus.ONLINE)

        now = self._clock()
        for definition in request.measurements:
            index = request.index_of(definition.address)
            index2 = (
                request.index_of(definition.secondary_address)
                if definition.secondary_address is not None
                else None
            )
            try:
                raw = extract_raw(definition, words, index, index2)
                value = decode(definition, raw, now=now)
            except DecodeError as err:
                logger.debug("Skipping %s this pass: %s", definition.key, err)
                continue
            self.poll_state.record(definition, raw)
            self._sink.update_value(definition.group, definition.name, value)

        if request.covers(LOAD_WINDOW_ADDRESS):
            self._publish_derived()

    def _publish_derived(self) -> None:
        state = self.poll_state
        if not state.ready:
            logger.debug("Derived load power inputs incomplete, skipping")
            return
        self._sink.update_value(
            DERIVED_GROUP,
            ESSENTIAL_LOAD_CHANNEL,
            Quantity(value=Decimal(state.essential_load_power()), unit="W"),
        )
        self._sink.update_value(
            DERIVED_GROUP,
            NON_ESSENTIAL_LOAD_CHANNEL,
            Quantity(value=Decimal(state.non_essential_load_power()), unit="W"),
        )

    def _handle_read_error(self, err: Exception) -> None:
        if self.disposed:
            return
        logger.warning("Failed to get modbus data - %s", err)
        self._set_status(
            ConnectionStatus.OFFLINE,
            StatusDetail.COMMUNICATION_ERROR,
            f"Failed to retrieve data: {err}",
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def handle_command(self, command_key: str, value: CommandValue) -> bool:
        """Handle a command addressed by ``"<group>-<channel name>"``.

        :data:`REFRESH` polls every request once.  Anything else is written
        through the command path once a request plan exists.  Never raises.
        """
        if value == REFRESH:
            await self.refresh()
            return True
        if self.disposed:
            return False
        if self.plan is None:
            logger.warning(
                "Driver is %s, ignoring command %s", self.state.value, command_key
            )
            return False
        return await self._commands.write(command_key, value)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def _set_status(
        self,
        status: ConnectionStatus,
        detail: StatusDetail = StatusDetail.NONE,
        reason: str = "",
    ) -> None:
        self.status = status
        self._sink.update_status(status, detail, reason)

    def _fail(self, reason: str) -> bool:
        logger.error("Configuration error: %s", reason)
        self.state = DriverState.FAILED
        self._set_status(
            ConnectionStatus.OFFLINE,
            StatusDetail.CONFIGURATION_ERROR,
            reason,
        )
        return False
