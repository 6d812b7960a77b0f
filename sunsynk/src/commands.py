"""
Command path: writes settings back to the inverter.

Callers address a writable measurement by ``"<group>-<channel name>"``
(for example ``settings-timer-prog3-time``).  Unknown addresses are ignored.
Values are encoded for the measurement's wire type and written with the
request retry budget.  Failures are logged, never raised: a failed write
does not change the connection status.

Masked settings share a register with other settings, so they are written
read-modify-write: only the bits under the mask change.  Commands for the
same register are serialized so concurrent writes cannot drop bits.

Timer program start times must stay strictly ordered.  A new start for
program *n* has to fall after program *n - 1* and before program *n + 1*
(program 1 after 00:00, program 6 before 23:59).  Out-of-window values are
clamped one minute inside the nearest boundary instead of being rejected.

CHANGELOG:
- 2026-10-17: Hold a per-register lock across read-modify-write
- 2026-10-17: Write split values in one request
- 2026-10-14: Clamp out-of-order timer starts to the nearest boundary
- 2026-10-13: Read-modify-write for masked settings
- 2026-10-12: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING

from sunsynk.src.batcher import DEFAULT_TRIES
from sunsynk.src.converter import encode, encode_packed_time
from sunsynk.src.exceptions import CommunicationError
from sunsynk.src.registers import (
    MASKS,
    TIMER_PROGRAM_COUNT,
    DerivedInput,
    MeasurementDef,
    find_by_command_key,
)

if TYPE_CHECKING:
    from sunsynk.src.state import PollState
    from sunsynk.src.transport import ModbusTransport

logger = logging.getLogger(__name__)

CommandValue = Decimal | float | int | str | datetime | time

FIRST_PROGRAM_FLOOR = 0
"""Program 1 must start strictly after 00:00."""

LAST_PROGRAM_CEILING = 23 * 60 + 59
"""Program 6 must start strictly before 23:59."""


# ---------------------------------------------------------------------------
# Timer command helpers
# ---------------------------------------------------------------------------


def _packed_to_minutes(packed: int) -> int:
    return (packed // 100) * 60 + packed % 100


def _minutes_to_packed(minutes: int) -> int:
    return encode_packed_time(minutes // 60, minutes % 60)


def parse_timer_value(value: CommandValue) -> int:
    """Convert a timer command into a packed ``HHMM`` integer.

    Accepts a :class:`datetime`, a :class:`time`, an ISO-8601 string, an
    ``"HH:MM"`` string or an already packed number.  Minutes above 59 in a
    packed number are rounded up to the next full hour.

    Raises:
        ValueError: If the value cannot be read as a time of day.
    """
    if isinstance(value, datetime):
        return encode_packed_time(value.hour, value.minute)
    if isinstance(value, time):
        return encode_packed_time(value.hour, value.minute)
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            packed = int(text)
        else:
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                parsed_time = time.fromisoformat(text)
                return encode_packed_time(parsed_time.hour, parsed_time.minute)
            return encode_packed_time(parsed.hour, parsed.minute)
    else:
        packed = int(value)

    if packed < 0:
        msg = f"Timer value {value!r} is negative"
        raise ValueError(msg)
    if packed % 100 > 59:
        rounded = packed - packed % 100 + 100
        logger.warning("Timer minutes over 59 in %s, using %04d", packed, rounded)
        packed = rounded
    if packed // 100 > 23:
        msg = f"Timer value {value!r} is not a time of day"
        raise ValueError(msg)
    return packed


def clamp_timer_start(
    program: int,
    packed: int,
    starts: list[int | None],
) -> int | None:
    """Fit a new start time for *program* between its neighbours.

    Args:
        program: Timer program index, 1-based.
        packed: Requested start as packed ``HHMM``.
        starts: Current packed start of every program.

    Returns:
        The packed start to write, clamped one minute inside the window
        when the request falls outside it.  When the window holds no valid
        minute the program's current start is kept.  ``None`` if a
        neighbour's start is unknown.
    """
    if program == 1:
        lower = FIRST_PROGRAM_FLOOR
    else:
        previous = starts[program - 2]
        if previous is None:
            return None
        lower = _packed_to_minutes(previous)

    if program == TIMER_PROGRAM_COUNT:
        upper = LAST_PROGRAM_CEILING
    else:
        following = starts[program]
        if following is None:
            return None
        upper = _packed_to_minutes(following)

    requested = _packed_to_minutes(packed)
    if lower < requested < upper:
        return packed

    if upper - lower < 2:
        current = starts[program - 1]
        logger.warning(
            "Timer prog%d has no room between %04d and %04d, keeping current start",
            program,
            _minutes_to_packed(lower),
            _minutes_to_packed(upper),
        )
        return current

    clamped = lower + 1 if requested <= lower else upper - 1
    logger.warning(
        "Timer prog%d start %04d out of range, clamped to %04d",
        program,
        packed,
        _minutes_to_packed(clamped),
    )
    return _minutes_to_packed(clamped)


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------


class CommandWriter:
    """Encodes and writes commands for writable measurements.

    Args:
        transport: Modbus transport used for reads and writes.
        state: Poll state holding the last seen timer program starts.
        tries: Retry budget for each write.
    """

    def __init__(
        self,
        transport: ModbusTransport,
        state: PollState,
        *,
        tries: int = DEFAULT_TRIES,
    ) -> None:
        self._transport = transport
        self._state = state
        self._tries = tries
        self._register_locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def write(self, command_key: str, value: CommandValue) -> bool:
        """Write *value* to the measurement addressed by *command_key*.

        Returns:
            True if the write succeeded.  False if the address is unknown or
            not writable, the value is invalid, or the transport failed.
        """
        definition = find_by_command_key(command_key)
        if definition is None:
            logger.debug("No measurement for command %s, ignoring", command_key)
            return False
        if not definition.writable:
            logger.warning("Measurement %s is read-only, ignoring command", command_key)
            return False

        try:
            if definition.feeds is DerivedInput.TIMER_START:
                return await self._write_timer(definition, value)
            if definition.conversion in MASKS:
                return await self._write_masked(definition, value)
            words = encode(definition, _to_decimal(value))
        except (ValueError, ArithmeticError) as err:
            logger.error("Invalid value %r for %s: %s", value, command_key, err)
            return False

        return await self._write_words(definition, words)

    async def _write_timer(self, definition: MeasurementDef, value: CommandValue) -> bool:
        packed = parse_timer_value(value)
        fixed = clamp_timer_start(definition.program, packed, self._state.timer_start)
        if fixed is None:
            logger.warning(
                "Timer starts not polled yet, cannot validate %s",
                definition.command_key,
            )
            return False
        ok = await self._write_words(definition, [fixed])
        if ok:
            self._state.timer_start[definition.program - 1] = fixed
        return ok

    async def _write_masked(self, definition: MeasurementDef, value: CommandValue) -> bool:
        mask = MASKS[definition.conversion]
        new_bits = int(_to_decimal(value))
        if new_bits & ~mask:
            msg = f"value {new_bits:#x} has bits outside mask {mask:#x}"
            raise ValueError(msg)

        async with self._register_locks[definition.wire_address]:
            try:
                (current,) = await self._transport.read_registers(
                    definition.wire_address, 1, self._tries
                )
            except CommunicationError as err:
                logger.error("Modbus Write fail - %s: %s", definition.command_key, err)
                return False

            merged = (current & ~mask & 0xFFFF) | new_bits
            return await self._write_words(definition, [merged])

    async def _write_words(self, definition: MeasurementDef, words: list[int]) -> bool:
        # Split values are adjacent, so [low, high] goes out as one request.
        try:
            await self._transport.write_registers(
                definition.wire_address, words, self._tries
            )
        except CommunicationError as err:
            logger.error("Modbus Write fail - %s: %s", definition.command_key, err)
            return False

        logger.info("Modbus Write success - %s = %s", definition.command_key, words)
        return True


def _to_decimal(value: CommandValue) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (datetime, time)):
        msg = f"expected a number, got {type(value).__name__}"
        raise ValueError(msg)
    return Decimal(str(value))
