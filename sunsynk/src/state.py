"""
Per-pass scratch state for derived values.

:class:`PollState` caches the raw values of the handful of measurements that
other values are computed from: the four power readings behind the
essential / non-essential load powers and the six timer program start times
used to validate timer commands.

The state is owned by a single :class:`~sunsynk.src.poller.PollCycleDriver`
and is only written from its read-completion handler, which never awaits,
so completions are applied one at a time by the event loop.

Derived load powers are computed from whatever inputs have been seen so far.
When the batching splits the inputs across several requests, a value may be
combined with inputs from the previous pass; it is not an atomic snapshot.

CHANGELOG:
- 2026-10-11: Initial creation

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sunsynk.src.converter import to_signed
from sunsynk.src.registers import TIMER_PROGRAM_COUNT, DerivedInput, MeasurementDef


def _empty_timers() -> list[int | None]:
    return [None] * TIMER_PROGRAM_COUNT


@dataclass
class PollState:
    """Raw inputs for derived calculations, overwritten on every pass."""

    inverter_power: int | None = None
    grid_l1_power: int | None = None
    aux_power: int | None = None
    ct_power: int | None = None
    timer_start: list[int | None] = field(default_factory=_empty_timers)

    def record(self, definition: MeasurementDef, raw: int) -> bool:
        """Cache *raw* if *definition* feeds a derived calculation.

        Power readings are stored as signed 16-bit, timer starts as the
        unsigned packed ``HHMM`` value.

        Returns:
            True if the value was cached.
        """
        feeds = definition.feeds
        if feeds is None:
            return False
        if feeds is DerivedInput.TIMER_START:
            self.timer_start[definition.program - 1] = raw & 0xFFFF
            return True

        value = to_signed(raw, 16)
        if feeds is DerivedInput.INVERTER_POWER:
            self.inverter_power = value
        elif feeds is DerivedInput.GRID_L1_POWER:
            self.grid_l1_power = value
        elif feeds is DerivedInput.AUX_POWER:
            self.aux_power = value
        elif feeds is DerivedInput.CT_POWER:
            self.ct_power = value
        return True

    @property
    def ready(self) -> bool:
        """Whether every load-power input has been seen at least once."""
        return None not in (
            self.inverter_power,
            self.grid_l1_power,
            self.aux_power,
            self.ct_power,
        )

    def essential_load_power(self) -> int:
        """Inverter power plus grid L1 power minus AUX port power."""
        return self.inverter_power + self.grid_l1_power - self.aux_power

    def non_essential_load_power(self) -> int:
        """CT power minus grid L1 power, never negative."""
        return max(0, self.ct_power - self.grid_l1_power)

    def timer_start_for(self, program: int) -> int | None:
        """Cached packed start time of timer *program* (1-based)."""
        return self.timer_start[program - 1]
