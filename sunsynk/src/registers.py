"""
Sunsynk single-phase hybrid inverter register catalog -- single source of truth.

Defines every measurement the adapter polls: register address, wire type,
decimal scale, conversion rule, unit and the output channel (group + name)
the decoded value is published to.

Addresses in this catalog are 1-based, as printed in the Sunsynk register
documentation.  They are converted to 0-based wire addresses (``address - 1``)
only when a read or write request is issued.

The declared order of :data:`CATALOG` is part of its contract: the request
batcher groups definitions greedily in iteration order, so addresses must be
non-decreasing.

References:
    - Sunsynk / Deye single-phase hybrid Modbus register map (holding, FC03)

CHANGELOG:
- 2026-10-17: Add the signed total active power pair at 63/64
- 2026-10-17: Writable split values must occupy adjacent registers
- 2026-10-12: Tag derived-calculation inputs instead of matching raw addresses
- 2026-10-12: Declare swapped 32-bit totals as low/high register pairs
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal

from sunsynk.src.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# Scaling multipliers (decimal, never float)
# ---------------------------------------------------------------------------

ONE = Decimal(1)
DIV_BY_TEN = Decimal("0.1")
DIV_BY_HUNDRED = Decimal("0.01")
DIV_BY_THOU = Decimal("0.001")

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ValueType(enum.Enum):
    """Wire type of a register value: ``(bits, signed)``."""

    INT16 = (16, True)
    UINT16 = (16, False)
    INT32 = (32, True)
    UINT32 = (32, False)
    UINT64 = (64, False)

    @property
    def bits(self) -> int:
        return self.value[0]

    @property
    def signed(self) -> bool:
        return self.value[1]

    @property
    def register_count(self) -> int:
        """Number of 16-bit registers occupied on the wire."""
        return self.bits // 16


class Conversion(enum.Enum):
    """Nonlinear transform applied after scaling.

    The dispatch table lives in :mod:`sunsynk.src.converter`.
    """

    IDENTITY = "identity"
    CELSIUS_TO_KELVIN = "celsius_to_kelvin"
    OFFSET_KELVIN = "offset_kelvin"
    MASK_1C = "mask_1c"
    MASK_03 = "mask_03"
    MASK_01 = "mask_01"
    TIME = "time"


MASKS: dict[Conversion, int] = {
    Conversion.MASK_1C: 0x1C,
    Conversion.MASK_03: 0x03,
    Conversion.MASK_01: 0x01,
}
"""Bit masks for settings that share a register with other settings."""


class OutputKind(enum.Enum):
    """Kind of typed value produced for the output sink."""

    QUANTITY = "quantity"
    TIMESTAMP = "timestamp"


class DerivedInput(enum.Enum):
    """Marks a measurement whose raw value feeds a derived calculation."""

    INVERTER_POWER = "inverter_power"
    GRID_L1_POWER = "grid_l1_power"
    AUX_POWER = "aux_power"
    CT_POWER = "ct_power"
    TIMER_START = "timer_start"


# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MeasurementDef:
    """Definition of a single logical measurement.

    Attributes:
        key: Unique UPPER_SNAKE identifier; the channel name is derived
            from it.
        address: 1-based register address of the value (the low word for
            split values).
        value_type: Wire type, which also fixes the register count.
        group: Output channel group.
        unit: Engineering unit of the decoded value (``""`` if none).
        scale: Decimal multiplier applied to the raw integer.
        conversion: Transform applied after scaling.
        output: Kind of typed value emitted.
        secondary_address: 1-based address of the high word for values split
            across two 16-bit registers, combined as ``(high << 16) | low``.
            A signed type makes the combined 32-bit value signed.  Writable
            split values must use adjacent registers.
        writable: Whether the command path may write this measurement.
        feeds: Derived calculation this measurement contributes to.
        program: Timer program index (1..6) for timer start times.
        description: Free-text description.
    """

    key: str
    address: int
    value_type: ValueType
    group: str
    unit: str = ""
    scale: Decimal = ONE
    conversion: Conversion = Conversion.IDENTITY
    output: OutputKind = OutputKind.QUANTITY
    secondary_address: int | None = None
    writable: bool = False
    feeds: DerivedInput | None = None
    program: int | None = None
    description: str = field(default="", repr=False)

    def __post_init__(self) -> None:  # noqa: D105
        if self.address < 1:
            msg = f"Measurement '{self.key}': address must be >= 1, got {self.address}"
            raise ConfigurationError(msg)
        if self.secondary_address is not None:
            if self.secondary_address <= self.address:
                msg = (
                    f"Measurement '{self.key}': invalid secondary address "
                    f"{self.secondary_address}"
                )
                raise ConfigurationError(msg)
            if self.value_type.register_count != 1:
                msg = (
                    f"Measurement '{self.key}': split values must use a "
                    f"16-bit type, got {self.value_type.name}"
                )
                raise ConfigurationError(msg)
            if self.writable and self.secondary_address != self.address + 1:
                msg = (
                    f"Measurement '{self.key}': writable split values need adjacent "
                    f"registers, got {self.address}/{self.secondary_address}"
                )
                raise ConfigurationError(msg)
        if (self.conversion is Conversion.TIME) != (self.output is OutputKind.TIMESTAMP):
            msg = f"Measurement '{self.key}': TIME conversion requires TIMESTAMP output"
            raise ConfigurationError(msg)
        if self.feeds is DerivedInput.TIMER_START and self.program is None:
            msg = f"Measurement '{self.key}': timer start needs a program index"
            raise ConfigurationError(msg)

    @property
    def name(self) -> str:
        """Channel name, e.g. ``BATTERY_SOC`` -> ``battery-soc``."""
        return self.key.lower().replace("_", "-")

    @property
    def register_count(self) -> int:
        return self.value_type.register_count

    @property
    def wire_address(self) -> int:
        """0-based address sent on the wire."""
        return self.address - 1

    @property
    def last_address(self) -> int:
        """Farthest register address this value starts at."""
        if self.secondary_address is not None:
            return self.secondary_address
        return self.address

    @property
    def end_address(self) -> int:
        """First address past the registers this value occupies."""
        return self.last_address + self.register_count

    @property
    def is_split(self) -> bool:
        return self.secondary_address is not None

    @property
    def command_key(self) -> str:
        """Address used by callers of the command path."""
        return f"{self.group}-{self.name}"


# ---------------------------------------------------------------------------
# Channel groups
# ---------------------------------------------------------------------------

GROUP_OVERVIEW = "overview"
GROUP_GRID = "grid-information"
GROUP_BATTERY = "battery-information"
GROUP_LOAD = "load-information"
GROUP_MPPT = "mppt-information"
GROUP_SETTINGS_SOLAR = "settings-solar"
GROUP_SETTINGS_TIMER = "settings-timer"

# ---------------------------------------------------------------------------
# Derived values
# ---------------------------------------------------------------------------

LOAD_WINDOW_ADDRESS = 178
"""A request covering this address also publishes the derived load powers."""

DERIVED_GROUP = GROUP_LOAD
ESSENTIAL_LOAD_CHANNEL = "essential-load-power"
NON_ESSENTIAL_LOAD_CHANNEL = "non-essential-load-power"

TIMER_PROGRAM_COUNT = 6

# ---------------------------------------------------------------------------
# Energy counters (addresses 63-86)
# Totals are 32-bit values stored low word first.
# ---------------------------------------------------------------------------

_ENERGY: list[MeasurementDef] = [
    MeasurementDef(
        key="TOTAL_ACTIVE_POWER", address=63, secondary_address=64,
        value_type=ValueType.INT16, group=GROUP_OVERVIEW, unit="W",
        description="Total active power",
    ),
    MeasurementDef(
        key="DAILY_BATTERY_CHARGE", address=70, value_type=ValueType.UINT16,
        group=GROUP_BATTERY, unit="kWh", scale=DIV_BY_TEN,
        description="Battery energy charged today",
    ),
    MeasurementDef(
        key="DAILY_BATTERY_DISCHARGE_ENERGY", address=71, value_type=ValueType.UINT16,
        group=GROUP_BATTERY, unit="kWh", scale=DIV_BY_TEN,
        description="Battery energy discharged today",
    ),
    MeasurementDef(
        key="TOTAL_BATTERY_CHARGE", address=72, secondary_address=73,
        value_type=ValueType.UINT16, group=GROUP_BATTERY, unit="kWh",
        scale=DIV_BY_TEN, description="Cumulative battery energy charged",
    ),
    MeasurementDef(
        key="TOTAL_BATTERY_DISCHARGE_ENERGY", address=74, secondary_address=75,
        value_type=ValueType.UINT16, group=GROUP_BATTERY, unit="kWh",
        scale=DIV_BY_TEN, description="Cumulative battery energy discharged",
    ),
    MeasurementDef(
        key="DAILY_IMPORT_ENERGY", address=76, value_type=ValueType.UINT16,
        group=GROUP_GRID, unit="kWh", scale=DIV_BY_TEN,
        description="Energy bought from the grid today",
    ),
    MeasurementDef(
        key="DAILY_GRID_EXPORT_ENERGY", address=77, value_type=ValueType.UINT16,
        group=GROUP_GRID, unit="kWh", scale=DIV_BY_TEN,
        description="Energy sold to the grid today",
    ),
    # High word lives at 80; grid frequency sits in between.
    MeasurementDef(
        key="TOTAL_IMPORT_ENERGY", address=78, secondary_address=80,
        value_type=ValueType.UINT16, group=GROUP_GRID, unit="kWh",
        scale=DIV_BY_TEN, description="Cumulative energy bought from the grid",
    ),
    MeasurementDef(
        key="GRID_FREQUENCY", address=79, value_type=ValueType.UINT16,
        group=GROUP_OVERVIEW, unit="Hz", scale=DIV_BY_HUNDRED,
    ),
    MeasurementDef(
        key="TOTAL_GRID_EXPORT_ENERGY", address=81, secondary_address=82,
        value_type=ValueType.UINT16, group=GROUP_GRID, unit="kWh",
        scale=DIV_BY_TEN, description="Cumulative energy sold to the grid",
    ),
    MeasurementDef(
        key="DAILY_LOAD_ENERGY_CONSUMPTION", address=84, value_type=ValueType.UINT16,
        group=GROUP_LOAD, unit="kWh", scale=DIV_BY_TEN,
    ),
    MeasurementDef(
        key="TOTAL_LOAD_ENERGY_CONSUMPTION", address=85, secondary_address=86,
        value_type=ValueType.UINT16, group=GROUP_LOAD, unit="kWh", scale=DIV_BY_TEN,
    ),
]

# ---------------------------------------------------------------------------
# Temperatures and PV production (addresses 90-112)
# ---------------------------------------------------------------------------

_PRODUCTION: list[MeasurementDef] = [
    # Raw value is tenths of a degree Celsius offset by 1000.
    MeasurementDef(
        key="INTERNAL_DC_TEMPERATURE", address=90, value_type=ValueType.INT16,
        group=GROUP_OVERVIEW, unit="K", conversion=Conversion.OFFSET_KELVIN,
        description="DC/DC transformer temperature",
    ),
    MeasurementDef(
        key="INTERNAL_AC_TEMPERATURE", address=91, value_type=ValueType.INT16,
        group=GROUP_OVERVIEW, unit="K", conversion=Conversion.OFFSET_KELVIN,
        description="IGBT heat sink temperature",
    ),
    MeasurementDef(
        key="POWER_FACTOR", address=93, value_type=ValueType.INT16,
        group=GROUP_OVERVIEW, scale=DIV_BY_THOU,
    ),
    MeasurementDef(
        key="EXTERNAL_TEMPERATURE", address=95, value_type=ValueType.INT16,
        group=GROUP_OVERVIEW, unit="K", scale=DIV_BY_TEN,
        conversion=Conversion.CELSIUS_TO_KELVIN,
    ),
    MeasurementDef(
        key="TOTAL_PV_GENERATION", address=96, secondary_address=97,
        value_type=ValueType.UINT16, group=GROUP_OVERVIEW, unit="kWh",
        scale=DIV_BY_TEN, description="Cumulative PV energy generated",
    ),
    MeasurementDef(
        key="DAILY_PV_GENERATION", address=108, value_type=ValueType.UINT16,
        group=GROUP_OVERVIEW, unit="kWh", scale=DIV_BY_TEN,
    ),
    MeasurementDef(
        key="MPPT1_VOLTAGE", address=109, value_type=ValueType.UINT16,
        group=GROUP_MPPT, unit="V", scale=DIV_BY_TEN,
    ),
    MeasurementDef(
        key="MPPT1_CURRENT", address=110, value_type=ValueType.UINT16,
        group=GROUP_MPPT, unit="A", scale=DIV_BY_TEN,
    ),
    MeasurementDef(
        key="MPPT2_VOLTAGE", address=111, value_type=ValueType.UINT16,
        group=GROUP_MPPT, unit="V", scale=DIV_BY_TEN,
    ),
    MeasurementDef(
        key="MPPT2_CURRENT", address=112, value_type=ValueType.UINT16,
        group=GROUP_MPPT, unit="A", scale=DIV_BY_TEN,
    ),
]

# ---------------------------------------------------------------------------
# Grid, inverter and load power (addresses 150-178)
# ---------------------------------------------------------------------------

_POWER: list[MeasurementDef] = [
    MeasurementDef(
        key="GRID_VOLTAGE", address=150, value_type=ValueType.UINT16,
        group=GROUP_OVERVIEW, unit="V", scale=DIV_BY_TEN,
    ),
    MeasurementDef(
        key="GRID_CURRENT", address=160, value_type=ValueType.INT16,
        group=GROUP_OVERVIEW, unit="A", scale=DIV_BY_TEN,
    ),
    MeasurementDef(
        key="AUX_POWER", address=166, value_type=ValueType.INT16,
        group=GROUP_LOAD, unit="W", feeds=DerivedInput.AUX_POWER,
        description="Generator / AUX port power",
    ),
    MeasurementDef(
        key="GRID_L1_POWER", address=167, value_type=ValueType.INT16,
        group=GROUP_GRID, unit="W", feeds=DerivedInput.GRID_L1_POWER,
        description="Grid side L1 power measured by the inverter",
    ),
    MeasurementDef(
        key="GRID_POWER", address=169, value_type=ValueType.INT16,
        group=GROUP_OVERVIEW, unit="W",
        description="Total grid power. Positive = importing.",
    ),
    MeasurementDef(
        key="GRID_CT_POWER", address=172, value_type=ValueType.INT16,
        group=GROUP_GRID, unit="W", feeds=DerivedInput.CT_POWER,
        description="Grid power measured by the external CT clamp",
    ),
    MeasurementDef(
        key="INVERTER_POWER", address=175, value_type=ValueType.INT16,
        group=GROUP_OVERVIEW, unit="W", feeds=DerivedInput.INVERTER_POWER,
    ),
    MeasurementDef(
        key="LOAD_POWER", address=LOAD_WINDOW_ADDRESS, value_type=ValueType.INT16,
        group=GROUP_LOAD, unit="W",
    ),
]

# ---------------------------------------------------------------------------
# Battery and MPPT power (addresses 182-194)
# ---------------------------------------------------------------------------

_BATTERY: list[MeasurementDef] = [
    MeasurementDef(
        key="BATTERY_TEMPERATURE", address=182, value_type=ValueType.INT16,
        group=GROUP_BATTERY, unit="K", scale=DIV_BY_TEN,
        conversion=Conversion.CELSIUS_TO_KELVIN,
    ),
    MeasurementDef(
        key="BATTERY_VOLTAGE", address=183, value_type=ValueType.UINT16,
        group=GROUP_BATTERY, unit="V", scale=DIV_BY_HUNDRED,
    ),
    MeasurementDef(
        key="BATTERY_SOC", address=184, value_type=ValueType.UINT16,
        group=GROUP_BATTERY, unit="%",
    ),
    MeasurementDef(
        key="MPPT1_POWER", address=186, value_type=ValueType.UINT16,
        group=GROUP_MPPT, unit="W",
    ),
    MeasurementDef(
        key="MPPT2_POWER", address=187, value_type=ValueType.UINT16,
        group=GROUP_MPPT, unit="W",
    ),
    MeasurementDef(
        key="BATTERY_POWER", address=190, value_type=ValueType.INT16,
        group=GROUP_BATTERY, unit="W",
        description="Battery power. Positive = discharging.",
    ),
    MeasurementDef(
        key="BATTERY_CURRENT", address=191, value_type=ValueType.INT16,
        group=GROUP_BATTERY, unit="A", scale=DIV_BY_HUNDRED,
    ),
    MeasurementDef(
        key="GRID_STATE", address=194, value_type=ValueType.UINT16,
        group=GROUP_GRID, description="1 = grid connected",
    ),
]

# ---------------------------------------------------------------------------
# Solar sell settings (addresses 244-248)
# Mode and limit share register 244.
# ---------------------------------------------------------------------------

_SETTINGS_SOLAR: list[MeasurementDef] = [
    MeasurementDef(
        key="ENERGY_MANAGEMENT_MODE", address=244, value_type=ValueType.UINT16,
        group=GROUP_SETTINGS_SOLAR, conversion=Conversion.MASK_1C, writable=True,
        description="Bits 2-4: energy management mode",
    ),
    MeasurementDef(
        key="LIMIT_TO_LOAD", address=244, value_type=ValueType.UINT16,
        group=GROUP_SETTINGS_SOLAR, conversion=Conversion.MASK_03, writable=True,
        description="Bits 0-1: limit export to load / home",
    ),
    MeasurementDef(
        key="MAX_SELL_POWER", address=245, value_type=ValueType.UINT16,
        group=GROUP_SETTINGS_SOLAR, unit="W", writable=True,
    ),
    MeasurementDef(
        key="SOLAR_SELL", address=247, value_type=ValueType.UINT16,
        group=GROUP_SETTINGS_SOLAR, conversion=Conversion.MASK_01, writable=True,
    ),
    MeasurementDef(
        key="USE_TIMER", address=248, value_type=ValueType.UINT16,
        group=GROUP_SETTINGS_TIMER, conversion=Conversion.MASK_01, writable=True,
    ),
]


# ---------------------------------------------------------------------------
# Timer programs (addresses 250-279)
# ---------------------------------------------------------------------------


def _timer_programs() -> list[MeasurementDef]:
    """Build the six timer programs, ordered by address."""
    programs = range(1, TIMER_PROGRAM_COUNT + 1)
    defs = [
        MeasurementDef(
            key=f"PROG{n}_TIME", address=249 + n, value_type=ValueType.UINT16,
            group=GROUP_SETTINGS_TIMER, conversion=Conversion.TIME,
            output=OutputKind.TIMESTAMP, writable=True,
            feeds=DerivedInput.TIMER_START, program=n,
            description=f"Program {n} start time, packed HHMM",
        )
        for n in programs
    ]
    defs += [
        MeasurementDef(
            key=f"PROG{n}_POWER", address=255 + n, value_type=ValueType.UINT16,
            group=GROUP_SETTINGS_TIMER, unit="W", writable=True, program=n,
        )
        for n in programs
    ]
    defs += [
        MeasurementDef(
            key=f"PROG{n}_CAPACITY", address=267 + n, value_type=ValueType.UINT16,
            group=GROUP_SETTINGS_TIMER, unit="%", writable=True, program=n,
            description=f"Program {n} target battery SOC",
        )
        for n in programs
    ]
    defs += [
        MeasurementDef(
            key=f"PROG{n}_CHARGE", address=273 + n, value_type=ValueType.UINT16,
            group=GROUP_SETTINGS_TIMER, conversion=Conversion.MASK_03,
            writable=True, program=n,
            description=f"Program {n} charge source flags (bit 0 grid, bit 1 generator)",
        )
        for n in programs
    ]
    return defs


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_catalog(defs: tuple[MeasurementDef, ...] | list[MeasurementDef]) -> None:
    """Check the invariants the batcher and the output sink rely on.

    Raises:
        ConfigurationError: If addresses decrease, a channel is addressed
            twice, or a definition occupies no register.
    """
    seen: set[tuple[str, str]] = set()
    previous = 0
    for definition in defs:
        if definition.address < previous:
            msg = (
                f"Catalog order broken at '{definition.key}': address "
                f"{definition.address} follows {previous}"
            )
            raise ConfigurationError(msg)
        previous = definition.address

        if definition.register_count < 1:
            msg = f"Measurement '{definition.key}' occupies no register"
            raise ConfigurationError(msg)

        channel = (definition.group, definition.name)
        if channel in seen:
            msg = f"Duplicate channel {definition.group}/{definition.name}"
            raise ConfigurationError(msg)
        seen.add(channel)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

CATALOG: tuple[MeasurementDef, ...] = tuple(
    _ENERGY + _PRODUCTION + _POWER + _BATTERY + _SETTINGS_SOLAR + _timer_programs()
)
"""Every measurement in batching order (non-decreasing address)."""

validate_catalog(CATALOG)

ALL_MEASUREMENTS: dict[str, MeasurementDef] = {d.key: d for d in CATALOG}
"""Flat lookup of every measurement by key."""

COMMAND_INDEX: dict[str, MeasurementDef] = {d.command_key: d for d in CATALOG}
"""Lookup by ``"<group>-<channel name>"``."""


def find_by_command_key(command_key: str) -> MeasurementDef | None:
    """Return the measurement addressed by *command_key*, or ``None``."""
    return COMMAND_INDEX.get(command_key)
