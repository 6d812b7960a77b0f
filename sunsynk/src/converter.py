"""
Value converter: raw register words <-> typed measurement values.

Read side: a raw integer extracted from the register words is multiplied by
the measurement's decimal scale, passed through its conversion rule and
wrapped by its output factory (:class:`~sunsynk.src.models.Quantity` or
:class:`~sunsynk.src.models.Timestamp`).

Write side: an engineering value is run through the inverse conversion,
divided by the scale and split into register words for the declared wire
type.

Conversion rules are dispatched on the :class:`~sunsynk.src.registers.Conversion`
tag carried by each definition; definitions themselves hold no callables.

CHANGELOG:
- 2026-10-17: Signed split values; roll packed times forward in the local zone
- 2026-10-13: Fail packed times with a bad digit count instead of guessing
- 2026-10-12: Add encode() for the command path
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import contextlib
import os
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, time, timedelta, tzinfo
from decimal import ROUND_HALF_EVEN, Decimal
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sunsynk.src.exceptions import DecodeError
from sunsynk.src.models import Quantity, Timestamp, TypedValue
from sunsynk.src.registers import MASKS, Conversion, MeasurementDef, OutputKind

KELVIN_OFFSET = Decimal("273.15")
TEMPERATURE_RAW_OFFSET = Decimal(1000)

LOCALTIME_PATH = Path("/etc/localtime")

# ---------------------------------------------------------------------------
# Word helpers
# ---------------------------------------------------------------------------


def to_signed(raw: int, bits: int) -> int:
    """Interpret *raw* as a two's complement integer of *bits* width."""
    mask = (1 << bits) - 1
    val = raw & mask
    if val >= 1 << (bits - 1):
        val -= 1 << bits
    return val


def combine_words(words: Sequence[int], *, signed: bool) -> int:
    """Assemble 16-bit registers (high word first) into one integer."""
    val = 0
    for word in words:
        val = (val << 16) | (word & 0xFFFF)
    if signed:
        val = to_signed(val, 16 * len(words))
    return val


def combine_split(first: int, second: int) -> int:
    """Combine a value split over two registers as ``(second << 16) | first``.

    The first (lower-addressed) register holds the low word.  This is the
    opposite word order of :func:`combine_words`.  The result is unsigned;
    callers sign-extend it for signed definitions.
    """
    return ((second & 0xFFFF) << 16) | (first & 0xFFFF)


def extract_raw(
    definition: MeasurementDef,
    words: Sequence[int],
    index: int,
    index2: int | None = None,
) -> int:
    """Pull the raw integer for *definition* out of a request's words.

    Args:
        definition: The measurement to extract.
        words: All 16-bit words returned for the request.
        index: Offset of the definition's (low) register within *words*.
        index2: Offset of the high register for split values.

    Raises:
        DecodeError: If *words* is too short for the requested slice.
    """
    if definition.is_split:
        if index2 is None:
            msg = f"Measurement '{definition.key}': missing secondary index"
            raise DecodeError(msg)
        if not (0 <= index < len(words) and 0 <= index2 < len(words)):
            msg = (
                f"Measurement '{definition.key}': indices ({index}, {index2}) "
                f"outside {len(words)} words"
            )
            raise DecodeError(msg)
        combined = combine_split(words[index], words[index2])
        if definition.value_type.signed:
            return to_signed(combined, 32)
        return combined

    count = definition.register_count
    if index < 0 or index + count > len(words):
        msg = (
            f"Measurement '{definition.key}': expected {count} words at "
            f"offset {index}, got {len(words)} words"
        )
        raise DecodeError(msg)
    return combine_words(
        words[index : index + count], signed=definition.value_type.signed
    )


# ---------------------------------------------------------------------------
# Packed HHMM times
# ---------------------------------------------------------------------------


def local_zone(name: str | None = None) -> tzinfo:
    """Return the IANA zone packed times are placed in.

    An explicit *name* wins.  Otherwise the ``TZ`` environment variable is
    tried, then the zone file at :data:`LOCALTIME_PATH`, then UTC.

    Raises:
        ZoneInfoNotFoundError: If *name* is not a known zone.
    """
    if name:
        return ZoneInfo(name)
    env_key = os.environ.get("TZ", "").lstrip(":")
    if env_key:
        with contextlib.suppress(ZoneInfoNotFoundError, ValueError):
            return ZoneInfo(env_key)
    try:
        with LOCALTIME_PATH.open("rb") as fh:
            return ZoneInfo.from_file(fh, key="localtime")
    except (OSError, ValueError):
        return UTC


def decode_packed_time(value: Decimal | int, now: datetime | None = None) -> datetime:
    """Decode a packed decimal ``HHMM`` value into the next such time of day.

    The decimal digits of *value* are read positionally: ``930`` is 09:30,
    ``34`` is 00:34 and ``5`` is 00:05.  The result is "today at HH:MM" on the
    wall clock of *now*, moved to the next calendar day when that is not
    after *now*.  The UTC offset is taken from the zone on the resulting
    day, so a roll across a DST change keeps the wall-clock time.

    Args:
        value: Packed time, 1 to 4 decimal digits.
        now: Reference instant.  Defaults to the current time in
            :func:`local_zone`.

    Raises:
        DecodeError: If the value has no digits or more than four, or the
            digits do not form a valid time of day.
    """
    if now is None:
        now = datetime.now(local_zone())

    digits = str(int(value))
    if not digits.isdigit() or not 1 <= len(digits) <= 4:
        msg = f"Packed time {value!r} must have 1 to 4 decimal digits"
        raise DecodeError(msg)

    padded = digits.zfill(4)
    hours = int(padded[:2])
    minutes = int(padded[2:])
    if hours > 23 or minutes > 59:
        msg = f"Packed time {value!r} is not a valid time of day"
        raise DecodeError(msg)

    wall = time(hours, minutes)
    candidate = datetime.combine(now.date(), wall, tzinfo=now.tzinfo)
    if candidate <= now:
        candidate = datetime.combine(now.date() + timedelta(days=1), wall, tzinfo=now.tzinfo)
    return candidate


def encode_packed_time(hours: int, minutes: int) -> int:
    """Pack a time of day as the decimal number ``HHMM``."""
    return hours * 100 + minutes


# ---------------------------------------------------------------------------
# Conversion dispatch
# ---------------------------------------------------------------------------


def _mask(tag: Conversion) -> Callable[[Decimal], Decimal]:
    bits = MASKS[tag]
    return lambda value: Decimal(int(value) & bits)


_CONVERSIONS: dict[Conversion, Callable[[Decimal], Decimal]] = {
    Conversion.IDENTITY: lambda value: value,
    Conversion.CELSIUS_TO_KELVIN: lambda value: value + KELVIN_OFFSET,
    Conversion.OFFSET_KELVIN: lambda value: (
        (value - TEMPERATURE_RAW_OFFSET) / 10 + KELVIN_OFFSET
    ),
    Conversion.MASK_1C: _mask(Conversion.MASK_1C),
    Conversion.MASK_03: _mask(Conversion.MASK_03),
    Conversion.MASK_01: _mask(Conversion.MASK_01),
}

_INVERSE_CONVERSIONS: dict[Conversion, Callable[[Decimal], Decimal]] = {
    Conversion.CELSIUS_TO_KELVIN: lambda value: value - KELVIN_OFFSET,
    Conversion.OFFSET_KELVIN: lambda value: (
        (value - KELVIN_OFFSET) * 10 + TEMPERATURE_RAW_OFFSET
    ),
}


def apply_conversion(
    tag: Conversion,
    value: Decimal,
    *,
    now: datetime | None = None,
) -> Decimal:
    """Apply the conversion rule *tag* to a scaled value.

    ``TIME`` yields epoch seconds of the next occurrence of the packed time.
    """
    if tag is Conversion.TIME:
        return Decimal(int(decode_packed_time(value, now).timestamp()))
    return _CONVERSIONS[tag](value)


def _make_output(definition: MeasurementDef, value: Decimal) -> TypedValue:
    if definition.output is OutputKind.TIMESTAMP:
        return Timestamp(value=datetime.fromtimestamp(int(value), tz=UTC))
    return Quantity(value=value, unit=definition.unit)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def decode(
    definition: MeasurementDef,
    raw: int,
    *,
    now: datetime | None = None,
) -> TypedValue:
    """Turn a raw register integer into the definition's typed value.

    Steps: multiply by the decimal scale, apply the conversion, wrap with
    the output factory.

    Raises:
        DecodeError: If the conversion rejects the value.
    """
    scaled = Decimal(raw) * definition.scale
    converted = apply_conversion(definition.conversion, scaled, now=now)
    return _make_output(definition, converted)


def encode(definition: MeasurementDef, value: Decimal | float | int) -> list[int]:
    """Encode an engineering value into register words for *definition*.

    Masked settings and packed times are passed through unchanged; the
    caller is responsible for merging masked bits into the current register
    value.  Split definitions return ``[low, high]``; wire types return
    big-endian words.

    Raises:
        ValueError: If the raw value does not fit the wire type.
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))

    inverse = _INVERSE_CONVERSIONS.get(definition.conversion)
    if inverse is not None:
        value = inverse(value)

    raw = int((value / definition.scale).to_integral_value(rounding=ROUND_HALF_EVEN))

    if definition.is_split:
        if definition.value_type.signed:
            low, high = -(1 << 31), (1 << 31) - 1
        else:
            low, high = 0, 0xFFFFFFFF
        if not low <= raw <= high:
            msg = f"Value {raw} out of range for split register '{definition.key}'"
            raise ValueError(msg)
        unsigned = raw & 0xFFFFFFFF
        return [unsigned & 0xFFFF, unsigned >> 16]

    value_type = definition.value_type
    bits = value_type.bits
    if value_type.signed:
        low, high = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    else:
        low, high = 0, (1 << bits) - 1
    if not low <= raw <= high:
        msg = (
            f"Value {raw} out of range for {value_type.name} register "
            f"'{definition.key}' ({low}..{high})"
        )
        raise ValueError(msg)

    unsigned = raw & ((1 << bits) - 1)
    return [
        (unsigned >> (16 * shift)) & 0xFFFF
        for shift in reversed(range(value_type.register_count))
    ]
