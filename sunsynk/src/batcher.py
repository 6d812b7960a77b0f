"""
Request batcher: packs the register catalog into bounded read requests.

The catalog is walked in declared order and greedily grouped into
address-contiguous windows.  A window is closed as soon as adding the next
definition would make it span more than the register ceiling.  The result is
the minimal number of requests for that fixed order; definitions are never
reordered.

The plan is built once per configuration and is immutable afterwards.

CHANGELOG:
- 2026-10-12: Reject oversized definitions while planning, not at poll time
- 2026-10-11: Account for split values whose high word lies past later entries
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from sunsynk.src.exceptions import ConfigurationError
from sunsynk.src.registers import CATALOG, MeasurementDef, validate_catalog

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_REGISTERS_READ_COUNT: int = 125
"""Protocol limit for a single read holding registers request (FC03)."""

DEFAULT_MAX_REGISTERS: int = MAX_REGISTERS_READ_COUNT - 1
"""Batching ceiling, one register below the protocol limit."""

DEFAULT_TRIES: int = 3
"""Attempts per request before the transport reports a failure."""


# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReadRequest:
    """A single contiguous read covering one or more measurements.

    Attributes:
        start_address: 0-based wire address of the first register.
        length: Number of 16-bit registers to read.
        tries: Retry budget handed to the transport.
        measurements: Covered definitions in catalog order.
    """

    start_address: int
    length: int
    tries: int
    measurements: tuple[MeasurementDef, ...]

    @property
    def first_address(self) -> int:
        """1-based catalog address of the first register."""
        return self.measurements[0].address

    @property
    def last_address(self) -> int:
        """Highest 1-based catalog address a covered value starts at."""
        return max(d.last_address for d in self.measurements)

    def covers(self, address: int) -> bool:
        """Whether the 1-based *address* lies within this request's window."""
        return self.first_address <= address <= self.last_address

    def index_of(self, address: int) -> int:
        """Offset of the 1-based *address* within the returned words."""
        return address - self.first_address


@dataclass(frozen=True, slots=True)
class RequestPlan:
    """Ordered, immutable set of read requests for one configuration."""

    requests: tuple[ReadRequest, ...]
    slave_id: int
    max_registers: int

    def __iter__(self) -> Iterator[ReadRequest]:
        return iter(self.requests)

    def __len__(self) -> int:
        return len(self.requests)

    @property
    def measurement_count(self) -> int:
        return sum(len(r.measurements) for r in self.requests)


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


def _make_request(group: list[MeasurementDef], tries: int) -> ReadRequest:
    first = group[0].address
    end = max(d.end_address for d in group)
    return ReadRequest(
        start_address=first - 1,
        length=end - first,
        tries=tries,
        measurements=tuple(group),
    )


def build_plan(
    catalog: Iterable[MeasurementDef] = CATALOG,
    max_registers: int = DEFAULT_MAX_REGISTERS,
    *,
    slave_id: int = 1,
    tries: int = DEFAULT_TRIES,
) -> RequestPlan:
    """Group *catalog* into address-contiguous, size-bounded read requests.

    Args:
        catalog: Definitions in batching order (non-decreasing address).
        max_registers: Largest register span a single request may cover.
        slave_id: Modbus unit ID the plan is built for.
        tries: Retry budget stored on each request.

    Returns:
        The request plan.  An empty catalog yields an empty plan.

    Raises:
        ConfigurationError: If the ceiling or retry budget is not positive,
            the catalog breaks its ordering invariants, or a single
            definition spans more registers than the ceiling.
    """
    if max_registers < 1:
        msg = f"max_registers must be >= 1, got {max_registers}"
        raise ConfigurationError(msg)
    if tries < 1:
        msg = f"tries must be >= 1, got {tries}"
        raise ConfigurationError(msg)

    defs = tuple(catalog)
    validate_catalog(defs)

    for definition in defs:
        own_span = definition.end_address - definition.address
        if own_span > max_registers:
            msg = (
                f"Measurement '{definition.key}' spans {own_span} registers, "
                f"more than the request ceiling of {max_registers}"
            )
            raise ConfigurationError(msg)

    requests: list[ReadRequest] = []
    group: list[MeasurementDef] = []
    group_first = 0
    group_end = 0

    for definition in defs:
        if not group:
            group = [definition]
            group_first = definition.address
            group_end = definition.end_address
            continue

        span = max(group_end, definition.end_address) - group_first
        if span > max_registers:
            requests.append(_make_request(group, tries))
            group = [definition]
            group_first = definition.address
            group_end = definition.end_address
        else:
            group.append(definition)
            group_end = max(group_end, definition.end_address)

    if group:
        requests.append(_make_request(group, tries))

    logger.debug("Created %d modbus request templates", len(requests))
    return RequestPlan(
        requests=tuple(requests),
        slave_id=slave_id,
        max_registers=max_registers,
    )
