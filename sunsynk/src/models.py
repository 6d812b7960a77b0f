"""
Pydantic models for typed values and connection status.

Decoded measurements are published to the output sink as one of two typed
values: a :class:`Quantity` (decimal value with an engineering unit) or a
:class:`Timestamp` (an aware datetime, used for timer program start times).

CHANGELOG:
- 2026-10-11: Add StatusUpdate snapshot model
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict


class ConnectionStatus(enum.Enum):
    """Connection status of the inverter, driven solely by poll outcomes."""

    UNKNOWN = "UNKNOWN"
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"


class StatusDetail(enum.Enum):
    """Reason category accompanying an OFFLINE status."""

    NONE = "NONE"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    COMMUNICATION_ERROR = "COMMUNICATION_ERROR"


class Quantity(BaseModel):
    """A decoded measurement in engineering units.

    Attributes:
        value: Scaled and converted value.  Kept as :class:`Decimal` so
            energy counters do not drift through float rounding.
        unit: Engineering unit (``"W"``, ``"kWh"``, ``"K"``, ...), empty for
            dimensionless values such as flags and modes.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["quantity"] = "quantity"
    value: Decimal
    unit: str = ""


class Timestamp(BaseModel):
    """A decoded point in time."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["timestamp"] = "timestamp"
    value: datetime


TypedValue = Quantity | Timestamp
"""Any value published to the output sink."""


class StatusUpdate(BaseModel):
    """Latest connection status as reported to the sink."""

    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    detail: StatusDetail = StatusDetail.NONE
    reason: str = ""
