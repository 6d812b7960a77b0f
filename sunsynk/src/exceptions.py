"""
Exception hierarchy for the Sunsynk Modbus adapter.

Three kinds of failure are distinguished:

- :class:`ConfigurationError` is fatal to initialization and surfaces as an
  offline status with a configuration-error detail.
- :class:`CommunicationError` is transient.  The poll cycle converts it into
  an offline status and the next scheduled tick retries.
- :class:`DecodeError` drops a single measurement for one poll pass.

CHANGELOG:
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations


class SunsynkError(Exception):
    """Base exception for all adapter errors."""


class ConfigurationError(SunsynkError):
    """Invalid adapter configuration or register catalog."""


class CommunicationError(SunsynkError):
    """Base exception for transient Modbus transport failures."""


class TransportConnectionError(CommunicationError):
    """Failed to connect to the Modbus device."""


class TransportReadError(CommunicationError):
    """Failed to read registers from the device."""


class TransportWriteError(CommunicationError):
    """Failed to write registers to the device."""


class DecodeError(SunsynkError):
    """Raw register data could not be turned into a value."""
