"""
Adapter configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded IPs.

The poll interval is deliberately not validated here: the poll cycle driver
checks it at initialization and reports a configuration-error status instead
of refusing to start.

CHANGELOG:
- 2026-10-17: Add SUNSYNK_TIMEZONE
- 2026-10-10: Initial creation

TODO:
- None
"""

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings


class AdapterSettings(BaseSettings):
    """Sunsynk adapter configuration.

    All values are loaded from environment variables. Required variables
    must be set; optional variables have sensible defaults.

    Attributes:
        sunsynk_host: Inverter / Modbus TCP gateway IP address or hostname.
        sunsynk_port: Modbus TCP port (default 502).
        sunsynk_slave_id: Modbus slave / unit ID (default 1).
        poll_interval_s: Seconds between reads of each register block.
        modbus_timeout_s: Per-request Modbus timeout in seconds.
        health_path: JSON health file path.
        sunsynk_timezone: IANA zone of the inverter clock, used to place
            timer start times (default: the host zone).
    """

    sunsynk_host: str
    sunsynk_port: int = 502
    sunsynk_slave_id: int = 1
    poll_interval_s: int = 10
    modbus_timeout_s: float = 10.0
    health_path: str = "/data/health.json"
    sunsynk_timezone: str | None = None

    @field_validator("sunsynk_port")
    @classmethod
    def sunsynk_port_must_be_valid(cls, v: int) -> int:
        """Validate Modbus TCP port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("SUNSYNK_PORT must be between 1 and 65535")
        return v

    @field_validator("sunsynk_slave_id")
    @classmethod
    def sunsynk_slave_id_must_be_valid(cls, v: int) -> int:
        """Validate Modbus slave ID is in valid range (1-247)."""
        if v < 1 or v > 247:
            raise ValueError("SUNSYNK_SLAVE_ID must be between 1 and 247")
        return v

    @field_validator("modbus_timeout_s")
    @classmethod
    def modbus_timeout_must_be_positive(cls, v: float) -> float:
        """Validate the Modbus timeout is positive."""
        if v <= 0:
            raise ValueError("MODBUS_TIMEOUT_S must be > 0")
        return v

    @field_validator("sunsynk_timezone")
    @classmethod
    def sunsynk_timezone_must_exist(cls, v: str | None) -> str | None:
        """Validate the time zone is a known IANA key."""
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as err:
            raise ValueError(f"SUNSYNK_TIMEZONE {v!r} is not a known time zone") from err
        return v

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
