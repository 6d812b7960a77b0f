"""
Shared test fixtures for the Sunsynk adapter tests.

Provides environment variable fixtures for AdapterSettings configuration
tests, a fixed clock and a mocked Modbus transport.  All adapter env vars are
cleaned before each test to ensure isolation.

CHANGELOG:
- 2026-10-17: Cover SUNSYNK_TIMEZONE
- 2026-10-14: Add transport and clock fixtures
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

# All AdapterSettings environment variable names, used for cleanup.
_ALL_ADAPTER_ENV_VARS = (
    "SUNSYNK_HOST",
    "SUNSYNK_PORT",
    "SUNSYNK_SLAVE_ID",
    "POLL_INTERVAL_S",
    "MODBUS_TIMEOUT_S",
    "HEALTH_PATH",
    "SUNSYNK_TIMEZONE",
)

FIXED_NOW = datetime(2026, 10, 17, 12, 0, 0, tzinfo=UTC)
"""Reference instant for timer start decoding."""


@pytest.fixture(autouse=True)
def _clean_adapter_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all adapter env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_ADAPTER_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set all required and optional environment variables for AdapterSettings."""
    env = {
        "SUNSYNK_HOST": "192.168.1.50",
        "SUNSYNK_PORT": "8899",
        "SUNSYNK_SLAVE_ID": "2",
        "POLL_INTERVAL_S": "30",
        "MODBUS_TIMEOUT_S": "5.5",
        "HEALTH_PATH": "/tmp/sunsynk-health.json",
        "SUNSYNK_TIMEZONE": "Europe/Amsterdam",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones)."""
    env = {"SUNSYNK_HOST": "10.0.0.60"}
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def fixed_clock() -> MagicMock:
    """Clock returning :data:`FIXED_NOW`."""
    return MagicMock(return_value=FIXED_NOW)


@pytest.fixture()
def transport() -> AsyncMock:
    """Mocked ModbusTransport; reads return no registers unless overridden."""
    mock = AsyncMock()
    mock.read_registers = AsyncMock(return_value=[])
    mock.write_registers = AsyncMock(return_value=None)
    mock.close = MagicMock()
    return mock
