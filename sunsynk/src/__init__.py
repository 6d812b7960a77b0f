"""
Sunsynk hybrid inverter Modbus polling adapter.

Polls a Sunsynk single-phase hybrid inverter over Modbus TCP, decodes the
register catalog into typed values, derives essential / non-essential load
power and writes solar and timer settings back to the inverter.

CHANGELOG:
- 2026-10-10: Initial creation

TODO:
- None
"""
