"""Register decoding and the SP PRO register map.

Raw decoders turn payload bytes into integers; scaling functions turn
those integers into physical units using the fixed calibration
constants of the SP PRO.  ``REGISTERS`` is the ordered set of reads
made on every poll cycle.

Example:
    >>> from splink.registers import power, s16
    >>> round(power(s16(b"\\xe8\\x03")), 3)
    2928.467
"""

import struct
from dataclasses import dataclass
from typing import Callable

# -- Scale constants ---------------------------------------------------------

SCALE_DC_VOLTS = 960
SCALE_DC_AMPS = 2000
SCALE_AC_VOLTS = 4798
SCALE_AC_AMPS = 2000

# Watts per count for 16-bit power registers.
SCALE_POWER = 4798.0 * 2000.0 / 3276800.0
# 32-bit power registers carry three extra fractional bits.
SCALE_POWER32 = SCALE_POWER / 8
# Watt-hours per count for accumulated energy registers.
SCALE_ENERGY = 24 * SCALE_POWER


# -- Scaling -----------------------------------------------------------------


def dc_volts(raw: int) -> float:
    return raw * SCALE_DC_VOLTS / 327680


def dc_amps(raw: int) -> float:
    return raw * SCALE_DC_AMPS / 32768


def ac_volts(raw: int) -> float:
    return raw * SCALE_AC_VOLTS / 32768


def ac_amps(raw: int) -> float:
    return raw * SCALE_AC_AMPS / 32768


def power(raw: int) -> float:
    """Scale a 16-bit power register to watts."""
    return raw * SCALE_POWER


def power32(raw: int) -> float:
    """Scale a 32-bit power register to watts."""
    return raw * SCALE_POWER32


def energy(raw: int) -> float:
    """Scale an accumulated energy counter to watt-hours.

    Counters only grow on the device; the absolute value is reported
    every cycle, never a delta.
    """
    return raw * SCALE_ENERGY


def temperature(raw: int) -> float:
    """Tenths of a degree Celsius to degrees."""
    return raw / 10.0


def hours(raw: int) -> float:
    return float(raw)


# -- Raw decoders ------------------------------------------------------------


def u16(data: bytes) -> int:
    return struct.unpack_from("<H", data)[0]


def s16(data: bytes) -> int:
    return struct.unpack_from("<h", data)[0]


def u32(data: bytes) -> int:
    return struct.unpack_from("<I", data)[0]


def s32(data: bytes) -> int:
    return struct.unpack_from("<i", data)[0]


def low_byte(data: bytes) -> int:
    return data[0]


def high_byte(data: bytes) -> int:
    return data[1]


# -- Register map ------------------------------------------------------------


@dataclass(frozen=True)
class Register:
    """One decoded quantity in the poll cycle.

    ``count`` is in 16-bit words.  Registers with a ``table`` are
    enumerated; ``tracked`` ones emit transitions instead of points.
    Registers sharing an ``(address, count)`` block are read once per
    cycle.
    """

    name: str
    address: int
    count: int
    decode: Callable[[bytes], int]
    scale: Callable[[int], float] | None
    measurement: str
    value_type: str
    table: str | None = None
    tracked: bool = False


ADDR_BATTERY_TEMPERATURE = 0x0000A03C
ADDR_BATTERY_POWER = 0x0000A058
ADDR_BATTERY_VOLTS = 0x0000A05C
ADDR_SOURCE_POWER = 0x0000A089
ADDR_LOAD_POWER = 0x0000A08A
ADDR_SOURCE_ENERGY = 0x0000A0A8
ADDR_LOAD_ENERGY = 0x0000A0AA
ADDR_GENERATOR_HOURS = 0x0000A0B0
ADDR_GENERATOR_REASON = 0x0000A0B2
ADDR_CHARGE_MODE = 0x0000A0B4
ADDR_SOURCE_STATUS = 0x0000A0B5

REGISTERS = (
    Register("battery_power", ADDR_BATTERY_POWER, 2, s32, power32,
             "power", "battery"),
    Register("battery_volts", ADDR_BATTERY_VOLTS, 1, u16, dc_volts,
             "voltage", "battery"),
    Register("battery_temperature", ADDR_BATTERY_TEMPERATURE, 1, s16,
             temperature, "temperature", "battery"),
    Register("source_power", ADDR_SOURCE_POWER, 1, s16, power,
             "power", "source"),
    Register("load_power", ADDR_LOAD_POWER, 1, s16, power,
             "power", "load"),
    Register("source_energy", ADDR_SOURCE_ENERGY, 2, u32, energy,
             "energy", "source"),
    Register("load_energy", ADDR_LOAD_ENERGY, 2, u32, energy,
             "energy", "load"),
    Register("generator_hours", ADDR_GENERATOR_HOURS, 2, u32, hours,
             "hours", "generator"),
    Register("generator_start_reason", ADDR_GENERATOR_REASON, 1, low_byte,
             None, "generator", "start_reason",
             table="generator_reason", tracked=True),
    Register("generator_run_reason", ADDR_GENERATOR_REASON, 1, high_byte,
             None, "generator", "run_reason",
             table="generator_reason", tracked=True),
    Register("charge_mode", ADDR_CHARGE_MODE, 1, u16, None,
             "charge", "mode", table="charge_mode"),
    Register("source_status", ADDR_SOURCE_STATUS, 1, u16, None,
             "source", "status", table="source_status"),
)
