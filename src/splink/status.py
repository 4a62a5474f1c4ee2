"""Label tables for enumerated SP PRO status registers.

Codes index straight into immutable tuples.  Unknown codes are
expected after firmware upgrades, so ``lookup`` never raises.

Example:
    >>> from splink.status import lookup, GENERATOR_REASON
    >>> lookup(GENERATOR_REASON, 2)
    'remote run request'
    >>> lookup(GENERATOR_REASON, 99)
    'invalid'
"""

import logging

log = logging.getLogger(__name__)

INVALID = "invalid"

GENERATOR_REASON = (
    "not running",
    "front panel",
    "remote run request",
    "run schedule",
    "high inverter temp",
    "impending inverter shutdown",
    "synchronisation fault",
    "state of charge",
    "low battery volts",
    "battery midpoint voltage error",
    "equalising battery",
    "high AC load",
    "generator exercise",
    "generator available",
    "generator fault",
    "generator lockout active",
    "battery float",
    "cooling down",
    "confirmed start",
    "manual",
    "AC source present",
    "disabled",
    "support mode",
    "equalise",
    "battery load",
    "warming up",
)

CHARGE_MODE = (
    "initial",
    "bulk",
    "absorb",
    "float",
    "float maintain",
    "equalise",
    "no charge",
)

SOURCE_STATUS = (
    "no source",
    "source detected",
    "synchronising",
    "source connected",
    "source disconnecting",
    "source fault",
)

TABLES = {
    "generator_reason": GENERATOR_REASON,
    "charge_mode": CHARGE_MODE,
    "source_status": SOURCE_STATUS,
}


def lookup(table, code):
    """Return the label for *code* in *table*, or ``INVALID``.

    Out-of-range codes (negative or past the end) are logged at
    WARNING and resolve to ``"invalid"``.
    """
    if 0 <= code < len(table):
        return table[code]
    log.warning("received invalid status code %d", code)
    return INVALID
