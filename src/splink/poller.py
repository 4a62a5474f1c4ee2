"""Poll cycle for the SP PRO register map.

Reads every register block once per cycle, scales continuous values
into ``Point`` records and turns changes of tracked status registers
into ``Transition`` records.

Example:
    >>> from splink.poller import Poller
    >>> poller = Poller(session)
    >>> records = poller.poll()
    >>> records[0].measurement
    'power'
"""

import logging
import time
from dataclasses import dataclass

from splink.registers import REGISTERS
from splink.status import TABLES, lookup

log = logging.getLogger(__name__)

UNSEEN = -1


@dataclass
class Point:
    """A continuous measurement, emitted every cycle."""

    measurement: str
    value_type: str
    value: float
    timestamp: int


@dataclass
class Transition:
    """A change of an enumerated status register between cycles."""

    measurement: str
    transition_type: str
    from_state: str
    to_state: str
    timestamp: int


class StateTracker:
    """Remembers the last value of one enumerated register.

    The first observation is recorded silently.  Afterwards every
    change yields one ``(from_label, to_label)`` pair.

    Example:
        >>> tracker = StateTracker("generator_start_reason", GENERATOR_REASON)
        >>> tracker.observe(0) is None
        True
        >>> tracker.observe(2)
        ('not running', 'remote run request')
    """

    def __init__(self, name: str, table: tuple[str, ...]):
        self.name = name
        self.table = table
        self.last = UNSEEN

    def observe(self, value: int) -> tuple[str, str] | None:
        if self.last == UNSEEN:
            self.last = value
            return None
        if value == self.last:
            return None
        change = (lookup(self.table, self.last), lookup(self.table, value))
        self.last = value
        return change


class Poller:
    """Runs poll cycles against a session.

    Args:
        session: Object with ``read(address, count)`` returning bytes.
        registers: Ordered register map to decode each cycle.
        clock: Callable returning the current Unix time.
    """

    def __init__(self, session, registers=REGISTERS, clock=time.time):
        self._session = session
        self._registers = tuple(registers)
        self._clock = clock
        self._trackers = {
            reg.name: StateTracker(reg.name, TABLES[reg.table])
            for reg in self._registers
            if reg.tracked
        }

    def tracker(self, name: str) -> StateTracker:
        """Return the tracker for the tracked register *name*."""
        return self._trackers[name]

    def poll(self) -> list[Point | Transition]:
        """Execute one poll cycle and return the records it produced.

        Each distinct ``(address, count)`` block is read once, in map
        order.  Errors from the session propagate to the caller.
        """
        ts = int(self._clock())
        blocks: dict[tuple[int, int], bytes] = {}
        records: list[Point | Transition] = []

        for reg in self._registers:
            key = (reg.address, reg.count)
            if key not in blocks:
                blocks[key] = self._session.read(reg.address, reg.count)
            raw = reg.decode(blocks[key])

            if reg.tracked:
                change = self._trackers[reg.name].observe(raw)
                if change is not None:
                    log.info("%s: %s -> %s", reg.name, change[0], change[1])
                    records.append(Transition(
                        measurement=reg.measurement,
                        transition_type=reg.value_type,
                        from_state=change[0],
                        to_state=change[1],
                        timestamp=ts,
                    ))
                continue

            if reg.table is not None:
                log.debug("%s: %s", reg.name, lookup(TABLES[reg.table], raw))
            value = reg.scale(raw) if reg.scale is not None else float(raw)
            records.append(Point(
                measurement=reg.measurement,
                value_type=reg.value_type,
                value=value,
                timestamp=ts,
            ))

        return records
