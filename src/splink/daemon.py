"""Splink daemon -- polls an SP PRO and forwards telemetry to a sink.

Foreground loop driven by a TOML config file.  Connects, answers the
login challenge, then runs one poll cycle per interval until SIGINT or
SIGTERM.  The com port is always released on the way out.  Any
protocol or link error other than a CRC mismatch ends the process;
restarting is left to the service manager.

Example:
    Run from the command line::

        splink -v
        splink /etc/splink/config.toml --once
"""

import argparse
import logging
import signal
import sqlite3
import sys
import threading
import time

from splink.auth import authenticate
from splink.config import find_config, load_config
from splink.errors import SplinkError
from splink.poller import Poller
from splink.session import Session
from splink.sink import InfluxSink
from splink.storage import Storage

log = logging.getLogger(__name__)

_shutdown = threading.Event()


def _on_signal(signum: int, frame) -> None:
    """Set the module-level shutdown event on SIGINT/SIGTERM."""
    _shutdown.set()


def run_poller(poller, sink, interval: float,
               shutdown: threading.Event) -> int:
    """Run poll cycles every *interval* seconds until *shutdown* is set.

    Cycles never overlap: ticks that pass while a cycle is still
    running are skipped.  Returns the number of completed cycles.

    Example:
        >>> run_poller(poller, sink, 15, ev)
        4
    """
    cycles = 0
    next_tick = time.monotonic()

    while not shutdown.is_set():
        records = poller.poll()
        sink.write(records)
        cycles += 1
        log.info("cycle %d: %d records", cycles, len(records))

        next_tick += interval
        now = time.monotonic()
        if now > next_tick and interval > 0:
            missed = int((now - next_tick) // interval) + 1
            log.warning("cycle %d overran, skipping %d tick(s)", cycles, missed)
            next_tick += missed * interval
        remaining = next_tick - now
        if remaining > 0:
            shutdown.wait(remaining)

    return cycles


def make_sink(cfg: dict):
    """Build the sink selected by ``cfg["sink"]``."""
    if cfg["sink"] == "sqlite":
        storage = Storage(cfg["db"])
        storage.purge(cfg["retention_days"])
        return storage
    return InfluxSink(cfg["influx_host"], cfg["influx_port"])


def main() -> int:
    """CLI entry point -- parse args, load config, run the daemon.

    Returns 0 after a clean shutdown and 1 after a fatal error.

    Example:
        From the shell::

            splink
            splink ./config.toml --once -v
    """
    _shutdown.clear()

    parser = argparse.ArgumentParser(description="SP PRO Splink monitor")
    parser.add_argument(
        "config", nargs="?", default=None,
        help="path to TOML config file (default: config.toml in "
        "/etc/splink, then the working directory)",
    )
    parser.add_argument(
        "--once", action="store_true", help="run a single poll cycle and exit",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="enable debug logging",
    )
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=level,
    )

    try:
        config_path = find_config(args.config)
        cfg = load_config(config_path)
    except (OSError, ValueError) as exc:
        log.error("config: %s", exc)
        return 1

    log.info(
        "starting: url=%s sink=%s interval=%ds",
        cfg["url"], cfg["sink"], cfg["interval"],
    )
    try:
        session = Session(cfg["url"], baudrate=cfg["baudrate"])
    except ConnectionError as exc:
        log.error("%s", exc)
        return 1

    sink = None
    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    status = 0
    try:
        sink = make_sink(cfg)
        authenticate(session, cfg["password"])
        poller = Poller(session)
        if args.once:
            sink.write(poller.poll())
        else:
            run_poller(poller, sink, cfg["interval"], _shutdown)
    except (SplinkError, OSError, sqlite3.Error) as exc:
        log.error("fatal: %s", exc)
        status = 1
    finally:
        try:
            session.disconnect()
        except (SplinkError, OSError) as exc:
            log.warning("disconnect failed: %s", exc)
        if sink is not None:
            sink.close()
        log.info("shutting down")

    return status


if __name__ == "__main__":
    sys.exit(main())
