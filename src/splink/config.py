"""Configuration defaults, config-file lookup and loading.

Without an explicit path the daemon reads ``config.toml`` from
``/etc/splink``, falling back to the working directory.

Example:
    >>> from splink.config import find_config, load_config
    >>> cfg = load_config(find_config())
    >>> cfg["url"]
    'socket://192.168.1.50:3000'
"""

import os
import tomllib

DEFAULT_PORT = 3000
DEFAULT_PASSWORD = "Selectronic SP PRO"
DEFAULT_INTERVAL = 15
DEFAULT_BAUDRATE = 57600
DEFAULT_INFLUX_HOST = "localhost"
DEFAULT_INFLUX_PORT = 8089
DEFAULT_RETENTION_DAYS = 365

SINKS = ("influx", "sqlite")

CONFIG_NAME = "config.toml"
CONFIG_DIRS = ("/etc/splink", ".")


def find_config(path: str | None = None) -> str:
    """Return the absolute path of the config file to load.

    An explicit *path* must exist.  Otherwise the first
    ``config.toml`` found in ``CONFIG_DIRS`` wins.

    Raises:
        FileNotFoundError: If no config file is found.
    """
    if path is not None:
        if not os.path.isfile(path):
            raise FileNotFoundError("config file not found: %s" % path)
        return os.path.abspath(path)
    for directory in CONFIG_DIRS:
        candidate = os.path.join(directory, CONFIG_NAME)
        if os.path.isfile(candidate):
            return os.path.abspath(candidate)
    raise FileNotFoundError(
        "no %s in %s" % (CONFIG_NAME, " or ".join(CONFIG_DIRS))
    )


def load_config(path: str) -> dict:
    """Read a TOML config file, apply defaults and validate keys.

    Link keys: exactly one of ``host`` (str, TCP serial bridge, with
    ``port`` int defaulting to 3000) or ``device`` (str, local serial
    port, with ``baudrate`` int defaulting to 57600).  Common keys:
    ``password`` (str), ``interval`` (int seconds), ``sink`` ("influx"
    or "sqlite").  ``[influx]`` has ``host`` and ``port``; ``[sqlite]``
    requires ``db`` (relative paths are taken from the config file's
    directory) and takes ``retention_days``.

    The returned dict carries a derived ``url`` for
    ``splink.session.Session``.

    Raises:
        ValueError: If any key is missing, has the wrong type, or is
            out of range.
    """
    with open(path, "rb") as f:
        raw = tomllib.load(f)

    if ("host" in raw) == ("device" in raw):
        raise ValueError("exactly one of 'host' or 'device' is required")

    result = {
        "password": _get(raw, "password", str, DEFAULT_PASSWORD),
        "interval": _get(raw, "interval", int, DEFAULT_INTERVAL),
        "sink": _get(raw, "sink", str, "influx"),
    }
    if result["interval"] < 1:
        raise ValueError("interval must be >= 1, got %d" % result["interval"])
    if result["sink"] not in SINKS:
        raise ValueError(
            "sink must be 'influx' or 'sqlite', got '%s'" % result["sink"]
        )

    if "host" in raw:
        host = _get(raw, "host", str, None)
        port = _get(raw, "port", int, DEFAULT_PORT)
        _require_port(port, "port")
        result["host"] = host
        result["port"] = port
        result["url"] = "socket://%s:%d" % (host, port)
        result["baudrate"] = DEFAULT_BAUDRATE
    else:
        result["device"] = _get(raw, "device", str, None)
        result["url"] = result["device"]
        result["baudrate"] = _get(raw, "baudrate", int, DEFAULT_BAUDRATE)

    influx = _section(raw, "influx")
    result["influx_host"] = _get(influx, "host", str, DEFAULT_INFLUX_HOST,
                                 "influx.")
    result["influx_port"] = _get(influx, "port", int, DEFAULT_INFLUX_PORT,
                                 "influx.")
    _require_port(result["influx_port"], "influx.port")

    if result["sink"] == "sqlite":
        sqlite = _section(raw, "sqlite")
        if "db" not in sqlite:
            raise ValueError("missing required key: sqlite.db")
        db = _get(sqlite, "db", str, None, "sqlite.")
        result["db"] = os.path.join(os.path.dirname(os.path.abspath(path)), db)
        result["retention_days"] = _get(
            sqlite, "retention_days", int, DEFAULT_RETENTION_DAYS, "sqlite."
        )

    return result


def _section(raw: dict[str, object], name: str) -> dict[str, object]:
    """Return the optional table *name*, or an empty dict."""
    section = raw.get(name, {})
    if not isinstance(section, dict):
        raise ValueError("[%s] must be a table" % name)
    return section


def _get(raw: dict[str, object], key: str, kind: type, default,
         prefix: str = ""):
    """Return *key* from *raw* checked against *kind*, or *default*."""
    if key not in raw:
        return default
    value = raw[key]
    # bool is an int subclass; TOML true/false is never a valid int here
    if not isinstance(value, kind) or isinstance(value, bool):
        raise ValueError(
            "%s%s must be %s, got %s"
            % (prefix, key, kind.__name__, type(value).__name__)
        )
    return value


def _require_port(port: int, key: str) -> None:
    """Validate a TCP/UDP port number."""
    if port < 1 or port > 65535:
        raise ValueError("%s must be 1-65535, got %d" % (key, port))
