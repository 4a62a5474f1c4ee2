"""Tests for splink.daemon."""

import logging
import threading
import time

import pytest

import splink.daemon as daemon_mod
from conftest import FailingSocket, FakeInverter, make_session
from splink.daemon import _on_signal, main, run_poller
from splink.poller import Point
from splink.protocol import (
    ADDR_COMPORT,
    ADDR_DISCONNECT,
    COMPORT_UNAUTHENTICATED,
    OP_WRITE,
)
from splink.sink import InfluxSink
from splink.storage import Storage


class CountingPoller:
    """Test double: counts cycles, triggers shutdown after max_cycles."""

    def __init__(self, max_cycles: int, shutdown: threading.Event,
                 delay: float = 0.0):
        """Initialize with cycle limit, shutdown event and cycle delay."""
        self._max_cycles = max_cycles
        self._shutdown = shutdown
        self._delay = delay
        self.cycles = 0

    def poll(self) -> list:
        """Return one fake record; trigger shutdown when limit reached."""
        self.cycles += 1
        if self._delay:
            time.sleep(self._delay)
        if self.cycles >= self._max_cycles:
            self._shutdown.set()
        return ["record-%d" % self.cycles]


class PointPoller(CountingPoller):
    """Test double: like CountingPoller but yields real points."""

    def poll(self) -> list:
        super().poll()
        return [Point("power", "load", 1.0, self.cycles)]


class ListSink:
    """Test double: collects written batches."""

    def __init__(self):
        self.batches = []
        self.closed = False

    def write(self, records) -> None:
        self.batches.append(list(records))

    def close(self) -> None:
        self.closed = True


class TestRunPoller:
    """Tests for run_poller()."""

    def test_runs_until_shutdown(self):
        """Cycles run and are written until shutdown is set."""
        shutdown = threading.Event()
        poller = CountingPoller(3, shutdown)
        sink = ListSink()

        cycles = run_poller(poller, sink, 0, shutdown)

        assert cycles == 3
        assert sink.batches == [["record-1"], ["record-2"], ["record-3"]]

    def test_shutdown_before_start(self):
        """A set shutdown event means no cycles at all."""
        shutdown = threading.Event()
        shutdown.set()
        poller = CountingPoller(5, shutdown)

        assert run_poller(poller, ListSink(), 0, shutdown) == 0
        assert poller.cycles == 0

    def test_overrun_skips_ticks(self, caplog):
        """A cycle longer than the interval skips ticks, never overlaps."""
        shutdown = threading.Event()
        poller = CountingPoller(2, shutdown, delay=0.05)

        with caplog.at_level(logging.WARNING, logger="splink.daemon"):
            cycles = run_poller(poller, ListSink(), 0.01, shutdown)

        assert cycles == 2
        assert "skipping" in caplog.text

    def test_sink_failure_keeps_polling(self, monkeypatch):
        """An influx host that cannot be resolved does not stop the loop."""
        shutdown = threading.Event()
        poller = PointPoller(3, shutdown)
        sink = InfluxSink("influx.invalid", 8089)
        failing = FailingSocket()
        monkeypatch.setattr(sink._client, "udp_socket", failing)

        cycles = run_poller(poller, sink, 0, shutdown)

        assert cycles == 3
        assert failing.attempts == 3
        sink.close()

    def test_on_signal_sets_shutdown(self):
        """_on_signal sets the module-level shutdown event."""
        daemon_mod._shutdown.clear()
        _on_signal(15, None)
        assert daemon_mod._shutdown.is_set()
        daemon_mod._shutdown.clear()


class TestMain:
    """Tests for main() with a fake inverter behind the session."""

    @pytest.fixture
    def config(self, tmp_path):
        """Write a sqlite-sink config and return its path."""
        path = tmp_path / "splink.toml"
        path.write_text(
            'host = "sppro"\n'
            'password = "test"\n'
            'sink = "sqlite"\n'
            '[sqlite]\n'
            'db = "splink.db"\n'
        )
        return path

    def _run(self, monkeypatch, argv, fake):
        monkeypatch.setattr("sys.argv", ["splink"] + argv)
        monkeypatch.setattr(daemon_mod.signal, "signal", lambda *args: None)
        monkeypatch.setattr(
            daemon_mod, "Session", lambda url, baudrate: make_session(fake)
        )
        return main()

    def test_once_polls_and_disconnects(self, monkeypatch, config, tmp_path):
        """--once logs in, stores one cycle and releases the com port."""
        fake = FakeInverter({ADDR_COMPORT: COMPORT_UNAUTHENTICATED},
                            password="test")

        status = self._run(monkeypatch, [str(config), "--once"], fake)

        assert status == 0
        assert fake.writes[-1] == (ADDR_DISCONNECT, [1])
        assert fake.closed
        with Storage(str(tmp_path / "splink.db")) as store:
            assert len(store.fetch_points(100)) > 0

    def test_auth_failure_exits_1(self, monkeypatch, config):
        """A rejected login is fatal but the port is still closed."""
        fake = FakeInverter({ADDR_COMPORT: COMPORT_UNAUTHENTICATED},
                            password="other")

        status = self._run(monkeypatch, [str(config), "--once"], fake)

        assert status == 1
        assert fake.closed

    def test_timeout_exits_1_after_disconnect(self, monkeypatch, config):
        """A timeout mid-run is fatal and still attempts a disconnect."""
        fake = FakeInverter({ADDR_COMPORT: 2})
        original_read = fake.read

        def read_then_stop(n):
            # Answer the com port read and writes; go quiet on polls.
            if len(fake.sent) == 1 or fake.sent[-1][0] == OP_WRITE:
                return original_read(n)
            return b""

        fake.read = read_then_stop

        status = self._run(monkeypatch, [str(config), "--once"], fake)

        assert status == 1
        assert fake.writes == [(ADDR_DISCONNECT + 1, [1])]
        assert fake.closed

    def test_missing_config_exits_1(self, monkeypatch, tmp_path):
        """An unknown config file is reported and exits 1."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr("sys.argv", ["splink", "nope/splink.toml"])
        assert main() == 1

    def test_connect_failure_exits_1(self, monkeypatch, config):
        """A link that cannot be opened exits 1."""
        def refuse(url, baudrate):
            raise ConnectionError("cannot open socket://sppro:3000")

        monkeypatch.setattr("sys.argv", ["splink", str(config)])
        monkeypatch.setattr(daemon_mod.signal, "signal", lambda *args: None)
        monkeypatch.setattr(daemon_mod, "Session", refuse)
        assert main() == 1

    def test_sink_failure_closes_session(self, monkeypatch, config):
        """A sink that cannot be opened exits 1 and still closes the link."""
        fake = FakeInverter({ADDR_COMPORT: 2})

        def unwritable(db_path):
            raise PermissionError(13, "Permission denied", db_path)

        monkeypatch.setattr(daemon_mod, "Storage", unwritable)

        status = self._run(monkeypatch, [str(config), "--once"], fake)

        assert status == 1
        assert fake.writes == []
        assert fake.closed
