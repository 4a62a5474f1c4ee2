"""Shared pytest fixtures for splink tests."""

import socket
import struct
from unittest.mock import patch

from splink.auth import auth_digest
from splink.protocol import (
    ADDR_CHALLENGE,
    ADDR_CHALLENGE_SUCCESS,
    ADDR_COMPORT,
    ADDR_DISCONNECT,
    COMPORT_UNAUTHENTICATED,
    HEADER_LEN,
    OP_READ,
    crc16,
)
from splink.session import Session

CHALLENGE = bytes(range(0x10, 0x20))


class FakeInverter:
    """Test double for a pyserial port that answers like an SP PRO.

    Reads are served from the ``regs`` word dict; writes are recorded
    in ``writes`` and echoed.  Knobs: ``corrupt`` flips a payload byte
    in read responses, ``bad_echo`` flips a byte of the write echo,
    ``silent`` drops every response, ``success_code`` is reported
    after a correct challenge response, ``assign_port`` is the com
    port handed out on login.
    """

    def __init__(self, regs=None, password="Selectronic SP PRO",
                 challenge=CHALLENGE):
        """Initialize with a register dict and login secret."""
        self.regs = dict(regs or {})
        self.password = password
        self.challenge = challenge
        self.corrupt = False
        self.bad_echo = False
        self.silent = False
        self.success_code = 1
        self.assign_port = 1
        self.sent = []
        self.writes = []
        self.closed = False
        self._rx = b""

    def reads(self, addr):
        """Return how many read requests targeted *addr*."""
        return sum(
            1 for p in self.sent
            if p[0] == OP_READ and struct.unpack_from("<I", p, 2)[0] == addr
        )

    def reset_input_buffer(self):
        self._rx = b""

    def flush(self):
        pass

    def close(self):
        self.closed = True

    def write(self, data):
        """Record a request and queue the device's answer."""
        data = bytes(data)
        self.sent.append(data)
        if self.silent:
            return len(data)
        op, length, addr = struct.unpack_from("<BBI", data)
        count = length + 1

        if op == OP_READ:
            payload = self._payload(addr, count)
            body = payload + struct.pack("<H", crc16(payload))
            if self.corrupt:
                body = bytes([body[0] ^ 0xFF]) + body[1:]
            self._rx += data[:HEADER_LEN] + body
        else:
            words = list(struct.unpack_from("<%dH" % count, data, HEADER_LEN))
            self.writes.append((addr, words))
            self._apply(addr, words)
            echo = data
            if self.bad_echo:
                echo = data[:-1] + bytes([data[-1] ^ 0xFF])
            self._rx += echo
        return len(data)

    def read(self, n):
        """Return up to *n* queued bytes, like a port that timed out."""
        out, self._rx = self._rx[:n], self._rx[n:]
        return out

    def _payload(self, addr, count):
        if addr == ADDR_CHALLENGE:
            return self.challenge[: 2 * count]
        words = [self.regs.get(addr + i, 0) for i in range(count)]
        return struct.pack("<%dH" % count, *words)

    def _apply(self, addr, words):
        if addr == ADDR_CHALLENGE:
            expected = auth_digest(self.challenge, self.password)
            if struct.pack(">8H", *words) == expected:
                self.regs[ADDR_CHALLENGE_SUCCESS] = self.success_code
                self.regs[ADDR_COMPORT] = self.assign_port
            else:
                self.regs[ADDR_CHALLENGE_SUCCESS] = 0
        elif addr in (ADDR_DISCONNECT, ADDR_DISCONNECT + 1):
            self.regs[ADDR_COMPORT] = COMPORT_UNAUTHENTICATED
        else:
            for i, word in enumerate(words):
                self.regs[addr + i] = word


def make_session(inverter: FakeInverter) -> Session:
    """Open a Session whose pyserial port is *inverter*."""
    with patch("splink.session.serial.serial_for_url", return_value=inverter):
        return Session("socket://sppro:3000")


class FailingSocket:
    """UDP socket stand-in whose sends fail like an unresolvable host."""

    def __init__(self):
        self.attempts = 0
        self.closed = False

    def sendto(self, data, addr):
        self.attempts += 1
        raise socket.gaierror(-2, "Name or service not known")

    def close(self):
        self.closed = True
