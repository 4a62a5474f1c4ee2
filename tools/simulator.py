#!/usr/bin/env python3
"""Virtual SP PRO simulator for splink.

Listens on a TCP port and answers Splink read and write requests from
an in-memory register bank, the way a serial bridge in front of an
SP PRO would.  Implements the login challenge, write echo and the
disconnect registers.  Battery and load values wander a little on
every read; the generator start reason flips now and then.

Usage:
    python simulator.py <port> [password]

Args:
    port: TCP port to listen on (e.g. 3000).
    password: Login password (default "Selectronic SP PRO").

Example:
    python simulator.py 3000 test
"""

import hashlib
import os
import random
import socket
import struct
import sys

# Add parent src to path so we can import splink
sys.path.insert(0, str(__import__("pathlib").Path(__file__).resolve().parents[1] / "src"))

from splink.protocol import (
    ADDR_CHALLENGE,
    ADDR_CHALLENGE_SUCCESS,
    ADDR_COMPORT,
    ADDR_DISCONNECT,
    COMPORT_UNAUTHENTICATED,
    CRC_LEN,
    HEADER_LEN,
    OP_READ,
    OP_WRITE,
    crc16,
)
from splink.registers import (
    ADDR_BATTERY_POWER,
    ADDR_BATTERY_TEMPERATURE,
    ADDR_BATTERY_VOLTS,
    ADDR_GENERATOR_REASON,
    ADDR_LOAD_POWER,
    ADDR_SOURCE_POWER,
)


class Inverter:
    """Register bank plus the device-side login state machine.

    Args:
        password: Password the challenge response must match.
    """

    def __init__(self, password):
        """Initialize registers with plausible idle values."""
        self.password = password
        self.regs = {}
        self.regs[ADDR_COMPORT] = COMPORT_UNAUTHENTICATED
        self.regs[ADDR_CHALLENGE_SUCCESS] = 0
        self.regs[ADDR_BATTERY_VOLTS] = 17067       # ~50.0 V
        self.regs[ADDR_BATTERY_TEMPERATURE] = 215   # 21.5 C
        self.regs[ADDR_SOURCE_POWER] = 0
        self.regs[ADDR_LOAD_POWER] = 256
        self.regs[ADDR_GENERATOR_REASON] = 0
        self._set32(ADDR_BATTERY_POWER, -800)
        self._new_challenge()

    def _set32(self, addr, value):
        lo, hi = struct.unpack("<HH", struct.pack("<i", value))
        self.regs[addr] = lo
        self.regs[addr + 1] = hi

    def _new_challenge(self):
        self.challenge = os.urandom(16)
        for i, word in enumerate(struct.unpack("<8H", self.challenge)):
            self.regs[ADDR_CHALLENGE + i] = word

    def _wander(self):
        self.regs[ADDR_LOAD_POWER] = max(0, self.regs[ADDR_LOAD_POWER]
                                         + random.randint(-20, 20))
        if random.random() < 0.05:
            self.regs[ADDR_GENERATOR_REASON] ^= 0x02

    def read(self, addr, count):
        """Return *count* register words from *addr* as bytes."""
        if addr == ADDR_CHALLENGE:
            return self.challenge[: 2 * count].ljust(2 * count, b"\x00")
        self._wander()
        words = [self.regs.get(addr + i, 0) for i in range(count)]
        return struct.pack("<{}H".format(count), *words)

    def write(self, addr, words):
        """Apply a register write, handling login and disconnect."""
        if addr == ADDR_CHALLENGE:
            padded = self.password.encode("utf-8").ljust(32, b" ")
            expected = hashlib.md5(self.challenge + padded).digest()
            if struct.pack(">8H", *words) == expected:
                self.regs[ADDR_CHALLENGE_SUCCESS] = 1
                self.regs[ADDR_COMPORT] = 1
            else:
                self.regs[ADDR_CHALLENGE_SUCCESS] = 0
            return
        if addr in (ADDR_DISCONNECT, ADDR_DISCONNECT + 1) and words == [1]:
            self.regs[ADDR_COMPORT] = COMPORT_UNAUTHENTICATED
            self.regs[ADDR_CHALLENGE_SUCCESS] = 0
            self._new_challenge()
            return
        for i, word in enumerate(words):
            self.regs[addr + i] = word


def _recv_exact(sock, n):
    """Receive exactly n bytes, or b'' if the peer went away."""
    data = b""
    while len(data) < n:
        chunk = sock.recv(n - len(data))
        if not chunk:
            return b""
        data += chunk
    return data


def serve_client(sock, inverter):
    """Answer requests on *sock* until the client disconnects."""
    while True:
        header = _recv_exact(sock, HEADER_LEN)
        if not header:
            return
        if crc16(header) != 0:
            continue
        op, length, addr = struct.unpack_from("<BBI", header)
        count = length + 1

        if op == OP_READ:
            payload = inverter.read(addr, count)
            body = payload + struct.pack("<H", crc16(payload))
            sock.sendall(header + body)
        elif op == OP_WRITE:
            body = _recv_exact(sock, 2 * count + CRC_LEN)
            if not body:
                return
            if crc16(body) == 0:
                words = list(struct.unpack_from("<{}H".format(count), body))
                inverter.write(addr, words)
            sock.sendall(header + body)


def run(port, password):
    """Run the simulator loop, one client connection at a time."""
    inverter = Inverter(password)
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    server.bind(("127.0.0.1", port))
    server.listen(1)

    print("simulator: listening on 127.0.0.1:{}".format(port), flush=True)

    try:
        while True:
            conn, _ = server.accept()
            with conn:
                try:
                    serve_client(conn, inverter)
                except OSError:
                    pass
    except KeyboardInterrupt:
        pass
    finally:
        server.close()


if __name__ == "__main__":
    if len(sys.argv) not in (2, 3):
        print("usage: simulator.py <port> [password]", file=sys.stderr)
        sys.exit(1)
    run(int(sys.argv[1]), sys.argv[2] if len(sys.argv) == 3 else "Selectronic SP PRO")
