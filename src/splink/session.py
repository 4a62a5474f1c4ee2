"""Transport session for the SP PRO serial link.

Wraps a pyserial port opened with ``serial.serial_for_url`` so the
same code drives a TCP serial bridge (``socket://host:port``) or a
local RS-232 device.  Requests and responses strictly alternate on
the wire; an internal lock keeps every exchange atomic.

Example:
    >>> from splink.session import Session
    >>> session = Session("socket://192.168.1.50:3000")
    >>> session.read(0xA000, 1)
    b'\\x01\\x00'
    >>> session.disconnect()
"""

import logging
import threading

import serial

from splink.errors import ProtocolError
from splink.protocol import (
    ADDR_DISCONNECT,
    COMPORT_UNAUTHENTICATED,
    decode_response,
    encode_read,
    encode_write,
    response_length,
)

log = logging.getLogger(__name__)

# Per-exchange deadline in seconds.
TIMEOUT_S = 5.0


class Session:
    """One point-to-point Splink session.

    Owns the underlying port for the lifetime of the process.  The
    ``com_port`` attribute is set by ``splink.auth.authenticate`` and
    selects the disconnect register used at shutdown.

    Args:
        url: pyserial URL or device path, e.g.
            ``"socket://192.168.1.50:3000"`` or ``"/dev/ttyUSB0"``.
        timeout: Read and write deadline per exchange, in seconds.
        baudrate: Baud rate for a local serial device.

    Raises:
        ConnectionError: If the link cannot be opened.
    """

    def __init__(self, url: str, timeout: float = TIMEOUT_S,
                 baudrate: int = 57600):
        """Open the link."""
        try:
            self._port = serial.serial_for_url(
                url, baudrate=baudrate, timeout=timeout, write_timeout=timeout,
            )
        except (serial.SerialException, ValueError) as exc:
            raise ConnectionError("cannot open {}: {}".format(url, exc)) from exc
        self._url = url
        self._lock = threading.RLock()
        self.connected = True
        self.com_port = COMPORT_UNAUTHENTICATED
        self.checksum_errors = 0
        log.info("connected to %s", url)

    def _exchange(self, packet: bytes, length: int) -> bytes:
        """Send *packet* and read up to *length* bytes back."""
        if not self.connected:
            raise ConnectionError("session to {} is closed".format(self._url))
        log.debug("tx %s", packet.hex(" "))
        self._port.reset_input_buffer()
        self._port.write(packet)
        self._port.flush()
        data = self._port.read(length)
        log.debug("rx %s", data.hex(" "))
        return data

    def read(self, address: int, count: int) -> bytes:
        """Read *count* registers starting at *address*.

        Returns only the payload bytes.  A CRC mismatch is logged and
        counted but the payload is still returned, since the device
        has no retransmission.

        Raises:
            TimeoutError: If the full response does not arrive within
                the deadline.
            OSError: On a link failure.

        Example:
            >>> session.read(0xA05C, 1)
            b'\\x00\\x40'
        """
        expected = response_length(count)
        with self._lock:
            raw = self._exchange(encode_read(address, count), expected)
        if len(raw) < expected:
            raise TimeoutError(
                "short read at 0x{:X}: got {} of {} bytes".format(
                    address, len(raw), expected
                )
            )

        response = decode_response(raw, count)
        if not response.ok:
            self.checksum_errors += 1
            log.warning(
                "CRC mismatch reading 0x%X (header %s, payload %s): %s",
                address,
                "ok" if response.header_ok else "bad",
                "ok" if response.payload_ok else "bad",
                raw.hex(" "),
            )
        return response.payload

    def write(self, address: int, values: list[int]) -> None:
        """Write *values* to consecutive registers starting at *address*.

        The device acknowledges by echoing the request byte for byte.

        Raises:
            ProtocolError: If the echo is short or differs from the
                request.  The session cannot recover from this.
        """
        packet = encode_write(address, values)
        with self._lock:
            echo = self._exchange(packet, len(packet))
        if echo != packet:
            raise ProtocolError(
                "bad write echo at 0x{:X}: sent {}, got {}".format(
                    address, packet.hex(" "), echo.hex(" ") or "nothing"
                )
            )

    def disconnect(self) -> None:
        """Release the com port and close the link.

        Writes 1 to the disconnect register for com port 1 or 2; other
        values skip the write.  The port is closed even if the write
        fails.  Calling again is a no-op.
        """
        with self._lock:
            if not self.connected:
                return
            try:
                if self.com_port in (1, 2):
                    log.info("disconnecting com port %d", self.com_port)
                    self.write(ADDR_DISCONNECT + self.com_port - 1, [1])
            finally:
                self.com_port = COMPORT_UNAUTHENTICATED
                self.connected = False
                self._port.close()

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()
