"""Frame encoding and decoding for the SP PRO Splink protocol.

Every request starts with an 8-byte header block:
OP, LEN, ADDR (uint32), CRC_LO, CRC_HI.  LEN holds the register count
minus one.  Write requests and read responses carry a payload of
16-bit little-endian registers followed by its own CRC.

Example:
    >>> from splink.protocol import encode_read, decode_response
    >>> encode_read(0xA000, 1)[:6].hex(' ')
    '51 00 00 a0 00 00'
    >>> resp = decode_response(raw, 1)
    >>> resp.payload, resp.ok
    (b'\\x01\\x00', True)
"""

import struct
from dataclasses import dataclass

# -- Protocol constants ------------------------------------------------------

OP_READ = ord("Q")
OP_WRITE = ord("W")

HEADER_LEN = 8
CRC_LEN = 2
MAX_REGISTERS = 256

ADDR_COMPORT = 0x0000A000
ADDR_DISCONNECT = 0x0000A00D
ADDR_CHALLENGE = 0x001F0000
ADDR_CHALLENGE_SUCCESS = 0x001F0010

COMPORT_UNAUTHENTICATED = 0xFFFF

_HEADER = struct.Struct("<BBI")

# -- CRC-16 ------------------------------------------------------------------


def crc16(data):
    """Compute the SP PRO CRC-16 over a byte sequence.

    Reflected CCITT polynomial (0x8408) with initial value 0xFFFF and
    no final XOR.  Appended little-endian, a valid block always yields
    a residue of zero.

    Args:
        data: Bytes-like object to compute the CRC over.

    Returns:
        int: 16-bit CRC value.

    Example:
        >>> hex(crc16(b"123456789"))
        '0x6f91'
        >>> block = b"\\x51\\x00"
        >>> crc16(block + struct.pack("<H", crc16(block)))
        0
    """
    crc = 0xFFFF
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 0x0001:
                crc = (crc >> 1) ^ 0x8408
            else:
                crc >>= 1
    return crc


def _with_crc(body):
    return body + struct.pack("<H", crc16(body))


# -- Encoding ----------------------------------------------------------------


def encode_header(op, address, count):
    """Build the 8-byte header block for a request.

    Args:
        op: ``OP_READ`` or ``OP_WRITE``.
        address: 32-bit register address.
        count: Number of registers (1-256).

    Returns:
        bytes: OP, LEN (count - 1), ADDR little-endian, then the CRC.

    Raises:
        ValueError: On an unknown op, a count outside 1-256, or an
            address that does not fit in 32 bits.

    Example:
        >>> len(encode_header(OP_READ, ADDR_COMPORT, 1))
        8
    """
    if op not in (OP_READ, OP_WRITE):
        raise ValueError("unknown op 0x{:02X}".format(op))
    if not (1 <= count <= MAX_REGISTERS):
        raise ValueError(
            "count must be in range 1-{}, got {}".format(MAX_REGISTERS, count)
        )
    if not (0 <= address <= 0xFFFFFFFF):
        raise ValueError("address out of range: 0x{:X}".format(address))
    return _with_crc(_HEADER.pack(op, count - 1, address))


def encode_write_payload(values):
    """Serialize register values little-endian and append their CRC.

    Raises:
        ValueError: If *values* is empty or holds a value outside uint16.

    Example:
        >>> encode_write_payload([1])[:2].hex(' ')
        '01 00'
    """
    values = list(values)
    if not values:
        raise ValueError("write payload must not be empty")
    for v in values:
        if not (0 <= v <= 0xFFFF):
            raise ValueError("register value out of range: {}".format(v))
    return _with_crc(struct.pack("<{}H".format(len(values)), *values))


def encode_read(address, count):
    """Build a complete read request (header block only)."""
    return encode_header(OP_READ, address, count)


def encode_write(address, values):
    """Build a complete write request: header block + payload + CRC."""
    values = list(values)
    payload = encode_write_payload(values)
    return encode_header(OP_WRITE, address, len(values)) + payload


# -- Decoding ----------------------------------------------------------------


@dataclass
class Response:
    """A split read response.

    ``payload`` is returned even when a CRC check failed; the flags
    tell the caller whether it can be trusted.
    """

    payload: bytes
    header_ok: bool
    payload_ok: bool

    @property
    def ok(self) -> bool:
        return self.header_ok and self.payload_ok


def response_length(count):
    """Return the byte length of a read response for *count* registers."""
    return HEADER_LEN + 2 * count + CRC_LEN


def decode_response(raw, count):
    """Split a raw read response and check both CRC residues.

    Args:
        raw: Bytes received from the device.
        count: Number of registers that were requested.

    Returns:
        Response: payload bytes (header and trailing CRC stripped) plus
            the header and payload CRC results.

    Raises:
        ValueError: If *raw* is not exactly ``response_length(count)``
            bytes long.  CRC mismatches never raise.

    Example:
        >>> resp = decode_response(raw, 1)
        >>> resp.header_ok, resp.payload_ok
        (True, True)
    """
    expected = response_length(count)
    if len(raw) != expected:
        raise ValueError(
            "length mismatch: expected {} bytes for {} registers, "
            "got {}".format(expected, count, len(raw))
        )
    header_ok = crc16(raw[:HEADER_LEN]) == 0
    payload_ok = crc16(raw[HEADER_LEN:]) == 0
    return Response(
        payload=bytes(raw[HEADER_LEN:-CRC_LEN]),
        header_ok=header_ok,
        payload_ok=payload_ok,
    )
