"""Challenge-response login to the SP PRO.

The device hands out a 16-byte challenge; the client answers with the
MD5 of the challenge followed by the password padded with spaces to
32 bytes.  MD5 is what the firmware expects and cannot be changed here.

Example:
    >>> from splink.auth import authenticate
    >>> authenticate(session, "Selectronic SP PRO")
    1
"""

import hashlib
import logging
import struct

from splink.errors import AuthenticationError
from splink.protocol import (
    ADDR_CHALLENGE,
    ADDR_CHALLENGE_SUCCESS,
    ADDR_COMPORT,
    COMPORT_UNAUTHENTICATED,
)
from splink.registers import u16

log = logging.getLogger(__name__)

CHALLENGE_REGISTERS = 8
PASSWORD_LEN = 32


def auth_digest(challenge: bytes, password: str) -> bytes:
    """Return the 16-byte response to *challenge*.

    Example:
        >>> len(auth_digest(bytes(16), "test"))
        16
    """
    padded = password.encode("utf-8").ljust(PASSWORD_LEN, b" ")
    return hashlib.md5(challenge + padded, usedforsecurity=False).digest()


def _read_com_port(session) -> int:
    return u16(session.read(ADDR_COMPORT, 1))


def authenticate(session, password: str) -> int:
    """Unlock register access and return the assigned com port.

    Skips the handshake when the com port register already holds a
    valid port.  The result is stored on ``session.com_port`` and not
    validated further.

    Raises:
        AuthenticationError: If the device does not report success.
    """
    com_port = _read_com_port(session)

    if com_port == COMPORT_UNAUTHENTICATED:
        log.info("unauthenticated, answering challenge")
        challenge = session.read(ADDR_CHALLENGE, CHALLENGE_REGISTERS)
        digest = auth_digest(challenge, password)
        session.write(ADDR_CHALLENGE, list(struct.unpack(">8H", digest)))

        success = u16(session.read(ADDR_CHALLENGE_SUCCESS, 1))
        if success != 1:
            raise AuthenticationError(
                "challenge rejected (success register = {})".format(success)
            )
        com_port = _read_com_port(session)

    log.info("using com port %d", com_port)
    session.com_port = com_port
    return com_port
