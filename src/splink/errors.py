"""Exception types for fatal Splink protocol conditions.

Link-level failures use the builtin ``ConnectionError``,
``TimeoutError`` and ``OSError``.  CRC mismatches are not exceptions;
see ``splink.protocol.Response``.
"""


class SplinkError(Exception):
    """Base class for Splink protocol failures."""


class ProtocolError(SplinkError):
    """The device did not echo a write request back byte for byte."""


class AuthenticationError(SplinkError):
    """The device rejected the challenge response."""
