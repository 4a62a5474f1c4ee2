"""InfluxDB sink over UDP.

Each poll cycle becomes one datagram for an InfluxDB UDP listener
(default port 8089), sent with the ``influxdb`` client.  Timestamps
are whole seconds, so the listener must be configured with
``precision = "s"``.

Example:
    >>> from splink.sink import InfluxSink
    >>> sink = InfluxSink("localhost", 8089)
    >>> sink.write(records)
    >>> sink.close()
"""

import logging

from influxdb import InfluxDBClient
from influxdb.line_protocol import make_lines

from splink.poller import Point, Transition

log = logging.getLogger(__name__)

PRECISION = "s"


def to_point(record) -> dict:
    """Convert a Point or Transition to an influxdb JSON point."""
    if isinstance(record, Point):
        tag = record.value_type
        fields = {"value": float(record.value)}
    elif isinstance(record, Transition):
        tag = record.transition_type
        fields = {"from_state": record.from_state, "to_state": record.to_state}
    else:
        raise TypeError("cannot format {}".format(type(record).__name__))
    return {
        "measurement": record.measurement,
        "tags": {"type": tag},
        "fields": fields,
        "time": record.timestamp,
    }


def format_record(record) -> str:
    """Render a record as the line the sink puts on the wire.

    Example:
        >>> format_record(Point("power", "source", 2928.5, 1700000000))
        'power,type=source value=2928.5 1700000000'
    """
    return make_lines({"points": [to_point(record)]}, PRECISION).rstrip("\n")


class InfluxSink:
    """Sends records to an InfluxDB UDP listener.

    Send failures (unresolvable host, unreachable network) are logged
    and the cycle is dropped; they never stop the poll loop.

    Args:
        host: Listener host name or address.
        port: Listener UDP port.
    """

    def __init__(self, host: str, port: int):
        """Create the UDP client."""
        self._host = host
        self._port = port
        self._client = InfluxDBClient(host=host, use_udp=True, udp_port=port)

    def write(self, records) -> None:
        """Send all *records* from one cycle as a single datagram."""
        if not records:
            return
        points = [to_point(r) for r in records]
        try:
            self._client.write_points(points, time_precision=PRECISION)
        except OSError as exc:
            log.warning("influx %s:%d: dropped %d records: %s",
                        self._host, self._port, len(points), exc)
            return
        log.debug("sent %d records to %s:%d", len(points), self._host,
                  self._port)

    def close(self) -> None:
        """Close the client and its UDP socket."""
        self._client.close()
        self._client.udp_socket.close()
