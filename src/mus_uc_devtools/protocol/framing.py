"""Length-prefixed JSON framing for the Marionette stream.

Frame layout::

    +-------------------+-------+-----------------------------+
    | Length            | Colon |           Payload           |
    | ASCII decimal     | ":"   | exactly Length bytes of     |
    | byte count        |       | UTF-8 encoded JSON          |
    +-------------------+-------+-----------------------------+

There is no terminator; the byte count is authoritative. A stream may
deliver frames in arbitrary chunks, so decoding is incremental: a partial
frame stays buffered until the rest arrives.
"""

from __future__ import annotations

import json
from typing import Any

from ..errors import MarionetteFramingError

SEPARATOR = b":"


class _NeedMoreData:
    """Sentinel returned while a frame is still incomplete."""

    def __repr__(self) -> str:
        return "NEED_MORE_DATA"


NEED_MORE_DATA = _NeedMoreData()


def encode(payload: Any) -> bytes:
    """Serialize *payload* to a single frame.

    Args:
        payload: Any JSON-serializable value.

    Returns:
        ``b"<N>:<json>"`` where ``N`` is the byte length of the UTF-8 JSON.
    """
    body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return str(len(body)).encode("ascii") + SEPARATOR + body


def _decode_frame(buffer: bytes | bytearray) -> tuple[Any, int]:
    """Decode the frame at the start of *buffer* without copying it.

    Returns ``(value, end)`` where ``end`` is the offset just past the
    frame, or ``(NEED_MORE_DATA, 0)``.
    """
    sep = buffer.find(SEPARATOR)
    if sep == -1:
        return NEED_MORE_DATA, 0

    prefix = buffer[:sep]
    # isdigit() only accepts ASCII 0-9, which rules out signs and spaces
    if not prefix or not prefix.isdigit():
        raise MarionetteFramingError(f"Invalid length prefix: {bytes(prefix[:32])!r}")
    length = int(prefix)

    start = sep + 1
    end = start + length
    if len(buffer) < end:
        return NEED_MORE_DATA, 0
    if length == 0:
        return "", end

    try:
        value = json.loads(buffer[start:end].decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as err:
        raise MarionetteFramingError(f"Invalid JSON in {length}-byte frame: {err}") from err
    return value, end


def decode_next(buffer: bytes) -> tuple[Any, bytes]:
    """Decode the first frame in *buffer*.

    Returns:
        ``(value, remaining)`` when a complete frame is present, or
        ``(NEED_MORE_DATA, buffer)`` when more bytes are required. The
        buffer is never consumed until a whole frame is available.

    Raises:
        MarionetteFramingError: If the length prefix is not an unsigned
            decimal integer, or the payload is not valid UTF-8 JSON.
    """
    value, end = _decode_frame(buffer)
    if value is NEED_MORE_DATA:
        return NEED_MORE_DATA, bytes(buffer)
    return value, bytes(buffer[end:])


class FrameDecoder:
    """Incremental decoder that accumulates stream chunks.

    Usage::

        decoder = FrameDecoder()
        decoder.feed(sock.recv(4096))
        for message in decoder:
            handle(message)
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet part of a decoded frame."""
        return len(self._buffer)

    def feed(self, data: bytes) -> None:
        self._buffer.extend(data)

    def next_frame(self) -> Any:
        """Return the next complete frame, or ``NEED_MORE_DATA``."""
        value, end = _decode_frame(self._buffer)
        if value is not NEED_MORE_DATA:
            del self._buffer[:end]
        return value

    def __iter__(self):
        while True:
            value = self.next_frame()
            if value is NEED_MORE_DATA:
                return
            yield value
