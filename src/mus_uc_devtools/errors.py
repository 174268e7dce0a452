"""Error types for Marionette client failures.

Hierarchy::

    MarionetteError
    ├── MarionetteConnectionError      cannot establish or validate the peer
    │   ├── MarionetteUnreachable
    │   └── MarionetteUnexpectedPeer
    ├── MarionetteFramingError         malformed frame, fatal to the connection
    ├── MarionetteTransportError       I/O failure mid-call, fatal to the connection
    │   ├── MarionetteTimeout
    │   ├── MarionetteIdentifierMismatch
    │   └── MarionetteConnectionClosed
    ├── MarionetteCommandError         remote reported an error, connection still usable
    └── MarionetteDecodeError          result did not have the expected shape
"""

from __future__ import annotations


class MarionetteError(Exception):
    """Base error for Marionette client failures."""


class MarionetteConnectionError(MarionetteError):
    """The transport to the remote application could not be established."""

    def __init__(self, host: str, port: int, message: str) -> None:
        super().__init__(message)
        self.host = host
        self.port = port


class MarionetteUnreachable(MarionetteConnectionError):
    """The socket could not be opened (refused, timed out, DNS failure)."""

    def __init__(self, host: str, port: int, cause: OSError) -> None:
        super().__init__(
            host, port, f"Could not connect to Marionette at {host}:{port}: {cause}"
        )
        self.cause = cause


class MarionetteUnexpectedPeer(MarionetteConnectionError):
    """The handshake did not identify the expected application."""


class MarionetteFramingError(MarionetteError):
    """Malformed length prefix, invalid JSON, or unexpected message shape."""


class MarionetteTransportError(MarionetteError):
    """Socket-level failure during a call."""


class MarionetteTimeout(MarionetteTransportError):
    """No complete response arrived within the read timeout."""


class MarionetteIdentifierMismatch(MarionetteTransportError):
    """The response echoed a different message id than the one sent."""

    def __init__(self, expected: int, received: object) -> None:
        super().__init__(
            f"Response id {received!r} does not match request id {expected}"
        )
        self.expected = expected
        self.received = received


class MarionetteConnectionClosed(MarionetteTransportError):
    """The stream closed, possibly in the middle of a frame."""


class MarionetteCommandError(MarionetteError):
    """The remote application reported an error for a command."""

    def __init__(
        self,
        kind: str,
        message: str,
        remote_trace: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.remote_trace = remote_trace

    def __str__(self) -> str:
        text = f"{self.kind}: {self.message}"
        if self.remote_trace:
            text += f"\n{self.remote_trace}"
        return text

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "kind": self.kind,
            "stacktrace": self.remote_trace,
        }


class MarionetteDecodeError(MarionetteError):
    """A command result did not match the shape a helper expects."""
