"""Marionette client for Firefox chrome-context automation."""

from .client import MarionetteClient
from .config import MarionetteSettings
from .errors import (
    MarionetteCommandError,
    MarionetteConnectionClosed,
    MarionetteConnectionError,
    MarionetteDecodeError,
    MarionetteError,
    MarionetteFramingError,
    MarionetteIdentifierMismatch,
    MarionetteTimeout,
    MarionetteTransportError,
    MarionetteUnexpectedPeer,
    MarionetteUnreachable,
)
from .protocol.commands import Context
from .transport.tcp_connection import TCPConnection

__version__ = "0.1.0"

__all__ = [
    "Context",
    "MarionetteClient",
    "MarionetteCommandError",
    "MarionetteConnectionClosed",
    "MarionetteConnectionError",
    "MarionetteDecodeError",
    "MarionetteError",
    "MarionetteFramingError",
    "MarionetteIdentifierMismatch",
    "MarionetteSettings",
    "MarionetteTimeout",
    "MarionetteTransportError",
    "MarionetteUnexpectedPeer",
    "MarionetteUnreachable",
    "TCPConnection",
]
