"""Stream transport to the Marionette server."""

from .tcp_connection import TCPConnection
