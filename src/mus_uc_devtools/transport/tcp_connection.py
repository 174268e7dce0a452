"""TCP connection to a Marionette server.

The server speaks first: right after the socket opens it sends a handshake
frame naming the application type and protocol version. After that the
exchange is strictly one request, one response, on a single stream. There
is no multiplexing, so a connection must not be shared between threads
without external locking.
"""

from __future__ import annotations

import logging
import socket
import time
from typing import Any

from ..config import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    EXPECTED_APPLICATION_TYPE,
    PROTOCOL_VERSION,
)
from ..errors import (
    MarionetteConnectionClosed,
    MarionetteFramingError,
    MarionetteIdentifierMismatch,
    MarionetteTimeout,
    MarionetteTransportError,
    MarionetteUnexpectedPeer,
    MarionetteUnreachable,
)
from ..protocol.commands import Command, Context, build_request
from ..protocol.framing import NEED_MORE_DATA, FrameDecoder, encode
from ..protocol.parser import Handshake, Response, parse_handshake, parse_response

logger = logging.getLogger(__name__)

RECV_SIZE = 65536


class TCPConnection:
    """Owns the socket to one Marionette server.

    Usage::

        conn = TCPConnection.connect("127.0.0.1", 2828)
        response = conn.call("Marionette:GetContext")
        conn.close()

    Any framing or transport failure closes the connection, since the next
    response on the stream can no longer be correlated.
    """

    def __init__(
        self,
        sock: socket.socket,
        host: str,
        port: int,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._sock: socket.socket | None = sock
        self._host = host
        self._port = port
        self._timeout = timeout
        self._decoder = FrameDecoder()
        self._message_id = 0
        self._context = Context.CONTENT
        self._handshake: Handshake | None = None

    @classmethod
    def connect(
        cls,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        expected_application: str = EXPECTED_APPLICATION_TYPE,
    ) -> TCPConnection:
        """Open a socket and wait for the server's handshake.

        Raises:
            MarionetteUnreachable: If the socket cannot be opened.
            MarionetteUnexpectedPeer: If no valid handshake arrives in time,
                or it names another application. The socket is closed first.
        """
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except OSError as err:
            raise MarionetteUnreachable(host, port, err) from err

        conn = cls(sock, host, port, timeout=timeout)
        try:
            conn._handshake = conn._read_handshake(expected_application)
        except (MarionetteTransportError, MarionetteFramingError) as err:
            conn.close()
            raise MarionetteUnexpectedPeer(
                host, port, f"No valid Marionette handshake from {host}:{port}: {err}"
            ) from err
        except BaseException:
            conn.close()
            raise

        logger.info(
            "Connected to %s at %s:%s (protocol %s)",
            conn._handshake.application_type,
            host,
            port,
            conn._handshake.protocol,
        )
        return conn

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def closed(self) -> bool:
        return self._sock is None

    @property
    def message_id(self) -> int:
        """Id of the most recent request, 0 before the first one."""
        return self._message_id

    @property
    def handshake(self) -> Handshake | None:
        return self._handshake

    @property
    def application_type(self) -> str | None:
        return self._handshake.application_type if self._handshake else None

    @property
    def protocol(self) -> int | None:
        return self._handshake.protocol if self._handshake else None

    @property
    def context(self) -> Context:
        """Privilege context last confirmed by the server."""
        return self._context

    def track_context(self, context: Context | str) -> None:
        """Record a context switch the server has acknowledged."""
        self._context = Context(context)

    def _read_handshake(self, expected_application: str) -> Handshake:
        payload = self._read_frame(self._timeout)
        handshake = parse_handshake(payload, host=self._host, port=self._port)

        if handshake.application_type != expected_application:
            raise MarionetteUnexpectedPeer(
                self._host,
                self._port,
                f"Unexpected application type {handshake.application_type!r} "
                f"at {self._host}:{self._port}, expected {expected_application!r}",
            )
        if handshake.protocol != PROTOCOL_VERSION:
            logger.warning(
                "Server at %s:%s reports protocol %s, client targets %s",
                self._host,
                self._port,
                handshake.protocol,
                PROTOCOL_VERSION,
            )
        return handshake

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise MarionetteConnectionClosed(
                f"Connection to {self._host}:{self._port} is closed"
            )
        return self._sock

    def _send(self, data: bytes) -> None:
        sock = self._require_socket()
        sock.settimeout(self._timeout)
        try:
            sock.sendall(data)
        except socket.timeout as err:
            raise MarionetteTimeout(
                f"Timed out writing to {self._host}:{self._port}"
            ) from err
        except OSError as err:
            raise MarionetteTransportError(
                f"Write to {self._host}:{self._port} failed: {err}"
            ) from err

    def _read_frame(self, timeout: float) -> Any:
        """Block until one complete frame has been decoded."""
        sock = self._require_socket()
        deadline = time.monotonic() + timeout

        while True:
            frame = self._decoder.next_frame()
            if frame is not NEED_MORE_DATA:
                return frame

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise MarionetteTimeout(
                    f"No response from {self._host}:{self._port} within {timeout}s"
                )
            sock.settimeout(remaining)
            try:
                chunk = sock.recv(RECV_SIZE)
            except socket.timeout as err:
                raise MarionetteTimeout(
                    f"No response from {self._host}:{self._port} within {timeout}s"
                ) from err
            except OSError as err:
                raise MarionetteTransportError(
                    f"Read from {self._host}:{self._port} failed: {err}"
                ) from err

            if not chunk:
                if self._decoder.pending:
                    raise MarionetteConnectionClosed(
                        f"{self._host}:{self._port} closed the stream with "
                        f"{self._decoder.pending} bytes of an incomplete frame"
                    )
                raise MarionetteConnectionClosed(
                    f"{self._host}:{self._port} closed the stream"
                )
            self._decoder.feed(chunk)

    def call(
        self,
        name: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> Response:
        """Send one command and block for its response.

        Args:
            name: Command name, e.g. ``"WebDriver:ExecuteScript"``.
            params: JSON-serializable parameters.
            timeout: Read timeout in seconds, defaults to the connection's.

        Returns:
            The correlated :class:`Response`. Remote errors are left in
            ``Response.error`` for the caller to map.

        Raises:
            MarionetteTimeout: No response in time. The connection is closed.
            MarionetteIdentifierMismatch: The response belongs to another
                request. The connection is closed.
            MarionetteConnectionClosed: The stream is or became closed.
            MarionetteFramingError: The response could not be decoded.
        """
        self._require_socket()
        msg_id = self._message_id + 1
        data = encode(build_request(msg_id, name, params))
        self._message_id = msg_id

        if timeout is None:
            timeout = self._timeout

        logger.debug("-> %s %s (%d bytes)", msg_id, name, len(data))
        try:
            self._send(data)
            response = parse_response(self._read_frame(timeout))
            if isinstance(response.msg_id, bool) or response.msg_id != msg_id:
                raise MarionetteIdentifierMismatch(msg_id, response.msg_id)
        except (MarionetteFramingError, MarionetteTransportError):
            self.close()
            raise

        logger.debug("<- %s %s", msg_id, "error" if response.failed else "ok")
        return response

    def send_command(self, command: Command, *, timeout: float | None = None) -> Response:
        return self.call(command.name, command.params, timeout=timeout)

    def close(self) -> None:
        """Close the socket. Calling it again does nothing."""
        if self._sock is None:
            return

        sock, self._sock = self._sock, None
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug("Socket shutdown failed: %s", e)
        finally:
            sock.close()
            logger.info("Disconnected from %s:%s", self._host, self._port)

    def __enter__(self) -> TCPConnection:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
