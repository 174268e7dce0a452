"""Pytest fixtures: a loopback stub Marionette server."""

from __future__ import annotations

import socket
import threading
from typing import Any, Callable

import pytest

from mus_uc_devtools.protocol.framing import NEED_MORE_DATA, FrameDecoder, encode


class StubPeer:
    """Server side of one accepted client connection."""

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock
        self.decoder = FrameDecoder()
        self.requests: list[Any] = []

    def send(self, payload: Any) -> None:
        self.sock.sendall(encode(payload))

    def send_raw(self, data: bytes) -> None:
        self.sock.sendall(data)

    def recv_request(self) -> Any:
        """Read one request frame, or return None if the client hung up."""
        while True:
            frame = self.decoder.next_frame()
            if frame is not NEED_MORE_DATA:
                self.requests.append(frame)
                return frame
            chunk = self.sock.recv(4096)
            if not chunk:
                return None
            self.decoder.feed(chunk)

    def reply(self, error: Any = None, result: Any = None) -> Any:
        """Answer the next request, echoing its id."""
        request = self.recv_request()
        self.send([1, request[1], error, result])
        return request

    def client_closed(self, timeout: float = 2.0) -> bool:
        """True once the client has closed its end of the socket."""
        self.sock.settimeout(timeout)
        try:
            return self.sock.recv(1) == b""
        except OSError:
            return False


class StubServer:
    """Accepts a single connection and runs *handler* against it in a thread."""

    def __init__(self, handler: Callable[[StubPeer], None]) -> None:
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._listener.bind(("127.0.0.1", 0))
        self._listener.listen(1)
        self.host, self.port = self._listener.getsockname()
        self.peer: StubPeer | None = None
        self.error: BaseException | None = None
        self.result: Any = None
        self._thread = threading.Thread(target=self._run, args=(handler,), daemon=True)
        self._thread.start()

    def _run(self, handler: Callable[[StubPeer], None]) -> None:
        self._listener.settimeout(5)
        try:
            sock, _ = self._listener.accept()
        except OSError as e:
            self.error = e
            return
        self.peer = StubPeer(sock)
        try:
            self.result = handler(self.peer)
        except Exception as e:
            self.error = e
        finally:
            sock.close()

    def join(self, timeout: float = 5.0) -> None:
        self._thread.join(timeout)

    def close(self) -> None:
        self._listener.close()
        self.join()


@pytest.fixture
def stub_server():
    """Factory that starts a stub server for a handler function."""
    servers: list[StubServer] = []

    def start(handler: Callable[[StubPeer], None]) -> StubServer:
        server = StubServer(handler)
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.close()


@pytest.fixture
def free_port() -> int:
    """A loopback port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
