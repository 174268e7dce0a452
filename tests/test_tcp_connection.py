"""Tests for the TCP connection: handshake, calls, correlation, failures."""

from __future__ import annotations

import threading

import pytest

from mus_uc_devtools.errors import (
    MarionetteConnectionClosed,
    MarionetteConnectionError,
    MarionetteFramingError,
    MarionetteIdentifierMismatch,
    MarionetteTimeout,
    MarionetteUnexpectedPeer,
    MarionetteUnreachable,
)
from mus_uc_devtools.protocol.commands import Context
from mus_uc_devtools.protocol.framing import encode
from mus_uc_devtools.transport.tcp_connection import TCPConnection

GECKO_HANDSHAKE = {"applicationType": "gecko", "marionetteProtocol": 3}


def test_connect_reads_handshake(stub_server):
    """connect() returns only after the handshake is received."""
    server = stub_server(lambda peer: peer.send(GECKO_HANDSHAKE))

    conn = TCPConnection.connect(server.host, server.port, timeout=2)
    try:
        assert conn.application_type == "gecko"
        assert conn.protocol == 3
        assert conn.message_id == 0
        assert conn.context is Context.CONTENT
        assert not conn.closed
    finally:
        conn.close()


def test_connect_unreachable(free_port):
    with pytest.raises(MarionetteUnreachable) as excinfo:
        TCPConnection.connect("127.0.0.1", free_port, timeout=1)
    assert excinfo.value.host == "127.0.0.1"
    assert excinfo.value.port == free_port
    assert isinstance(excinfo.value.cause, OSError)
    assert f"127.0.0.1:{free_port}" in str(excinfo.value)


def test_handshake_rejection_closes_socket(stub_server):
    """An unexpected application type is rejected and the socket closed."""

    def handler(peer):
        peer.send({"applicationType": "chromium", "marionetteProtocol": 3})
        return peer.client_closed()

    server = stub_server(handler)
    with pytest.raises(MarionetteUnexpectedPeer) as excinfo:
        TCPConnection.connect(server.host, server.port, timeout=2)
    assert "chromium" in str(excinfo.value)

    server.join()
    assert server.result is True
    assert server.peer.requests == []


def test_handshake_split_across_chunks(stub_server):
    """A handshake delivered a few bytes at a time is reassembled."""

    def handler(peer):
        frame = encode(GECKO_HANDSHAKE)
        for i in range(0, len(frame), 3):
            peer.send_raw(frame[i : i + 3])
        peer.recv_request()

    server = stub_server(handler)
    with TCPConnection.connect(server.host, server.port, timeout=2) as conn:
        assert conn.application_type == "gecko"


def test_call_assigns_increasing_ids(stub_server):
    """Consecutive calls carry ids 1 and 2."""

    def handler(peer):
        peer.send(GECKO_HANDSHAKE)
        peer.reply(result={"x": True})
        peer.reply(result=None)

    server = stub_server(handler)
    with TCPConnection.connect(server.host, server.port, timeout=2) as conn:
        first = conn.call("x", {})
        second = conn.call("y", {"k": "v"})

    server.join()
    assert server.peer.requests == [[0, 1, "x", {}], [0, 2, "y", {"k": "v"}]]
    assert first.msg_id == 1 and first.result == {"x": True}
    assert second.msg_id == 2 and second.result is None


def test_call_returns_remote_error_unmapped(stub_server):
    """call() hands back the error; the connection stays open."""

    def handler(peer):
        peer.send(GECKO_HANDSHAKE)
        peer.reply(error={"error": "unknown command", "message": "nope"})
        peer.reply(result=1)

    server = stub_server(handler)
    with TCPConnection.connect(server.host, server.port, timeout=2) as conn:
        response = conn.call("Bogus:Command")
        assert response.failed
        assert response.error["message"] == "nope"
        assert not conn.closed
        assert conn.call("x").result == 1


def test_call_accepts_object_shaped_response(stub_server):
    def handler(peer):
        peer.send(GECKO_HANDSHAKE)
        request = peer.recv_request()
        peer.send({"id": request[1], "error": None, "value": "ok"})

    server = stub_server(handler)
    with TCPConnection.connect(server.host, server.port, timeout=2) as conn:
        assert conn.call("x").result == "ok"


def test_identifier_mismatch_is_fatal(stub_server):
    def handler(peer):
        peer.send(GECKO_HANDSHAKE)
        peer.recv_request()
        peer.send([1, 99, None, None])

    server = stub_server(handler)
    conn = TCPConnection.connect(server.host, server.port, timeout=2)
    with pytest.raises(MarionetteIdentifierMismatch) as excinfo:
        conn.call("x")
    assert excinfo.value.expected == 1
    assert excinfo.value.received == 99
    assert conn.closed


def test_timeout_closes_connection(stub_server):
    """A missing response times out and the connection becomes unusable."""
    release = threading.Event()

    def handler(peer):
        peer.send(GECKO_HANDSHAKE)
        peer.recv_request()
        release.wait(5)

    server = stub_server(handler)
    conn = TCPConnection.connect(server.host, server.port, timeout=2)
    try:
        with pytest.raises(MarionetteTimeout):
            conn.call("x", timeout=0.2)
        assert conn.closed
        with pytest.raises(MarionetteConnectionClosed):
            conn.call("y")
    finally:
        release.set()


def test_truncated_stream_raises_connection_closed(stub_server):
    """A stream closing mid-frame ends in ConnectionClosed, not a hang."""

    def handler(peer):
        peer.send(GECKO_HANDSHAKE)
        peer.recv_request()
        peer.send_raw(b'5:{"a"')

    server = stub_server(handler)
    conn = TCPConnection.connect(server.host, server.port, timeout=2)
    with pytest.raises(MarionetteConnectionClosed) as excinfo:
        conn.call("x")
    assert "incomplete frame" in str(excinfo.value)
    assert conn.closed


def test_truncated_handshake(stub_server):
    server = stub_server(lambda peer: peer.send_raw(b"40:{\"applicationType\""))
    with pytest.raises(MarionetteUnexpectedPeer) as excinfo:
        TCPConnection.connect(server.host, server.port, timeout=2)
    assert isinstance(excinfo.value, MarionetteConnectionError)
    assert isinstance(excinfo.value.__cause__, MarionetteConnectionClosed)


def test_silent_peer_fails_handshake(stub_server):
    """A peer that accepts but never speaks is not a Marionette server."""
    release = threading.Event()

    def handler(peer):
        release.wait(5)

    server = stub_server(handler)
    try:
        with pytest.raises(MarionetteConnectionError) as excinfo:
            TCPConnection.connect(server.host, server.port, timeout=0.3)
    finally:
        release.set()
    assert isinstance(excinfo.value, MarionetteUnexpectedPeer)
    assert isinstance(excinfo.value.__cause__, MarionetteTimeout)
    assert excinfo.value.port == server.port


def test_non_marionette_peer_fails_handshake(stub_server):
    """An HTTP server on the port is rejected and the socket closed."""

    def handler(peer):
        peer.send_raw(b"HTTP/1.1 400 Bad Request\r\nContent-Length: 0\r\n\r\n")
        return peer.client_closed()

    server = stub_server(handler)
    with pytest.raises(MarionetteUnexpectedPeer) as excinfo:
        TCPConnection.connect(server.host, server.port, timeout=2)
    assert isinstance(excinfo.value.__cause__, MarionetteFramingError)

    server.join()
    assert server.result is True


def test_explicit_zero_timeout_is_honoured(stub_server):
    """timeout=0 is not replaced by the connection default."""

    def handler(peer):
        peer.send(GECKO_HANDSHAKE)
        peer.reply(result=1)

    server = stub_server(handler)
    conn = TCPConnection.connect(server.host, server.port, timeout=5)
    with pytest.raises(MarionetteTimeout) as excinfo:
        conn.call("x", timeout=0)
    assert "within 0s" in str(excinfo.value)
    assert conn.closed


def test_framing_error_is_fatal(stub_server):
    def handler(peer):
        peer.send(GECKO_HANDSHAKE)
        peer.recv_request()
        peer.send_raw(b"xx:[]")
        peer.client_closed()

    server = stub_server(handler)
    conn = TCPConnection.connect(server.host, server.port, timeout=2)
    with pytest.raises(MarionetteFramingError):
        conn.call("x")
    assert conn.closed


def test_close_is_idempotent(stub_server):
    server = stub_server(lambda peer: peer.send(GECKO_HANDSHAKE))
    conn = TCPConnection.connect(server.host, server.port, timeout=2)
    conn.close()
    conn.close()
    assert conn.closed


def test_track_context():
    conn = TCPConnection.__new__(TCPConnection)
    conn._context = Context.CONTENT
    conn.track_context("chrome")
    assert conn.context is Context.CHROME
    with pytest.raises(ValueError):
        conn.track_context("kernel")
