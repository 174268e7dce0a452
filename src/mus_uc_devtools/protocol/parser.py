"""Handshake and response parsing, and mapping of responses to results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

from ..errors import (
    MarionetteCommandError,
    MarionetteFramingError,
    MarionetteUnexpectedPeer,
)
from .commands import RESPONSE_TAG

JSONValue = Union[None, bool, int, float, str, list["JSONValue"], dict[str, "JSONValue"]]

UNKNOWN_ERROR_KIND = "Unknown"


@dataclass
class Handshake:
    """The unsolicited first message sent by the remote application."""

    application_type: str
    protocol: int | None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class Response:
    """A decoded reply to a command."""

    msg_id: Any
    error: Any = None
    result: JSONValue = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def parse_handshake(payload: Any, *, host: str = "", port: int = 0) -> Handshake:
    """Parse the handshake frame.

    Real servers send ``marionetteProtocol``; ``protocol`` is accepted too.

    Raises:
        MarionetteUnexpectedPeer: If the payload is not a handshake object.
    """
    if not isinstance(payload, dict) or not isinstance(
        payload.get("applicationType"), str
    ):
        raise MarionetteUnexpectedPeer(
            host, port, f"Peer at {host}:{port} sent no Marionette handshake: {payload!r}"
        )

    protocol = payload.get("marionetteProtocol", payload.get("protocol"))
    return Handshake(
        application_type=payload["applicationType"],
        protocol=protocol if isinstance(protocol, int) else None,
        raw=payload,
    )


def parse_response(payload: Any) -> Response:
    """Convert a decoded frame into a :class:`Response`.

    Two shapes are accepted::

        [1, <id>, <error or null>, <result>]
        {"id": <id>, "error": <error or null>, "value": <result>}

    Raises:
        MarionetteFramingError: If the payload is neither shape.
    """
    if isinstance(payload, list):
        if len(payload) != 4 or payload[0] != RESPONSE_TAG:
            raise MarionetteFramingError(f"Malformed response array: {payload!r}")
        _, msg_id, error, result = payload
        return Response(msg_id=msg_id, error=error, result=result)

    if isinstance(payload, dict) and "id" in payload:
        return Response(
            msg_id=payload["id"],
            error=payload.get("error"),
            result=payload.get("value"),
        )

    raise MarionetteFramingError(f"Unexpected response shape: {payload!r}")


def command_error_from(error: Any) -> MarionetteCommandError:
    """Build a typed error from the remote error object."""
    if not isinstance(error, dict):
        return MarionetteCommandError(UNKNOWN_ERROR_KIND, str(error))

    kind = error.get("error")
    message = error.get("message")
    trace = error.get("stacktrace")
    return MarionetteCommandError(
        kind=kind if isinstance(kind, str) and kind else UNKNOWN_ERROR_KIND,
        message=message if isinstance(message, str) else "",
        remote_trace=trace if isinstance(trace, str) and trace else None,
    )


def map_result(response: Response) -> JSONValue:
    """Return the result of *response* or raise its error.

    The presence of an error object decides the outcome; an empty error
    object still counts as a failure, whatever the result holds.

    Raises:
        MarionetteCommandError: If the response carries an error.
    """
    if response.failed:
        raise command_error_from(response.error)
    return response.result
