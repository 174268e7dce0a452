"""Session and command layer on top of a Marionette connection."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from .config import DEFAULT_HOST, DEFAULT_PORT, DEFAULT_TIMEOUT, MarionetteSettings
from .errors import MarionetteDecodeError
from .protocol.commands import (
    Command,
    Context,
    build_delete_session,
    build_execute_script,
    build_get_context,
    build_new_session,
    build_set_context,
)
from .protocol.parser import JSONValue, map_result
from .transport.tcp_connection import TCPConnection

logger = logging.getLogger(__name__)


class MarionetteClient:
    """Issues the commands the automation surface needs.

    Usage::

        with MarionetteClient.connect() as client:
            client.create_session()
            client.set_context("chrome")
            version = client.execute_script("return Services.appinfo.version;")

    Remote failures raise :class:`~mus_uc_devtools.errors.MarionetteCommandError`
    and leave the connection usable.
    """

    def __init__(self, connection: TCPConnection) -> None:
        self._connection = connection

    @classmethod
    def connect(
        cls,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> MarionetteClient:
        return cls(TCPConnection.connect(host, port, timeout=timeout))

    @classmethod
    def from_settings(cls, settings: MarionetteSettings) -> MarionetteClient:
        return cls.connect(settings.host, settings.port, timeout=settings.timeout)

    @property
    def connection(self) -> TCPConnection:
        return self._connection

    @property
    def context(self) -> Context:
        return self._connection.context

    @property
    def closed(self) -> bool:
        return self._connection.closed

    def _run(self, command: Command, timeout: float | None = None) -> JSONValue:
        response = self._connection.send_command(command, timeout=timeout)
        return map_result(response)

    def create_session(self, capabilities: dict[str, Any] | None = None) -> JSONValue:
        """Start a WebDriver session.

        Args:
            capabilities: Extra capabilities; ``acceptInsecureCerts`` is
                always requested unless overridden.

        Returns:
            The server's session info, passed through unchanged.
        """
        info = self._run(build_new_session(capabilities))
        if isinstance(info, dict):
            logger.info("Session created: %s", info.get("sessionId"))
        return info

    def delete_session(self) -> None:
        self._run(build_delete_session())

    def set_context(self, context: Context | str) -> None:
        """Switch the privilege context for all following commands.

        Raises:
            ValueError: If *context* is not ``"content"`` or ``"chrome"``.
        """
        command = build_set_context(context)
        self._run(command)
        self._connection.track_context(command.params["value"])
        logger.debug("Context switched to %s", command.params["value"])

    def get_context(self) -> Context:
        """Ask the server which context is active and record it.

        Raises:
            MarionetteDecodeError: If the server names an unknown context.
        """
        value = self._run(build_get_context())
        if isinstance(value, dict):
            value = value.get("value")
        try:
            context = Context(value)
        except ValueError as err:
            raise MarionetteDecodeError(f"Unexpected context {value!r}") from err
        self._connection.track_context(context)
        return self._connection.context

    def execute_script(
        self,
        script: str,
        args: Sequence[Any] = (),
        *,
        timeout: float | None = None,
    ) -> JSONValue:
        """Run *script* as a function body in the current context.

        Args:
            script: JavaScript source; use ``return`` to produce a value.
            args: Values bound positionally to ``arguments`` in the script.
            timeout: Read timeout override for long-running scripts.

        Returns:
            Whatever the script returned, or ``None``.
        """
        result = self._run(build_execute_script(script, args), timeout)
        # The server wraps script results as {"value": ...}
        if isinstance(result, dict) and set(result) == {"value"}:
            return result["value"]
        return result

    def raw_command(self, name: str, params: dict[str, Any] | None = None) -> JSONValue:
        """Send any named command and return its mapped result."""
        return self._run(Command(name, params or {}))

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> MarionetteClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
