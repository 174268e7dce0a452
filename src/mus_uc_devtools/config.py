"""Connection defaults and environment-driven settings."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .protocol.commands import Context

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 2828
DEFAULT_TIMEOUT = 10.0  # seconds, applies to connect, handshake and each call
EXPECTED_APPLICATION_TYPE = "gecko"
PROTOCOL_VERSION = 3

ENV_HOST = "MUS_UC_MARIONETTE_HOST"
ENV_PORT = "MUS_UC_MARIONETTE_PORT"
ENV_TIMEOUT = "MUS_UC_MARIONETTE_TIMEOUT"


@dataclass
class MarionetteSettings:
    """Where to find Marionette and how a session should start."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    timeout: float = DEFAULT_TIMEOUT
    context: str = "chrome"
    auto_connect: bool = True

    def __post_init__(self) -> None:
        if not 0 < self.port <= 0xFFFF:
            raise ValueError(f"Port must be 1-65535, got {self.port}")
        if self.timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout}")
        try:
            Context(self.context)
        except ValueError as err:
            raise ValueError(
                f"Context must be 'chrome' or 'content', got {self.context!r}"
            ) from err

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> MarionetteSettings:
        """Build settings from ``MUS_UC_MARIONETTE_*`` environment variables.

        Unset variables fall back to the module defaults.
        """
        env = os.environ if environ is None else environ
        host = env.get(ENV_HOST) or DEFAULT_HOST

        raw_port = env.get(ENV_PORT)
        try:
            port = int(raw_port) if raw_port else DEFAULT_PORT
        except ValueError as err:
            raise ValueError(f"{ENV_PORT} must be an integer, got {raw_port!r}") from err

        raw_timeout = env.get(ENV_TIMEOUT)
        try:
            timeout = float(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT
        except ValueError as err:
            raise ValueError(
                f"{ENV_TIMEOUT} must be a number, got {raw_timeout!r}"
            ) from err

        return cls(host=host, port=port, timeout=timeout)

    def to_dict(self) -> dict:
        return {
            "host": self.host,
            "port": self.port,
            "timeout": self.timeout,
            "context": self.context,
            "auto_connect": self.auto_connect,
        }
