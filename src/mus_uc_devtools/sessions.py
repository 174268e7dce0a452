"""Automation sessions and the registry that owns them.

Each :class:`AutomationSession` owns at most one live
:class:`~mus_uc_devtools.client.MarionetteClient`. A
:class:`SessionRegistry` maps session ids to sessions and is the only
place sessions are added or removed.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

from .chrome.manifest import register_manifest
from .chrome.screenshot import take_screenshot
from .chrome.stylesheets import ChromeStylesheetManager
from .client import MarionetteClient
from .config import MarionetteSettings
from .errors import (
    MarionetteCommandError,
    MarionetteError,
    MarionetteFramingError,
    MarionetteTransportError,
)
from .models.session import LogEntry, SessionState
from .protocol.parser import JSONValue

logger = logging.getLogger(__name__)

RECENT_LOG_COUNT = 10


class AutomationSession:
    """A named, stateful connection to one browser.

    Operations connect on demand. A fatal transport error drops the client
    and puts the session in the ``error`` state; the next operation
    reconnects.
    """

    def __init__(self, session_id: str, settings: MarionetteSettings | None = None) -> None:
        self.id = session_id
        self.settings = settings or MarionetteSettings()
        self.state = SessionState.INITIALIZED
        self.logs: list[LogEntry] = []
        self.session_info: JSONValue = None
        self._client: MarionetteClient | None = None
        self._stylesheets: ChromeStylesheetManager | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None and not self._client.closed

    @property
    def client(self) -> MarionetteClient | None:
        return self._client

    def log(self, message: str, level: str = "info") -> None:
        self.logs.append(LogEntry(level=level, message=message))
        logger.log(
            logging.getLevelName(level.upper()),
            "[Session %s] %s",
            self.id,
            message,
        )

    def recent_logs(self, count: int = RECENT_LOG_COUNT) -> list[dict]:
        return [entry.to_dict() for entry in self.logs[-count:]]

    def connect(self) -> dict[str, Any]:
        """Connect, create a WebDriver session and switch context.

        Raises:
            MarionetteError: If any step fails. The session is left in the
                ``error`` state with no client.
        """
        if self.connected:
            self.log("Already connected", "warning")
            return self.describe()

        self.log(
            f"Connecting to Marionette at {self.settings.host}:{self.settings.port}"
        )
        try:
            client = MarionetteClient.from_settings(self.settings)
        except MarionetteError as e:
            self.state = SessionState.ERROR
            self.log(f"Connection failed: {e}", "error")
            raise

        try:
            self.session_info = client.create_session()
            client.set_context(self.settings.context)
        except Exception as e:
            client.close()
            self.state = SessionState.ERROR
            self.log(f"Session setup failed: {e}", "error")
            raise

        self._client = client
        self._stylesheets = None
        self.state = SessionState.CONNECTED
        self.log(f"Connected, context {client.context.value}")
        return self.describe()

    def _require_client(self) -> MarionetteClient:
        if not self.connected:
            self.connect()
        return self._client

    def _drop_client(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._stylesheets = None

    def _run(self, action: str, fn, *args):
        """Call *fn* and record failures against this session."""
        try:
            return fn(*args)
        except MarionetteCommandError as e:
            self.log(f"{action} failed: {e.kind}: {e.message}", "error")
            raise
        except (MarionetteTransportError, MarionetteFramingError) as e:
            self.log(f"{action} failed, connection lost: {e}", "error")
            self.state = SessionState.ERROR
            self._drop_client()
            raise

    def execute_script(
        self,
        script: str,
        args: Sequence[Any] = (),
        *,
        include_logs: bool = False,
    ) -> dict[str, Any]:
        """Run a script and report its result with timing information."""
        client = self._require_client()
        self.log(f"Executing script ({len(script)} chars)")

        start = time.monotonic()
        result = self._run("Script execution", client.execute_script, script, list(args))
        duration_ms = int((time.monotonic() - start) * 1000)
        self.log(f"Script executed successfully ({duration_ms}ms)")

        report: dict[str, Any] = {
            "success": True,
            "result": result,
            "duration_ms": duration_ms,
            "context": client.context.value,
        }
        if include_logs:
            report["logs"] = self.recent_logs()
        return report

    def screenshot(self, selector: str | None = None) -> bytes:
        client = self._require_client()
        self.log(f"Taking screenshot{' of ' + selector if selector else ''}")
        png = self._run("Screenshot", take_screenshot, client, selector)
        self.log(f"Screenshot captured ({len(png)} bytes)")
        return png

    @property
    def stylesheets(self) -> ChromeStylesheetManager:
        client = self._require_client()
        if self._stylesheets is None:
            self._stylesheets = ChromeStylesheetManager(client)
        return self._stylesheets

    def load_css(self, css: str, sheet_id: str | None = None) -> str:
        manager = self.stylesheets
        return self._run("Loading CSS", manager.load, css, sheet_id)

    def unload_css(self, sheet_id: str) -> bool:
        manager = self.stylesheets
        return self._run("Unloading CSS", manager.unload, sheet_id)

    def clear_css(self) -> None:
        manager = self.stylesheets
        self._run("Clearing CSS", manager.clear)

    def register_manifest(self, path: str) -> str:
        client = self._require_client()
        return self._run("Manifest registration", register_manifest, client, path)

    def set_context(self, context: str) -> str:
        client = self._require_client()
        self._run("Context switch", client.set_context, context)
        self.log(f"Context switched to {client.context.value}")
        return client.context.value

    def send_command(self, name: str, params: dict[str, Any] | None = None) -> JSONValue:
        client = self._require_client()
        self.log(f"Sending command {name}")
        return self._run(f"Command {name}", client.raw_command, name, params)

    def disconnect(self) -> None:
        if self._client is None:
            return
        self.log("Disconnecting from Marionette")
        self._drop_client()
        self.state = SessionState.DISCONNECTED

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "state": self.state.value,
            "connected": self.connected,
            "context": self._client.context.value if self.connected else None,
            "settings": self.settings.to_dict(),
            "log_count": len(self.logs),
        }


class SessionRegistry:
    """Owns every named session. Lookups of unknown ids return ``None``."""

    def __init__(self) -> None:
        self._sessions: dict[str, AutomationSession] = {}
        self._counter = 0

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def create(self, settings: MarionetteSettings | None = None) -> AutomationSession:
        """Register a new, not yet connected session."""
        self._counter += 1
        session = AutomationSession(f"session-{self._counter}", settings)
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> AutomationSession | None:
        return self._sessions.get(session_id)

    def close(self, session_id: str) -> bool:
        """Disconnect and forget a session. Returns False if unknown."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.disconnect()
        return True

    def list(self) -> list[AutomationSession]:
        return list(self._sessions.values())

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)

    @contextmanager
    def temporary(
        self, settings: MarionetteSettings | None = None
    ) -> Iterator[AutomationSession]:
        """Yield an unregistered one-shot session, disconnected on exit."""
        session = AutomationSession(f"temp-{uuid.uuid4().hex[:8]}", settings)
        try:
            yield session
        finally:
            session.disconnect()
