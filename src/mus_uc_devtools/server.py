"""MCP server entry point for Firefox chrome-context automation.

Exposes Marionette script execution, screenshots, userChrome CSS loading
and session management via the Model Context Protocol, using the official
Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any, Iterator

from mcp.server.fastmcp import FastMCP, Image

from .config import MarionetteSettings
from .errors import MarionetteCommandError, MarionetteError
from .sessions import AutomationSession, SessionRegistry

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "mus-uc-devtools",
    instructions=(
        "Firefox chrome-context automation over Marionette: run privileged "
        "JavaScript, capture screenshots and load userChrome CSS."
    ),
)

_registry = SessionRegistry()
_settings: MarionetteSettings | None = None


def _get_settings() -> MarionetteSettings:
    """Default settings, read from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = MarionetteSettings.from_env()
    return _settings


class SessionNotFound(LookupError):
    """No registered session has the requested id."""


@contextmanager
def _session_scope(session_id: str | None) -> Iterator[AutomationSession]:
    """Yield the named session, or a temporary one when no id is given."""
    if session_id:
        session = _registry.get(session_id)
        if session is None:
            raise SessionNotFound(f"Session not found: {session_id}")
        yield session
        return

    with _registry.temporary(_get_settings()) as session:
        yield session


def _error_result(err: Exception) -> dict[str, Any]:
    if isinstance(err, MarionetteCommandError):
        return {"success": False, **err.to_dict()}
    return {"success": False, "error": str(err)}


# ─── SESSION TOOLS ───────────────────────────────────────────────────

@mcp.tool()
def create_session(
    host: str | None = None,
    port: int | None = None,
    auto_connect: bool = True,
    context: str = "chrome",
) -> dict[str, Any]:
    """Create a persistent session for stateful Firefox testing.

    Returns a session ID for use in subsequent calls.

    Args:
        host: Marionette host (default from MUS_UC_MARIONETTE_HOST or 127.0.0.1).
        port: Marionette port (default from MUS_UC_MARIONETTE_PORT or 2828).
        auto_connect: Connect to Firefox immediately (default True).
        context: Privilege context to switch to, "chrome" or "content".
    """
    if context not in ("chrome", "content"):
        return {"error": f"Context must be 'chrome' or 'content', got '{context}'"}
    try:
        defaults = _get_settings()
        settings = MarionetteSettings(
            host=host or defaults.host,
            port=port or defaults.port,
            timeout=defaults.timeout,
            context=context,
            auto_connect=auto_connect,
        )
    except ValueError as e:
        return {"error": str(e)}

    session = _registry.create(settings)
    result: dict[str, Any] = {"success": True, "session_id": session.id}
    if auto_connect:
        try:
            session.connect()
        except MarionetteError as e:
            result = {"session_id": session.id, **_error_result(e)}

    result["state"] = session.describe()
    return result


@mcp.tool()
def get_session(session_id: str, include_logs: bool = False) -> dict[str, Any]:
    """Get a session's state, connection status and optionally its logs.

    Args:
        session_id: Session ID to query.
        include_logs: Include the full session log (default False).
    """
    session = _registry.get(session_id)
    if session is None:
        return {"error": f"Session not found: {session_id}"}

    result: dict[str, Any] = {"success": True, "state": session.describe()}
    if include_logs:
        result["logs"] = [entry.to_dict() for entry in session.logs]
    return result


@mcp.tool()
def close_session(session_id: str) -> dict[str, Any]:
    """Close a session and disconnect from Firefox.

    Args:
        session_id: Session ID to close.
    """
    if not _registry.close(session_id):
        return {"error": f"Session not found: {session_id}"}
    return {"success": True, "message": f"Session {session_id} closed"}


@mcp.tool()
def list_sessions() -> dict[str, Any]:
    """List all sessions with their current state."""
    sessions = [session.describe() for session in _registry.list()]
    return {"success": True, "count": len(sessions), "sessions": sessions}


# ─── SCRIPT TOOLS ────────────────────────────────────────────────────

@mcp.tool()
def execute_script(
    script: str,
    args: list[Any] | None = None,
    session_id: str | None = None,
    include_logs: bool = False,
) -> dict[str, Any]:
    """Execute JavaScript in the Firefox chrome context.

    The script runs as a function body with access to Services, Cc, Ci and
    the other chrome APIs. Use `return` to produce a result.

    Args:
        script: JavaScript source to execute.
        args: Values passed to the script as arguments[0], arguments[1], ...
        session_id: Existing session to use; a temporary one is created if omitted.
        include_logs: Include recent session log entries in the result.
    """
    try:
        with _session_scope(session_id) as session:
            return session.execute_script(script, args or [], include_logs=include_logs)
    except SessionNotFound as e:
        return {"error": str(e)}
    except MarionetteError as e:
        return _error_result(e)


@mcp.tool()
def send_command(
    name: str,
    params: dict[str, Any] | None = None,
    session_id: str | None = None,
) -> dict[str, Any]:
    """Send a raw Marionette command, e.g. "WebDriver:GetWindowHandles".

    Args:
        name: Protocol command name.
        params: Command parameters.
        session_id: Existing session to use; a temporary one is created if omitted.
    """
    try:
        with _session_scope(session_id) as session:
            return {"success": True, "result": session.send_command(name, params)}
    except SessionNotFound as e:
        return {"error": str(e)}
    except MarionetteError as e:
        return _error_result(e)


@mcp.tool()
def set_context(context: str, session_id: str) -> dict[str, Any]:
    """Switch a session between the "chrome" and "content" contexts.

    Args:
        context: "chrome" or "content".
        session_id: Session to switch.
    """
    if context not in ("chrome", "content"):
        return {"error": f"Context must be 'chrome' or 'content', got '{context}'"}
    try:
        with _session_scope(session_id) as session:
            return {"success": True, "context": session.set_context(context)}
    except SessionNotFound as e:
        return {"error": str(e)}
    except MarionetteError as e:
        return _error_result(e)


@mcp.tool()
def screenshot(selector: str | None = None, session_id: str | None = None):
    """Capture the Firefox window, or one element of it, as a PNG image.

    Args:
        selector: Optional CSS selector; captures the full window if omitted.
        session_id: Existing session to use; a temporary one is created if omitted.
    """
    try:
        with _session_scope(session_id) as session:
            png = session.screenshot(selector)
    except SessionNotFound as e:
        return {"error": str(e)}
    except MarionetteError as e:
        return _error_result(e)
    return Image(data=png, format="png")


# ─── CSS TOOLS ───────────────────────────────────────────────────────

@mcp.tool()
def load_css(
    css: str,
    sheet_id: str | None = None,
    session_id: str | None = None,
) -> dict[str, Any]:
    """Load CSS into the browser UI as a user stylesheet.

    Args:
        css: CSS source to register.
        sheet_id: Optional ID, used later to unload the sheet.
        session_id: Existing session to use; a temporary one is created if omitted.
    """
    try:
        with _session_scope(session_id) as session:
            loaded_id = session.load_css(css, sheet_id)
            return {"success": True, "id": loaded_id, "loaded": session.stylesheets.loaded}
    except SessionNotFound as e:
        return {"error": str(e)}
    except MarionetteError as e:
        return _error_result(e)


@mcp.tool()
def unload_css(sheet_id: str, session_id: str | None = None) -> dict[str, Any]:
    """Unload a previously loaded stylesheet by ID.

    Args:
        sheet_id: ID returned by load_css.
        session_id: Existing session to use.
    """
    try:
        with _session_scope(session_id) as session:
            unloaded = session.unload_css(sheet_id)
    except SessionNotFound as e:
        return {"error": str(e)}
    except MarionetteError as e:
        return _error_result(e)

    if not unloaded:
        return {"success": False, "message": f"Stylesheet not registered: {sheet_id}"}
    return {"success": True, "unloaded": sheet_id}


@mcp.tool()
def clear_css(session_id: str) -> dict[str, Any]:
    """Unload every stylesheet loaded through a session.

    Args:
        session_id: Session whose sheets should be removed.
    """
    try:
        with _session_scope(session_id) as session:
            session.clear_css()
    except SessionNotFound as e:
        return {"error": str(e)}
    except MarionetteError as e:
        return _error_result(e)
    return {"success": True}


@mcp.tool()
def register_manifest(manifest_path: str, session_id: str | None = None) -> dict[str, Any]:
    """Register a chrome.manifest so CSS can @import chrome:// URIs.

    Args:
        manifest_path: Path to the chrome.manifest file.
        session_id: Existing session to use; a temporary one is created if omitted.
    """
    try:
        with _session_scope(session_id) as session:
            path = session.register_manifest(manifest_path)
    except SessionNotFound as e:
        return {"error": str(e)}
    except FileNotFoundError:
        return {"error": f"File not found: {manifest_path}"}
    except MarionetteError as e:
        return _error_result(e)
    return {"success": True, "path": path}


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("mus-uc://sessions")
def resource_sessions() -> str:
    """All registered sessions and their state."""
    return json.dumps({"sessions": [s.describe() for s in _registry.list()]})


@mcp.resource("mus-uc://config")
def resource_config() -> str:
    """Default Marionette connection settings."""
    return json.dumps(_get_settings().to_dict())


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def style_browser_ui(goal: str) -> str:
    """Guide the AI through iterating on userChrome CSS.

    Args:
        goal: What the browser UI should look like.
    """
    return f"""Restyle the Firefox UI: {goal}

Steps:
- Create a session with create_session and keep its session_id.
- Take a screenshot to see the current UI.
- Use execute_script to inspect the chrome DOM, e.g.
  return document.querySelector("#nav-bar").outerHTML;
- Load CSS with load_css under a fixed sheet_id, so reloading replaces it.
- Take another screenshot to check the result, then refine.
- Close the session with close_session when done."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    settings = _get_settings()
    logger.info("Marionette defaults: %s:%s", settings.host, settings.port)
    try:
        mcp.run(transport="stdio")
    finally:
        _registry.close_all()


if __name__ == "__main__":
    main()
