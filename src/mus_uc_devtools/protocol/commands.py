"""Command names, privilege contexts, and request builders.

Each request travels as a 4-element array::

    [0, <message id>, <command name>, <parameters>]

The leading ``0`` marks a client-originated message; responses carry ``1``.
Builders here return a :class:`Command` without an id. The connection
assigns the id at send time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence

REQUEST_TAG = 0
RESPONSE_TAG = 1

DEFAULT_CAPABILITIES: dict[str, Any] = {"acceptInsecureCerts": True}


class CommandName(str, Enum):
    """Protocol command names used by the client."""

    NEW_SESSION = "WebDriver:NewSession"
    DELETE_SESSION = "WebDriver:DeleteSession"
    SET_CONTEXT = "Marionette:SetContext"
    GET_CONTEXT = "Marionette:GetContext"
    EXECUTE_SCRIPT = "WebDriver:ExecuteScript"


class Context(str, Enum):
    """Privilege context of the remote session."""

    CONTENT = "content"
    CHROME = "chrome"


@dataclass
class Command:
    """A named request and its JSON-serializable parameters."""

    name: str
    params: dict[str, Any] = field(default_factory=dict)


def build_request(msg_id: int, name: str, params: dict[str, Any] | None = None) -> list:
    """Build the wire array for a request with an assigned id."""
    if isinstance(name, Enum):
        name = name.value
    return [REQUEST_TAG, msg_id, name, params if params is not None else {}]


def build_new_session(capabilities: dict[str, Any] | None = None) -> Command:
    """Build a NewSession command.

    Args:
        capabilities: Requested capabilities, merged over
            :data:`DEFAULT_CAPABILITIES`.
    """
    merged = dict(DEFAULT_CAPABILITIES)
    if capabilities:
        merged.update(capabilities)
    return Command(
        CommandName.NEW_SESSION.value,
        {"capabilities": {"alwaysMatch": merged}},
    )


def build_delete_session() -> Command:
    return Command(CommandName.DELETE_SESSION.value)


def build_set_context(context: Context | str) -> Command:
    """Build a SetContext command.

    Raises:
        ValueError: If *context* is not ``"content"`` or ``"chrome"``.
    """
    return Command(CommandName.SET_CONTEXT.value, {"value": Context(context).value})


def build_get_context() -> Command:
    return Command(CommandName.GET_CONTEXT.value)


def build_execute_script(script: str, args: Sequence[Any] = ()) -> Command:
    """Build an ExecuteScript command.

    The remote side evaluates *script* as a function body with *args*
    bound positionally to ``arguments``.
    """
    if not isinstance(script, str):
        raise TypeError(f"Script must be a string, got {type(script).__name__}")
    return Command(
        CommandName.EXECUTE_SCRIPT.value,
        {"script": script, "args": list(args)},
    )
