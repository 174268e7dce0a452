"""Registration of a chrome.manifest so CSS can import chrome:// URIs."""

from __future__ import annotations

import logging
from pathlib import Path

from ..client import MarionetteClient
from ..errors import MarionetteCommandError, MarionetteDecodeError

logger = logging.getLogger(__name__)

REGISTER_SCRIPT = """
try {
  const manifest = Cc["@mozilla.org/file/local;1"].createInstance(Ci.nsIFile);
  manifest.initWithPath(arguments[0]);
  Components.manager.QueryInterface(Ci.nsIComponentRegistrar).autoRegister(manifest);
  return { success: true, path: arguments[0] };
} catch (e) {
  return { success: false, error: e.toString() };
}
"""


def register_manifest(client: MarionetteClient, path: str | Path) -> str:
    """Register the chrome.manifest at *path* with the running browser.

    Returns:
        The absolute path that was registered.

    Raises:
        FileNotFoundError: If *path* does not exist.
        MarionetteCommandError: If the browser rejects the manifest.
        MarionetteDecodeError: If the script result has an unexpected shape.
    """
    absolute = str(Path(path).resolve(strict=True))
    result = client.execute_script(REGISTER_SCRIPT, [absolute])

    if not isinstance(result, dict) or not isinstance(result.get("success"), bool):
        raise MarionetteDecodeError(
            f"Unexpected response from manifest registration: {result!r}"
        )
    if not result["success"]:
        raise MarionetteCommandError(
            "manifest registration failed",
            str(result.get("error") or "Unknown error"),
        )

    logger.info("Registered chrome.manifest %s", absolute)
    return absolute
