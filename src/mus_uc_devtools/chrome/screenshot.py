"""Screenshots of the browser window, captured by an injected canvas script.

The capture runs in the chrome context: the script draws the most recent
``navigator:browser`` window (or one element's bounding rectangle) onto a
canvas and returns ``canvas.toDataURL("image/png")``.
"""

from __future__ import annotations

import base64
import binascii

from ..client import MarionetteClient
from ..errors import MarionetteDecodeError

PNG_DATA_URL_PREFIX = "data:image/png;base64,"

FULL_WINDOW_SCRIPT = """
const win = Services.wm.getMostRecentWindow("navigator:browser");
const canvas = win.document.createElementNS("http://www.w3.org/1999/xhtml", "canvas");
canvas.width = win.innerWidth;
canvas.height = win.innerHeight;
const ctx = canvas.getContext("2d");
ctx.drawWindow(win, 0, 0, win.innerWidth, win.innerHeight, "rgb(255,255,255)");
return canvas.toDataURL("image/png");
"""

ELEMENT_SCRIPT = """
const win = Services.wm.getMostRecentWindow("navigator:browser");
const element = win.document.querySelector(arguments[0]);
if (!element) {
  throw new Error("Element not found for selector: " + arguments[0]);
}
const rect = element.getBoundingClientRect();
const canvas = win.document.createElementNS("http://www.w3.org/1999/xhtml", "canvas");
canvas.width = rect.width;
canvas.height = rect.height;
const ctx = canvas.getContext("2d");
ctx.drawWindow(win, rect.left, rect.top, rect.width, rect.height, "rgb(255,255,255)");
return canvas.toDataURL("image/png");
"""


def decode_png_data_url(value: object) -> bytes:
    """Decode a ``data:image/png;base64,...`` string into PNG bytes.

    Raises:
        MarionetteDecodeError: If *value* is not a well-formed PNG data URL.
    """
    if not isinstance(value, str):
        raise MarionetteDecodeError(
            f"Expected a PNG data URL string, got {type(value).__name__}"
        )
    if not value.startswith(PNG_DATA_URL_PREFIX):
        raise MarionetteDecodeError(f"Not a PNG data URL: {value[:40]!r}")

    encoded = value[len(PNG_DATA_URL_PREFIX):]
    if not encoded:
        raise MarionetteDecodeError("PNG data URL has no image data")
    try:
        return base64.b64decode(encoded, validate=True)
    except binascii.Error as err:
        raise MarionetteDecodeError(f"Invalid base64 in PNG data URL: {err}") from err


def take_screenshot(client: MarionetteClient, selector: str | None = None) -> bytes:
    """Capture the browser window, or one element of it, as PNG bytes.

    The client must already be in the chrome context.

    Args:
        client: Connected client.
        selector: Optional CSS selector of the element to capture.

    Raises:
        MarionetteCommandError: If the script fails remotely, e.g. the
            selector matches nothing.
        MarionetteDecodeError: If the script returns something other than
            a PNG data URL.
    """
    if selector:
        result = client.execute_script(ELEMENT_SCRIPT, [selector])
    else:
        result = client.execute_script(FULL_WINDOW_SCRIPT)
    return decode_png_data_url(result)
