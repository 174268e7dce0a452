"""User stylesheets for the browser UI, registered via nsIStyleSheetService."""

from __future__ import annotations

import logging

from ..client import MarionetteClient
from ..errors import MarionetteDecodeError

logger = logging.getLogger(__name__)

# Installs window.chromeCssManager once per browser window. Sheets are kept
# in a Map keyed by id so they can be unregistered later.
INIT_SCRIPT = """
if (typeof window.chromeCssManager === "undefined") {
  window.chromeCssManager = {
    sheets: new Map(),
    sss: Cc["@mozilla.org/content/style-sheet-service;1"]
      .getService(Ci.nsIStyleSheetService),

    load(css, id) {
      const sheetId = id || `sheet-${Date.now()}`;
      if (this.sheets.has(sheetId)) {
        this.unload(sheetId);
      }
      const uri = Services.io.newURI(
        "data:text/css;charset=utf-8," + encodeURIComponent(css));
      this.sss.loadAndRegisterSheet(uri, this.sss.USER_SHEET);
      this.sheets.set(sheetId, uri);
      return sheetId;
    },

    unload(id) {
      const uri = this.sheets.get(id);
      if (!uri) return false;
      if (this.sss.sheetRegistered(uri, this.sss.USER_SHEET)) {
        this.sss.unregisterSheet(uri, this.sss.USER_SHEET);
      }
      this.sheets.delete(id);
      return true;
    },

    clear() {
      for (const id of Array.from(this.sheets.keys())) {
        this.unload(id);
      }
    }
  };
}
return "initialized";
"""

LOAD_SCRIPT = "return window.chromeCssManager.load(arguments[0], arguments[1]);"
UNLOAD_SCRIPT = "return window.chromeCssManager.unload(arguments[0]);"
CLEAR_SCRIPT = "window.chromeCssManager.clear();"


class ChromeStylesheetManager:
    """Loads and unloads CSS in the chrome context of one client.

    Keeps a local record of the sheets it loaded, keyed by sheet id.
    """

    def __init__(self, client: MarionetteClient) -> None:
        self._client = client
        self._sheets: dict[str, str] = {}
        self._initialized = False

    @property
    def loaded(self) -> list[str]:
        return list(self._sheets)

    def initialize(self) -> None:
        """Install the in-browser helper. Safe to repeat."""
        self._client.execute_script(INIT_SCRIPT)
        self._initialized = True

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            self.initialize()

    def load(self, css: str, sheet_id: str | None = None) -> str:
        """Register *css* as a user sheet.

        Loading under an existing id replaces that sheet.

        Returns:
            The id the sheet was registered under.
        """
        self._ensure_initialized()
        result = self._client.execute_script(LOAD_SCRIPT, [css, sheet_id])
        if not isinstance(result, str):
            raise MarionetteDecodeError(f"Expected a sheet id, got {result!r}")
        self._sheets[result] = css
        logger.info("Loaded stylesheet %s (%d chars)", result, len(css))
        return result

    def unload(self, sheet_id: str) -> bool:
        """Unregister a sheet. Returns False if the id is unknown remotely."""
        self._ensure_initialized()
        result = self._client.execute_script(UNLOAD_SCRIPT, [sheet_id])
        unloaded = result is True
        if unloaded:
            self._sheets.pop(sheet_id, None)
            logger.info("Unloaded stylesheet %s", sheet_id)
        return unloaded

    def clear(self) -> None:
        self._ensure_initialized()
        self._client.execute_script(CLEAR_SCRIPT)
        self._sheets.clear()
