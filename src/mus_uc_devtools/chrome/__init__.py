"""Chrome-context helpers expressed as injected scripts."""

from .manifest import register_manifest
from .screenshot import decode_png_data_url, take_screenshot
from .stylesheets import ChromeStylesheetManager
