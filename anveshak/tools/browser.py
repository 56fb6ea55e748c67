"""
Open a URL in the user's browser.
Uses the stdlib webbrowser module, which picks the platform default.
"""

import json
import logging
import webbrowser

from anveshak.tools.base import Tool

logger = logging.getLogger(__name__)


class OpenInBrowserTool(Tool):
    name = "openInBrowser"
    description = "Open a URL in the browser."
    parameters = {
        "type": "object",
        "properties": {"url": {"type": "string"}},
    }

    def __init__(self, opener=webbrowser.open_new_tab):
        self.opener = opener

    def meta(self, args: dict) -> dict:
        return {"url": args.get("url", "")}

    async def invoke(self, args: dict) -> str:
        url = args.get("url", "")
        try:
            opened = self.opener(url)
        except webbrowser.Error as e:
            logger.warning("Could not open %s: %s", url, e)
            opened = False
        if opened:
            return json.dumps({"success": True, "message": "Successfully opened link in the browser."})
        return json.dumps({"success": False, "message": "Failed to open link in the browser."})
