"""
Tool registry: central dispatch for all tools.
build_registry() reads config.yaml to decide which tools are enabled.
New tools are added here + in config.yaml. Nothing else changes.
"""

from __future__ import annotations

import logging
import time

from anveshak.errors import UnknownToolError
from anveshak.tools.aipipe import CallAIPipeTool
from anveshak.tools.base import Tool
from anveshak.tools.browser import OpenInBrowserTool
from anveshak.tools.execute_python import ExecutePythonTool
from anveshak.tools.google_search import GoogleSearchTool
from anveshak.tools.memory import AddToMemoryTool, GetMemoriesTool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Name -> Tool lookup, in registration order."""

    def __init__(self, tools: list[Tool] | None = None):
        self.tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool):
        if tool.name in self.tools:
            logger.warning("Tool '%s' registered twice, replacing", tool.name)
        self.tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        """Get a tool by name, or None if not registered."""
        return self.tools.get(name)

    def names(self) -> list[str]:
        return list(self.tools.keys())

    def declarations(self) -> list[dict]:
        """OpenAI `tools` array for the request body."""
        return [tool.declaration() for tool in self.tools.values()]

    async def invoke(self, name: str, args: dict) -> str:
        """
        Run a tool by name. Raises UnknownToolError for unregistered names;
        exceptions from the tool itself propagate.
        """
        tool = self.tools.get(name)
        if tool is None:
            raise UnknownToolError(name)

        start = time.monotonic()
        try:
            return await tool.invoke(args)
        finally:
            logger.info("Tool '%s' ran in %.0fms", name, (time.monotonic() - start) * 1000)

    def __contains__(self, name: str) -> bool:
        return name in self.tools

    def __len__(self) -> int:
        return len(self.tools)


def build_registry(cfg: dict, settings, memories, sandbox) -> ToolRegistry:
    """Build the registry from the `tools` config section."""
    tools_cfg = cfg.get("tools", {})
    registry = ToolRegistry()

    # --- Google Search ---
    gs_cfg = tools_cfg.get("google_search", {})
    if gs_cfg.get("enabled", True):
        registry.register(GoogleSearchTool(
            settings,
            max_results=gs_cfg.get("max_results", 5),
        ))

    # --- AI Pipe ---
    ap_cfg = tools_cfg.get("aipipe", {})
    if ap_cfg.get("enabled", True):
        registry.register(CallAIPipeTool(
            settings,
            max_output_chars=ap_cfg.get("max_output_chars", 8000),
        ))

    # --- Python sandbox ---
    if tools_cfg.get("execute_python", {}).get("enabled", True):
        registry.register(ExecutePythonTool(sandbox))

    # --- Browser ---
    if tools_cfg.get("open_in_browser", {}).get("enabled", True):
        registry.register(OpenInBrowserTool())

    # --- Memory ---
    if tools_cfg.get("memory", {}).get("enabled", True):
        registry.register(AddToMemoryTool(memories))
        registry.register(GetMemoriesTool(memories))

    logger.info("Tool registry loaded: %s", registry.names())
    return registry
