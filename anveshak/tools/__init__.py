"""Tools the model can call: search, AI Pipe, code execution, browser, memory."""

from anveshak.tools.base import Tool
from anveshak.tools.registry import ToolRegistry, build_registry

__all__ = ["Tool", "ToolRegistry", "build_registry"]
