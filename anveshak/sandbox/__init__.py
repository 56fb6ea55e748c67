"""Sandboxed Python execution for the executePython tool."""

from anveshak.sandbox.engine import Sandbox

__all__ = ["Sandbox"]
