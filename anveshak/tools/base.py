"""
Tool interface.

A tool is a named async callable with a JSON-schema parameter description.
invoke() receives the already-parsed argument object and returns JSON text;
raising is allowed, the dispatch loop turns exceptions into error results.
"""

from __future__ import annotations

import abc


class Tool(abc.ABC):
    name: str = ""
    description: str = ""
    parameters: dict = {"type": "object", "properties": {}}

    @abc.abstractmethod
    async def invoke(self, args: dict) -> str:
        ...

    def meta(self, args: dict) -> dict | None:
        """Local-only annotation stored with the tool result (never sent back)."""
        return None

    def declaration(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
