"""
Memory tools: let the model save and list long-term user facts.
Saved memories are also injected into every system prompt, so the model
rarely needs getMemories.
"""

import json
import logging

from anveshak.tools.base import Tool

logger = logging.getLogger(__name__)


class AddToMemoryTool(Tool):
    name = "addToMemory"
    description = "Save a memory string to persistent storage."
    parameters = {
        "type": "object",
        "properties": {
            "memory": {"type": "string", "description": "The memory to save."},
        },
        "required": ["memory"],
    }

    def __init__(self, memories):
        self.memories = memories

    def meta(self, args: dict) -> dict:
        return {"memory": args.get("memory", "")}

    async def invoke(self, args: dict) -> str:
        try:
            self.memories.add(args.get("memory"))
        except ValueError as e:
            return json.dumps({"success": False, "message": str(e)})
        return json.dumps({"success": True, "message": "Memory saved."})


class GetMemoriesTool(Tool):
    name = "getMemories"
    description = "Retrieve all saved memories."
    parameters = {"type": "object", "properties": {}}

    def __init__(self, memories):
        self.memories = memories

    async def invoke(self, args: dict) -> str:
        return json.dumps([m.to_dict() for m in self.memories.list()], ensure_ascii=False)
