"""
Long-term memories: a flat, append-only list of user facts.

Stored as a JSON array of {memory, timestamp} under "agentMemories" and
rendered into the system prompt of every request.
"""

from __future__ import annotations

import json
import logging

from anveshak.models import Memory

logger = logging.getLogger(__name__)

MEMORIES_KEY = "agentMemories"

PROMPT_HEADER = (
    "Here are some memories you have saved. Use them for context, but do not "
    "mention them unless the user's query is directly related."
)


class MemoryStore:
    def __init__(self, kv):
        self.kv = kv

    def list(self) -> list[Memory]:
        raw = self.kv.get(MEMORIES_KEY)
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Stored memories are not valid JSON, ignoring them")
            return []
        if not isinstance(items, list):
            return []
        return [Memory.from_dict(m) for m in items if isinstance(m, dict)]

    def _save(self, memories: list[Memory]):
        self.kv.set(MEMORIES_KEY, json.dumps([m.to_dict() for m in memories]))

    def add(self, text: str) -> Memory:
        if not isinstance(text, str) or not text.strip():
            raise ValueError("Memory must be a non-empty string.")
        memory = Memory(text=text)
        memories = self.list()
        memories.append(memory)
        self._save(memories)
        logger.info("Memory saved (%d total)", len(memories))
        return memory

    def delete(self, index: int) -> Memory:
        memories = self.list()
        removed = memories.pop(index)
        self._save(memories)
        return removed

    def clear(self):
        self.kv.delete(MEMORIES_KEY)

    def prompt_block(self) -> str:
        """Block appended to the system prompt, or "" when there is nothing saved."""
        memories = self.list()
        if not memories:
            return ""
        lines = "\n".join(f"- {m.text}" for m in memories)
        return f"\n\n---\n{PROMPT_HEADER}\n{lines}\n---\n"
