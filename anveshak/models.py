"""
Data models for chat state.
These define the shape of messages flowing between the session store,
the dispatch loop and the completion service.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_session_id() -> str:
    """Session ids look like chat_<millis>_<random>, sortable by creation."""
    return f"chat_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class ToolCallRequest:
    """A tool invocation requested by the model."""
    id: str
    name: str
    arguments: str = "{}"    # JSON-encoded object, exactly as the model sent it

    def to_dict(self) -> dict:
        """OpenAI tool_calls entry."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, data: dict) -> ToolCallRequest:
        fn = data.get("function") or {}
        return cls(
            id=data.get("id", ""),
            name=fn.get("name", data.get("name", "")),
            arguments=fn.get("arguments", data.get("arguments", "")) or "",
        )


@dataclass
class Message:
    """One turn in a conversation."""
    role: str                 # "system", "user", "assistant", "tool"
    content: str = ""
    reasoning: str | None = None
    tool_calls: list[ToolCallRequest] | None = None
    tool_call_id: str | None = None
    name: str | None = None
    meta: dict | None = None

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    def to_dict(self) -> dict:
        """Persisted form. Absent optional fields are omitted."""
        out = {"role": self.role, "content": self.content}
        if self.reasoning:
            out["reasoning"] = self.reasoning
        if self.tool_calls:
            out["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.role == "tool":
            out["tool_call_id"] = self.tool_call_id
            out["name"] = self.name
            if self.meta:
                out["meta"] = self.meta
        return out

    def to_api_dict(self) -> dict:
        """Form replayed to the completion service: no reasoning, no local meta."""
        out = self.to_dict()
        out.pop("reasoning", None)
        out.pop("meta", None)
        return out

    @classmethod
    def from_dict(cls, data: dict) -> Message:
        calls = data.get("tool_calls") or None
        content = data.get("content")
        return cls(
            role=data.get("role", ""),
            content=content if isinstance(content, str) else ("" if content is None else str(content)),
            reasoning=data.get("reasoning") or None,
            tool_calls=[ToolCallRequest.from_dict(c) for c in calls] if calls else None,
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
            meta=data.get("meta"),
        )


@dataclass
class ToolResult:
    """Outcome of one tool call. Produced even when the tool fails."""
    tool_call_id: str
    name: str
    content: str              # JSON-encoded; failures look like {"error": ...}
    meta: dict | None = None

    def to_message(self) -> Message:
        return Message(
            role="tool",
            content=self.content,
            tool_call_id=self.tool_call_id,
            name=self.name,
            meta=self.meta,
        )


@dataclass
class ChatSession:
    """One persisted conversation. history[0] is always the system message."""
    id: str = field(default_factory=new_session_id)
    name: str = ""
    history: list[Message] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "history": [m.to_dict() for m in self.history],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ChatSession:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            history=[Message.from_dict(m) for m in data.get("history", [])],
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )


@dataclass
class Memory:
    """A persisted fact, injected into the system prompt of every request."""
    text: str
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {"memory": self.text, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict) -> Memory:
        return cls(text=data.get("memory", ""), timestamp=data.get("timestamp", ""))
