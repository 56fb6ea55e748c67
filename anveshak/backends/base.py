"""
Base backend abstraction.
The decoder and loop only see this interface, so tests can script a backend
without any HTTP at all.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator

logger = logging.getLogger(__name__)


@dataclass
class StreamEvent:
    """
    One decoded event from a streaming completion.

    content:  cumulative assistant content received so far
    tools:    materialized tool calls so far, [{"id", "name", "args"}]
    message:  the raw decoded chunk (reasoning deltas live in here)
    error:    set when the stream failed; no further events follow
    """
    content: str = ""
    tools: list[dict] = field(default_factory=list)
    message: dict = field(default_factory=dict)
    error: object = None

    @property
    def delta(self) -> dict:
        choices = self.message.get("choices") or [{}]
        return choices[0].get("delta") or {}

    @property
    def reasoning_delta(self) -> str:
        delta = self.delta
        return delta.get("reasoning") or delta.get("reasoning_content") or ""

    @property
    def content_delta(self) -> str:
        return self.delta.get("content") or ""


class BaseBackend(abc.ABC):
    """Abstract base for completion backends."""

    def __init__(self, base_url: str, api_key: str = "", timeout: int = 120):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    @abc.abstractmethod
    def stream_events(self, body: dict) -> AsyncIterator[StreamEvent]:
        """Send a streaming chat completion request and yield decoded events."""
        ...

    @abc.abstractmethod
    async def complete(self, body: dict) -> dict:
        """Non-streaming chat completion. Returns the response JSON."""
        ...

    @abc.abstractmethod
    async def list_models(self) -> list[str]:
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} base_url={self.base_url!r}>"
