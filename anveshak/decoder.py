"""
Streaming response decoder.

Drains one completion stream into a DecodedTurn while reporting each delta
to a TurnObserver (the CLI renders from these callbacks).

Content handling depends on the transport. The OpenAI-compatible backend
reports cumulative content on every event, so the default "cumulative" mode
replaces the working content with each event's value; "incremental" mode
concatenates per-chunk deltas instead, for transports that only report
fragments.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from anveshak.errors import StreamError
from anveshak.models import Message, ToolCallRequest, ToolResult

logger = logging.getLogger(__name__)

CONTENT_MODES = ("cumulative", "incremental")


@dataclass
class DecodedTurn:
    content: str = ""
    reasoning: str = ""
    tool_calls: list[ToolCallRequest] = field(default_factory=list)


class TurnObserver:
    """
    Callbacks fired while a conversation runs. All no-ops by default;
    subclass and override what you need.
    """

    def thinking_started(self):
        pass

    def reasoning_delta(self, delta: str, reasoning: str):
        pass

    def content_updated(self, content: str):
        pass

    def tool_calls_updated(self, tools: list[dict]):
        pass

    def stream_error(self, payload):
        pass

    def message_appended(self, message: Message):
        pass

    def tool_started(self, call: ToolCallRequest):
        pass

    def tool_finished(self, result: ToolResult):
        pass


class StreamDecoder:
    """Turns a backend's event stream into one assistant turn."""

    def __init__(self, backend, content_mode: str = "cumulative"):
        if content_mode not in CONTENT_MODES:
            raise ValueError(f"Unknown content mode {content_mode!r}, expected one of {CONTENT_MODES}")
        self.backend = backend
        self.content_mode = content_mode

    async def decode(self, request: dict, observer: TurnObserver | None = None) -> DecodedTurn:
        """
        Consume the stream for `request`. Raises StreamError on an error event;
        whatever was accumulated up to that point is dropped.
        """
        observer = observer or TurnObserver()
        content = ""
        reasoning = ""
        last_tools: list[dict] = []
        thinking = False

        async for event in self.backend.stream_events(request):
            if event.error is not None:
                observer.stream_error(event.error)
                raise StreamError(event.error)

            reasoning_delta = event.reasoning_delta
            if (reasoning_delta or event.tools) and not thinking:
                thinking = True
                observer.thinking_started()

            if reasoning_delta:
                reasoning += reasoning_delta
                observer.reasoning_delta(reasoning_delta, reasoning)

            if self.content_mode == "cumulative":
                if event.content:
                    content = event.content
                    observer.content_updated(content)
            elif event.content_delta:
                content += event.content_delta
                observer.content_updated(content)

            if event.tools:
                last_tools = event.tools
                observer.tool_calls_updated(last_tools)

        return DecodedTurn(
            content=content,
            reasoning=reasoning,
            tool_calls=[_to_request(t) for t in last_tools],
        )


def _to_request(tool: dict) -> ToolCallRequest:
    call_id = tool.get("id") or f"call_{uuid.uuid4().hex[:24]}"
    return ToolCallRequest(
        id=call_id,
        name=tool.get("name", ""),
        arguments=tool.get("args", "") or "",
    )
