"""
Tool dispatch loop.

Drives one user request to a final answer:

  1. send the history (plus a fresh system prompt with saved memories)
  2. decode the streamed assistant turn and append it
  3. if it asked for tools, run them one at a time in order, appending and
     persisting each result, then go to 1
  4. otherwise the assistant message is the answer

The number of completion requests per run() is capped by max_turns.
Tool failures of any kind become tool results; only transport errors
(StreamError, httpx.HTTPError) escape, and they leave no partial assistant
message behind.
"""

from __future__ import annotations

import json
import logging

from anveshak.decoder import StreamDecoder, TurnObserver
from anveshak.errors import MaxTurnsExceeded
from anveshak.models import Message, ToolCallRequest, ToolResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 10


class ConversationLoop:
    def __init__(
        self,
        sessions,
        decoder: StreamDecoder,
        registry,
        settings,
        memories=None,
        max_turns: int = DEFAULT_MAX_TURNS,
    ):
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self.sessions = sessions
        self.decoder = decoder
        self.registry = registry
        self.settings = settings
        self.memories = memories
        self.max_turns = max_turns

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def system_content(self) -> str:
        content = self.sessions.system_prompt.content
        if self.memories is not None:
            content += self.memories.prompt_block()
        return content

    def build_messages(self) -> list[dict]:
        """Outbound messages: dynamic system prompt, then history[1:] without reasoning."""
        history = self.sessions.live_history
        return [{"role": "system", "content": self.system_content()}] + [
            m.to_api_dict() for m in history[1:]
        ]

    def build_request(self) -> dict:
        body = {
            "model": self.settings.model,
            "messages": self.build_messages(),
            "stream": True,
        }
        if self.settings.tools_enabled and len(self.registry):
            body["tools"] = self.registry.declarations()
            body["tool_choice"] = "auto"
        return body

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def pending_tool_calls(self) -> list[ToolCallRequest]:
        """
        Tool calls of the trailing assistant message that have no result yet.
        Non-empty only when a previous batch was interrupted part way.
        """
        history = self.sessions.live_history
        answered = set()
        i = len(history) - 1
        while i > 0 and history[i].role == "tool":
            answered.add(history[i].tool_call_id)
            i -= 1
        last = history[i]
        if last.role != "assistant" or not last.tool_calls:
            return []
        return [c for c in last.tool_calls if c.id not in answered]

    async def run(self, observer: TurnObserver | None = None) -> Message:
        """Run until the model answers without tools. Returns that answer."""
        observer = observer or TurnObserver()
        requests = 0

        while True:
            pending = self.pending_tool_calls()
            if pending:
                logger.info("Resuming %d unanswered tool call(s)", len(pending))
                for call in pending:
                    await self._execute_tool_call(call, observer)

            last = self.sessions.live_history[-1]
            if last.role == "assistant" and not last.tool_calls:
                return last

            if requests >= self.max_turns:
                logger.warning("Stopping after %d completion requests", requests)
                raise MaxTurnsExceeded(self.max_turns)

            message = await self.run_turn(observer)
            requests += 1
            if not message.tool_calls:
                return message

    async def run_turn(self, observer: TurnObserver | None = None) -> Message:
        """One completion request, plus the tool calls it asks for."""
        observer = observer or TurnObserver()
        decoded = await self.decoder.decode(self.build_request(), observer)

        message = Message(
            role="assistant",
            content=decoded.content,
            reasoning=decoded.reasoning or None,
            tool_calls=decoded.tool_calls or None,
        )
        self.sessions.append_message(message)
        observer.message_appended(message)

        for call in message.tool_calls or []:
            await self._execute_tool_call(call, observer)
        return message

    async def _execute_tool_call(self, call: ToolCallRequest, observer: TurnObserver) -> ToolResult:
        observer.tool_started(call)

        try:
            args = json.loads(call.arguments or "{}")
        except json.JSONDecodeError:
            logger.warning("Malformed arguments for tool '%s', using {}", call.name)
            args = {}
        if not isinstance(args, dict):
            args = {}

        tool = self.registry.get(call.name)
        meta = None
        if tool is None:
            logger.warning("Model requested unknown tool '%s'", call.name)
            content = json.dumps({"error": "unknown tool"})
        else:
            meta = tool.meta(args)
            try:
                content = await self.registry.invoke(call.name, args)
            except Exception as e:
                logger.error("Tool '%s' failed: %s", call.name, e)
                content = json.dumps({"error": f"Failed to execute tool {call.name}: {e}"})
            if not isinstance(content, str):
                content = json.dumps(content, default=str)

        result = ToolResult(tool_call_id=call.id, name=call.name, content=content, meta=meta)
        message = result.to_message()
        self.sessions.append_message(message)
        observer.message_appended(message)
        observer.tool_finished(result)
        return result
