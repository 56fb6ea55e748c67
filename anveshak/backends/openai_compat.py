"""
Generic OpenAI-compatible backend.

Works with any endpoint that implements {base_url}/chat/completions with SSE
streaming and {base_url}/models: OpenAI, OpenRouter, AI Pipe, llama.cpp,
vLLM, Ollama's /v1 and so on.

The stream is turned into StreamEvents the way browser clients see it:
content is cumulative, tool calls are accumulated from their per-index
fragments into a materialized list, and any failure becomes a final event
with `error` set.
"""

from __future__ import annotations

import json
import logging
import time

import httpx

from anveshak.backends.base import BaseBackend, StreamEvent

logger = logging.getLogger(__name__)


class OpenAICompatibleBackend(BaseBackend):
    """Backend for OpenAI-compatible chat completion endpoints."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: int = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(base_url, api_key, timeout)
        self.transport = transport

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout if timeout is not None else self.timeout,
            transport=self.transport,
        )

    async def stream_events(self, body: dict):
        """Forward a streaming request, yielding StreamEvents."""
        content = ""
        tools: list[dict] = []

        async with self._client() as client:
            async with client.stream(
                "POST",
                f"{self.base_url}/chat/completions",
                json=body,
                headers=self._headers(),
            ) as resp:
                if resp.status_code >= 400:
                    text = (await resp.aread()).decode("utf-8", errors="replace")
                    logger.warning("Completion request failed: HTTP %d", resp.status_code)
                    yield StreamEvent(error=_error_payload(resp.status_code, text))
                    return

                async for line in resp.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    data = line[5:].strip()
                    if not data:
                        continue
                    if data == "[DONE]":
                        break

                    try:
                        chunk = json.loads(data)
                    except json.JSONDecodeError:
                        yield StreamEvent(
                            content=content,
                            error={"message": f"Invalid JSON in stream: {data[:200]}"},
                        )
                        return

                    if chunk.get("error"):
                        yield StreamEvent(content=content, message=chunk, error=chunk["error"])
                        return

                    choices = chunk.get("choices") or [{}]
                    delta = choices[0].get("delta") or {}

                    if delta.get("content"):
                        content += delta["content"]
                    for fragment in delta.get("tool_calls") or []:
                        _merge_tool_fragment(tools, fragment)

                    yield StreamEvent(
                        content=content,
                        tools=[dict(t) for t in tools],
                        message=chunk,
                    )

    async def complete(self, body: dict) -> dict:
        """Forward a non-streaming request."""
        t0 = time.monotonic()
        async with self._client() as client:
            resp = await client.post(
                f"{self.base_url}/chat/completions",
                json=body,
                headers=self._headers(),
            )
            resp.raise_for_status()
            data = resp.json()
        logger.debug("Completion took %.0fms", (time.monotonic() - t0) * 1000)
        return data

    async def list_models(self) -> list[str]:
        """Fetch available model ids, sorted."""
        async with self._client(timeout=10) as client:
            resp = await client.get(f"{self.base_url}/models", headers=self._headers())
            resp.raise_for_status()
            data = resp.json()
        models = [m.get("id", m.get("name", "")) for m in data.get("data", [])]
        return sorted(m for m in models if m)


def _merge_tool_fragment(tools: list[dict], fragment: dict):
    """Fold one delta.tool_calls entry into the accumulated list."""
    index = fragment.get("index")
    if index is None:
        index = len(tools)
    while len(tools) <= index:
        tools.append({"id": "", "name": "", "args": ""})

    call = tools[index]
    if fragment.get("id"):
        call["id"] = fragment["id"]
    fn = fragment.get("function") or {}
    if fn.get("name"):
        call["name"] = fn["name"]
    if fn.get("arguments"):
        call["args"] += fn["arguments"]


def _error_payload(status_code: int, text: str):
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return {"status": status_code, "message": text[:500]}
    if isinstance(data, dict) and data.get("error"):
        return data["error"]
    return {"status": status_code, "message": text[:500]}
