"""
Tests for the OpenAI-compatible backend.
HTTP is served by httpx.MockTransport; no network.
"""

import json

import httpx
import pytest

from anveshak.backends import OpenAICompatibleBackend, StreamEvent


def _sse(*chunks, done=True) -> bytes:
    lines = [f"data: {json.dumps(c)}\n\n" for c in chunks]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def _delta(**delta) -> dict:
    return {"choices": [{"index": 0, "delta": delta}]}


def _backend(handler) -> OpenAICompatibleBackend:
    return OpenAICompatibleBackend(
        base_url="https://llm.test/v1/",
        api_key="sk-test",
        transport=httpx.MockTransport(handler),
    )


async def _collect(backend, body=None) -> list[StreamEvent]:
    return [e async for e in backend.stream_events(body or {"model": "m", "messages": []})]


# ---------------------------------------------------------------------------
# StreamEvent
# ---------------------------------------------------------------------------

def test_stream_event_reasoning_fallback():
    """reasoning_content is read when reasoning is absent."""
    event = StreamEvent(message=_delta(reasoning_content="hmm"))
    assert event.reasoning_delta == "hmm"
    assert StreamEvent().reasoning_delta == ""


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_stream_content_is_cumulative():
    """Each event carries all content received so far."""
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=_sse(_delta(content="Hel"), _delta(content="lo")),
                              headers={"content-type": "text/event-stream"})

    events = await _collect(_backend(handler), {"model": "m", "messages": [], "stream": True})

    assert [e.content for e in events] == ["Hel", "Hello"]
    assert all(e.error is None for e in events)
    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["stream"] is True


@pytest.mark.asyncio
async def test_stream_tool_fragments_accumulate():
    """Tool-call fragments merge by index into {id, name, args}."""
    chunks = [
        _delta(tool_calls=[{"index": 0, "id": "call_a", "function": {"name": "googleSearch", "arguments": ""}}]),
        _delta(tool_calls=[{"index": 0, "function": {"arguments": '{"query":'}}]),
        _delta(tool_calls=[{"index": 0, "function": {"arguments": '"news"}'}}]),
        _delta(tool_calls=[{"index": 1, "id": "call_b", "function": {"name": "getMemories", "arguments": "{}"}}]),
    ]

    def handler(request):
        return httpx.Response(200, content=_sse(*chunks))

    events = await _collect(_backend(handler))
    assert events[-1].tools == [
        {"id": "call_a", "name": "googleSearch", "args": '{"query":"news"}'},
        {"id": "call_b", "name": "getMemories", "args": "{}"},
    ]
    # Earlier snapshots are not mutated by later fragments
    assert events[0].tools == [{"id": "call_a", "name": "googleSearch", "args": ""}]


@pytest.mark.asyncio
async def test_stream_http_error_becomes_error_event():
    """HTTP >= 400 yields a single error event with the provider's error object."""
    def handler(request):
        return httpx.Response(401, json={"error": {"message": "bad key", "code": 401}})

    events = await _collect(_backend(handler))
    assert len(events) == 1
    assert events[0].error == {"message": "bad key", "code": 401}


@pytest.mark.asyncio
async def test_stream_error_chunk():
    """An error object inside the stream ends it with an error event."""
    def handler(request):
        return httpx.Response(200, content=_sse(_delta(content="par"), {"error": {"message": "overloaded"}}))

    events = await _collect(_backend(handler))
    assert events[-1].error == {"message": "overloaded"}
    assert events[-1].content == "par"


@pytest.mark.asyncio
async def test_stream_ignores_comments_and_stops_at_done():
    """Non-data lines are skipped and nothing after [DONE] is read."""
    body = (
        b": keep-alive\n\n"
        + _sse(_delta(content="ok"))
        + f"data: {json.dumps(_delta(content='late'))}\n\n".encode()
    )

    def handler(request):
        return httpx.Response(200, content=body)

    events = await _collect(_backend(handler))
    assert [e.content for e in events] == ["ok"]


# ---------------------------------------------------------------------------
# Non-streaming
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_models_sorted():
    """list_models returns sorted ids from /models."""
    def handler(request):
        assert request.url.path == "/v1/models"
        return httpx.Response(200, json={"data": [{"id": "b-model"}, {"id": "a-model"}]})

    assert await _backend(handler).list_models() == ["a-model", "b-model"]


@pytest.mark.asyncio
async def test_complete_raises_on_http_error():
    """complete() raises httpx.HTTPStatusError on failure."""
    def handler(request):
        return httpx.Response(500, json={"error": "boom"})

    with pytest.raises(httpx.HTTPStatusError):
        await _backend(handler).complete({"model": "m", "messages": []})
