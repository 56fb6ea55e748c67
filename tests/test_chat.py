"""
Tests for the chat service, title generation and context wiring.
"""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from anveshak.backends.base import StreamEvent
from anveshak.chat import ChatContext, ChatService
from anveshak.config import DEFAULTS, Settings, save_settings
from anveshak.errors import NotConfiguredError
from anveshak.storage.kv import MemoryKVStore
from anveshak.title import clean_title, generate_title


class FakeBackend:
    """Streams scripted turns and answers title requests."""

    def __init__(self, turns, title="Quantum Basics"):
        self.turns = list(turns)
        self.title = title
        self.requests = []

    async def stream_events(self, body):
        self.requests.append(body)
        for event in self.turns.pop(0):
            yield event

    async def complete(self, body):
        return {"choices": [{"message": {"content": self.title}}]}


@pytest.fixture
def kv():
    store = MemoryKVStore()
    save_settings(store, Settings(api_key="sk", model="m"))
    return store


def make_service(kv, backend, cfg=None):
    ctx = ChatContext.from_config(cfg or DEFAULTS, kv=kv)
    ctx.backend = backend
    ctx._build_decoder()
    return ChatService(ctx)


# ---------------------------------------------------------------------------
# Titles
# ---------------------------------------------------------------------------

def test_clean_title():
    """Quotes are stripped; empty or over-long titles are refused."""
    assert clean_title('"Trip Planning"') == "Trip Planning"
    assert clean_title("  'Tea'  ") == "Tea"
    assert clean_title("") is None
    assert clean_title("x" * 51) is None
    assert clean_title(None) is None


@pytest.mark.asyncio
async def test_generate_title_request():
    """The title request is non-streaming with temperature 0.7."""
    backend = AsyncMock()
    backend.complete.return_value = {"choices": [{"message": {"content": "Weather Check"}}]}

    assert await generate_title(backend, "m", "what's the weather?") == "Weather Check"
    body = backend.complete.call_args.args[0]
    assert body["temperature"] == 0.7
    assert body["messages"][1] == {"role": "user", "content": "what's the weather?"}
    assert "stream" not in body


@pytest.mark.asyncio
async def test_generate_title_failure_returns_none():
    """HTTP failures are swallowed into None."""
    backend = AsyncMock()
    backend.complete.side_effect = httpx.ConnectError("offline")
    assert await generate_title(backend, "m", "hi") is None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_send_commits_draft_and_titles_it(kv):
    """The first message creates a session, answers, then retitles in the background."""
    service = make_service(kv, FakeBackend([[StreamEvent(content="Qubits are...")]]))

    answer = await service.send("Explain quantum computing to me please")
    await service.drain()

    assert answer.content == "Qubits are..."
    session = service.ctx.sessions.active_session
    assert session.name == "Quantum Basics"
    saved = json.loads(kv.get("allChats"))[session.id]
    assert saved["name"] == "Quantum Basics"
    assert [m["role"] for m in saved["history"]] == ["system", "user", "assistant"]


@pytest.mark.asyncio
async def test_send_keeps_preview_when_title_disabled(kv):
    """With titles disabled the 15-character preview name stays."""
    cfg = {**DEFAULTS, "title": {"enabled": False}}
    service = make_service(kv, FakeBackend([[StreamEvent(content="ok")]]), cfg)

    await service.send("Explain quantum computing")
    await service.drain()
    assert service.ctx.sessions.active_session.name == "Explain quantum..."


@pytest.mark.asyncio
async def test_send_requires_configuration():
    """Sending without an API key or model raises NotConfiguredError."""
    service = make_service(MemoryKVStore(), FakeBackend([]))
    with pytest.raises(NotConfiguredError):
        await service.send("hello")
    assert service.ctx.sessions.is_draft


@pytest.mark.asyncio
async def test_send_rejects_blank(kv):
    """Whitespace-only messages are refused."""
    service = make_service(kv, FakeBackend([]))
    with pytest.raises(ValueError):
        await service.send("   ")


def test_apply_settings_rebuilds_tools(kv):
    """Changing settings persists them and rebuilds dependents."""
    ctx = ChatContext.from_config(DEFAULTS, kv=kv)
    old_backend = ctx.backend
    ctx.apply_settings(Settings(base_url="https://aipipe.org/openai/v1", api_key="new", model="m2"))

    assert ctx.backend is not old_backend
    assert ctx.backend.base_url == "https://aipipe.org/openai/v1"
    assert ctx.decoder.backend is ctx.backend
    assert json.loads(kv.get("agentSettings"))["model"] == "m2"
