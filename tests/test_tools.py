"""
Tests for tool modules and the registry.
HTTP tools run against httpx.MockTransport; no network, no API keys.
"""

import json

import httpx
import pytest

from anveshak.config import Settings
from anveshak.errors import UnknownToolError
from anveshak.storage.kv import MemoryKVStore
from anveshak.storage.memories import MemoryStore
from anveshak.tools.aipipe import CallAIPipeTool, needs_auth, resolve_pipeline, safe_stringify
from anveshak.tools.browser import OpenInBrowserTool
from anveshak.tools.execute_python import ExecutePythonTool
from anveshak.tools.google_search import GoogleSearchTool
from anveshak.tools.memory import AddToMemoryTool, GetMemoriesTool
from anveshak.tools.registry import ToolRegistry, build_registry


class FakeSandbox:
    def __init__(self):
        self.codes = []

    async def execute(self, code):
        self.codes.append(code)
        return json.dumps({"result": "ran", "logs": []})


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def test_build_registry_all_tools():
    """Every tool is registered by default, in a stable order."""
    registry = build_registry({}, Settings(), MemoryStore(MemoryKVStore()), FakeSandbox())
    assert registry.names() == [
        "googleSearch", "callAIPipe", "executePython", "openInBrowser", "addToMemory", "getMemories",
    ]


def test_build_registry_respects_enabled_flags():
    """Tools disabled in config are left out."""
    cfg = {"tools": {"google_search": {"enabled": False}, "memory": {"enabled": False}}}
    registry = build_registry(cfg, Settings(), MemoryStore(MemoryKVStore()), FakeSandbox())
    assert "googleSearch" not in registry
    assert "addToMemory" not in registry
    assert "executePython" in registry


def test_declarations_are_openai_functions():
    """declarations() yields OpenAI function tool entries."""
    registry = ToolRegistry([ExecutePythonTool(FakeSandbox())])
    [decl] = registry.declarations()
    assert decl["type"] == "function"
    assert decl["function"]["name"] == "executePython"
    assert decl["function"]["parameters"]["properties"] == {"code": {"type": "string"}}


@pytest.mark.asyncio
async def test_registry_unknown_tool_raises():
    """invoke() raises UnknownToolError for unregistered names."""
    with pytest.raises(UnknownToolError) as exc_info:
        await ToolRegistry().invoke("missing", {})
    assert str(exc_info.value) == "unknown tool: missing"


@pytest.mark.asyncio
async def test_execute_python_tool_delegates_and_records_code():
    """executePython forwards code to the sandbox and exposes it as meta."""
    sandbox = FakeSandbox()
    tool = ExecutePythonTool(sandbox)
    out = await tool.invoke({"code": "1 + 1"})
    assert json.loads(out)["result"] == "ran"
    assert sandbox.codes == ["1 + 1"]
    assert tool.meta({"code": "1 + 1"}) == {"code": "1 + 1"}


# ---------------------------------------------------------------------------
# googleSearch
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_google_search_requires_key():
    """A missing Serper key raises, so the loop records a failure result."""
    with pytest.raises(RuntimeError):
        await GoogleSearchTool(Settings()).invoke({"query": "x"})


@pytest.mark.asyncio
async def test_google_search_top_results():
    """Organic results are trimmed to title/link/snippet, top N."""
    organic = [{"title": f"t{i}", "link": f"https://e.com/{i}", "snippet": f"s{i}", "position": i}
               for i in range(8)]

    def handler(request):
        assert request.headers["x-api-key"] == "serper-key"
        assert json.loads(request.content) == {"q": "python"}
        return httpx.Response(200, json={"organic": organic})

    tool = GoogleSearchTool(Settings(serper_api_key="serper-key"), transport=httpx.MockTransport(handler))
    results = json.loads(await tool.invoke({"query": "python"}))
    assert len(results) == 5
    assert results[0] == {"title": "t0", "link": "https://e.com/0", "snippet": "s0"}
    assert tool.meta({"query": "python"}) == {"query": "python"}


@pytest.mark.asyncio
async def test_google_search_http_error_returned_as_data():
    """HTTP failures are reported in the result, not raised."""
    def handler(request):
        return httpx.Response(403, json={"message": "forbidden"})

    tool = GoogleSearchTool(Settings(serper_api_key="k"), transport=httpx.MockTransport(handler))
    out = json.loads(await tool.invoke({"query": "x"}))
    assert out["error"].startswith("An error occurred during search:")


# ---------------------------------------------------------------------------
# callAIPipe
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("pipeline,method,url", [
    ("usage", "GET", "https://aipipe.org/usage"),
    ("proxy:https://example.com/a", "GET", "https://aipipe.org/proxy/https://example.com/a"),
    ("https://example.com/b", "GET", "https://aipipe.org/proxy/https://example.com/b"),
    ("openai:models", "GET", "https://aipipe.org/openai/v1/models"),
    ("openai:", "GET", "https://aipipe.org/openai/v1/models"),
    ("openrouter:models", "GET", "https://aipipe.org/openrouter/v1/models"),
    ("gemini:models", "GET", "https://aipipe.org/geminiv1beta/models"),
])
def test_resolve_get_pipelines(pipeline, method, url):
    """GET shorthands resolve to the matching AI Pipe endpoint."""
    assert resolve_pipeline(pipeline) == (method, url, None)


def test_resolve_post_defaults():
    """POST shorthands get a default payload when no data is given."""
    method, url, body = resolve_pipeline("openrouter:chat")
    assert (method, url) == ("POST", "https://aipipe.org/openrouter/v1/chat/completions")
    assert body["model"] == "openai/gpt-4o-mini"

    method, url, body = resolve_pipeline("gemini:models/gemini-2.0-flash:generateContent", {"contents": []})
    assert url == "https://aipipe.org/geminiv1beta/models/gemini-2.0-flash:generateContent"
    assert body == {"contents": []}


def test_resolve_similarity_requires_data():
    """similarity without a data object is rejected."""
    with pytest.raises(ValueError):
        resolve_pipeline("similarity")
    assert resolve_pipeline("similarity", {"docs": ["a"], "topics": ["b"]})[0] == "POST"


def test_resolve_unknown_pipeline():
    """Unknown shorthands list the supported ones."""
    with pytest.raises(ValueError, match="Unknown pipeline"):
        resolve_pipeline("weather")


def test_needs_auth():
    """Only proxy requests go without a token."""
    assert not needs_auth("https://aipipe.org/proxy/https://x.com")
    assert needs_auth("https://aipipe.org/usage")


def test_safe_stringify_truncates():
    """Long payloads are replaced by a preview envelope."""
    out = json.loads(safe_stringify({"text": "a" * 100}, limit=20))
    assert out["truncated"] is True
    assert len(out["preview"]) == 21


def test_token_falls_back_to_provider_key():
    """Without an AI Pipe key, the provider key is used if the base URL is AI Pipe."""
    assert CallAIPipeTool(Settings(aipipe_api_key="ap")).token() == "ap"
    assert CallAIPipeTool(Settings(base_url="https://aipipe.org/openai/v1", api_key="pk")).token() == "pk"
    assert CallAIPipeTool(Settings(base_url="https://api.openai.com/v1", api_key="pk")).token() is None


@pytest.mark.asyncio
async def test_aipipe_call_success():
    """A successful call wraps the response with pipeline and status."""
    def handler(request):
        assert request.headers["authorization"] == "Bearer ap"
        return httpx.Response(200, json={"cost": 0.12})

    tool = CallAIPipeTool(Settings(aipipe_api_key="ap"), transport=httpx.MockTransport(handler))
    out = json.loads(await tool.invoke({"pipeline": " usage "}))
    assert out == {"pipeline": "usage", "status": 200, "data": {"cost": 0.12}}


@pytest.mark.asyncio
async def test_aipipe_missing_token_is_error_data():
    """A missing token is reported as an error result."""
    out = json.loads(await CallAIPipeTool(Settings()).invoke({"pipeline": "usage"}))
    assert out == {"error": "Missing AI Pipe token"}


@pytest.mark.asyncio
async def test_aipipe_http_error_message():
    """Error bodies surface their error field."""
    def handler(request):
        return httpx.Response(429, json={"error": "quota exceeded"})

    tool = CallAIPipeTool(Settings(aipipe_api_key="ap"), transport=httpx.MockTransport(handler))
    out = json.loads(await tool.invoke({"pipeline": "usage"}))
    assert out == {"error": "quota exceeded"}


@pytest.mark.asyncio
async def test_aipipe_proxy_text_response():
    """Non-JSON responses are wrapped as {text}."""
    def handler(request):
        assert "authorization" not in request.headers
        return httpx.Response(200, text="<html>hi</html>", headers={"content-type": "text/html"})

    tool = CallAIPipeTool(Settings(), transport=httpx.MockTransport(handler))
    out = json.loads(await tool.invoke({"pipeline": "proxy:https://example.com"}))
    assert out["data"] == {"text": "<html>hi</html>"}


# ---------------------------------------------------------------------------
# Browser and memory tools
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_open_in_browser():
    """The opener is called and its outcome reported."""
    opened = []
    tool = OpenInBrowserTool(opener=lambda url: opened.append(url) or True)
    out = json.loads(await tool.invoke({"url": "https://example.com"}))
    assert out["success"] is True
    assert opened == ["https://example.com"]

    failing = OpenInBrowserTool(opener=lambda url: False)
    assert json.loads(await failing.invoke({"url": "x"}))["success"] is False


@pytest.mark.asyncio
async def test_memory_tools():
    """addToMemory saves, getMemories lists, empty input is refused."""
    memories = MemoryStore(MemoryKVStore())
    add = AddToMemoryTool(memories)

    assert json.loads(await add.invoke({"memory": "Likes Rust"})) == {"success": True, "message": "Memory saved."}
    refused = json.loads(await add.invoke({"memory": " "}))
    assert refused == {"success": False, "message": "Memory must be a non-empty string."}

    listed = json.loads(await GetMemoriesTool(memories).invoke({}))
    assert [m["memory"] for m in listed] == ["Likes Rust"]
