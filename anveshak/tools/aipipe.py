"""
AI Pipe dataflows (https://aipipe.org).

The model names a pipeline with a shorthand and this tool resolves it to an
AI Pipe endpoint:

    usage                       GET  /usage
    similarity                  POST /similarity           (data required)
    proxy:<url> or <url>        GET  /proxy/<url>          (no auth)
    openai:models|responses|embeddings|<path>
    openrouter:models|chat|<path>
    gemini:models|<model>:generateContent|<model>:embedContent|<path>

Everything except /proxy/ needs a bearer token: the dedicated AI Pipe key if
set, else the provider key when the provider base URL already is AI Pipe.
"""

from __future__ import annotations

import json
import logging
import re
from urllib.parse import urlsplit

import httpx

from anveshak.tools.base import Tool

logger = logging.getLogger(__name__)

AIPIPE_BASE = "https://aipipe.org"
ELLIPSIS = "…"

SUPPORTED = (
    "Unknown pipeline. Supported: usage, proxy:<url>, similarity, "
    "openai:<models|responses|...>, openrouter:<models|chat|...>, gemini:<models|...>."
)


def safe_stringify(obj, limit: int = 8000) -> str:
    try:
        text = json.dumps(obj, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        return json.dumps({"error": f"Could not serialize: {e}"})
    if len(text) > limit:
        return json.dumps({
            "truncated": True,
            "length": len(text),
            "preview": text[:limit] + ELLIPSIS,
        }, ensure_ascii=False)
    return text


def _default(data, fallback: dict):
    return data if isinstance(data, dict) else fallback


def resolve_pipeline(pipeline: str, data=None) -> tuple[str, str, dict | None]:
    """
    Map a pipeline shorthand to (method, url, body).
    Raises ValueError for empty or unknown pipelines.
    """
    if not pipeline or not isinstance(pipeline, str):
        raise ValueError("Expected 'pipeline' to be a non-empty string.")

    p = pipeline.strip()
    lower = p.lower()
    prefix, _, resource = p.partition(":")
    prefix = prefix.lower()

    if re.match(r"^https?://", p, re.IGNORECASE) or lower.startswith("proxy:"):
        raw = p[6:] if lower.startswith("proxy:") else p
        return "GET", f"{AIPIPE_BASE}/proxy/{raw}", None

    if lower == "usage":
        return "GET", f"{AIPIPE_BASE}/usage", None

    if lower == "similarity":
        if not isinstance(data, dict):
            raise ValueError(
                "'data' object is required for the 'similarity' pipeline "
                "(e.g., { docs: [...], topics: [...] })."
            )
        return "POST", f"{AIPIPE_BASE}/similarity", data

    if prefix == "openai":
        resource = resource or "models"
        if resource == "models":
            return "GET", f"{AIPIPE_BASE}/openai/v1/models", None
        if resource == "responses":
            return "POST", f"{AIPIPE_BASE}/openai/v1/responses", _default(
                data, {"model": "gpt-4.1-nano", "input": "ping"})
        if resource == "embeddings":
            return "POST", f"{AIPIPE_BASE}/openai/v1/embeddings", _default(
                data, {"model": "text-embedding-3-small", "input": "ping"})
        return ("POST" if data else "GET"), f"{AIPIPE_BASE}/openai/v1/{resource.lstrip('/')}", data or None

    if prefix == "openrouter":
        resource = resource or "v1/models"
        if resource == "models":
            return "GET", f"{AIPIPE_BASE}/openrouter/v1/models", None
        if resource in ("chat", "chat.completions"):
            return "POST", f"{AIPIPE_BASE}/openrouter/v1/chat/completions", _default(data, {
                "model": "openai/gpt-4o-mini",
                "messages": [{"role": "user", "content": "What is 2 + 2?"}],
            })
        return ("POST" if data else "GET"), f"{AIPIPE_BASE}/openrouter/{resource.lstrip('/')}", data or None

    if prefix == "gemini":
        resource = resource or "models"
        if resource == "models":
            return "GET", f"{AIPIPE_BASE}/geminiv1beta/models", None
        if ":generatecontent" in resource.lower():
            return "POST", f"{AIPIPE_BASE}/geminiv1beta/{resource}", _default(data, {
                "contents": [{"parts": [{"text": "What is 2 + 2?"}]}],
            })
        if ":embedcontent" in resource.lower():
            return "POST", f"{AIPIPE_BASE}/geminiv1beta/{resource}", _default(data, {
                "model": "gemini-embedding-001",
                "content": {"parts": [{"text": "What is 2 + 2?"}]},
            })
        return ("POST" if data else "GET"), f"{AIPIPE_BASE}/geminiv1beta/{resource.lstrip('/')}", data or None

    raise ValueError(SUPPORTED)


def needs_auth(url: str) -> bool:
    return not urlsplit(url).path.startswith("/proxy/")


class CallAIPipeTool(Tool):
    name = "callAIPipe"
    description = "Run an AI Pipe dataflow or proxy request."
    parameters = {
        "type": "object",
        "properties": {
            "pipeline": {
                "type": "string",
                "description": (
                    'Pipeline shorthand: "usage", "similarity", "proxy:<url>", '
                    '"openai:<...>", "openrouter:<...>" or "gemini:<...>".'
                ),
            },
            "data": {
                "type": "object",
                "description": "Optional JSON payload for POST pipelines.",
            },
        },
        "required": ["pipeline"],
    }

    def __init__(self, settings, max_output_chars: int = 8000, timeout: float = 60.0, transport=None):
        self.settings = settings
        self.max_output_chars = max_output_chars
        self.timeout = timeout
        self.transport = transport

    def meta(self, args: dict) -> dict:
        return {"pipeline": args.get("pipeline", "")}

    def token(self) -> str | None:
        if self.settings.aipipe_api_key:
            return self.settings.aipipe_api_key
        if "aipipe.org" in (self.settings.base_url or "").lower():
            return self.settings.api_key or None
        return None

    async def invoke(self, args: dict) -> str:
        pipeline = args.get("pipeline")
        try:
            method, url, body = resolve_pipeline(pipeline, args.get("data"))

            headers = {"Content-Type": "application/json"}
            if needs_auth(url):
                token = self.token()
                if not token:
                    raise RuntimeError("Missing AI Pipe token")
                headers["Authorization"] = f"Bearer {token}"

            logger.info("Running AI Pipe: %s %s", method, url)
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.request(method, url, json=body, headers=headers)

            if "application/json" in resp.headers.get("content-type", ""):
                out = resp.json()
            else:
                out = {"text": resp.text}

            if resp.is_error:
                err = out.get("error") if isinstance(out, dict) else None
                err = err or resp.reason_phrase or f"HTTP {resp.status_code}"
                raise RuntimeError(err if isinstance(err, str) else json.dumps(err))

            return safe_stringify(
                {"pipeline": pipeline.strip(), "status": resp.status_code, "data": out},
                self.max_output_chars,
            )
        except (ValueError, RuntimeError, httpx.HTTPError) as e:
            logger.warning("AI Pipe call failed: %s", e)
            return safe_stringify({"error": str(e)}, self.max_output_chars)
