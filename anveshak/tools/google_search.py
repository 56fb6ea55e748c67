"""
Google search via the Serper.dev API.
Requires a Serper API key in settings (or tools.google_search.api_key).
"""

import json
import logging

import httpx

from anveshak.tools.base import Tool

logger = logging.getLogger(__name__)

SERPER_URL = "https://google.serper.dev/search"


class GoogleSearchTool(Tool):
    name = "googleSearch"
    description = "Search Google for recent results."
    parameters = {
        "type": "object",
        "properties": {"query": {"type": "string"}},
    }

    def __init__(self, settings, max_results: int = 5, timeout: float = 15.0, transport=None):
        self.settings = settings
        self.max_results = max_results
        self.timeout = timeout
        self.transport = transport

    def meta(self, args: dict) -> dict:
        return {"query": args.get("query", "")}

    async def invoke(self, args: dict) -> str:
        if not self.settings.serper_api_key:
            raise RuntimeError("Serper API key not provided.")

        query = args.get("query", "")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(
                    SERPER_URL,
                    json={"q": query},
                    headers={"X-API-KEY": self.settings.serper_api_key},
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Search failed for '%s': %s", query, e)
            return json.dumps({"error": f"An error occurred during search: {e}"})

        results = [
            {
                "title": item.get("title"),
                "link": item.get("link"),
                "snippet": item.get("snippet"),
            }
            for item in (data.get("organic") or [])[: self.max_results]
        ]
        logger.debug("Search for '%s' returned %d results", query, len(results))
        return json.dumps(results, ensure_ascii=False)
