"""
Chat title generation.
Asks the model for a 3-5 word title for a new chat. Best effort: any
failure returns None and the chat keeps its preview name.
"""

from __future__ import annotations

import logging
import re

import httpx

from anveshak.prompts import TITLE_PROMPT

logger = logging.getLogger(__name__)

MAX_TITLE_CHARS = 50


def clean_title(raw) -> str | None:
    if not isinstance(raw, str):
        return None
    title = raw.strip()
    if not title or len(title) > MAX_TITLE_CHARS:
        return None
    title = re.sub(r"^[\"']|[\"']$", "", title)
    return title or None


async def generate_title(backend, model: str, user_text: str) -> str | None:
    if not model:
        return None
    body = {
        "model": model,
        "messages": [
            {"role": "system", "content": TITLE_PROMPT},
            {"role": "user", "content": user_text},
        ],
        "temperature": 0.7,
    }
    try:
        data = await backend.complete(body)
        raw = ((data.get("choices") or [{}])[0].get("message") or {}).get("content")
    except (httpx.HTTPError, ValueError, AttributeError) as e:
        logger.warning("Failed to generate chat title: %s", e)
        return None
    return clean_title(raw)
