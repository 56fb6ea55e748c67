"""
Completion backends.
Anything that speaks the OpenAI chat completions API with SSE streaming.
"""
from anveshak.backends.base import BaseBackend, StreamEvent
from anveshak.backends.openai_compat import OpenAICompatibleBackend

__all__ = [
    "BaseBackend",
    "StreamEvent",
    "OpenAICompatibleBackend",
]
