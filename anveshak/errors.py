"""
Exceptions raised by the conversation core.

Only transport-level failures and programming errors surface as exceptions.
Tool failures, malformed tool arguments and unknown tool names are turned into
tool results by the dispatch loop and never reach the caller.
"""

import json


class AnveshakError(Exception):
    """Base class for all core errors."""


class StreamError(AnveshakError):
    """The completion stream reported an error event."""

    def __init__(self, payload):
        self.payload = payload
        if isinstance(payload, str):
            message = payload
        else:
            message = json.dumps(payload, default=str)
        super().__init__(message)


class MaxTurnsExceeded(AnveshakError):
    """The model kept requesting tools past the configured turn cap."""

    def __init__(self, max_turns: int):
        self.max_turns = max_turns
        super().__init__(f"Conversation exceeded {max_turns} turns without a final answer")


class UnknownToolError(AnveshakError, KeyError):
    """No tool is registered under the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"unknown tool: {self.name}"


class SessionNotFoundError(AnveshakError, KeyError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(session_id)

    def __str__(self) -> str:
        return f"no such chat session: {self.session_id}"


class NotInDraftError(AnveshakError):
    """A draft-only operation was attempted on a committed session."""


class NotConfiguredError(AnveshakError):
    """No API key or model is set, so no request can be made."""
