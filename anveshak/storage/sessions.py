"""
Session store: chat sessions, the active/draft pointer and persistence.

The working conversation is `live_history`. A draft (new chat with no id yet)
exists only there until the first user message commits it as a session.
Once committed, every append is mirrored into the active session and the
whole session map is written to the key-value store before returning, so the
persisted chat is never behind the in-memory one by more than the step in
flight.

    store = SessionStore(kv, system_prompt)
    store.load()
    store.add_user_message("hello")      # commits the draft
    store.append_message(assistant_msg)
"""

from __future__ import annotations

import json
import logging

from anveshak.config import SETTINGS_KEY
from anveshak.errors import NotInDraftError, SessionNotFoundError
from anveshak.models import ChatSession, Message, utc_now

logger = logging.getLogger(__name__)

ALL_CHATS_KEY = "allChats"
ACTIVE_CHAT_KEY = "activeChat"

DRAFT_NAME_CHARS = 15
EMPTY_CHAT_NAME_CHARS = 30


def preview_name(text: str, limit: int) -> str:
    text = text.strip()
    return text[:limit] + "..." if len(text) > limit else text


class SessionStore:
    """Owns the session map and the live history. Sole writer of both."""

    def __init__(self, kv, system_prompt: Message):
        self.kv = kv
        self.system_prompt = system_prompt
        self.sessions: dict[str, ChatSession] = {}
        self.active_id: str | None = None
        self.is_draft = True
        self._live: list[Message] = [system_prompt]

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def live_history(self) -> list[Message]:
        return list(self._live)

    @property
    def active_session(self) -> ChatSession | None:
        if self.is_draft or not self.active_id:
            return None
        return self.sessions.get(self.active_id)

    def get(self, session_id: str) -> ChatSession:
        try:
            return self.sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def list_sessions(self) -> list[ChatSession]:
        """Most recently updated first."""
        return sorted(self.sessions.values(), key=lambda s: s.updated_at, reverse=True)

    def storage_info(self) -> dict:
        return {
            "chats": len(self.sessions),
            "bytes": self.kv.size(ALL_CHATS_KEY, SETTINGS_KEY),
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _sync_active(self):
        session = self.active_session
        if session is not None:
            session.history = list(self._live)

    def create_draft(self):
        session = self.active_session
        if session is not None:
            session.history = list(self._live)
            session.updated_at = utc_now()

        self.active_id = None
        self.is_draft = True
        self._live = [self.system_prompt]
        self.persist()

    def switch_to(self, session_id: str):
        target = self.get(session_id)
        self._sync_active()

        self.active_id = session_id
        self.is_draft = False
        self._live = list(target.history) or [self.system_prompt]
        self.persist()

    def commit_draft(self, first_user_text: str) -> ChatSession:
        """Promote the draft (already holding the first user message) to a session."""
        if not self.is_draft:
            raise NotInDraftError("commit_draft is only valid while in draft mode")

        session = ChatSession(
            name=preview_name(first_user_text, DRAFT_NAME_CHARS),
            history=list(self._live),
        )
        self.sessions[session.id] = session
        self.active_id = session.id
        self.is_draft = False
        self.persist()
        logger.info("Committed draft as session %s (%r)", session.id, session.name)
        return session

    def add_user_message(self, text: str) -> ChatSession | None:
        """
        Append a user message, committing the draft if there is one.
        Returns the session when this was its first user message (the
        caller may then retitle it), else None.
        """
        message = Message.user(text)

        if self.is_draft:
            self._live.append(message)
            return self.commit_draft(text)

        session = self.active_session
        first = session is not None and len(self._live) <= 1
        if first:
            session.name = preview_name(text, EMPTY_CHAT_NAME_CHARS)
        self.append_message(message)
        return session if first else None

    def append_message(self, message: Message):
        self._live.append(message)
        session = self.active_session
        if session is not None:
            session.history = list(self._live)
            session.updated_at = utc_now()
        self.persist()

    def rename(self, session_id: str, name: str):
        name = name.strip()
        if not name:
            raise ValueError("Chat name must not be empty")
        session = self.get(session_id)
        session.name = name
        session.updated_at = utc_now()
        self.persist()

    def delete(self, session_id: str):
        self.get(session_id)
        del self.sessions[session_id]
        logger.info("Deleted session %s", session_id)

        if session_id != self.active_id:
            self.persist()
            return

        # The active chat is gone: fall back to another one, or a new draft
        self.active_id = None
        remaining = list(self.sessions)
        if remaining:
            self.switch_to(remaining[0])
        else:
            self.create_draft()

    def clear_active(self):
        """Reset the current chat to just the system prompt."""
        self._live = [self.system_prompt]
        session = self.active_session
        if session is not None:
            session.history = [self.system_prompt]
            session.updated_at = utc_now()
        self.persist()

    def clear_all(self):
        self.sessions = {}
        self.active_id = None
        self.create_draft()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist(self):
        self._sync_active()
        payload = {sid: s.to_dict() for sid, s in self.sessions.items()}
        self.kv.set(ALL_CHATS_KEY, json.dumps(payload, ensure_ascii=False))
        if self.is_draft or not self.active_id:
            self.kv.delete(ACTIVE_CHAT_KEY)
        else:
            self.kv.set(ACTIVE_CHAT_KEY, self.active_id)

    def load(self):
        raw = self.kv.get(ALL_CHATS_KEY)
        saved_active = self.kv.get(ACTIVE_CHAT_KEY)

        self.sessions = {}
        if raw:
            for sid, data in (json.loads(raw) or {}).items():
                session = ChatSession.from_dict(data)
                if not session.history or session.history[0].role != "system":
                    session.history.insert(0, self.system_prompt)
                self.sessions[sid] = session

        if not self.sessions or not saved_active:
            self.active_id = None
            self.is_draft = True
            self._live = [self.system_prompt]
            return

        self.active_id = saved_active if saved_active in self.sessions else next(iter(self.sessions))
        self.is_draft = False
        self._live = list(self.sessions[self.active_id].history)
        logger.debug("Loaded %d sessions, active=%s", len(self.sessions), self.active_id)
