"""
Chat service: wires the stores, tools and backend together and runs a
user message through the dispatch loop.

Everything the loop needs lives on one explicit ChatContext, built once
from config.yaml and the key-value store:

    ctx = ChatContext.from_config()
    service = ChatService(ctx)
    answer = await service.send("what's 2**64?", observer)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from anveshak.backends import BaseBackend, OpenAICompatibleBackend
from anveshak.config import Settings, get_config, load_settings, save_settings
from anveshak.decoder import StreamDecoder, TurnObserver
from anveshak.errors import NotConfiguredError
from anveshak.loop import ConversationLoop
from anveshak.models import Message
from anveshak.prompts import SYSTEM_PROMPT
from anveshak.sandbox import Sandbox
from anveshak.storage.kv import KeyValueStore, SQLiteKVStore
from anveshak.storage.memories import MemoryStore
from anveshak.storage.sessions import SessionStore
from anveshak.title import generate_title
from anveshak.tools import ToolRegistry, build_registry

logger = logging.getLogger(__name__)


@dataclass
class ChatContext:
    cfg: dict
    kv: KeyValueStore
    settings: Settings
    sessions: SessionStore
    memories: MemoryStore
    sandbox: Sandbox
    registry: ToolRegistry
    backend: BaseBackend
    decoder: StreamDecoder = field(init=False)

    def __post_init__(self):
        self._build_decoder()

    def _build_decoder(self):
        self.decoder = StreamDecoder(
            self.backend,
            content_mode=self.cfg.get("decoder", {}).get("content_mode", "cumulative"),
        )

    @classmethod
    def from_config(cls, cfg: dict | None = None, kv: KeyValueStore | None = None) -> ChatContext:
        cfg = cfg or get_config()
        if kv is None:
            kv = SQLiteKVStore(cfg.get("storage", {}).get("path", "./data/anveshak.db"))

        settings = load_settings(kv, cfg)
        sessions = SessionStore(kv, Message.system(SYSTEM_PROMPT))
        sessions.load()
        memories = MemoryStore(kv)

        sb_cfg = cfg.get("sandbox", {})
        sandbox = Sandbox(
            timeout_ms=sb_cfg.get("timeout_ms", 2000),
            max_output_chars=sb_cfg.get("max_output_chars", 4000),
        )
        return cls(
            cfg=cfg,
            kv=kv,
            settings=settings,
            sessions=sessions,
            memories=memories,
            sandbox=sandbox,
            registry=build_registry(cfg, settings, memories, sandbox),
            backend=_make_backend(cfg, settings),
        )

    def apply_settings(self, settings: Settings):
        """Persist new settings and rebuild what depends on them."""
        save_settings(self.kv, settings)
        self.settings = settings
        self.registry = build_registry(self.cfg, settings, self.memories, self.sandbox)
        self.backend = _make_backend(self.cfg, settings)
        self._build_decoder()

    def loop(self) -> ConversationLoop:
        return ConversationLoop(
            self.sessions,
            self.decoder,
            self.registry,
            self.settings,
            memories=self.memories,
            max_turns=self.cfg.get("loop", {}).get("max_turns", 10),
        )


def _make_backend(cfg: dict, settings: Settings) -> OpenAICompatibleBackend:
    return OpenAICompatibleBackend(
        base_url=settings.base_url,
        api_key=settings.api_key,
        timeout=cfg.get("backend", {}).get("timeout", 120),
    )


class ChatService:
    """Front door for the UI: one method per user action."""

    def __init__(self, context: ChatContext):
        self.ctx = context
        self._background: set[asyncio.Task] = set()

    async def send(self, text: str, observer: TurnObserver | None = None) -> Message:
        """
        Add a user message (committing a draft if needed) and run the loop
        to a final answer. A new chat gets a model-generated title in the
        background.
        """
        text = text.strip()
        if not text:
            raise ValueError("Message must not be empty")
        if not self.ctx.settings.configured:
            raise NotConfiguredError("Set an API key and a model first (anveshak settings --help)")

        session = self.ctx.sessions.add_user_message(text)
        if session is not None and self.ctx.cfg.get("title", {}).get("enabled", True):
            self._spawn(self._retitle(session.id, text))

        return await self.ctx.loop().run(observer)

    async def resume(self, observer: TurnObserver | None = None) -> Message:
        """Continue an interrupted conversation from its persisted state."""
        return await self.ctx.loop().run(observer)

    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _retitle(self, session_id: str, text: str):
        title = await generate_title(self.ctx.backend, self.ctx.settings.model, text)
        if title and session_id in self.ctx.sessions.sessions:
            self.ctx.sessions.rename(session_id, title)
            logger.info("Titled session %s: %r", session_id, title)

    async def drain(self):
        """Wait for background work (titles) to settle."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
