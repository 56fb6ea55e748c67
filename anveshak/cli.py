#!/usr/bin/env python3
"""
Anveshak CLI: a terminal front end for the chat core.

Every command has a short name and standard aliases:

    COMMAND     ALIASES         WHAT IT DOES
    -------     -------         ----------------------------------
    chat        talk, repl      Interactive chat (or one-shot with a message)
    sessions    chats, ls       List saved chats
    models      fetch-models    Fetch and store the provider's model list
    settings    config          Show or change connection settings
    memories    mem             List or clear saved memories
    exec        run             Run Python in the sandbox
"""

import argparse
import asyncio
import sys

from anveshak import __version__
from anveshak.decoder import TurnObserver

CHAT_HELP = """
  /new             start a new chat
  /list            list chats
  /switch <n|id>   switch to a chat
  /rename <name>   rename the current chat
  /delete [n|id]   delete a chat (default: current)
  /clear           clear the current chat
  /quit            leave
"""


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

class ConsoleObserver(TurnObserver):
    """Streams a turn to the terminal."""

    def __init__(self, out=None, show_reasoning: bool = False):
        self.out = out or sys.stdout
        self.show_reasoning = show_reasoning
        self._printed = ""

    def _write(self, text: str):
        self.out.write(text)
        self.out.flush()

    def thinking_started(self):
        self._write("  … thinking\n")

    def reasoning_delta(self, delta: str, reasoning: str):
        if self.show_reasoning:
            self._write(delta)

    def content_updated(self, content: str):
        # Content is the whole message so far; print what is new
        if content.startswith(self._printed):
            self._write(content[len(self._printed):])
        else:
            self._write("\n" + content)
        self._printed = content

    def message_appended(self, message):
        if message.role == "assistant":
            if self._printed:
                self._write("\n")
            self._printed = ""

    def tool_started(self, call):
        self._write(f"  ⚙ Used tool: {call.name}\n")


def _print_sessions(ctx):
    sessions = ctx.sessions.list_sessions()
    if not sessions:
        print("  (no chats yet)")
        return
    active = ctx.sessions.active_id
    for i, s in enumerate(sessions, 1):
        marker = "*" if s.id == active and not ctx.sessions.is_draft else " "
        print(f"  {marker} {i:>2}. {s.name:<40} {s.updated_at[:19]}  {s.id}")


def _resolve_session(ctx, ref: str) -> str:
    """Accept a 1-based index into the listing or a session id."""
    if ref.isdigit():
        sessions = ctx.sessions.list_sessions()
        index = int(ref) - 1
        if 0 <= index < len(sessions):
            return sessions[index].id
    return ref


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _context():
    from anveshak.chat import ChatContext
    from anveshak.config import get_config, setup_logging

    cfg = get_config()
    setup_logging(cfg)
    return ChatContext.from_config(cfg)


async def _send(service, text: str, observer) -> bool:
    from anveshak.errors import AnveshakError, NotConfiguredError
    import httpx

    try:
        await service.send(text, observer)
    except NotConfiguredError as e:
        print(f"  ✗ {e}")
        return False
    except (AnveshakError, httpx.HTTPError) as e:
        print(f"\n  ✗ {e}")
        return False
    return True


async def _resume(service, observer):
    from anveshak.errors import AnveshakError
    import httpx

    try:
        await service.resume(observer)
    except (AnveshakError, httpx.HTTPError) as e:
        print(f"\n  ✗ {e}")


def _handle_slash(ctx, line: str) -> bool:
    """Run a /command. Returns False when the REPL should exit."""
    from anveshak.errors import SessionNotFoundError

    command, _, rest = line[1:].partition(" ")
    rest = rest.strip()
    store = ctx.sessions

    try:
        if command in ("quit", "exit", "q"):
            return False
        if command == "new":
            store.create_draft()
            print("  New chat.")
        elif command == "list":
            _print_sessions(ctx)
        elif command == "switch":
            store.switch_to(_resolve_session(ctx, rest))
            print(f"  Switched to: {store.active_session.name}")
        elif command == "rename":
            if store.active_session is None:
                print("  Nothing to rename yet.")
            else:
                store.rename(store.active_id, rest)
                print(f"  Renamed to: {rest}")
        elif command == "delete":
            target = _resolve_session(ctx, rest) if rest else store.active_id
            if not target:
                print("  Nothing to delete.")
            else:
                store.delete(target)
                print("  Deleted.")
        elif command == "clear":
            store.clear_active()
            print("  Cleared.")
        else:
            print(CHAT_HELP)
    except SessionNotFoundError as e:
        print(f"  ✗ {e}")
    except ValueError as e:
        print(f"  ✗ {e}")
    return True


async def _chat(args):
    from anveshak.chat import ChatService

    ctx = _context()
    service = ChatService(ctx)
    observer = ConsoleObserver(show_reasoning=args.reasoning)

    if args.new:
        ctx.sessions.create_draft()

    if args.message:
        await _send(service, " ".join(args.message), observer)
        await service.drain()
        return

    if ctx.loop().pending_tool_calls():
        print("  Resuming interrupted tool calls...\n")
        await _resume(service, observer)

    name = ctx.sessions.active_session.name if ctx.sessions.active_session else "New Chat"
    print(f"  Anveshak v{__version__}  ·  {name}  ·  type /help for commands\n")
    try:
        while True:
            try:
                line = input("  you> ").strip()
            except EOFError:
                break
            if not line:
                continue
            if line.startswith("/"):
                if not _handle_slash(ctx, line):
                    break
                continue
            print()
            await _send(service, line, observer)
            print()
    except KeyboardInterrupt:
        print()
    await service.drain()


def cmd_chat(args):
    """Interactive chat REPL, or a single message."""
    asyncio.run(_chat(args))


def cmd_sessions(args):
    """List saved chats."""
    ctx = _context()
    _print_sessions(ctx)
    info = ctx.sessions.storage_info()
    print(f"\n  {info['chats']} chats, {info['bytes'] / 1024:.1f} KB used")


def cmd_models(args):
    """Fetch the model list from the provider and store it in settings."""
    import dataclasses
    import httpx

    ctx = _context()
    try:
        models = asyncio.run(ctx.backend.list_models())
    except httpx.HTTPError as e:
        print(f"  ✗ Could not fetch models: {e}")
        sys.exit(1)

    settings = dataclasses.replace(ctx.settings, models=models)
    if not settings.model and models:
        settings.model = models[0]
    ctx.apply_settings(settings)
    for m in models:
        marker = "*" if m == settings.model else " "
        print(f"  {marker} {m}")


def cmd_settings(args):
    """Show or change connection settings."""
    import dataclasses

    ctx = _context()
    changes = {
        "base_url": args.base_url.rstrip("/") if args.base_url else None,
        "api_key": args.api_key,
        "aipipe_api_key": args.aipipe_key,
        "serper_api_key": args.serper_key,
        "model": args.model,
    }
    changes = {k: v for k, v in changes.items() if v is not None}
    if args.tools is not None:
        changes["tools_enabled"] = args.tools == "on"

    if changes:
        ctx.apply_settings(dataclasses.replace(ctx.settings, **changes))

    s = ctx.settings
    print("  Settings")
    print(f"  ├─ Base URL:      {s.base_url}")
    print(f"  ├─ API key:       {_mask(s.api_key)}")
    print(f"  ├─ AI Pipe key:   {_mask(s.aipipe_api_key)}")
    print(f"  ├─ Serper key:    {_mask(s.serper_api_key)}")
    print(f"  ├─ Model:         {s.model or '(none)'}")
    print(f"  ├─ Models known:  {len(s.models)}")
    print(f"  └─ Tools:         {'on' if s.tools_enabled else 'off'} ({', '.join(ctx.registry.names())})")


def _mask(secret: str) -> str:
    if not secret:
        return "(not set)"
    return secret[:4] + "…" if len(secret) > 8 else "…"


def cmd_memories(args):
    """List or clear saved memories."""
    ctx = _context()
    if args.clear:
        ctx.memories.clear()
        print("  Memories cleared.")
        return
    memories = ctx.memories.list()
    if not memories:
        print("  (no memories)")
    for i, m in enumerate(memories, 1):
        print(f"  {i:>2}. {m.text}  [{m.timestamp[:19]}]")


def cmd_exec(args):
    """Run Python in the sandbox and print the JSON outcome."""
    from anveshak.config import get_config, setup_logging
    from anveshak.sandbox import Sandbox

    cfg = get_config()
    setup_logging(cfg)
    code = " ".join(args.code) if args.code else sys.stdin.read()
    sb_cfg = cfg.get("sandbox", {})
    sandbox = Sandbox(
        timeout_ms=args.timeout or sb_cfg.get("timeout_ms", 2000),
        max_output_chars=sb_cfg.get("max_output_chars", 4000),
    )
    print(asyncio.run(sandbox.execute(code)))


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def _add_command(subparsers, names, help_text, func, setup_fn=None):
    """Register a command under multiple names."""
    p = subparsers.add_parser(names[0], help=help_text, aliases=names[1:])
    p.set_defaults(func=func)
    if setup_fn:
        setup_fn(p)
    return p


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="anveshak",
        description="Anveshak: a tool-using chat assistant in your terminal.",
        epilog="Run 'anveshak <command> --help' for command-specific options.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-V", action="version",
        version=f"anveshak {__version__}",
    )

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    def setup_chat(p):
        p.add_argument("message", nargs="*", help="Send one message and exit (omit for the REPL)")
        p.add_argument("--new", action="store_true", help="Start in a new chat")
        p.add_argument("--reasoning", action="store_true", help="Stream the model's reasoning too")

    _add_command(sub, ["chat", "talk", "repl"], "Chat with the assistant", cmd_chat, setup_chat)

    _add_command(sub, ["sessions", "chats", "ls"], "List saved chats", cmd_sessions)

    _add_command(sub, ["models", "fetch-models"],
                 "Fetch and store the provider's model list", cmd_models)

    def setup_settings(p):
        p.add_argument("--base-url", default=None, help="OpenAI-compatible API base URL")
        p.add_argument("--api-key", default=None, help="Provider API key")
        p.add_argument("--aipipe-key", default=None, help="AI Pipe token")
        p.add_argument("--serper-key", default=None, help="Serper.dev API key for googleSearch")
        p.add_argument("--model", "-m", default=None, help="Model id")
        p.add_argument("--tools", choices=["on", "off"], default=None, help="Enable or disable tools")

    _add_command(sub, ["settings", "config"], "Show or change connection settings",
                 cmd_settings, setup_settings)

    def setup_memories(p):
        p.add_argument("--clear", action="store_true", help="Delete all saved memories")

    _add_command(sub, ["memories", "mem"], "List or clear saved memories", cmd_memories, setup_memories)

    def setup_exec(p):
        p.add_argument("code", nargs="*", help="Code to run (default: read stdin)")
        p.add_argument("--timeout", type=int, default=None, help="Timeout in milliseconds")

    _add_command(sub, ["exec", "run"], "Run Python in the sandbox", cmd_exec, setup_exec)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
