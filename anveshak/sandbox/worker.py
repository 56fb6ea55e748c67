"""
Sandbox worker: runs one piece of untrusted Python in a child process.

Protocol (newline-delimited JSON):
    stdin   {"id": "...", "code": "..."}              one request, then EOF
    stdout  {"id": "...", "type": "log", "level": "...", "args": "<json>"}
            {"id": "...", "type": "result", "result": "<json>"}
            {"id": "...", "type": "error", "error": "<json>"}

The code becomes the body of an async function, so `return` and `await`
work and a trailing expression is returned. It runs with a builtins table
that has file, eval and introspection entry points rebound to None, and an
import hook limited to pure-computation modules. Imported modules are handed
over as public views: private names and modules outside the allowlist (such
as the `os` that `random` keeps as `_os`) are not reachable from them.
Private, dunder and frame attributes are rejected before the code runs.
`console.log(...)` and `print(...)` are forwarded to the host as log
messages.

Invoked as `python -m anveshak.sandbox.worker`; never imported by the host.
"""

import ast
import asyncio
import builtins
import inspect
import json
import os
import sys
import types

from anveshak.sandbox.serialize import encode

BLOCKED_BUILTINS = (
    "open", "input", "exec", "eval", "compile", "breakpoint", "exit", "quit",
    "help", "globals", "locals", "vars", "memoryview", "copyright", "credits",
    "license",
)

# Dunder builtins the interpreter itself needs; the rest (__loader__, __spec__, ...) are dropped
KEPT_DUNDERS = ("__build_class__", "__name__", "__debug__")

ALLOWED_MODULES = frozenset({
    "base64", "bisect", "calendar", "cmath", "collections", "datetime",
    "decimal", "fractions", "functools", "hashlib", "heapq", "itertools",
    "json", "math", "operator", "random", "re", "statistics", "string",
    "textwrap", "time", "unicodedata", "zoneinfo",
})

# Frame and code object attributes lead back to the worker's own globals
FRAME_ATTRIBUTES = frozenset({
    "f_back", "f_builtins", "f_code", "f_globals", "f_locals",
    "gi_code", "gi_frame", "gi_yieldfrom",
    "cr_await", "cr_code", "cr_frame",
    "ag_await", "ag_code", "ag_frame",
    "tb_frame", "tb_next",
})

SAFE_DUNDERS = frozenset({"__init__", "__name__", "__qualname__", "__doc__"})

# User classes may keep their own _private state
OWN_INSTANCE_NAMES = ("self", "cls")

ENTRY = "__sandbox_main__"

_real_import = builtins.__import__


def is_private_attribute(name: str) -> bool:
    if name in SAFE_DUNDERS:
        return False
    return name.startswith("_") or name in FRAME_ATTRIBUTES


def _allowed(module_name: str) -> bool:
    return module_name.split(".")[0] in ALLOWED_MODULES


def public_view(module, memo=None):
    """A stand-in module holding only the public names of `module`."""
    memo = {} if memo is None else memo
    if module.__name__ in memo:
        return memo[module.__name__]
    view = types.ModuleType(module.__name__, module.__doc__)
    memo[module.__name__] = view
    for name, value in list(vars(module).items()):
        if name.startswith("_"):
            continue
        if isinstance(value, types.ModuleType):
            if not _allowed(value.__name__):
                continue
            value = public_view(value, memo)
        setattr(view, name, value)
    return view


def _private_import(name: str, fromlist=()) -> bool:
    parts = name.split(".") + list(fromlist or ())
    return any(part.startswith("_") for part in parts)


def _guarded_import(name, globals=None, locals=None, fromlist=(), level=0):
    if level or not _allowed(name) or _private_import(name, fromlist):
        raise ImportError(f"import of {name!r} is not allowed in the sandbox")
    return public_view(_real_import(name, globals, locals, fromlist, level))


def _checked(name: str) -> str:
    if not isinstance(name, str) or is_private_attribute(name):
        raise AttributeError(f"attribute {name!r} is not accessible in the sandbox")
    return name


def _getattr(obj, name, *default):
    return getattr(obj, _checked(name), *default)


def _hasattr(obj, name):
    return hasattr(obj, _checked(name))


def _setattr(obj, name, value):
    setattr(obj, _checked(name), value)


def _delattr(obj, name):
    delattr(obj, _checked(name))


def _sandbox_builtins() -> dict:
    table = {
        name: value for name, value in vars(builtins).items()
        if not name.startswith("__") or name in KEPT_DUNDERS
    }
    for name in BLOCKED_BUILTINS:
        table[name] = None
    table.update(
        __import__=_guarded_import,
        getattr=_getattr,
        hasattr=_hasattr,
        setattr=_setattr,
        delattr=_delattr,
    )
    return table


class _AccessGuard(ast.NodeVisitor):
    """Rejects private attribute and dunder name access in user code."""

    def _reject(self, node, what):
        raise PermissionError(f"line {getattr(node, 'lineno', '?')}: {what} is not accessible in the sandbox")

    def visit_Attribute(self, node):
        own = (
            isinstance(node.value, ast.Name)
            and node.value.id in OWN_INSTANCE_NAMES
            and node.attr.startswith("_")
            and not node.attr.startswith("__")
        )
        if is_private_attribute(node.attr) and not own:
            self._reject(node, f"attribute {node.attr!r}")
        self.generic_visit(node)

    def visit_Import(self, node):
        for alias in node.names:
            if _private_import(alias.name):
                self._reject(node, f"module {alias.name!r}")

    def visit_ImportFrom(self, node):
        for alias in node.names:
            if _private_import(node.module or "", [alias.name]):
                self._reject(node, f"name {alias.name!r} from {node.module!r}")

    def visit_Name(self, node):
        if node.id.startswith("__") and node.id.endswith("__"):
            self._reject(node, f"name {node.id!r}")

    def visit_MatchClass(self, node):
        for attr in node.kwd_attrs:
            if is_private_attribute(attr):
                self._reject(node, f"attribute {attr!r}")
        self.generic_visit(node)


class Channel:
    """Writes protocol messages for one request id."""

    def __init__(self, request_id, stream):
        self.request_id = request_id
        self.stream = stream

    def reply(self, kind: str, **fields):
        out = {"id": self.request_id, "type": kind}
        for key, value in fields.items():
            out[key] = value if key == "level" else encode(value)
        try:
            self.stream.write(json.dumps(out) + "\n")
            self.stream.flush()
        except Exception as exc:
            try:
                self.stream.write(json.dumps({
                    "id": self.request_id,
                    "type": "error",
                    "error": encode(f"could not send reply: {exc}"),
                }) + "\n")
                self.stream.flush()
            except Exception:
                pass


class Console:
    """The `console` object user code sees."""

    def __init__(self, channel: Channel):
        self._channel = channel

    def _emit(self, level, args):
        self._channel.reply("log", level=level, args=list(args))

    def log(self, *args):
        self._emit("log", args)

    def info(self, *args):
        self._emit("info", args)

    def warn(self, *args):
        self._emit("warn", args)

    warning = warn

    def error(self, *args):
        self._emit("error", args)

    def debug(self, *args):
        self._emit("debug", args)


def build(code: str):
    """Compile user code into an async function returning its last expression."""
    # Module-level return and await parse fine; only compile() rejects them
    user = ast.parse(code, filename="<sandbox>")
    _AccessGuard().visit(user)
    body = user.body or [ast.Pass()]
    last = body[-1]
    if isinstance(last, ast.Expr):
        body[-1] = ast.copy_location(ast.Return(value=last.value), last)

    tree = ast.parse(f"async def {ENTRY}():\n    pass\n", filename="<sandbox>")
    tree.body[0].body = body
    ast.fix_missing_locations(tree)
    return compile(tree, "<sandbox>", "exec")


async def _invoke(fn):
    result = await fn()
    if inspect.isawaitable(result):
        result = await result
    return result


def run(request: dict, channel: Channel):
    console = Console(channel)

    def _print(*args, sep=" ", end="\n", **_):
        console.log(sep.join(str(a) for a in args))

    namespace = {
        "__builtins__": _sandbox_builtins(),
        "__name__": "__sandbox__",
        "console": console,
        "print": _print,
    }
    try:
        exec(build(str(request.get("code") or "")), namespace)
        result = asyncio.run(_invoke(namespace[ENTRY]))
    except BaseException as exc:  # user code may raise SystemExit and friends
        message = str(exc)
        channel.reply("error", error=f"{type(exc).__name__}: {message}" if message else type(exc).__name__)
        return
    channel.reply("result", result=result)


def main():
    request_line = sys.stdin.readline()
    try:
        request = json.loads(request_line)
    except json.JSONDecodeError:
        return 2

    # Keep a private handle on the protocol pipe and point fd 1 at /dev/null,
    # so stray writes from user code cannot interleave with replies.
    channel_stream = os.fdopen(os.dup(sys.stdout.fileno()), "w", buffering=1, encoding="utf-8")
    devnull = os.open(os.devnull, os.O_WRONLY)
    os.dup2(devnull, sys.stdout.fileno())
    os.close(devnull)

    run(request, Channel(request.get("id"), channel_stream))
    channel_stream.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
