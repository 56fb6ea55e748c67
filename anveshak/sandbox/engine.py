"""
Sandboxed code execution.

Each execute() call spawns a fresh worker interpreter in its own process
group, sends it one {id, code} request over stdin and collects its replies
from stdout until a terminal message, EOF, or the deadline. Whatever
happens, the worker is torn down exactly once and the caller gets JSON text:

    {"result": ..., "logs": [...]}
    {"error": "...", "logs": [...]}

Payloads longer than max_output_chars are replaced by a truncated preview.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import sys
import tempfile
import time
import uuid
from pathlib import Path

from anveshak.sandbox.serialize import safe_json

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "Execution timed out"

# Environment variables passed through to the worker; everything else is dropped
_ENV_PASSTHROUGH = ("PATH", "LANG", "LC_ALL", "SYSTEMROOT", "TZ")

_PACKAGE_PARENT = str(Path(__file__).resolve().parent.parent.parent)


def _clean_env() -> dict:
    env = {k: os.environ[k] for k in _ENV_PASSTHROUGH if k in os.environ}
    env["PYTHONPATH"] = _PACKAGE_PARENT
    env["PYTHONDONTWRITEBYTECODE"] = "1"
    env["PYTHONIOENCODING"] = "utf-8"
    return env


def _decode(text):
    """Worker fields arrive as JSON text; fall back to the raw value."""
    if not isinstance(text, str):
        return text
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


class _Teardown:
    """Kills a worker at most once, however many paths reach it."""

    def __init__(self, proc: asyncio.subprocess.Process):
        self.proc = proc
        self.done = False

    async def __call__(self, reason: str):
        if self.done:
            return
        self.done = True
        if self.proc.returncode is None:
            _kill(self.proc)
            try:
                await self.proc.wait()
            except ProcessLookupError:
                pass
        logger.debug("Sandbox worker %s torn down (%s)", self.proc.pid, reason)


def _kill(proc: asyncio.subprocess.Process):
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError, AttributeError):
        try:
            proc.kill()
        except ProcessLookupError:
            pass


class Sandbox:
    """Runs untrusted Python snippets in throwaway worker processes."""

    def __init__(
        self,
        timeout_ms: int = 2000,
        max_output_chars: int = 4000,
        python: str | None = None,
    ):
        self.timeout_ms = timeout_ms
        self.max_output_chars = max_output_chars
        self.python = python or sys.executable

    async def execute(self, code: str) -> str:
        request_id = uuid.uuid4().hex
        logs: list[dict] = []
        t0 = time.monotonic()

        with tempfile.TemporaryDirectory(prefix="anveshak-sandbox-") as workdir:
            proc = await asyncio.create_subprocess_exec(
                self.python, "-B", "-m", "anveshak.sandbox.worker",
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
                cwd=workdir,
                env=_clean_env(),
                start_new_session=True,
                limit=2**24,
            )
            teardown = _Teardown(proc)
            try:
                outcome = await asyncio.wait_for(
                    self._collect(proc, request_id, code, logs),
                    timeout=self.timeout_ms / 1000,
                )
            except asyncio.TimeoutError:
                logger.warning("Sandbox execution timed out after %dms", self.timeout_ms)
                outcome = {"error": TIMEOUT_ERROR}
                await teardown("timeout")
            finally:
                await teardown("finished")

        outcome["logs"] = logs
        logger.debug("Sandbox execution took %.0fms", (time.monotonic() - t0) * 1000)
        return safe_json(outcome, self.max_output_chars)

    async def _collect(self, proc, request_id: str, code: str, logs: list[dict]) -> dict:
        """Send the request and read replies until a terminal message or EOF."""
        try:
            proc.stdin.write((json.dumps({"id": request_id, "code": code}) + "\n").encode("utf-8"))
            await proc.stdin.drain()
            proc.stdin.close()
        except (BrokenPipeError, ConnectionResetError):
            pass

        while True:
            line = await proc.stdout.readline()
            if not line:
                break
            try:
                msg = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(msg, dict) or msg.get("id") != request_id:
                continue

            kind = msg.get("type")
            if kind == "log":
                logs.append({"level": msg.get("level", "log"), "args": _decode(msg.get("args", "[]"))})
            elif kind == "result":
                return {"result": _decode(msg.get("result"))}
            elif kind == "error":
                return {"error": _decode(msg.get("error"))}

        returncode = await proc.wait()
        return {"error": f"Worker exited unexpectedly (code {returncode}) without a result"}
