"""
Cycle-safe JSON encoding for sandbox values.

Runs on both sides of the sandbox pipe: the worker encodes results and
console arguments, the host re-encodes the final payload and caps its size.
Anything JSON cannot carry is replaced rather than rejected:

    huge ints      -> "12345678901234567890n"
    callables      -> "[Function name]"
    other objects  -> str(obj)
    seen container -> "[Circular]"
"""

import json
import math

MAX_SAFE_INTEGER = 2**53 - 1
CIRCULAR = "[Circular]"
ELLIPSIS = "…"
UNSERIALIZABLE = json.dumps({"error": "Could not serialize value"})


def _walk(value, seen: set):
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        if abs(value) > MAX_SAFE_INTEGER:
            return f"{value}n"
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None

    if isinstance(value, (dict, list, set, frozenset, tuple)):
        # Empty tuples are interned singletons, not references worth tracking
        if not (isinstance(value, tuple) and not value):
            if id(value) in seen:
                return CIRCULAR
            seen.add(id(value))
        if isinstance(value, dict):
            return {str(k): _walk(v, seen) for k, v in value.items()}
        return [_walk(v, seen) for v in value]

    if callable(value):
        return f"[Function {getattr(value, '__name__', None) or 'anonymous'}]"
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def encode(value) -> str:
    """Encode `value` as JSON text. Never raises."""
    try:
        return json.dumps(_walk(value, set()), ensure_ascii=False)
    except Exception:  # includes a raising __str__ on user objects
        return UNSERIALIZABLE


def safe_json(value, limit: int = 4000) -> str:
    """encode(), then replace payloads longer than `limit` with a preview."""
    text = encode(value)
    if len(text) > limit:
        return json.dumps({
            "truncated": True,
            "length": len(text),
            "preview": text[:limit] + ELLIPSIS,
        }, ensure_ascii=False)
    return text
