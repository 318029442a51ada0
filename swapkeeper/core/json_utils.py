"""
JSON helpers backed by orjson.

Usage:
    from swapkeeper.core.json_utils import dumps, loads

    log.info(dumps({"event": "order_placed", "order_hash": "0xabc"}))
"""

from __future__ import annotations

from typing import Any

import orjson


def dumps(obj: Any) -> str:
    """Encode to str."""
    return orjson.dumps(obj).decode("utf-8")


def dumps_bytes(obj: Any) -> bytes:
    """Encode to bytes (skips the utf-8 decode)."""
    return orjson.dumps(obj)


def dumps_pretty(obj: Any) -> bytes:
    return orjson.dumps(obj, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS)


def loads(s: str | bytes) -> Any:
    return orjson.loads(s)


JSONDecodeError = orjson.JSONDecodeError
