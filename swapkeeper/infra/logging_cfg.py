"""
Structured logging setup for the swap coordinator.

Console output goes through rich. The optional log file gets one JSON
object per line and is written from a QueueListener thread, so the event
loop never waits on disk. Events that repeat every cycle while a
dependency is down are throttled on the console.

Secret preimages are never passed to the logger.
"""

from __future__ import annotations

import atexit
import logging
import logging.handlers
import queue
import time
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from rich.logging import RichHandler

from swapkeeper.core import json_utils

THROTTLED_EVENTS: FrozenSet[str] = frozenset({
    "gateway_unavailable",
    "reconcile_cycle_skipped",
    "vault_list_error",
    "order_status_unknown",
})

# (logger name, path) pairs that already have a file handler
_attached_files: set = set()


class JsonFormatter(logging.Formatter):
    """One JSON object per record: ts, ts_iso, level, name, msg."""

    def format(self, record: logging.LogRecord) -> str:
        out = {
            "ts": record.created,
            "ts_iso": datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            out["exc_info"] = self.formatException(record.exc_info)
        return json_utils.dumps(out)


class ThrottledFilter(logging.Filter):
    """
    Suppress repeats of a noisy event for the same order.

    Only messages that decode to a JSON object whose "event" is in
    throttled_events are considered; everything else passes.
    """

    def __init__(self, cooldown_sec: float = 30.0, throttled_events: Optional[FrozenSet[str]] = None):
        super().__init__()
        self.cooldown_sec = cooldown_sec
        self.throttled_events = throttled_events if throttled_events is not None else THROTTLED_EVENTS
        self._next_allowed: Dict[str, float] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        if not msg.startswith("{"):
            return True
        try:
            data = json_utils.loads(msg)
        except json_utils.JSONDecodeError:
            return True
        event = data.get("event") if isinstance(data, dict) else None
        if event not in self.throttled_events:
            return True

        key = f"{event}:{data.get('order_hash', '')}"
        now = time.monotonic()
        if now < self._next_allowed.get(key, 0.0):
            return False
        self._next_allowed[key] = now + self.cooldown_sec
        return True


def _file_handler(path: str, level: int, async_file: bool) -> logging.Handler:
    target = logging.FileHandler(path)
    target.setFormatter(JsonFormatter())
    target.setLevel(level)
    if not async_file:
        return target

    records: queue.Queue = queue.Queue(maxsize=10000)
    listener = logging.handlers.QueueListener(records, target, respect_handler_level=True)
    listener.start()
    atexit.register(listener.stop)
    handler = logging.handlers.QueueHandler(records)
    handler.setLevel(level)
    return handler


def build_logger(
    name: str = "swapkeeper",
    level: int = logging.INFO,
    file_path: Optional[str] = None,
    async_file: bool = True,
    throttle_warnings: bool = True,
) -> logging.Logger:
    """
    Build (or reconfigure) the process logger.

    Safe to call more than once: the module-level call sets up the console,
    and main() calls again once settings are loaded to apply the configured
    level and attach the file.

    Args:
        name: Logger name
        level: Minimum log level
        file_path: JSON-lines log file (None disables file logging)
        async_file: Write the file from a QueueListener thread
        throttle_warnings: Throttle repetitive per-cycle events on the console
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        console = RichHandler(show_path=False, markup=False, rich_tracebacks=False)
        console.setFormatter(logging.Formatter("%(message)s"))
        if throttle_warnings:
            console.addFilter(ThrottledFilter())
        logger.addHandler(console)

    if file_path and (name, file_path) not in _attached_files:
        logger.addHandler(_file_handler(file_path, level, async_file))
        _attached_files.add((name, file_path))

    for h in logger.handlers:
        h.setLevel(level)
    return logger


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **data) -> None:
    """
    Log a structured event.

    Usage:
        log_event(log, "secret_revealed", order_hash="0xabc", fill_index=0)
    """
    logger.log(level, json_utils.dumps({"event": event, **data}))
