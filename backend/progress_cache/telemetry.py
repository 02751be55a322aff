"""Structured progress events fanned out to in-process listeners and the log."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, Iterator, List

logger = logging.getLogger("progress_cache.telemetry")

XP_GAIN_APPLIED = "xp_gain_applied"
XP_SYNC_APPLIED = "xp_sync_applied"
XP_SYNC_FAILED = "xp_sync_failed"
REMOTE_NOTIFY_FAILED = "remote_notify_failed"
SESSION_STARTED = "session_started"
SESSION_CLEARED = "session_cleared"
STALE_WRITE_DISCARDED = "stale_write_discarded"


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Listener = Callable[[TelemetryEvent], None]

_listeners: List[Listener] = []
_lock = RLock()


def register_listener(listener: Listener) -> None:
    with _lock:
        _listeners.append(listener)


def unregister_listener(listener: Listener) -> None:
    with _lock:
        if listener in _listeners:
            _listeners.remove(listener)


def clear_listeners() -> None:
    """Drop every listener. Tests call this to reset shared state."""
    with _lock:
        _listeners.clear()


@contextmanager
def capture_events() -> Iterator[List[TelemetryEvent]]:
    """Collect events emitted inside the block."""
    captured: List[TelemetryEvent] = []
    register_listener(captured.append)
    try:
        yield captured
    finally:
        unregister_listener(captured.append)


def emit_event(name: str, **fields: Any) -> None:
    event = TelemetryEvent(name=name, payload=_sanitize(fields))

    with _lock:
        listeners = list(_listeners)

    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    structured = {"event": name, **event.payload}
    logger.info("TELEMETRY %s", json.dumps(structured, default=str))


def _sanitize(fields: Dict[str, Any]) -> Dict[str, Any]:
    sanitized: Dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, datetime):
            sanitized[key] = value.isoformat()
        elif isinstance(value, BaseException):
            sanitized[key] = f"{type(value).__name__}: {value}"
        else:
            sanitized[key] = value
    return sanitized


__all__ = [
    "REMOTE_NOTIFY_FAILED",
    "SESSION_CLEARED",
    "SESSION_STARTED",
    "STALE_WRITE_DISCARDED",
    "TelemetryEvent",
    "XP_GAIN_APPLIED",
    "XP_SYNC_APPLIED",
    "XP_SYNC_FAILED",
    "capture_events",
    "clear_listeners",
    "emit_event",
    "register_listener",
    "unregister_listener",
]
