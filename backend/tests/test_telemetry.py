from __future__ import annotations

from datetime import datetime, timezone

from progress_cache.telemetry import TelemetryEvent, capture_events, emit_event, register_listener


def test_capture_events_collects_sanitized_payloads() -> None:
    stamp = datetime(2025, 3, 1, tzinfo=timezone.utc)

    with capture_events() as events:
        emit_event("xp_sync_failed", feed="tasks", at=stamp, error=ValueError("bad payload"))
    emit_event("xp_sync_failed", feed="modules")

    assert len(events) == 1
    assert events[0].payload == {
        "feed": "tasks",
        "at": "2025-03-01T00:00:00+00:00",
        "error": "ValueError: bad payload",
    }


def test_failing_listener_does_not_block_others() -> None:
    received: list[TelemetryEvent] = []

    def broken(event: TelemetryEvent) -> None:
        raise RuntimeError("listener bug")

    register_listener(broken)
    register_listener(received.append)

    emit_event("session_started", user_id="u-1")

    assert [event.name for event in received] == ["session_started"]
