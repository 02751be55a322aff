"""Best-effort pushes of the cached user to the progress service."""

from __future__ import annotations

import logging

from .background import BackgroundTaskSet
from .models import User
from .progress_service import ProgressService, RemoteNotifyError
from .telemetry import REMOTE_NOTIFY_FAILED, emit_event
from .xp_ledger import XpChange

logger = logging.getLogger(__name__)


class RemoteSyncNotifier:
    """Detached pushes of already-committed user snapshots.

    The snapshot is captured when the push is scheduled, so a push still goes
    out if the session is cleared before it runs.
    """

    def __init__(self, service: ProgressService, tasks: BackgroundTaskSet) -> None:
        self._service = service
        self._tasks = tasks

    def push_snapshot(self, user: User) -> None:
        self._tasks.spawn(self._send_snapshot(user), name=f"upsert-user-{user.id}")

    def push_gain(self, user: User, change: XpChange) -> None:
        self._tasks.spawn(self._send_gain(user, change), name=f"report-xp-{user.id}")

    async def _send_snapshot(self, user: User) -> None:
        try:
            await self._service.upsert_user(user)
        except RemoteNotifyError as exc:
            self._report_failure("upsert_user", user, exc)

    async def _send_gain(self, user: User, change: XpChange) -> None:
        await self._send_snapshot(user)
        try:
            await self._service.report_xp_gain(
                user.id,
                change.gain,
                change.new_xp,
                change.new_level,
                change.source,
            )
        except RemoteNotifyError as exc:
            self._report_failure("report_xp_gain", user, exc)
            return
        logger.info("XP synced to progress service: +%s XP from %s", change.gain, change.source)

    @staticmethod
    def _report_failure(operation: str, user: User, exc: Exception) -> None:
        logger.warning("Progress service %s failed for user=%s; local state kept: %s", operation, user.id, exc)
        emit_event(REMOTE_NOTIFY_FAILED, operation=operation, user_id=user.id, error=exc)


__all__ = ["RemoteSyncNotifier"]
