"""Catch-up reconciliation of cached XP against the completion feeds.

Each feed reports a cumulative total, never a delta. A sync therefore diffs
the feed total against the cached XP and only ever raises it:

* ``cached >= total`` leaves the cache untouched, so re-running a sync after
  it caught up adds nothing and a feed that shrank (for instance after a task
  was deleted server-side) never lowers XP;
* otherwise the missing ``total - cached`` is applied through the XP ledger.

The cached value is read inside the controller's serialized gain section,
after the feed fetch has completed, so an explicit gain that lands while a
fetch is in flight is not overwritten.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Literal, Optional, Protocol

from .catalog import Catalog
from .models import User
from .progress_service import FeedFetchError, ProgressService
from .session_store import PersistedSession
from .storage import StorageWriteError
from .telemetry import XP_SYNC_APPLIED, XP_SYNC_FAILED, emit_event
from .xp_ledger import XpChange

logger = logging.getLogger(__name__)

TASK_FEED = "tasks"
MODULE_FEED = "modules"

SyncStatus = Literal["applied", "up_to_date", "skipped", "failed", "stale"]
GainFunction = Callable[[User], int]


class GainGate(Protocol):
    def __call__(
        self,
        compute_gain: GainFunction,
        source: str,
        generation: int,
        *,
        report_gain: bool,
    ) -> Awaitable[Optional[XpChange]]:  # pragma: no cover - protocol definition
        ...


@dataclass(frozen=True)
class SyncResult:
    feed: str
    status: SyncStatus
    feed_total: Optional[int] = None
    change: Optional[XpChange] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ModuleContribution:
    module_id: str
    title: str
    xp: int


class ReconciliationEngine:
    def __init__(
        self,
        session: PersistedSession,
        service: ProgressService,
        catalog: Catalog,
        gate: GainGate,
    ) -> None:
        self._session = session
        self._service = service
        self._catalog = catalog
        self._gate = gate

    async def sync_completed_tasks(self) -> SyncResult:
        return await self._catch_up(TASK_FEED, self._task_feed_total)

    async def sync_completed_modules(self) -> SyncResult:
        return await self._catch_up(MODULE_FEED, self._module_feed_total)

    async def _task_feed_total(self, user_id: str) -> int:
        completions = await self._service.get_completed_tasks(user_id)
        return sum(completion.points for completion in completions)

    async def _module_feed_total(self, user_id: str) -> int:
        progress = await self._service.get_module_progress(user_id)
        contributions: List[ModuleContribution] = []
        for module in progress:
            if not module.completed:
                continue
            entry = self._catalog.lookup(module.module_id)
            if entry is None:
                logger.warning("Completed module %s is missing from the catalog", module.module_id)
            contributions.append(
                ModuleContribution(
                    module_id=module.module_id,
                    title=entry.title if entry else "Unknown Module",
                    xp=entry.xp_reward if entry else 0,
                )
            )
        total = sum(item.xp for item in contributions)
        logger.debug("Module XP details for user=%s: %s (total %s)", user_id, contributions, total)
        return total

    async def _catch_up(self, feed: str, fetch_total: Callable[[str], Awaitable[int]]) -> SyncResult:
        user = self._session.user
        if user is None:
            return SyncResult(feed=feed, status="skipped")
        generation = self._session.generation

        try:
            total = await fetch_total(user.id)
        except FeedFetchError as exc:
            logger.warning("Skipping %s XP sync for user=%s: %s", feed, user.id, exc)
            emit_event(XP_SYNC_FAILED, feed=feed, user_id=user.id, error=exc)
            return SyncResult(feed=feed, status="failed", error=str(exc))

        def missing_xp(cached: User) -> int:
            if cached.current_xp >= total:
                return 0
            return total - cached.current_xp

        try:
            change = await self._gate(missing_xp, f"{feed}_sync", generation, report_gain=False)
        except StorageWriteError as exc:
            logger.error("Synced %s XP for user=%s but could not persist it: %s", feed, user.id, exc)
            emit_event(XP_SYNC_FAILED, feed=feed, user_id=user.id, error=exc)
            return SyncResult(feed=feed, status="failed", feed_total=total, error=str(exc))

        if change is None:
            logger.info("Discarding %s XP sync for user=%s; session changed during fetch", feed, user.id)
            return SyncResult(feed=feed, status="stale", feed_total=total)
        if change.gain == 0:
            logger.debug("No %s XP sync needed for user=%s (cached %s, feed %s)", feed, user.id, change.new_xp, total)
            return SyncResult(feed=feed, status="up_to_date", feed_total=total, change=change)

        logger.info(
            "Synced %s XP from completed %s for user=%s. New total: %s XP, level %s",
            change.gain,
            feed,
            user.id,
            change.new_xp,
            change.new_level,
        )
        emit_event(
            XP_SYNC_APPLIED,
            feed=feed,
            user_id=user.id,
            gain=change.gain,
            new_xp=change.new_xp,
            new_level=change.new_level,
        )
        return SyncResult(feed=feed, status="applied", feed_total=total, change=change)


__all__ = [
    "GainFunction",
    "GainGate",
    "MODULE_FEED",
    "ModuleContribution",
    "ReconciliationEngine",
    "SyncResult",
    "TASK_FEED",
]
