"""Session controller: the only writer of the persisted session."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Mapping, Optional

from .auth import AuthFailure, AuthService, Directory, RegistrationFailure, RegistrationRequest
from .background import BackgroundTaskSet
from .catalog import Catalog, StaticCatalog
from .config import Settings, get_settings
from .models import User
from .notifier import RemoteSyncNotifier
from .progress_service import HttpProgressService, ProgressService
from .reconciliation import GainFunction, ReconciliationEngine, SyncResult
from .session_store import ChangeChannel, PersistedSession
from .telemetry import SESSION_CLEARED, SESSION_STARTED, XP_GAIN_APPLIED, emit_event
from .xp_ledger import InvalidGain, XpChange, apply_gain, describe_gain

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    ANONYMOUS = "anonymous"
    ACTIVE = "active"


class SessionController:
    """Drives session start, explicit XP gains, catch-up syncs and logout.

    Every read-modify-write of the cached user runs under one lock, so a
    reconciliation and an explicit gain never lose each other's update.
    Remote pushes and the post-login sync are detached background tasks; the
    post-login sync is tagged with the session generation it belongs to.
    """

    def __init__(
        self,
        session: PersistedSession,
        service: ProgressService,
        catalog: Catalog,
        *,
        auth: Optional[AuthService] = None,
        directory: Optional[Directory] = None,
        post_login_sync_delay: float = 1.0,
        max_background_tasks: int = 32,
    ) -> None:
        self._session = session
        self._service = service
        self._auth = auth
        self._directory = directory
        self._post_login_sync_delay = post_login_sync_delay
        self._lock = asyncio.Lock()
        self._tasks = BackgroundTaskSet(limit=max_background_tasks)
        self._notifier = RemoteSyncNotifier(service, self._tasks)
        self._engine = ReconciliationEngine(session, service, catalog, self._apply_gain)

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        *,
        service: Optional[ProgressService] = None,
        catalog: Optional[Catalog] = None,
        auth: Optional[AuthService] = None,
        directory: Optional[Directory] = None,
        channel: Optional[ChangeChannel] = None,
    ) -> "SessionController":
        settings = settings or get_settings()
        if catalog is None:
            catalog = StaticCatalog.from_file(settings.catalog_path) if settings.catalog_path else StaticCatalog()
        return cls(
            PersistedSession.create(settings, channel=channel),
            service or HttpProgressService.create(settings),
            catalog,
            auth=auth,
            directory=directory,
            post_login_sync_delay=settings.post_login_sync_delay,
            max_background_tasks=settings.max_background_tasks,
        )

    async def aclose(self) -> None:
        await self._tasks.drain()
        closer = getattr(self._service, "aclose", None)
        if closer is not None:
            await closer()
        self._session.dispose()

    @property
    def session(self) -> PersistedSession:
        return self._session

    @property
    def background(self) -> BackgroundTaskSet:
        return self._tasks

    @property
    def user(self) -> Optional[User]:
        return self._session.user

    @property
    def phase(self) -> SessionPhase:
        return SessionPhase.ACTIVE if self._session.user is not None else SessionPhase.ANONYMOUS

    async def start(self, user: User) -> User:
        async with self._lock:
            generation = self._session.begin()
            self._session.save(user, generation=generation)
        logger.info("Session started for user=%s (xp=%s, level=%s)", user.id, user.current_xp, user.level)
        emit_event(SESSION_STARTED, user_id=user.id, generation=generation)
        self._notifier.push_snapshot(user)
        self._tasks.spawn(self._post_login_sync(generation), name=f"post-login-sync-{user.id}")
        return user

    async def hydrate(self) -> Optional[User]:
        """Resume the session found in storage, if any."""
        user = self._session.load()
        if user is None:
            return None
        return await self.start(user)

    async def login(self, email: str, password: str) -> User:
        user: Optional[User] = None
        if self._auth is not None:
            try:
                user = await self._auth.login(email, password)
            except AuthFailure as exc:
                logger.info("Auth service rejected %s: %s", email, exc)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Auth service unavailable for %s: %s", email, exc)
        if user is None and self._directory is not None:
            user = self._directory.find(email)
            if user is not None:
                logger.info("Signed in %s from the local directory", email)
        if user is None:
            raise AuthFailure("Invalid credentials")
        return await self.start(user)

    async def register(self, request: RegistrationRequest) -> User:
        if self._auth is None:
            raise RegistrationFailure("Registration is not available")
        try:
            user = await self._auth.register(request)
        except RegistrationFailure as exc:
            logger.warning("Registration refused for %s: %s", request.email, exc.reason)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Registration failed for %s: %s", request.email, exc)
            raise RegistrationFailure() from exc
        return await self.start(user)

    async def logout(self) -> None:
        async with self._lock:
            user = self._session.user
            self._session.clear()
        if user is not None:
            logger.info("Session cleared for user=%s", user.id)
            emit_event(SESSION_CLEARED, user_id=user.id)

    async def gain(self, amount: int, source: str) -> Optional[XpChange]:
        """Apply an XP gain the caller has just earned.

        The amount is trusted as given; it is not checked against any feed.
        """
        if self._session.user is None:
            logger.info("No active session; ignoring +%s XP from %s", amount, source)
            return None
        if amount < 0:
            raise InvalidGain(f"XP gain must be non-negative, got {amount}.")
        return await self._apply_gain(
            lambda _cached: amount,
            source,
            self._session.generation,
            report_gain=True,
        )

    async def patch(self, updates: Mapping[str, Any]) -> Optional[User]:
        """Shallow-merge ``updates`` into the cached user.

        Bypasses the XP ledger: the level is not re-derived and a patched
        ``current_xp`` may go down.
        """
        async with self._lock:
            user = self._session.user
            if user is None:
                logger.info("No active session; ignoring user patch")
                return None
            updated = user.merged(updates)
            self._session.save(updated, generation=self._session.generation)
        return updated

    async def sync_completed_tasks(self) -> SyncResult:
        return await self._engine.sync_completed_tasks()

    async def sync_completed_modules(self) -> SyncResult:
        return await self._engine.sync_completed_modules()

    async def _post_login_sync(self, generation: int) -> None:
        # give the login upsert a head start
        await asyncio.sleep(self._post_login_sync_delay)
        if not self._session.is_current(generation):
            return
        await self._engine.sync_completed_tasks()

    async def _apply_gain(
        self,
        compute_gain: GainFunction,
        source: str,
        generation: int,
        *,
        report_gain: bool,
    ) -> Optional[XpChange]:
        async with self._lock:
            cached = self._session.user
            if cached is None or not self._session.is_current(generation):
                return None
            updated = apply_gain(cached, compute_gain(cached))
            change = describe_gain(cached, updated, source)
            if change.gain == 0:
                return change
            self._session.save(updated, generation=generation)

        logger.info(
            "Applied +%s XP from %s for user=%s: %s -> %s XP, level %s -> %s",
            change.gain,
            source,
            updated.id,
            change.previous_xp,
            change.new_xp,
            change.previous_level,
            change.new_level,
        )
        emit_event(
            XP_GAIN_APPLIED,
            user_id=updated.id,
            source=source,
            gain=change.gain,
            new_xp=change.new_xp,
            new_level=change.new_level,
        )
        if report_gain:
            self._notifier.push_gain(updated, change)
        else:
            self._notifier.push_snapshot(updated)
        return change


__all__ = ["SessionController", "SessionPhase"]
