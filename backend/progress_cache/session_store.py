"""Persisted session slot: in-memory user, durable envelope, change broadcast."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from pydantic import ValidationError

from .config import Settings
from .models import SessionEnvelope, SessionState, User
from .storage import StorageReadError, StorageSlot, build_storage
from .telemetry import STALE_WRITE_DISCARDED, emit_event

logger = logging.getLogger(__name__)

ChangeListener = Callable[[], None]


class ChangeChannel:
    """"Storage changed" signal shared by every context using the same slot."""

    def __init__(self) -> None:
        self._listeners: List[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:  # noqa: BLE001
                logger.exception("Session change listener failed")

    def close(self) -> None:
        self._listeners.clear()


class PersistedSession:
    """Owns the cached user and the storage slot it is mirrored to.

    Every ``begin`` and ``clear`` starts a new generation. Writes tagged with
    an older generation are discarded, which keeps work that was in flight
    across a logout from resurrecting the cleared session.

    Change listeners receive no payload; they re-read ``snapshot()`` or
    ``load()``. Contexts that share a storage backend should share a
    ``ChangeChannel`` as well.
    """

    def __init__(
        self,
        storage: StorageSlot,
        *,
        slot: str = "auth-storage",
        channel: Optional[ChangeChannel] = None,
    ) -> None:
        self._storage = storage
        self._slot = slot
        self._owns_channel = channel is None
        self._channel = channel or ChangeChannel()
        self._user: Optional[User] = None
        self._authenticated = False
        self._generation = 0

    @classmethod
    def create(cls, settings: Settings, *, channel: Optional[ChangeChannel] = None) -> "PersistedSession":
        return cls(build_storage(settings), slot=settings.storage_slot, channel=channel)

    @property
    def user(self) -> Optional[User]:
        return self._user

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def snapshot(self) -> SessionState:
        return SessionState(user=self._user, authenticated=self._authenticated)

    def load(self) -> Optional[User]:
        try:
            raw = self._storage.read(self._slot)
        except StorageReadError as exc:
            logger.warning("Unable to read session slot %s: %s", self._slot, exc)
            self._user = None
            self._authenticated = False
            return None
        envelope = SessionEnvelope()
        if raw is not None:
            try:
                envelope = SessionEnvelope.model_validate_json(raw)
            except ValidationError:
                logger.exception("Discarding malformed session slot %s", self._slot)
        state = envelope.state
        self._user = state.user if state.authenticated else None
        self._authenticated = self._user is not None
        return self._user

    def begin(self) -> int:
        self._generation += 1
        return self._generation

    def save(self, user: User, *, generation: Optional[int] = None) -> bool:
        """Persist ``user`` and broadcast the change.

        Returns False when ``generation`` is stale and the write was dropped.
        Raises ``StorageWriteError`` if the slot cannot be written; the
        in-memory user is kept and no broadcast is sent in that case.
        """
        if generation is not None and generation != self._generation:
            logger.info(
                "Dropping stale session write for user=%s (generation %s, active %s)",
                user.id,
                generation,
                self._generation,
            )
            emit_event(
                STALE_WRITE_DISCARDED,
                user_id=user.id,
                generation=generation,
                active_generation=self._generation,
            )
            return False

        self._user = user
        self._authenticated = True
        envelope = SessionEnvelope(state=SessionState(user=user, authenticated=True))
        self._storage.write(self._slot, envelope.to_storage())
        self._channel.notify()
        return True

    def clear(self) -> None:
        self._generation += 1
        self._user = None
        self._authenticated = False
        self._storage.remove(self._slot)
        self._channel.notify()

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        return self._channel.subscribe(listener)

    def dispose(self) -> None:
        if self._owns_channel:
            self._channel.close()
        self._storage.close()


__all__ = ["ChangeChannel", "ChangeListener", "PersistedSession"]
