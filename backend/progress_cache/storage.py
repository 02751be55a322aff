"""Durable backends for the named session storage slot."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .db import Base, StorageSlotModel, build_engine, create_session_factory, session_scope

logger = logging.getLogger(__name__)


class StorageWriteError(RuntimeError):
    """The storage slot could not be written or removed."""


class StorageReadError(RuntimeError):
    """The storage slot could not be read."""


class StorageSlot(Protocol):
    def read(self, name: str) -> Optional[str]:  # pragma: no cover - protocol definition
        ...

    def write(self, name: str, raw: str) -> None:  # pragma: no cover - protocol definition
        ...

    def remove(self, name: str) -> None:  # pragma: no cover - protocol definition
        ...

    def close(self) -> None:  # pragma: no cover - protocol definition
        ...


class MemoryStorageSlot:
    """Process-local slots, used by tests and throwaway runs."""

    def __init__(self) -> None:
        self._slots: Dict[str, str] = {}

    def read(self, name: str) -> Optional[str]:
        return self._slots.get(name)

    def write(self, name: str, raw: str) -> None:
        self._slots[name] = raw

    def remove(self, name: str) -> None:
        self._slots.pop(name, None)

    def close(self) -> None:
        return None


class JsonFileStorageSlot:
    """Named slots kept together in a single JSON document on disk."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.RLock()

    def _load_unlocked(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        with self._path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
        if not isinstance(raw, dict):
            logger.warning("Ignoring malformed storage file %s", self._path)
            return {}
        return {str(key): value for key, value in raw.items() if isinstance(value, str)}

    def _load_for_update(self) -> Dict[str, str]:
        try:
            return self._load_unlocked()
        except ValueError as exc:
            logger.warning("Overwriting undecodable storage file %s: %s", self._path, exc)
            return {}

    def _write_unlocked(self, slots: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(slots, handle, indent=2)
        tmp_path.replace(self._path)

    def read(self, name: str) -> Optional[str]:
        with self._lock:
            try:
                return self._load_unlocked().get(name)
            except (OSError, ValueError) as exc:
                raise StorageReadError(f"Failed to read storage file {self._path}: {exc}") from exc

    def write(self, name: str, raw: str) -> None:
        with self._lock:
            try:
                slots = self._load_for_update()
                slots[name] = raw
                self._write_unlocked(slots)
            except (OSError, ValueError) as exc:
                raise StorageWriteError(f"Failed to write storage file {self._path}: {exc}") from exc

    def remove(self, name: str) -> None:
        with self._lock:
            try:
                slots = self._load_for_update()
                if slots.pop(name, None) is not None:
                    self._write_unlocked(slots)
            except (OSError, ValueError) as exc:
                raise StorageWriteError(f"Failed to update storage file {self._path}: {exc}") from exc

    def close(self) -> None:
        return None


class DatabaseStorageSlot:
    """Slots stored as rows of the ``storage_slots`` table."""

    def __init__(self, database_url: str | None, *, echo: bool = False) -> None:
        self._engine = build_engine(database_url, echo=echo)
        Base.metadata.create_all(self._engine)
        self._factory = create_session_factory(self._engine)

    def read(self, name: str) -> Optional[str]:
        try:
            with session_scope(self._factory, commit=False) as session:
                stmt = select(StorageSlotModel.payload).where(StorageSlotModel.name == name)
                return session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageReadError(f"Failed to read storage slot '{name}': {exc}") from exc

    def write(self, name: str, raw: str) -> None:
        try:
            with session_scope(self._factory) as session:
                model = session.get(StorageSlotModel, name)
                if model is None:
                    session.add(StorageSlotModel(name=name, payload=raw))
                else:
                    model.payload = raw
        except SQLAlchemyError as exc:
            raise StorageWriteError(f"Failed to write storage slot '{name}': {exc}") from exc

    def remove(self, name: str) -> None:
        try:
            with session_scope(self._factory) as session:
                session.execute(delete(StorageSlotModel).where(StorageSlotModel.name == name))
        except SQLAlchemyError as exc:
            raise StorageWriteError(f"Failed to remove storage slot '{name}': {exc}") from exc

    def close(self) -> None:
        self._engine.dispose()


def build_storage(settings: Settings) -> StorageSlot:
    mode = settings.persistence_mode
    if mode == "memory":
        return MemoryStorageSlot()
    if mode == "database":
        return DatabaseStorageSlot(settings.database_url, echo=settings.database_echo)
    return JsonFileStorageSlot(settings.storage_path)


__all__ = [
    "DatabaseStorageSlot",
    "JsonFileStorageSlot",
    "MemoryStorageSlot",
    "StorageReadError",
    "StorageSlot",
    "StorageWriteError",
    "build_storage",
]
