"""Module catalog lookups used to price completed modules."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, Optional, Protocol

from pydantic import ValidationError

from .models import CatalogEntry

logger = logging.getLogger(__name__)


class Catalog(Protocol):
    def lookup(self, module_id: str) -> Optional[CatalogEntry]:  # pragma: no cover - protocol definition
        ...


class StaticCatalog:
    """Catalog held in memory, keyed by module id."""

    def __init__(self, entries: Iterable[CatalogEntry] = ()) -> None:
        self._entries: Dict[str, CatalogEntry] = {entry.module_id: entry for entry in entries}

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, module_id: str) -> Optional[CatalogEntry]:
        return self._entries.get(module_id)

    @classmethod
    def from_file(cls, path: Path) -> "StaticCatalog":
        """Load a JSON list of ``{"module_id", "xp_reward", "title"}`` objects.

        Entries that fail validation are logged and skipped.
        """
        with path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
        if isinstance(raw, dict):
            raw = raw.get("modules", [])
        entries = []
        for payload in raw:
            try:
                entries.append(CatalogEntry.model_validate(payload))
            except ValidationError:
                logger.exception("Skipping invalid catalog entry %r", payload)
        return cls(entries)


__all__ = ["Catalog", "StaticCatalog"]
