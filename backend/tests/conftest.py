from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

import pytest

from progress_cache.catalog import StaticCatalog
from progress_cache.controller import SessionController
from progress_cache.models import CatalogEntry, ModuleProgress, TaskCompletion, User
from progress_cache.progress_service import FeedFetchError, RemoteNotifyError
from progress_cache.session_store import PersistedSession
from progress_cache.storage import MemoryStorageSlot
from progress_cache.telemetry import clear_listeners


class FakeProgressService:
    def __init__(self) -> None:
        self.task_points: List[int] = []
        self.modules: List[ModuleProgress] = []
        self.fail_feeds = False
        self.fail_pushes = False
        self.fetch_gate: Optional[asyncio.Event] = None
        self.task_fetches = 0
        self.module_fetches = 0
        self.upserts: List[User] = []
        self.reports: List[Dict[str, object]] = []

    async def _wait_for_gate(self) -> None:
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fail_feeds:
            raise FeedFetchError("feed offline")

    async def get_completed_tasks(self, user_id: str) -> List[TaskCompletion]:
        self.task_fetches += 1
        await self._wait_for_gate()
        return [TaskCompletion(points=value) for value in self.task_points]

    async def get_module_progress(self, user_id: str) -> List[ModuleProgress]:
        self.module_fetches += 1
        await self._wait_for_gate()
        return list(self.modules)

    async def upsert_user(self, user: User) -> None:
        if self.fail_pushes:
            raise RemoteNotifyError("service unavailable")
        self.upserts.append(user)

    async def report_xp_gain(self, user_id: str, gain: int, new_xp: int, new_level: int, source: str) -> None:
        if self.fail_pushes:
            raise RemoteNotifyError("service unavailable")
        self.reports.append(
            {"user_id": user_id, "gain": gain, "new_xp": new_xp, "new_level": new_level, "source": source}
        )


def _build_user(**overrides: object) -> User:
    payload: Dict[str, object] = {
        "id": "00000000-0000-0000-0000-000000000002",
        "email": "jane@acme.com",
        "first_name": "Jane",
        "last_name": "Patel",
        "employee_id": "E0057",
        "department": "Engineering",
        "role": "Software Engineer I",
        "manager_name": "A. Chen",
        "start_date": "2024-11-01",
        "level": 3,
        "current_xp": 485,
        "streak_days": 7,
        "intro_completed": True,
    }
    payload.update(overrides)
    return User.model_validate(payload)


@pytest.fixture(autouse=True)
def _reset_telemetry():
    clear_listeners()
    yield
    clear_listeners()


@pytest.fixture()
def make_user():
    return _build_user


@pytest.fixture()
def service() -> FakeProgressService:
    return FakeProgressService()


@pytest.fixture()
def catalog() -> StaticCatalog:
    return StaticCatalog(
        [
            CatalogEntry(module_id="python-basics", xp_reward=120, title="Python Basics"),
            CatalogEntry(module_id="sql-101", xp_reward=80, title="SQL 101"),
            CatalogEntry(module_id="dashboards", xp_reward=200, title="Dashboards"),
        ]
    )


@pytest.fixture()
def storage() -> MemoryStorageSlot:
    return MemoryStorageSlot()


@pytest.fixture()
def controller(storage: MemoryStorageSlot, service: FakeProgressService, catalog: StaticCatalog) -> SessionController:
    return SessionController(
        PersistedSession(storage),
        service,
        catalog,
        post_login_sync_delay=0,
    )
