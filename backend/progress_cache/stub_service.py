"""In-memory stand-in for the progress service, for local development.

Run with ``uvicorn progress_cache.stub_service:app --port 3001``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from fastapi import FastAPI
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class _UpsertRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = Field(..., min_length=1)
    current_xp: int = Field(default=0, ge=0)
    level: int = Field(default=1, ge=1)


class _XpGainRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str = Field(..., min_length=1)
    xp_gain: int = Field(ge=0)
    new_xp: int
    new_level: int
    source: str


@dataclass
class StubState:
    users: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    xp_events: List[Dict[str, Any]] = field(default_factory=list)
    task_points: Dict[str, List[int]] = field(default_factory=dict)
    module_progress: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)


def create_stub_app(state: StubState | None = None) -> FastAPI:
    state = state or StubState()
    stub = FastAPI(title="Progress Service Stub", version="0.1.0")
    stub.state.progress = state

    @stub.post("/api/users/upsert")
    def upsert_user(payload: _UpsertRequest) -> Dict[str, Any]:
        record = payload.model_dump(by_alias=True)
        state.users[payload.id] = {**state.users.get(payload.id, {}), **record}
        return {"success": True}

    @stub.post("/api/users/update-xp")
    def update_xp(payload: _XpGainRequest) -> Dict[str, Any]:
        state.xp_events.append(payload.model_dump(by_alias=True))
        user = state.users.setdefault(payload.user_id, {"id": payload.user_id})
        user["currentXp"] = payload.new_xp
        user["level"] = payload.new_level
        logger.info("Recorded +%s XP from %s for %s", payload.xp_gain, payload.source, payload.user_id)
        return {"success": True}

    @stub.get("/api/tasks/{user_id}")
    def completed_tasks(user_id: str) -> Dict[str, Any]:
        points = state.task_points.get(user_id, [])
        return {"data": {"completed_tasks": [{"points": value} for value in points]}}

    @stub.get("/api/user-modules/{user_id}")
    def module_progress(user_id: str) -> Dict[str, Any]:
        return {"progress": list(state.module_progress.get(user_id, []))}

    return stub


app = create_stub_app()

__all__ = ["StubState", "app", "create_stub_app"]
