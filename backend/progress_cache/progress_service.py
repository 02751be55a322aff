"""Client for the remote user-progress service."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .config import Settings
from .models import ModuleProgress, TaskCompletion, User

logger = logging.getLogger(__name__)


class FeedFetchError(RuntimeError):
    """A completion feed could not be fetched or parsed."""


class RemoteNotifyError(RuntimeError):
    """A push to the progress service failed."""


class ProgressService(Protocol):
    async def upsert_user(self, user: User) -> None:  # pragma: no cover - protocol definition
        ...

    async def report_xp_gain(
        self,
        user_id: str,
        gain: int,
        new_xp: int,
        new_level: int,
        source: str,
    ) -> None:  # pragma: no cover - protocol definition
        ...

    async def get_completed_tasks(self, user_id: str) -> List[TaskCompletion]:  # pragma: no cover
        ...

    async def get_module_progress(self, user_id: str) -> List[ModuleProgress]:  # pragma: no cover
        ...


class _CamelPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserSnapshotPayload(_CamelPayload):
    id: str
    email: str
    first_name: str
    last_name: str
    role: Optional[str] = None
    current_xp: int
    level: int
    streak_days: int

    @classmethod
    def from_user(cls, user: User) -> "UserSnapshotPayload":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            current_xp=user.current_xp,
            level=user.level,
            streak_days=user.streak_days,
        )


class XpGainReportPayload(_CamelPayload):
    user_id: str
    xp_gain: int = Field(ge=0)
    new_xp: int
    new_level: int
    source: str


class _CompletedTasksData(BaseModel):
    completed_tasks: List[TaskCompletion] = Field(default_factory=list)

    @field_validator("completed_tasks", mode="before")
    @classmethod
    def _null_means_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class CompletedTasksResponse(BaseModel):
    data: _CompletedTasksData = Field(default_factory=_CompletedTasksData)


class ModuleProgressResponse(BaseModel):
    progress: List[ModuleProgress] = Field(default_factory=list)


class HttpProgressService:
    """``ProgressService`` backed by the service's JSON HTTP API."""

    def __init__(self, client: httpx.AsyncClient, *, owns_client: bool = False) -> None:
        self._client = client
        self._owns_client = owns_client

    @classmethod
    def create(cls, settings: Settings) -> "HttpProgressService":
        client = httpx.AsyncClient(
            base_url=settings.service_url.rstrip("/"),
            timeout=settings.request_timeout,
        )
        return cls(client, owns_client=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def upsert_user(self, user: User) -> None:
        payload = UserSnapshotPayload.from_user(user)
        await self._post("/api/users/upsert", payload)

    async def report_xp_gain(
        self,
        user_id: str,
        gain: int,
        new_xp: int,
        new_level: int,
        source: str,
    ) -> None:
        payload = XpGainReportPayload(
            user_id=user_id,
            xp_gain=gain,
            new_xp=new_xp,
            new_level=new_level,
            source=source,
        )
        await self._post("/api/users/update-xp", payload)

    async def get_completed_tasks(self, user_id: str) -> List[TaskCompletion]:
        response = await self._get(f"/api/tasks/{user_id}")
        try:
            parsed = CompletedTasksResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise FeedFetchError(f"Task feed returned an invalid payload: {exc}") from exc
        return parsed.data.completed_tasks

    async def get_module_progress(self, user_id: str) -> List[ModuleProgress]:
        response = await self._get(f"/api/user-modules/{user_id}")
        try:
            parsed = ModuleProgressResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise FeedFetchError(f"Module feed returned an invalid payload: {exc}") from exc
        return parsed.progress

    async def _get(self, path: str) -> httpx.Response:
        try:
            response = await self._client.get(path)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise FeedFetchError(f"GET {path} failed: {exc}") from exc
        return response

    async def _post(self, path: str, payload: BaseModel) -> None:
        try:
            response = await self._client.post(path, json=payload.model_dump(mode="json", by_alias=True))
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise RemoteNotifyError(f"POST {path} failed: {exc}") from exc
        logger.debug("POST %s -> %s", path, response.status_code)


__all__ = [
    "CompletedTasksResponse",
    "FeedFetchError",
    "HttpProgressService",
    "ModuleProgressResponse",
    "ProgressService",
    "RemoteNotifyError",
    "UserSnapshotPayload",
    "XpGainReportPayload",
]
