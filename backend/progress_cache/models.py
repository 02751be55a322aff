"""Progress records shared by the session cache, the feeds and the remote service."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

ENVELOPE_VERSION = 0


class User(BaseModel):
    """Cached identity and progress for the signed-in user.

    Serialised with camelCase keys so the persisted slot and the remote
    service payloads keep their established shape. Either the Python field
    names or the camelCase aliases are accepted on input.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., min_length=1)
    email: str
    first_name: str = ""
    last_name: str = ""
    employee_id: Optional[str] = None
    department: Optional[str] = None
    role: Optional[str] = None
    manager_name: Optional[str] = None
    start_date: Optional[str] = None
    level: int = Field(default=1, ge=1)
    current_xp: int = Field(default=0, ge=0)
    streak_days: int = Field(default=0, ge=0)
    intro_completed: bool = False

    @classmethod
    def from_service_record(cls, record: Mapping[str, Any]) -> "User":
        """Build a user from the snake_case record returned by the auth service."""
        return cls.model_validate({key: value for key, value in record.items() if value is not None})

    def merged(self, updates: Mapping[str, Any]) -> "User":
        """Shallow-merge ``updates`` (field names or aliases) and revalidate."""
        payload = self.model_dump()
        payload.update(_resolve_field_names(updates))
        return User.model_validate(payload)


class TaskCompletion(BaseModel):
    points: int = Field(default=0, ge=0)

    @field_validator("points", mode="before")
    @classmethod
    def _missing_points_count_as_zero(cls, value: Any) -> Any:
        return 0 if value is None else value


class ModuleProgress(BaseModel):
    module_id: str = Field(validation_alias=AliasChoices("module_id", "moduleId"))
    progress_percent: float = Field(
        ge=0,
        le=100,
        validation_alias=AliasChoices("progress", "progress_percent", "progressPercent"),
    )

    @property
    def completed(self) -> bool:
        return self.progress_percent >= 100


class CatalogEntry(BaseModel):
    module_id: str
    xp_reward: int = Field(default=0, ge=0)
    title: str = "Unknown Module"


class SessionState(BaseModel):
    user: Optional[User] = None
    authenticated: bool = False


class SessionEnvelope(BaseModel):
    """Layout of the named storage slot."""

    state: SessionState = Field(default_factory=SessionState)
    version: int = ENVELOPE_VERSION

    def to_storage(self) -> str:
        return self.model_dump_json(by_alias=True)


def _resolve_field_names(updates: Mapping[str, Any]) -> Dict[str, Any]:
    by_alias = {
        (info.alias or name): name for name, info in User.model_fields.items()
    }
    resolved: Dict[str, Any] = {}
    for key, value in updates.items():
        if key in User.model_fields:
            resolved[key] = value
        elif key in by_alias:
            resolved[by_alias[key]] = value
        else:
            raise KeyError(f"Unknown user field '{key}'.")
    return resolved


__all__ = [
    "CatalogEntry",
    "ENVELOPE_VERSION",
    "ModuleProgress",
    "SessionEnvelope",
    "SessionState",
    "TaskCompletion",
    "User",
]
