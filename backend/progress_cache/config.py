import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    service_url: str = Field("http://localhost:3001", alias="PROGRESS_SERVICE_URL")
    request_timeout: float = Field(10.0, gt=0, alias="PROGRESS_REQUEST_TIMEOUT")
    storage_slot: str = Field("auth-storage", alias="PROGRESS_STORAGE_SLOT")
    persistence_mode: Literal["memory", "file", "database"] = Field(
        "file",
        alias="PROGRESS_PERSISTENCE_MODE",
    )
    storage_path: Path = Field(Path("data") / "session_storage.json", alias="PROGRESS_STORAGE_PATH")
    database_url: Optional[str] = Field(None, alias="PROGRESS_DATABASE_URL")
    database_echo: bool = Field(False, alias="PROGRESS_DATABASE_ECHO")
    post_login_sync_delay: float = Field(1.0, ge=0, alias="PROGRESS_POST_LOGIN_SYNC_DELAY")
    max_background_tasks: int = Field(32, ge=1, alias="PROGRESS_MAX_BACKGROUND_TASKS")
    catalog_path: Optional[Path] = Field(None, alias="PROGRESS_CATALOG_PATH")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        populate_by_name = True


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid progress cache configuration: {exc}") from exc
