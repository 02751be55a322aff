"""Engine and session helpers for the SQL-backed storage slot."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

_IN_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


def build_engine(database_url: str | None, *, echo: bool = False) -> Engine:
    if not database_url:
        raise RuntimeError("PROGRESS_DATABASE_URL must be configured before using the database slot.")

    kwargs: dict[str, object] = {
        "echo": echo,
        "pool_pre_ping": True,
    }
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in _IN_MEMORY_URLS:
            # every connection must see the same in-memory database
            kwargs["poolclass"] = StaticPool

    return create_engine(database_url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


@contextmanager
def session_scope(factory: sessionmaker[Session], *, commit: bool = True) -> Generator[Session, None, None]:
    session = factory()
    try:
        yield session
        if commit:
            session.commit()
    except Exception:  # noqa: BLE001
        session.rollback()
        raise
    finally:
        session.close()


__all__ = ["build_engine", "create_session_factory", "session_scope"]
