"""Credential collaborators consumed by the session controller.

No network implementation ships here; deployments inject an ``AuthService``
that talks to their identity backend and, optionally, a ``Directory`` of
known accounts used when that backend rejects or cannot be reached.
"""

from __future__ import annotations

from typing import Dict, Iterable, Literal, Optional, Protocol

from pydantic import BaseModel, Field

from .models import User


class AuthFailure(RuntimeError):
    """Credentials were rejected."""


class RegistrationFailure(RuntimeError):
    """Registration was refused; ``reason`` carries the server's explanation."""

    def __init__(self, reason: str = "Registration failed") -> None:
        super().__init__(reason)
        self.reason = reason


class RegistrationRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)
    first_name: str
    last_name: str
    employee_id: str
    role: str
    learning_profile: Optional[Literal["Data Scientist", "Business Analyst"]] = None


class AuthService(Protocol):
    async def login(self, email: str, password: str) -> User:  # pragma: no cover - protocol definition
        ...

    async def register(self, request: RegistrationRequest) -> User:  # pragma: no cover
        ...


class Directory(Protocol):
    def find(self, email: str) -> Optional[User]:  # pragma: no cover - protocol definition
        ...


class StaticDirectory:
    def __init__(self, users: Iterable[User] = ()) -> None:
        self._by_email: Dict[str, User] = {user.email.strip().lower(): user for user in users}

    def find(self, email: str) -> Optional[User]:
        user = self._by_email.get(email.strip().lower())
        return user.model_copy() if user else None


__all__ = [
    "AuthFailure",
    "AuthService",
    "Directory",
    "RegistrationFailure",
    "RegistrationRequest",
    "StaticDirectory",
]
