"""Client-side cache of user progress, reconciled against completion feeds."""

from .auth import AuthFailure, RegistrationFailure, RegistrationRequest, StaticDirectory
from .catalog import StaticCatalog
from .controller import SessionController, SessionPhase
from .models import CatalogEntry, ModuleProgress, TaskCompletion, User
from .progress_service import FeedFetchError, HttpProgressService, RemoteNotifyError
from .reconciliation import SyncResult
from .session_store import ChangeChannel, PersistedSession
from .storage import StorageReadError, StorageWriteError
from .xp_ledger import InvalidGain, XpChange, apply_gain, derive_level

__all__ = [
    "AuthFailure",
    "CatalogEntry",
    "ChangeChannel",
    "FeedFetchError",
    "HttpProgressService",
    "InvalidGain",
    "ModuleProgress",
    "PersistedSession",
    "RegistrationFailure",
    "RegistrationRequest",
    "RemoteNotifyError",
    "SessionController",
    "SessionPhase",
    "StaticCatalog",
    "StaticDirectory",
    "StorageReadError",
    "StorageWriteError",
    "SyncResult",
    "TaskCompletion",
    "User",
    "XpChange",
    "apply_gain",
    "derive_level",
]
