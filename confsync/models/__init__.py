"""SQLAlchemy ORM models for confsync."""

from confsync.models.base import Base
from confsync.models.config import ConfigFile, ConfigRecord, ConfigType, StorageTier, SyncStatus
from confsync.models.scope import ConfigScope, ScopeState

__all__ = [
    "Base",
    "ConfigFile",
    "ConfigRecord",
    "ConfigScope",
    "ConfigType",
    "ScopeState",
    "StorageTier",
    "SyncStatus",
]
