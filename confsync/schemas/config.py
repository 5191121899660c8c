"""Configuration record schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from confsync.models.config import ConfigType, StorageTier, SyncStatus
from confsync.services.datetime_service import ensure_aware


class ConfigCreate(BaseModel):
    """Request to create or update a configuration in a logical slot."""

    scope_id: str | None = None
    config_type: ConfigType = ConfigType.DYNAMIC
    name: str = Field(min_length=1, max_length=255)
    content: str
    storage_tier: StorageTier | None = None
    requires_file: bool = True

    @field_validator("name")
    @classmethod
    def name_must_not_be_blank(cls, v: str) -> str:
        """Reject whitespace-only names."""
        _ = cls
        if not v.strip():
            raise ValueError("Name must not be blank")
        return v


class ConfigResponse(BaseModel):
    """Configuration record as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    scope_id: str | None = None
    storage_tier: StorageTier
    config_type: ConfigType
    config_name: str
    version: int
    checksum: str | None = None
    requires_file: bool
    config_path: str | None = None
    sync_status: SyncStatus
    is_active: bool
    created_at: datetime
    updated_at: datetime
    last_synced_at: datetime | None = None
    sync_error_message: str | None = None

    @field_validator("created_at", "updated_at", "last_synced_at")
    @classmethod
    def assume_utc(cls, v: datetime | None) -> datetime | None:
        """Stored timestamps are UTC even when the database drops the offset."""
        _ = cls
        return ensure_aware(v) if v is not None else None


class ConfigDetailResponse(ConfigResponse):
    """Configuration record including its content."""

    config_content: str


class ConfigCreateResponse(BaseModel):
    """Result of a create-or-update call."""

    id: str


class SyncValidationResponse(BaseModel):
    """Whether a record's file matches the store."""

    record_id: str
    is_valid: bool
    issues: list[str] = Field(default_factory=list)
    last_synced_at: datetime | None = None
