"""Scope schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from confsync.models.scope import ScopeState
from confsync.services.datetime_service import ensure_aware


class ScopeCreate(BaseModel):
    """Request to register a scope."""

    id: str | None = Field(default=None, min_length=1, max_length=100)
    name: str = Field(min_length=1, max_length=100, pattern=r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
    state: ScopeState = ScopeState.RUNNING


class ScopeStateUpdate(BaseModel):
    """Request to change a scope's operational state."""

    state: ScopeState


class ScopeResponse(BaseModel):
    """Scope as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    state: ScopeState
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Stored timestamps are UTC even when the database drops the offset."""
        _ = cls
        return ensure_aware(v)
