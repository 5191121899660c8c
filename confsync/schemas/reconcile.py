"""Reconciliation request and response schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field

from confsync.services.materializer import SyncAction


class ReconcileRequest(BaseModel):
    """Request to run a reconciliation pass."""

    scope_id: str | None = None
    full: bool = False
    force_sync: bool = False
    backup_existing: bool = False
    sweep: bool = True


class SweepRequest(BaseModel):
    """Request to run only the orphan sweeper."""

    scope_id: str | None = None


class MergeRequest(BaseModel):
    """Request to collapse duplicate records."""

    scope_id: str | None = None


class SyncResultItem(BaseModel):
    """Outcome for one record."""

    success: bool
    record_id: str
    file_path: str
    action: SyncAction
    message: str | None = None
    checksum: str | None = None
    file_size: int | None = None
    backup_path: str | None = None


class SyncSummaryResponse(BaseModel):
    """Outcome of a reconciliation pass."""

    scope_id: str | None = None
    total: int = Field(ge=0)
    successful: int = Field(ge=0)
    failed: int = Field(ge=0)
    results: list[SyncResultItem] = Field(default_factory=list)
    removed_orphans: list[str] = Field(default_factory=list)
    cancelled: bool = False


class SweepResponse(BaseModel):
    """Files deleted by the orphan sweeper."""

    scope_id: str | None = None
    removed_orphans: list[str] = Field(default_factory=list)


class MergeResponse(BaseModel):
    """Outcome of a duplicate merge."""

    groups: int = Field(ge=0)
    kept: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
