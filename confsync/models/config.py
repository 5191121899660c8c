"""Configuration record and file-tracking models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from confsync.models.base import Base
from confsync.services.datetime_service import now_utc


class ConfigType(StrEnum):
    """Logical classification of a configuration document."""

    STATIC = "static"
    DYNAMIC = "dynamic"


class StorageTier(StrEnum):
    """Selects the on-disk layout of a record's file."""

    SCOPED = "scoped"
    STANDALONE = "standalone"


class SyncStatus(StrEnum):
    """Materialization state of a record."""

    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"
    OUTDATED = "outdated"
    REMOVED = "removed"


class ConfigRecord(Base):
    """The authoritative unit of configuration."""

    __tablename__ = "config_records"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    scope_id: Mapped[str | None] = mapped_column(
        Text, ForeignKey("config_scopes.id", ondelete="SET NULL"), nullable=True
    )
    storage_tier: Mapped[str] = mapped_column(String(16), nullable=False)
    config_type: Mapped[str] = mapped_column(String(16), nullable=False)
    config_name: Mapped[str] = mapped_column(Text, nullable=False)
    config_content: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    requires_file: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    config_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    sync_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=SyncStatus.PENDING
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sync_error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_config_records_scope", "scope_id"),
        Index("idx_config_records_sync", "is_active", "requires_file", "sync_status"),
    )


class ConfigFile(Base):
    """Tracks the last observed state of the file written for a record."""

    __tablename__ = "config_files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    record_id: Mapped[str] = mapped_column(
        Text, ForeignKey("config_records.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    file_path: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    exists: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_writable: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    last_write_attempt: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    write_error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc
    )
