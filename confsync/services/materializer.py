"""File materializer: make one record's file an exact, verified copy of its content."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from confsync.exceptions import ChecksumMismatchError
from confsync.filesystem.paths import checksum
from confsync.models.config import ConfigRecord, SyncStatus
from confsync.services import record_service
from confsync.services.datetime_service import ensure_aware, now_utc

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from confsync.filesystem.file_store import FileStore

logger = logging.getLogger(__name__)


class SyncAction(StrEnum):
    """What a single-record operation did."""

    CREATED = "created"
    UPDATED = "updated"
    REMOVED = "removed"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class SyncOptions:
    """Knobs for one materialization."""

    force_sync: bool = False
    verify_checksum: bool = True
    backup_existing: bool = False


@dataclass
class SyncResult:
    """Outcome of materializing or removing one record."""

    success: bool
    record_id: str
    file_path: str
    action: SyncAction
    message: str | None = None
    checksum: str | None = None
    file_size: int | None = None
    backup_path: str | None = None


@dataclass
class SyncValidation:
    """Report of whether a record's file matches the store."""

    is_valid: bool
    issues: list[str] = field(default_factory=list)
    last_synced_at: datetime | None = None


def _needs_sync_stamp(record: ConfigRecord) -> bool:
    if record.sync_status != SyncStatus.SYNCED or record.last_synced_at is None:
        return True
    return ensure_aware(record.updated_at) > ensure_aware(record.last_synced_at)


class Materializer:
    """Writes and removes the files of individual records.

    File I/O runs in worker threads; every outcome is written back to the
    record so a failed attempt is never mistaken for a successful one.
    """

    def __init__(self, file_store: FileStore, *, verify_checksum: bool = True) -> None:
        self.file_store = file_store
        self.verify_checksum = verify_checksum

    def default_options(self) -> SyncOptions:
        """Options used when the caller passes none."""
        return SyncOptions(verify_checksum=self.verify_checksum)

    async def materialize(
        self,
        session: AsyncSession,
        record: ConfigRecord,
        options: SyncOptions | None = None,
    ) -> SyncResult:
        """Ensure the record's file exists with exactly the record's content."""
        options = options or self.default_options()
        if not record.requires_file:
            logger.debug("Configuration %s does not require file sync, skipping", record.id)
            return SyncResult(
                success=True,
                record_id=record.id,
                file_path="",
                action=SyncAction.SKIPPED,
                message="Configuration does not require file",
            )

        rel_path = record.config_path or ""
        try:
            rel_path = await record_service.resolve_record_path(session, record)
            if record.config_path != rel_path:
                await record_service.set_config_path(session, record, rel_path)

            await asyncio.to_thread(self.file_store.ensure_parent, rel_path)
            content_digest = checksum(record.config_content)
            file_exists = await asyncio.to_thread(self.file_store.exists, rel_path)

            if not options.force_sync and file_exists:
                tracked = await record_service.get_config_file(session, record.id)
                if tracked is not None and tracked.checksum == content_digest:
                    up_to_date = True
                    if options.verify_checksum:
                        disk_digest = await asyncio.to_thread(self.file_store.hash_file, rel_path)
                        up_to_date = disk_digest == content_digest
                    if up_to_date:
                        if _needs_sync_stamp(record):
                            await record_service.mark_sync_state(
                                session,
                                record,
                                SyncStatus.SYNCED,
                                checksum_value=content_digest,
                                synced_at=now_utc(),
                            )
                        logger.debug("File %s is up to date, skipping sync", rel_path)
                        return SyncResult(
                            success=True,
                            record_id=record.id,
                            file_path=rel_path,
                            action=SyncAction.SKIPPED,
                            message="File is up to date",
                            checksum=content_digest,
                            file_size=tracked.file_size,
                        )

            backup_path: str | None = None
            if options.backup_existing and file_exists:
                backup_path = await asyncio.to_thread(self.file_store.backup, rel_path)

            await asyncio.to_thread(self.file_store.write_atomic, rel_path, record.config_content)
            final_digest = await asyncio.to_thread(self.file_store.hash_file, rel_path)
            if final_digest != content_digest:
                raise ChecksumMismatchError(rel_path, content_digest, final_digest)
            file_size = await asyncio.to_thread(self.file_store.file_size, rel_path)

            await record_service.mark_sync_state(
                session,
                record,
                SyncStatus.SYNCED,
                checksum_value=final_digest,
                synced_at=now_utc(),
            )
            await record_service.upsert_config_file(
                session,
                record.id,
                rel_path,
                file_size=file_size,
                checksum_value=final_digest,
                exists=True,
                is_writable=True,
            )
        except Exception as exc:
            logger.exception("Failed to sync configuration %s to %s", record.id, rel_path)
            await self._record_failure(session, record, rel_path, exc)
            return SyncResult(
                success=False,
                record_id=record.id,
                file_path=rel_path,
                action=SyncAction.ERROR,
                message=str(exc) or type(exc).__name__,
            )

        action = SyncAction.UPDATED if file_exists else SyncAction.CREATED
        logger.info("Synced configuration %s to %s (%s)", record.id, rel_path, action)
        return SyncResult(
            success=True,
            record_id=record.id,
            file_path=rel_path,
            action=action,
            checksum=final_digest,
            file_size=file_size,
            backup_path=backup_path,
        )

    async def remove(self, session: AsyncSession, record: ConfigRecord) -> SyncResult:
        """Delete the record's file and mark it removed. Safe to call repeatedly."""
        rel_path = record.config_path or ""
        try:
            if not rel_path and record.requires_file:
                rel_path = await record_service.resolve_record_path(session, record)
            existed = bool(rel_path) and await asyncio.to_thread(
                self.file_store.delete, rel_path
            )
            if existed:
                await asyncio.to_thread(self.file_store.prune_empty_dirs, rel_path)

            if record.sync_status != SyncStatus.REMOVED or record.checksum is not None:
                await record_service.mark_sync_state(
                    session, record, SyncStatus.REMOVED, checksum_value=None
                )
            await record_service.delete_config_file(session, record.id)
        except Exception as exc:
            logger.exception("Failed to remove configuration file %s for %s", rel_path, record.id)
            await self._record_failure(session, record, rel_path, exc)
            return SyncResult(
                success=False,
                record_id=record.id,
                file_path=rel_path,
                action=SyncAction.ERROR,
                message=str(exc) or type(exc).__name__,
            )

        if not existed:
            return SyncResult(
                success=True,
                record_id=record.id,
                file_path=rel_path,
                action=SyncAction.SKIPPED,
                message="File already absent",
            )
        logger.info("Removed configuration file %s for %s", rel_path, record.id)
        return SyncResult(
            success=True,
            record_id=record.id,
            file_path=rel_path,
            action=SyncAction.REMOVED,
            message="File removed",
        )

    async def validate_sync_status(
        self, session: AsyncSession, record_id: str
    ) -> SyncValidation:
        """Compare a record's stored state with its file without changing anything."""
        record = await record_service.get_record(session, record_id)
        last_synced_at = record.last_synced_at
        if not record.requires_file:
            return SyncValidation(is_valid=True, last_synced_at=last_synced_at)

        issues: list[str] = []
        if not record.config_path:
            issues.append("Configuration path not set")
        if record.sync_status == SyncStatus.FAILED:
            issues.append(f"Sync failed: {record.sync_error_message or 'Unknown error'}")
        if record.sync_status == SyncStatus.OUTDATED:
            issues.append("Configuration is outdated and needs sync")

        if record.config_path:
            exists = await asyncio.to_thread(self.file_store.exists, record.config_path)
            if not record.is_active or record.sync_status == SyncStatus.REMOVED:
                if exists:
                    issues.append("File still exists for an inactive configuration")
            elif not exists:
                issues.append("Configuration file does not exist on filesystem")
            else:
                disk_digest = await asyncio.to_thread(
                    self.file_store.hash_file, record.config_path
                )
                if disk_digest != checksum(record.config_content):
                    issues.append("File content does not match database configuration")

        return SyncValidation(
            is_valid=not issues, issues=issues, last_synced_at=last_synced_at
        )

    async def _record_failure(
        self,
        session: AsyncSession,
        record: ConfigRecord,
        rel_path: str,
        exc: Exception,
    ) -> None:
        if isinstance(exc, SQLAlchemyError):
            await session.rollback()
            await session.refresh(record)
        message = str(exc) or type(exc).__name__
        await record_service.mark_sync_state(
            session, record, SyncStatus.FAILED, error_message=message
        )
        if rel_path:
            await record_service.upsert_config_file(
                session,
                record.id,
                rel_path,
                exists=await asyncio.to_thread(self._exists_quietly, rel_path),
                is_writable=False,
                write_error_message=message,
            )

    def _exists_quietly(self, rel_path: str) -> bool:
        try:
            return self.file_store.exists(rel_path)
        except (OSError, ValueError):
            return False
