"""Record store gateway: every read and write of configuration records goes through here.

Mutations commit immediately and stamp ``updated_at`` whenever the sync status
changes, so the "needs sync" query stays correct without a separate dirty flag.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Final

from sqlalchemy import ColumnElement, and_, delete, or_, select, true

from confsync.exceptions import RecordNotFoundError
from confsync.filesystem.paths import checksum, resolve_path
from confsync.models.config import ConfigFile, ConfigRecord, ConfigType, StorageTier, SyncStatus
from confsync.models.scope import ConfigScope, ScopeState
from confsync.services.datetime_service import now_utc

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# Namespace for ids derived from (scope, tier, type, name)
RECORD_ID_NAMESPACE: Final = uuid.UUID("6f1d2a0e-3b5c-4e0f-9a57-0c6b1f1e8d42")


class _Unset:
    pass


_UNSET: Final = _Unset()


def default_storage_tier(scope_id: str | None) -> StorageTier:
    """Records owned by a scope are laid out per group unless told otherwise."""
    return StorageTier.SCOPED if scope_id is not None else StorageTier.STANDALONE


def derive_record_id(
    scope_id: str | None, storage_tier: str, config_type: str, config_name: str
) -> str:
    """Deterministic id for the record that owns a logical configuration slot."""
    key = "\x1f".join([scope_id or "", str(storage_tier), str(config_type), config_name])
    return str(uuid.uuid5(RECORD_ID_NAMESPACE, key))


async def create_record(
    session: AsyncSession,
    *,
    scope_id: str | None,
    config_type: ConfigType,
    config_name: str,
    config_content: str,
    storage_tier: StorageTier | None = None,
    requires_file: bool = True,
    record_id: str | None = None,
) -> ConfigRecord:
    """Insert a new record in ``pending`` state with no path."""
    now = now_utc()
    record = ConfigRecord(
        id=record_id or str(uuid.uuid4()),
        scope_id=scope_id,
        storage_tier=storage_tier or default_storage_tier(scope_id),
        config_type=ConfigType(config_type),
        config_name=config_name,
        config_content=config_content,
        version=1,
        checksum=checksum(config_content),
        requires_file=requires_file,
        config_path=None,
        sync_status=SyncStatus.PENDING,
        is_active=True,
        created_at=now,
        updated_at=now,
        last_synced_at=None,
        sync_error_message=None,
    )
    session.add(record)
    await session.commit()
    logger.info(
        "Created %s config %s (%s) in scope %s",
        record.config_type,
        record.id,
        record.config_name,
        record.scope_id or "<standalone>",
    )
    return record


async def find_record(session: AsyncSession, record_id: str) -> ConfigRecord | None:
    """Get a record by id, or None."""
    return await session.get(ConfigRecord, record_id)


async def get_record(session: AsyncSession, record_id: str) -> ConfigRecord:
    """Get a record by id. Raises RecordNotFoundError if it does not exist."""
    record = await find_record(session, record_id)
    if record is None:
        raise RecordNotFoundError(record_id)
    return record


async def update_content(
    session: AsyncSession, record: ConfigRecord, content: str
) -> ConfigRecord:
    """Replace a record's content, bump its version and flag it for re-sync.

    Identical content is a no-op.
    """
    digest = checksum(content)
    if record.config_content == content and record.checksum == digest:
        return record
    record.config_content = content
    record.checksum = digest
    record.version += 1
    if record.sync_status == SyncStatus.SYNCED:
        record.sync_status = SyncStatus.OUTDATED
    record.updated_at = now_utc()
    await session.commit()
    logger.info("Updated config %s to version %d", record.id, record.version)
    return record


async def set_requires_file(
    session: AsyncSession, record: ConfigRecord, requires_file: bool
) -> ConfigRecord:
    """Change whether a record is backed by a file and flag it for the next pass.

    A record that stops needing its file is picked up for removal; one that
    starts needing a file again is picked up for materialization.
    """
    if record.requires_file == requires_file:
        return record
    record.requires_file = requires_file
    needs_pass = requires_file or record.config_path is not None
    if needs_pass and record.sync_status in (SyncStatus.SYNCED, SyncStatus.REMOVED):
        record.sync_status = SyncStatus.OUTDATED
    record.updated_at = now_utc()
    await session.commit()
    logger.info(
        "Config %s %s a file", record.id, "now requires" if requires_file else "no longer requires"
    )
    return record


async def mark_sync_state(
    session: AsyncSession,
    record: ConfigRecord,
    status: SyncStatus,
    *,
    error_message: str | None = None,
    checksum_value: str | None | _Unset = _UNSET,
    synced_at: datetime | None = None,
) -> ConfigRecord:
    """Record the outcome of a materialization or removal attempt.

    ``synced_at`` doubles as the ``updated_at`` stamp so a successful sync never
    looks newer than itself to the needs-sync query.
    """
    now = synced_at or now_utc()
    record.sync_status = status
    record.sync_error_message = error_message
    if not isinstance(checksum_value, _Unset):
        record.checksum = checksum_value
    if synced_at is not None:
        record.last_synced_at = synced_at
    record.updated_at = now
    await session.commit()
    return record


async def set_config_path(session: AsyncSession, record: ConfigRecord, path: str) -> None:
    """Persist the resolved relative path of a record."""
    if record.config_path == path:
        return
    if record.config_path is not None:
        logger.info("Config %s moves from %s to %s", record.id, record.config_path, path)
    record.config_path = path
    record.updated_at = now_utc()
    await session.commit()


async def resolve_record_path(session: AsyncSession, record: ConfigRecord) -> str:
    """Resolve the current path of a record from its identity.

    A scope that no longer exists leaves the group unresolvable, so the record
    falls back to the standalone layout.
    """
    group_name: str | None = None
    if record.scope_id is not None:
        scope = await session.get(ConfigScope, record.scope_id)
        group_name = scope.name if scope is not None else None
    return resolve_path(record, group_name)


def _scope_filter(scope_id: str | None) -> ColumnElement[bool]:
    if scope_id is None:
        return true()
    return ConfigRecord.scope_id == scope_id


async def list_records_needing_sync(
    session: AsyncSession, scope_id: str | None = None
) -> list[ConfigRecord]:
    """Records whose file state may differ from the store (incremental working set).

    Selects active file-backed records of running scopes that were never synced,
    changed since their last sync, or are pending/outdated/failed; plus records
    that still own a path but must lose their file because they were
    deactivated, no longer require a file, or their scope is stopped.
    """
    running = or_(ConfigScope.id.is_(None), ConfigScope.state == ScopeState.RUNNING)
    needs_write = and_(
        ConfigRecord.is_active.is_(True),
        ConfigRecord.requires_file.is_(True),
        running,
        or_(
            ConfigRecord.last_synced_at.is_(None),
            ConfigRecord.updated_at > ConfigRecord.last_synced_at,
            ConfigRecord.sync_status.in_(
                [SyncStatus.PENDING, SyncStatus.OUTDATED, SyncStatus.FAILED]
            ),
        ),
    )
    needs_removal = and_(
        ConfigRecord.config_path.is_not(None),
        ConfigRecord.sync_status != SyncStatus.REMOVED,
        or_(
            ConfigRecord.is_active.is_(False),
            ConfigRecord.requires_file.is_(False),
            ConfigScope.state == ScopeState.STOPPED,
        ),
    )
    stmt = (
        select(ConfigRecord)
        .outerjoin(ConfigScope, ConfigRecord.scope_id == ConfigScope.id)
        .where(_scope_filter(scope_id), or_(needs_write, needs_removal))
        .order_by(ConfigRecord.created_at, ConfigRecord.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_records_in_scope(
    session: AsyncSession, scope_id: str | None = None
) -> list[ConfigRecord]:
    """Every record in a scope, or every record at all when scope_id is None."""
    stmt = (
        select(ConfigRecord)
        .where(_scope_filter(scope_id))
        .order_by(ConfigRecord.created_at, ConfigRecord.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_active_file_records(
    session: AsyncSession, scope_id: str | None = None
) -> list[ConfigRecord]:
    """Active records that must be materialized, optionally limited to one scope."""
    stmt = select(ConfigRecord).where(
        _scope_filter(scope_id),
        ConfigRecord.is_active.is_(True),
        ConfigRecord.requires_file.is_(True),
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_configs(
    session: AsyncSession,
    scope_id: str | None = None,
    config_type: ConfigType | None = None,
    *,
    updated_since: datetime | None = None,
) -> list[ConfigRecord]:
    """List records for display, newest first."""
    stmt = select(ConfigRecord).where(_scope_filter(scope_id))
    if config_type is not None:
        stmt = stmt.where(ConfigRecord.config_type == config_type)
    if updated_since is not None:
        stmt = stmt.where(ConfigRecord.updated_at >= updated_since.astimezone(timezone.utc))
    stmt = stmt.order_by(ConfigRecord.config_type, ConfigRecord.updated_at.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def deactivate(session: AsyncSession, record_id: str) -> ConfigRecord:
    """Soft-delete a record. Its file is removed by the next reconciliation pass.

    A record that never got a path has nothing on disk and goes straight to
    ``removed``.
    """
    record = await get_record(session, record_id)
    if not record.is_active:
        return record
    record.is_active = False
    if record.config_path is None:
        record.sync_status = SyncStatus.REMOVED
    record.updated_at = now_utc()
    await session.commit()
    logger.info("Deactivated config %s", record.id)
    return record


async def reactivate(session: AsyncSession, record_id: str) -> ConfigRecord:
    """Undo a deactivation; the record is materialized again on the next pass."""
    record = await get_record(session, record_id)
    if record.is_active:
        return record
    record.is_active = True
    record.checksum = checksum(record.config_content)
    record.sync_status = SyncStatus.PENDING
    record.sync_error_message = None
    record.updated_at = now_utc()
    await session.commit()
    logger.info("Reactivated config %s", record.id)
    return record


async def delete_record(session: AsyncSession, record_id: str) -> None:
    """Physically delete a record and its file-tracking row.

    Any file left on disk becomes an orphan for the sweeper to collect.
    """
    record = await get_record(session, record_id)
    await session.execute(delete(ConfigFile).where(ConfigFile.record_id == record_id))
    await session.delete(record)
    await session.commit()
    logger.info("Deleted config record %s", record_id)


async def get_config_file(session: AsyncSession, record_id: str) -> ConfigFile | None:
    """File-tracking row of a record, if any."""
    result = await session.execute(select(ConfigFile).where(ConfigFile.record_id == record_id))
    return result.scalar_one_or_none()


async def upsert_config_file(
    session: AsyncSession,
    record_id: str,
    file_path: str,
    *,
    file_size: int | None = None,
    checksum_value: str | None = None,
    exists: bool,
    is_writable: bool | None,
    write_error_message: str | None = None,
) -> ConfigFile:
    """Create or update the file-tracking row of a record."""
    now = now_utc()
    tracked = await get_config_file(session, record_id)
    if tracked is None:
        tracked = ConfigFile(record_id=record_id, created_at=now)
        session.add(tracked)
    tracked.file_path = file_path
    tracked.file_size = file_size
    tracked.checksum = checksum_value
    tracked.exists = exists
    tracked.is_writable = is_writable
    tracked.last_write_attempt = now
    tracked.write_error_message = write_error_message
    tracked.updated_at = now
    await session.commit()
    return tracked


async def delete_config_file(session: AsyncSession, record_id: str) -> None:
    """Drop the file-tracking row of a record."""
    await session.execute(delete(ConfigFile).where(ConfigFile.record_id == record_id))
    await session.commit()
