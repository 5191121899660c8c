"""Deduplication of configuration records on admission and as maintenance.

Two active records must never claim the same file: that would make passes
flap between their contents. ``admit_or_reuse`` keeps new writes from creating
such pairs, and ``merge_duplicates`` cleans up pairs that already exist.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy import delete, select

from confsync.filesystem.paths import RecordIdentity, checksum, resolve_path
from confsync.models.config import ConfigFile, ConfigRecord, ConfigType, StorageTier
from confsync.services import record_service
from confsync.services.datetime_service import ensure_aware
from confsync.services.scope_service import get_group_name, get_scope_map

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from confsync.models.scope import ConfigScope

logger = logging.getLogger(__name__)


class AdmitReason(StrEnum):
    """Why a record was or was not created."""

    EXACT_DUPLICATE = "exact_duplicate"
    PATH_CONFLICT = "path_conflict"
    NO_COLLISION = "no_collision"


@dataclass
class AdmitDecision:
    """Outcome of ``admit_or_reuse``."""

    create: bool
    reason: AdmitReason
    existing_id: str | None = None


@dataclass
class MergeReport:
    """Outcome of ``merge_duplicates``."""

    groups: int = 0
    kept: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)


def _content_checksum(record: ConfigRecord) -> str:
    return record.checksum or checksum(record.config_content)


def _newest_first(records: list[ConfigRecord]) -> list[ConfigRecord]:
    return sorted(records, key=lambda r: (ensure_aware(r.created_at), r.id), reverse=True)


async def admit_or_reuse(
    session: AsyncSession,
    scope_id: str | None,
    target_path: str,
    content: str,
    name: str,
) -> AdmitDecision:
    """Decide whether content for target_path needs a new record.

    An active record in the same scope that resolves to the same path with
    the same checksum is reused as is. One with the same path but other content
    is reused too, and the caller pushes the new content into it. Only when no
    active record claims the path is a new record created.
    """
    digest = checksum(content)
    scope_clause = (
        ConfigRecord.scope_id.is_(None) if scope_id is None else ConfigRecord.scope_id == scope_id
    )
    result = await session.execute(
        select(ConfigRecord).where(scope_clause, ConfigRecord.is_active.is_(True))
    )
    scopes = await get_scope_map(session)

    same_path: list[ConfigRecord] = []
    for record in result.scalars().all():
        scope = scopes.get(record.scope_id) if record.scope_id is not None else None
        if resolve_path(record, scope.name if scope is not None else None) == target_path:
            same_path.append(record)

    exact = [r for r in same_path if _content_checksum(r) == digest]
    if exact:
        existing = _newest_first(exact)[0]
        logger.debug("Config %r matches existing record %s exactly", name, existing.id)
        return AdmitDecision(
            create=False, reason=AdmitReason.EXACT_DUPLICATE, existing_id=existing.id
        )

    if same_path:
        existing = _newest_first(same_path)[0]
        logger.info(
            "Config %r conflicts with record %s at %s; updating in place",
            name,
            existing.id,
            target_path,
        )
        return AdmitDecision(
            create=False, reason=AdmitReason.PATH_CONFLICT, existing_id=existing.id
        )

    return AdmitDecision(create=True, reason=AdmitReason.NO_COLLISION)


async def create_or_update_config(
    session: AsyncSession,
    scope_id: str | None,
    config_type: ConfigType,
    name: str,
    content: str,
    *,
    storage_tier: StorageTier | None = None,
    requires_file: bool = True,
) -> str:
    """Ensure a configuration exists with the given content. Returns the record id.

    Repeated calls with the same arguments are idempotent. The record id is
    derived from (scope, tier, type, name), so a call for an existing slot
    lands on the same record and path. An inactive record in that slot is
    reactivated with the new content.
    """
    if not name.strip():
        raise ValueError("Config name must not be empty")
    config_type = ConfigType(config_type)
    if storage_tier is None:
        tier = record_service.default_storage_tier(scope_id)
    else:
        tier = StorageTier(storage_tier)
    record_id = record_service.derive_record_id(scope_id, tier, config_type, name)
    group_name = await get_group_name(session, scope_id)
    target_path = resolve_path(
        RecordIdentity(id=record_id, config_type=config_type, storage_tier=tier), group_name
    )

    decision = await admit_or_reuse(session, scope_id, target_path, content, name)
    if not decision.create and decision.existing_id is not None:
        record = await record_service.get_record(session, decision.existing_id)
        if decision.reason == AdmitReason.PATH_CONFLICT:
            await record_service.update_content(session, record, content)
        await record_service.set_requires_file(session, record, requires_file)
        return decision.existing_id

    existing = await record_service.find_record(session, record_id)
    if existing is not None:
        await record_service.reactivate(session, existing.id)
        await record_service.update_content(session, existing, content)
        await record_service.set_requires_file(session, existing, requires_file)
        return existing.id

    record = await record_service.create_record(
        session,
        scope_id=scope_id,
        config_type=config_type,
        config_name=name,
        config_content=content,
        storage_tier=tier,
        requires_file=requires_file,
        record_id=record_id,
    )
    return record.id


def _slot_key(record: ConfigRecord, digest: str) -> tuple[str, ...]:
    return (
        "slot",
        record.scope_id or "",
        str(record.storage_tier),
        str(record.config_type),
        record.config_name,
        digest,
    )


def _group_duplicates(
    records: list[ConfigRecord], scopes: dict[str, ConfigScope]
) -> list[list[ConfigRecord]]:
    """Partition records into sets that share a target and a checksum.

    A record's target is both the path it resolves to and its logical slot;
    sharing either one with the same checksum makes two records duplicates.
    """
    parent = list(range(len(records)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    first_seen: dict[tuple[str, ...], int] = {}
    for index, record in enumerate(records):
        digest = _content_checksum(record)
        scope = scopes.get(record.scope_id) if record.scope_id is not None else None
        path = resolve_path(record, scope.name if scope is not None else None)
        for key in (("path", path, digest), _slot_key(record, digest)):
            other = first_seen.setdefault(key, index)
            if other != index:
                parent[find(index)] = find(other)

    groups: dict[int, list[ConfigRecord]] = defaultdict(list)
    for index, record in enumerate(records):
        groups[find(index)].append(record)
    return [group for group in groups.values() if len(group) > 1]


async def merge_duplicates(session: AsyncSession, scope_id: str | None = None) -> MergeReport:
    """Collapse active records that duplicate each other.

    Records are duplicates when they share a target, either the resolved
    path or the logical slot (scope, tier, type, name), with the same
    checksum. The most recently created one is kept; the others are deleted
    together with their file-tracking rows. Their files, if any, are left for
    the orphan sweeper.
    """
    stmt = select(ConfigRecord).where(ConfigRecord.is_active.is_(True))
    if scope_id is not None:
        stmt = stmt.where(ConfigRecord.scope_id == scope_id)
    stmt = stmt.order_by(ConfigRecord.created_at, ConfigRecord.id)
    result = await session.execute(stmt)
    scopes = await get_scope_map(session)

    report = MergeReport()
    for records in _group_duplicates(list(result.scalars().all()), scopes):
        keep, *drop = _newest_first(records)
        report.groups += 1
        report.kept.append(keep.id)
        drop_ids = [r.id for r in drop]
        await session.execute(delete(ConfigFile).where(ConfigFile.record_id.in_(drop_ids)))
        for record in drop:
            await session.delete(record)
        report.deleted.extend(drop_ids)
        logger.info(
            "Merged %d duplicate(s) of %r into record %s",
            len(drop_ids),
            keep.config_name,
            keep.id,
        )

    if report.deleted:
        await session.commit()
    return report
