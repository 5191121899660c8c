"""Orphan sweeper: delete files that no active record accounts for."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from confsync.exceptions import ScopeNotFoundError
from confsync.filesystem.paths import resolve_path, scope_directory
from confsync.models.scope import ConfigScope, ScopeState
from confsync.services import record_service
from confsync.services.scope_service import get_scope_map

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from confsync.filesystem.file_store import FileStore
    from confsync.models.config import ConfigRecord

logger = logging.getLogger(__name__)


def _is_running(record: ConfigRecord, scopes: dict[str, ConfigScope]) -> bool:
    if record.scope_id is None:
        return True
    scope = scopes.get(record.scope_id)
    return scope is None or scope.state == ScopeState.RUNNING


def _group_name(record: ConfigRecord, scopes: dict[str, ConfigScope]) -> str | None:
    if record.scope_id is None:
        return None
    scope = scopes.get(record.scope_id)
    return scope.name if scope is not None else None


class Sweeper:
    """Converges the managed directory onto the set of files records should produce.

    The expected set is recomputed from record identity on every sweep, so it
    does not depend on paths stored on the records being current.
    """

    def __init__(self, file_store: FileStore) -> None:
        self.file_store = file_store

    async def expected_paths(
        self, session: AsyncSession, scope_id: str | None = None
    ) -> set[str]:
        """Relative paths that active, file-backed records of running scopes resolve to."""
        scopes = await get_scope_map(session)
        records = await record_service.list_active_file_records(session, scope_id)
        return {
            resolve_path(record, _group_name(record, scopes))
            for record in records
            if _is_running(record, scopes)
        }

    async def sweep(self, session: AsyncSession, scope_id: str | None = None) -> list[str]:
        """Delete orphaned config files, in one scope or under the whole base path.

        A stopped scope has no expected files at all: everything under its
        directory, and any file its records resolve to elsewhere, is removed.
        Returns the relative paths actually deleted.
        """
        scopes = await get_scope_map(session)
        if scope_id is not None:
            scope = scopes.get(scope_id)
            if scope is None:
                raise ScopeNotFoundError(scope_id)
            subtree = scope_directory(scope.name)
            candidates = (
                await asyncio.to_thread(self.file_store.list_config_files, subtree)
                if subtree is not None
                else []
            )
            if scope.state == ScopeState.STOPPED:
                expected: set[str] = set()
                # Standalone-tier records of a stopped scope live outside its directory
                for record in await record_service.list_records_in_scope(session, scope_id):
                    path = resolve_path(record, scope.name)
                    if path not in candidates and await asyncio.to_thread(
                        self.file_store.exists, path
                    ):
                        candidates.append(path)
                logger.info(
                    "Scope %s (%s) is stopped; removing all of its configuration files",
                    scope.id,
                    scope.name,
                )
            else:
                expected = await self.expected_paths(session, scope_id)
        else:
            candidates = await asyncio.to_thread(self.file_store.list_config_files)
            expected = await self.expected_paths(session)

        removed: list[str] = []
        for path in candidates:
            if path in expected:
                continue
            try:
                deleted = await asyncio.to_thread(self.file_store.delete, path)
            except (OSError, ValueError) as exc:
                logger.warning("Failed to clean up orphaned file %s: %s", path, exc)
                continue
            if deleted:
                removed.append(path)
                logger.info("Cleaned up orphaned file: %s", path)
                await asyncio.to_thread(self._prune_quietly, path)

        return sorted(removed)

    def _prune_quietly(self, path: str) -> None:
        try:
            self.file_store.prune_empty_dirs(path)
        except (OSError, ValueError):
            logger.debug("Could not prune empty directories above %s", path, exc_info=True)
