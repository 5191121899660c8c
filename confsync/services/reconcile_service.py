"""Reconciliation driver: bring the filesystem in line with the record store.

A pass decides per (record, scope state) pair whether to materialize, remove
or leave the record alone, then optionally sweeps orphans. Per-record failures
are collected in the summary and never abort the pass.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from confsync.exceptions import ScopeNotFoundError
from confsync.models.config import ConfigRecord
from confsync.models.scope import ConfigScope, ScopeState
from confsync.services import record_service
from confsync.services.dedup_service import MergeReport, merge_duplicates
from confsync.services.materializer import SyncAction, SyncOptions, SyncResult
from confsync.services.scope_service import get_scope_map

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession

    from confsync.services.materializer import Materializer
    from confsync.services.sweep_service import Sweeper

logger = logging.getLogger(__name__)


class RecordAction(StrEnum):
    """Decision taken for one record in a pass."""

    MATERIALIZE = "materialize"
    REMOVE = "remove"
    NOOP = "noop"


@dataclass
class ReconcileOptions:
    """How a pass selects and processes records.

    ``full`` selects every record in scope instead of only those needing sync.
    ``sweep`` runs the orphan sweeper once the per-record pass is done.
    """

    full: bool = False
    sweep: bool = False
    force_sync: bool = False
    backup_existing: bool = False
    verify_checksum: bool | None = None


@dataclass
class SyncSummary:
    """Result of one reconciliation pass."""

    scope_id: str | None = None
    total: int = 0
    successful: int = 0
    failed: int = 0
    results: list[SyncResult] = field(default_factory=list)
    removed_orphans: list[str] = field(default_factory=list)
    cancelled: bool = False

    def add(self, result: SyncResult) -> None:
        """Account for one per-record result."""
        self.results.append(result)
        self.total += 1
        if result.success:
            self.successful += 1
        else:
            self.failed += 1

    def count(self, action: SyncAction) -> int:
        """Number of results with the given action."""
        return sum(1 for r in self.results if r.action == action)


def plan_record_action(record: ConfigRecord, scope_state: ScopeState) -> RecordAction:
    """Pick the action for a record given its scope's operational state."""
    if scope_state == ScopeState.STOPPED:
        # A stopped scope keeps no files, whatever the record's own flags say
        if record.config_path is not None or record.requires_file:
            return RecordAction.REMOVE
        return RecordAction.NOOP
    if record.is_active and record.requires_file:
        return RecordAction.MATERIALIZE
    # Inactive, or active but no longer file-backed: drop a file it may still own
    if record.config_path is not None:
        return RecordAction.REMOVE
    return RecordAction.NOOP


def _scope_state(record: ConfigRecord, scopes: dict[str, ConfigScope]) -> ScopeState:
    if record.scope_id is None:
        return ScopeState.RUNNING
    scope = scopes.get(record.scope_id)
    if scope is None:
        return ScopeState.RUNNING
    return ScopeState(scope.state)


class ScopeLockRegistry:
    """Single-flight guard for passes, keyed by scope id.

    Passes over different scopes run side by side; two passes over the same
    scope never interleave. The key ``None`` is the global pass: it covers
    every scope, so it waits for all scoped passes to finish and keeps new
    ones out until it is done. A waiting global pass is served before scoped
    passes that arrive after it.
    """

    def __init__(self) -> None:
        self._condition = asyncio.Condition()
        self._active: set[str] = set()
        self._global_active = False
        self._global_waiting = 0

    def is_locked(self, scope_id: str | None) -> bool:
        """Return True while a pass holds the given key."""
        if scope_id is None:
            return self._global_active
        return scope_id in self._active

    def _is_busy(self, scope_id: str | None) -> bool:
        if scope_id is None:
            return self._global_active or bool(self._active)
        return self._global_active or self._global_waiting > 0 or scope_id in self._active

    @asynccontextmanager
    async def hold(self, scope_id: str | None) -> AsyncIterator[None]:
        """Wait until no conflicting pass runs, then hold the key."""
        async with self._condition:
            if self._is_busy(scope_id):
                logger.info("Waiting for running pass on scope %s", scope_id or "<global>")
            if scope_id is None:
                self._global_waiting += 1
                try:
                    await self._condition.wait_for(lambda: not self._is_busy(None))
                finally:
                    self._global_waiting -= 1
                    self._condition.notify_all()
                self._global_active = True
            else:
                await self._condition.wait_for(lambda: not self._is_busy(scope_id))
                self._active.add(scope_id)
        try:
            yield
        finally:
            async with self._condition:
                if scope_id is None:
                    self._global_active = False
                else:
                    self._active.discard(scope_id)
                self._condition.notify_all()


class Reconciler:
    """Runs reconciliation passes over the record store."""

    def __init__(
        self,
        materializer: Materializer,
        sweeper: Sweeper,
        locks: ScopeLockRegistry | None = None,
    ) -> None:
        self.materializer = materializer
        self.sweeper = sweeper
        self.locks = locks or ScopeLockRegistry()

    async def reconcile(
        self,
        session: AsyncSession,
        scope_id: str | None = None,
        options: ReconcileOptions | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncSummary:
        """Run one pass over a scope, or over everything when scope_id is None.

        Cancellation via ``cancel_event`` is checked between records; a
        cancelled pass returns what it has done so far and skips the sweep.
        """
        options = options or ReconcileOptions()
        sync_options = SyncOptions(
            force_sync=options.force_sync,
            verify_checksum=(
                self.materializer.verify_checksum
                if options.verify_checksum is None
                else options.verify_checksum
            ),
            backup_existing=options.backup_existing,
        )
        summary = SyncSummary(scope_id=scope_id)

        async with self.locks.hold(scope_id):
            scopes = await get_scope_map(session)
            if scope_id is not None and scope_id not in scopes:
                raise ScopeNotFoundError(scope_id)

            if options.full:
                records = await record_service.list_records_in_scope(session, scope_id)
            else:
                records = await record_service.list_records_needing_sync(session, scope_id)
            record_ids = [record.id for record in records]
            logger.info(
                "Starting %s reconciliation of %s: %d record(s)",
                "full" if options.full else "incremental",
                scope_id or "<global>",
                len(record_ids),
            )

            for record_id in record_ids:
                if cancel_event is not None and cancel_event.is_set():
                    summary.cancelled = True
                    logger.warning(
                        "Reconciliation of %s cancelled after %d record(s)",
                        scope_id or "<global>",
                        summary.total,
                    )
                    break
                record = await record_service.find_record(session, record_id)
                if record is None:
                    continue
                summary.add(
                    await self._process(session, record, _scope_state(record, scopes), sync_options)
                )

            if options.sweep and not summary.cancelled:
                summary.removed_orphans = await self.sweeper.sweep(session, scope_id)

        log = logger.warning if summary.failed else logger.info
        log(
            "Reconciliation of %s completed: %d successful, %d failed out of %d total, "
            "%d orphan(s) removed",
            scope_id or "<global>",
            summary.successful,
            summary.failed,
            summary.total,
            len(summary.removed_orphans),
        )
        return summary

    async def full_reconcile(
        self,
        session: AsyncSession,
        scope_id: str | None = None,
        *,
        backup_existing: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> SyncSummary:
        """Check every record and sweep orphans: afterwards disk matches the store."""
        return await self.reconcile(
            session,
            scope_id,
            ReconcileOptions(full=True, sweep=True, backup_existing=backup_existing),
            cancel_event=cancel_event,
        )

    async def sweep(self, session: AsyncSession, scope_id: str | None = None) -> list[str]:
        """Run only the orphan sweeper, under the scope's lock."""
        async with self.locks.hold(scope_id):
            return await self.sweeper.sweep(session, scope_id)

    async def merge_duplicates(
        self, session: AsyncSession, scope_id: str | None = None
    ) -> MergeReport:
        """Collapse duplicate records under the scope's lock."""
        async with self.locks.hold(scope_id):
            return await merge_duplicates(session, scope_id)

    async def _process(
        self,
        session: AsyncSession,
        record: ConfigRecord,
        scope_state: ScopeState,
        options: SyncOptions,
    ) -> SyncResult:
        action = plan_record_action(record, scope_state)
        if action == RecordAction.MATERIALIZE:
            return await self.materializer.materialize(session, record, options)
        if action == RecordAction.REMOVE:
            return await self.materializer.remove(session, record)
        return SyncResult(
            success=True,
            record_id=record.id,
            file_path=record.config_path or "",
            action=SyncAction.SKIPPED,
            message="No action required",
        )
