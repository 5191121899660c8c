"""Reconciliation endpoints: run passes, sweep orphans, merge duplicates."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from confsync.api.deps import get_reconciler, get_session, require_admin
from confsync.schemas.reconcile import (
    MergeRequest,
    MergeResponse,
    ReconcileRequest,
    SweepRequest,
    SweepResponse,
    SyncResultItem,
    SyncSummaryResponse,
)
from confsync.services.reconcile_service import ReconcileOptions, Reconciler, SyncSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reconcile", tags=["reconcile"])


def _summary_response(summary: SyncSummary) -> SyncSummaryResponse:
    return SyncSummaryResponse(
        scope_id=summary.scope_id,
        total=summary.total,
        successful=summary.successful,
        failed=summary.failed,
        results=[
            SyncResultItem(
                success=r.success,
                record_id=r.record_id,
                file_path=r.file_path,
                action=r.action,
                message=r.message,
                checksum=r.checksum,
                file_size=r.file_size,
                backup_path=r.backup_path,
            )
            for r in summary.results
        ],
        removed_orphans=summary.removed_orphans,
        cancelled=summary.cancelled,
    )


@router.post("", response_model=SyncSummaryResponse)
async def run_reconcile(
    body: ReconcileRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    reconciler: Annotated[Reconciler, Depends(get_reconciler)],
    _: Annotated[None, Depends(require_admin)],
) -> SyncSummaryResponse:
    """Run one reconciliation pass and return its summary."""
    options = ReconcileOptions(
        full=body.full,
        sweep=body.sweep,
        force_sync=body.force_sync,
        backup_existing=body.backup_existing,
    )
    summary = await reconciler.reconcile(session, body.scope_id, options)
    return _summary_response(summary)


@router.post("/sweep", response_model=SweepResponse)
async def run_sweep(
    body: SweepRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    reconciler: Annotated[Reconciler, Depends(get_reconciler)],
    _: Annotated[None, Depends(require_admin)],
) -> SweepResponse:
    """Delete orphaned configuration files."""
    removed = await reconciler.sweep(session, body.scope_id)
    return SweepResponse(scope_id=body.scope_id, removed_orphans=removed)


@router.post("/merge-duplicates", response_model=MergeResponse)
async def run_merge_duplicates(
    body: MergeRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    reconciler: Annotated[Reconciler, Depends(get_reconciler)],
    _: Annotated[None, Depends(require_admin)],
) -> MergeResponse:
    """Collapse duplicate records, keeping the newest of each set."""
    report = await reconciler.merge_duplicates(session, body.scope_id)
    logger.info(
        "Duplicate merge: %d group(s), %d record(s) deleted", report.groups, len(report.deleted)
    )
    return MergeResponse(groups=report.groups, kept=report.kept, deleted=report.deleted)
