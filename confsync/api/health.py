"""Health check endpoint."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from confsync import __version__
from confsync.api.deps import get_file_store, get_session
from confsync.filesystem.file_store import FileStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    storage: str


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    session: Annotated[AsyncSession, Depends(get_session)],
    file_store: Annotated[FileStore, Depends(get_file_store)],
) -> HealthResponse:
    """Report whether the record store answers and the managed directory accepts writes."""
    db_status = "ok"
    try:
        await session.execute(text("SELECT 1"))
    except Exception:
        logger.warning("Health check database query failed", exc_info=True)
        db_status = "error"

    storage_status = "ok"
    if not await asyncio.to_thread(file_store.is_writable):
        logger.warning("Config base path %s is not writable", file_store.base_path)
        storage_status = "error"

    healthy = db_status == "ok" and storage_status == "ok"
    return HealthResponse(
        status="ok" if healthy else "degraded",
        version=__version__,
        database=db_status,
        storage=storage_status,
    )
