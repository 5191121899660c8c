"""Configuration record endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from confsync.api.deps import get_materializer, get_session, require_admin
from confsync.models.config import ConfigType
from confsync.schemas.config import (
    ConfigCreate,
    ConfigCreateResponse,
    ConfigDetailResponse,
    ConfigResponse,
    SyncValidationResponse,
)
from confsync.services import record_service
from confsync.services.datetime_service import parse_datetime
from confsync.services.dedup_service import create_or_update_config
from confsync.services.materializer import Materializer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/configs", tags=["configs"])


@router.get("", response_model=list[ConfigResponse])
async def list_configs(
    session: Annotated[AsyncSession, Depends(get_session)],
    scope_id: Annotated[str | None, Query()] = None,
    config_type: Annotated[ConfigType | None, Query()] = None,
    updated_since: Annotated[str | None, Query(max_length=64)] = None,
) -> list[ConfigResponse]:
    """List configuration records, optionally filtered."""
    since = None
    if updated_since is not None:
        try:
            since = parse_datetime(updated_since)
        except (ValueError, TypeError) as exc:
            raise HTTPException(
                status_code=422, detail=f"Invalid updated_since: {updated_since}"
            ) from exc
    records = await record_service.list_configs(
        session, scope_id, config_type, updated_since=since
    )
    return [ConfigResponse.model_validate(record) for record in records]


@router.post("", response_model=ConfigCreateResponse, status_code=201)
async def create_config(
    body: ConfigCreate,
    session: Annotated[AsyncSession, Depends(get_session)],
    _: Annotated[None, Depends(require_admin)],
) -> ConfigCreateResponse:
    """Create a configuration, or reuse and update the one in the same slot."""
    record_id = await create_or_update_config(
        session,
        body.scope_id,
        body.config_type,
        body.name,
        body.content,
        storage_tier=body.storage_tier,
        requires_file=body.requires_file,
    )
    return ConfigCreateResponse(id=record_id)


@router.get("/{record_id}", response_model=ConfigDetailResponse)
async def get_config(
    record_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ConfigDetailResponse:
    """Get one configuration record with its content."""
    record = await record_service.get_record(session, record_id)
    return ConfigDetailResponse.model_validate(record)


@router.get("/{record_id}/validation", response_model=SyncValidationResponse)
async def validate_config(
    record_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    materializer: Annotated[Materializer, Depends(get_materializer)],
) -> SyncValidationResponse:
    """Check whether the record's file matches the store."""
    validation = await materializer.validate_sync_status(session, record_id)
    return SyncValidationResponse(
        record_id=record_id,
        is_valid=validation.is_valid,
        issues=validation.issues,
        last_synced_at=validation.last_synced_at,
    )


@router.post("/{record_id}/deactivate", response_model=ConfigResponse)
async def deactivate_config(
    record_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    _: Annotated[None, Depends(require_admin)],
) -> ConfigResponse:
    """Deactivate a record; its file goes away on the next pass."""
    record = await record_service.deactivate(session, record_id)
    return ConfigResponse.model_validate(record)


@router.post("/{record_id}/reactivate", response_model=ConfigResponse)
async def reactivate_config(
    record_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    _: Annotated[None, Depends(require_admin)],
) -> ConfigResponse:
    """Reactivate a record; its file comes back on the next pass."""
    record = await record_service.reactivate(session, record_id)
    return ConfigResponse.model_validate(record)
