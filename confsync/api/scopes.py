"""Scope registry endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from confsync.api.deps import get_session, require_admin
from confsync.exceptions import ScopeConflictError
from confsync.schemas.scope import ScopeCreate, ScopeResponse, ScopeStateUpdate
from confsync.services import scope_service

router = APIRouter(prefix="/api/scopes", tags=["scopes"])


@router.get("", response_model=list[ScopeResponse])
async def list_scopes(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[ScopeResponse]:
    """List all scopes."""
    scopes = await scope_service.list_scopes(session)
    return [ScopeResponse.model_validate(scope) for scope in scopes]


@router.post("", response_model=ScopeResponse, status_code=201)
async def create_scope(
    body: ScopeCreate,
    session: Annotated[AsyncSession, Depends(get_session)],
    _: Annotated[None, Depends(require_admin)],
) -> ScopeResponse:
    """Register a scope."""
    try:
        scope = await scope_service.create_scope(
            session, body.name, scope_id=body.id, state=body.state
        )
    except ScopeConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return ScopeResponse.model_validate(scope)


@router.put("/{scope_id}/state", response_model=ScopeResponse)
async def update_scope_state(
    scope_id: str,
    body: ScopeStateUpdate,
    session: Annotated[AsyncSession, Depends(get_session)],
    _: Annotated[None, Depends(require_admin)],
) -> ScopeResponse:
    """Start or stop a scope. Files follow on the next reconciliation pass."""
    scope = await scope_service.set_scope_state(session, scope_id, body.state)
    return ScopeResponse.model_validate(scope)
