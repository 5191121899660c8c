"""Shared API dependencies: DB session, admin auth, engine components."""

from __future__ import annotations

import secrets
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from confsync.config import Settings
from confsync.filesystem.file_store import FileStore
from confsync.services.materializer import Materializer
from confsync.services.reconcile_service import Reconciler

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_file_store(request: Request) -> FileStore:
    """Get the managed config directory from app state."""
    file_store: FileStore = request.app.state.file_store
    return file_store


def get_materializer(request: Request) -> Materializer:
    """Get the file materializer from app state."""
    materializer: Materializer = request.app.state.materializer
    return materializer


def get_reconciler(request: Request) -> Reconciler:
    """Get the reconciliation driver from app state."""
    reconciler: Reconciler = request.app.state.reconciler
    return reconciler


async def get_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Get a database session."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


async def require_admin(
    settings: Annotated[Settings, Depends(get_settings)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> None:
    """Require the admin bearer token. Open when no token is configured."""
    if not settings.admin_token:
        return
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not secrets.compare_digest(credentials.credentials, settings.admin_token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
