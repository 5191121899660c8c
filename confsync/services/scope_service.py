"""Scope registry: owning groups and their operational state."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import select

from confsync.exceptions import ScopeConflictError, ScopeNotFoundError
from confsync.filesystem.paths import sanitize_segment
from confsync.models.scope import ConfigScope, ScopeState
from confsync.services.datetime_service import now_utc

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def create_scope(
    session: AsyncSession,
    name: str,
    *,
    scope_id: str | None = None,
    state: ScopeState = ScopeState.RUNNING,
) -> ConfigScope:
    """Register a new scope.

    Each scope owns the files directory its name sanitizes to, so a name that
    sanitizes to nothing, or to another scope's directory, is rejected.
    """
    if not name.strip():
        raise ValueError("Scope name must not be empty")
    segment = sanitize_segment(name)
    if segment is None:
        raise ValueError(f"Scope name cannot be used as a directory: {name!r}")
    for existing in await list_scopes(session):
        if sanitize_segment(existing.name) == segment:
            raise ScopeConflictError(name.strip(), existing.name)
    now = now_utc()
    scope = ConfigScope(
        id=scope_id or str(uuid.uuid4()),
        name=name.strip(),
        state=state,
        created_at=now,
        updated_at=now,
    )
    session.add(scope)
    await session.commit()
    logger.info("Created scope %s (%s, %s)", scope.id, scope.name, scope.state)
    return scope


async def get_scope(session: AsyncSession, scope_id: str) -> ConfigScope:
    """Get a scope by id. Raises ScopeNotFoundError if it does not exist."""
    scope = await session.get(ConfigScope, scope_id)
    if scope is None:
        raise ScopeNotFoundError(scope_id)
    return scope


async def list_scopes(session: AsyncSession) -> list[ConfigScope]:
    """List all scopes ordered by name."""
    result = await session.execute(select(ConfigScope).order_by(ConfigScope.name))
    return list(result.scalars().all())


async def get_scope_map(session: AsyncSession) -> dict[str, ConfigScope]:
    """Load every scope keyed by id, for resolving many records in one pass."""
    return {scope.id: scope for scope in await list_scopes(session)}


async def get_scope_state(session: AsyncSession, scope_id: str | None) -> ScopeState:
    """Operational state of a scope. Records without a scope are always running."""
    if scope_id is None:
        return ScopeState.RUNNING
    scope = await get_scope(session, scope_id)
    return ScopeState(scope.state)


async def get_group_name(session: AsyncSession, scope_id: str | None) -> str | None:
    """Group name used for path resolution, or None for standalone records."""
    if scope_id is None:
        return None
    scope = await get_scope(session, scope_id)
    return scope.name


async def set_scope_state(
    session: AsyncSession, scope_id: str, state: ScopeState
) -> ConfigScope:
    """Change a scope's operational state.

    Files are not touched here; the next reconciliation pass acts on the new state.
    """
    scope = await get_scope(session, scope_id)
    if scope.state != state:
        scope.state = state
        scope.updated_at = now_utc()
        await session.commit()
        logger.info("Scope %s (%s) is now %s", scope.id, scope.name, state)
    return scope
