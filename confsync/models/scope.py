"""Scope model: the owning group (proxy instance) of configuration records."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from confsync.models.base import Base
from confsync.services.datetime_service import now_utc


class ScopeState(StrEnum):
    """Operational state of a scope."""

    RUNNING = "running"
    STOPPED = "stopped"


class ConfigScope(Base):
    """A group of configuration records sharing one operational state."""

    __tablename__ = "config_scopes"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    state: Mapped[str] = mapped_column(String(16), nullable=False, default=ScopeState.RUNNING)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_utc
    )
