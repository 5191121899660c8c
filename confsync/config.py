"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """confsync application settings."""

    model_config = SettingsConfigDict(
        env_prefix="CONFSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    debug: bool = False
    expose_docs: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///data/db/confsync.db"

    # Paths
    config_base_path: Path = Path("./data/traefik-configs")
    backup_path: Path = Path("./data/traefik-backups")

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # Reconciliation
    reconcile_on_startup: bool = True
    verify_checksum: bool = True

    # Admin API
    admin_token: str = ""

    def validate_runtime_security(self) -> None:
        """Validate settings that would let the engine damage its own state."""
        violations: list[str] = []

        base = self.config_base_path.resolve()
        backups = self.backup_path.resolve()
        if backups == base or backups.is_relative_to(base):
            violations.append("BACKUP_PATH must not live inside CONFIG_BASE_PATH")

        if not self.debug and len(self.admin_token) < 32:
            violations.append("ADMIN_TOKEN must be set to a high-entropy value (>=32 chars)")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Invalid confsync configuration: {joined}")
