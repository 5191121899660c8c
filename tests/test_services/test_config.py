"""Tests for application configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from confsync.config import Settings


class TestSettings:
    def test_default_settings(self) -> None:
        s = Settings(_env_file=None)
        assert s.debug is False
        assert s.port == 8000
        assert s.reconcile_on_startup is True
        assert s.verify_checksum is True
        assert s.database_url.startswith("sqlite+aiosqlite:///")

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CONFSYNC_PORT", "9001")
        monkeypatch.setenv("CONFSYNC_VERIFY_CHECKSUM", "false")
        s = Settings(_env_file=None)
        assert s.port == 9001
        assert s.verify_checksum is False

    def test_settings_from_fixture(self, test_settings: Settings) -> None:
        assert test_settings.debug is True
        assert test_settings.config_base_path.exists()


class TestRuntimeSecurity:
    def test_backup_inside_base_rejected(self, tmp_path: Path) -> None:
        s = Settings(
            _env_file=None,
            debug=True,
            config_base_path=tmp_path / "configs",
            backup_path=tmp_path / "configs" / "backups",
        )
        with pytest.raises(ValueError, match="BACKUP_PATH"):
            s.validate_runtime_security()

    def test_short_token_rejected_outside_debug(self, tmp_path: Path) -> None:
        s = Settings(
            _env_file=None,
            config_base_path=tmp_path / "configs",
            backup_path=tmp_path / "backups",
            admin_token="short",
        )
        with pytest.raises(ValueError, match="ADMIN_TOKEN"):
            s.validate_runtime_security()

    def test_debug_allows_missing_token(self, tmp_path: Path) -> None:
        s = Settings(
            _env_file=None,
            debug=True,
            config_base_path=tmp_path / "configs",
            backup_path=tmp_path / "backups",
        )
        s.validate_runtime_security()
