"""Tests for the managed configuration directory."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from confsync.filesystem.file_store import FileStore
from confsync.filesystem.paths import checksum


class TestWriteAtomic:
    def test_writes_content_and_parents(self, file_store: FileStore, config_dir: Path) -> None:
        size = file_store.write_atomic("dynamic/groups/g1/dynamic-A.yaml", "a: 1\n")
        target = config_dir / "dynamic" / "groups" / "g1" / "dynamic-A.yaml"
        assert target.read_text() == "a: 1\n"
        assert size == len(b"a: 1\n")

    def test_hash_matches_checksum(self, file_store: FileStore) -> None:
        file_store.write_atomic("dynamic/standalone/x.yaml", "ünïcode: true\n")
        assert file_store.hash_file("dynamic/standalone/x.yaml") == checksum("ünïcode: true\n")

    def test_replace_failure_keeps_old_file_and_no_temp(
        self, file_store: FileStore, config_dir: Path
    ) -> None:
        file_store.write_atomic("dynamic/standalone/x.yaml", "old")
        with (
            patch.object(Path, "replace", side_effect=OSError("disk full")),
            pytest.raises(OSError, match="disk full"),
        ):
            file_store.write_atomic("dynamic/standalone/x.yaml", "new")
        directory = config_dir / "dynamic" / "standalone"
        assert (directory / "x.yaml").read_text() == "old"
        assert os.listdir(directory) == ["x.yaml"]

    def test_rejects_traversal(self, file_store: FileStore) -> None:
        with pytest.raises(ValueError, match="Path traversal"):
            file_store.write_atomic("../outside.yaml", "x")


class TestBackupAndDelete:
    def test_backup_copies_into_backup_dir(
        self, file_store: FileStore, backup_dir: Path
    ) -> None:
        file_store.write_atomic("dynamic/standalone/x.yaml", "old")
        backup = Path(file_store.backup("dynamic/standalone/x.yaml"))
        assert backup.is_relative_to(backup_dir)
        assert backup.name.startswith("x.yaml.backup.")
        assert backup.read_text() == "old"

    def test_backup_without_directory_fails(self, config_dir: Path) -> None:
        store = FileStore(base_path=config_dir)
        store.write_atomic("a.yaml", "x")
        with pytest.raises(ValueError, match="No backup directory"):
            store.backup("a.yaml")

    def test_delete_reports_existence(self, file_store: FileStore) -> None:
        file_store.write_atomic("a.yaml", "x")
        assert file_store.delete("a.yaml") is True
        assert file_store.delete("a.yaml") is False


class TestListConfigFiles:
    def test_lists_yaml_recursively(self, file_store: FileStore, config_dir: Path) -> None:
        file_store.write_atomic("dynamic/groups/g1/a.yaml", "a")
        file_store.write_atomic("dynamic/standalone/b.yml", "b")
        (config_dir / "dynamic" / "notes.txt").write_text("ignored")
        (config_dir / "dynamic" / ".x.yaml.123.tmp").write_text("in flight")
        (config_dir / "dynamic" / ".hidden.yaml").write_text("hidden")
        (config_dir / "dynamic" / ".cache").mkdir()
        (config_dir / "dynamic" / ".cache" / "c.yml").write_text("hidden dir")
        assert file_store.list_config_files() == [
            "dynamic/.cache/c.yml",
            "dynamic/.hidden.yaml",
            "dynamic/groups/g1/a.yaml",
            "dynamic/standalone/b.yml",
        ]

    def test_skips_symlinks(self, file_store: FileStore, config_dir: Path, tmp_path: Path) -> None:
        outside = tmp_path / "outside.yaml"
        outside.write_text("not managed")
        file_store.write_atomic("dynamic/standalone/a.yaml", "a")
        (config_dir / "dynamic" / "standalone" / "link.yaml").symlink_to(outside)
        assert file_store.list_config_files() == ["dynamic/standalone/a.yaml"]

    def test_subdir_and_missing_dir(self, file_store: FileStore) -> None:
        file_store.write_atomic("dynamic/groups/g1/a.yaml", "a")
        file_store.write_atomic("dynamic/groups/g2/b.yaml", "b")
        assert file_store.list_config_files("dynamic/groups/g1") == ["dynamic/groups/g1/a.yaml"]
        assert file_store.list_config_files("dynamic/groups/nope") == []

    def test_prune_empty_dirs_stops_at_base(
        self, file_store: FileStore, config_dir: Path
    ) -> None:
        file_store.write_atomic("dynamic/groups/g1/a.yaml", "a")
        file_store.write_atomic("dynamic/standalone/b.yaml", "b")
        file_store.delete("dynamic/groups/g1/a.yaml")
        file_store.prune_empty_dirs("dynamic/groups/g1/a.yaml")
        assert not (config_dir / "dynamic" / "groups").exists()
        assert (config_dir / "dynamic" / "standalone" / "b.yaml").exists()
        assert config_dir.exists()


def test_is_writable_tracks_base_dir(tmp_path: Path) -> None:
    store = FileStore(base_path=tmp_path / "configs")
    assert store.is_writable() is False
    store.ensure_base()
    assert store.is_writable() is True


def test_ensure_base_rejects_file(tmp_path: Path) -> None:
    target = tmp_path / "not-a-dir"
    target.write_text("x")
    with pytest.raises(NotADirectoryError):
        FileStore(base_path=target).ensure_base()
