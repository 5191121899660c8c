"""Managed configuration directory: safe paths, atomic writes, discovery."""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from confsync.filesystem.paths import is_config_file
from confsync.services.datetime_service import backup_timestamp

logger = logging.getLogger(__name__)

_HASH_CHUNK_SIZE = 8192


def hash_file(file_path: Path) -> str:
    """Compute SHA-256 hash of a file.

    Produces the same digest as ``checksum`` over the file's bytes.
    """
    sha = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(_HASH_CHUNK_SIZE), b""):
            sha.update(chunk)
    return sha.hexdigest()


@dataclass
class FileStore:
    """Reads and writes configuration files under one base directory.

    All paths taken and returned are relative to ``base_path`` and use forward
    slashes. Nothing outside ``base_path`` (and ``backup_path`` for backups) is
    ever touched.
    """

    base_path: Path
    backup_path: Path | None = None

    def ensure_base(self) -> None:
        """Create the base directory if it is missing."""
        if self.base_path.exists() and not self.base_path.is_dir():
            msg = f"Config base path exists but is not a directory: {self.base_path}"
            raise NotADirectoryError(msg)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _validate_path(self, rel_path: str) -> Path:
        """Validate that a relative path stays within the base directory.

        Raises ValueError if the resolved path escapes base_path.
        """
        full_path = (self.base_path / rel_path.lstrip("/")).resolve()
        base = self.base_path.resolve()
        if full_path == base or not full_path.is_relative_to(base):
            raise ValueError(f"Path traversal detected: {rel_path}")
        return full_path

    def is_writable(self) -> bool:
        """Return True if the base directory exists and new files can be created in it."""
        return self.base_path.is_dir() and os.access(self.base_path, os.W_OK | os.X_OK)

    def exists(self, rel_path: str) -> bool:
        """Return True if a regular file exists at rel_path."""
        return self._validate_path(rel_path).is_file()

    def read_bytes(self, rel_path: str) -> bytes:
        """Read a managed file."""
        return self._validate_path(rel_path).read_bytes()

    def hash_file(self, rel_path: str) -> str:
        """SHA-256 of the bytes currently on disk at rel_path."""
        return hash_file(self._validate_path(rel_path))

    def file_size(self, rel_path: str) -> int:
        """Size in bytes of the file at rel_path."""
        return self._validate_path(rel_path).stat().st_size

    def ensure_parent(self, rel_path: str) -> Path:
        """Create the parent directories of rel_path and return the absolute path."""
        full_path = self._validate_path(rel_path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        return full_path

    def write_atomic(self, rel_path: str, content: str) -> int:
        """Write content so readers see either the old file or the complete new one.

        The data goes to a hidden temp file in the target directory and is then
        renamed over the target. Returns the number of bytes written.
        """
        full_path = self.ensure_parent(rel_path)
        data = content.encode("utf-8")
        fd, tmp_name = tempfile.mkstemp(
            dir=full_path.parent, prefix=f".{full_path.name}.", suffix=".tmp"
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            tmp_path.replace(full_path)
        except BaseException:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise
        return len(data)

    def backup(self, rel_path: str) -> str:
        """Copy an existing file into the backup directory.

        The copy keeps the relative layout and gets a UTC timestamp suffix.
        Returns the absolute backup path.
        """
        if self.backup_path is None:
            raise ValueError("No backup directory configured")
        source = self._validate_path(rel_path)
        target = self.backup_path / f"{rel_path.lstrip('/')}.backup.{backup_timestamp()}"
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)
        logger.debug("Backed up %s to %s", source, target)
        return str(target)

    def delete(self, rel_path: str) -> bool:
        """Delete a managed file. Returns True if the file existed."""
        full_path = self._validate_path(rel_path)
        try:
            full_path.unlink()
        except FileNotFoundError:
            return False
        return True

    def list_config_files(self, subdir: str | None = None) -> list[str]:
        """Recursively list configuration files, relative to base_path.

        Hidden names are listed too. In-flight temp files end in ``.tmp`` and
        never match a config extension. Symlinks are not followed. A missing
        directory yields an empty list.
        """
        root = self._validate_path(subdir) if subdir else self.base_path.resolve()
        if not root.is_dir():
            return []
        base = self.base_path.resolve()
        found: list[str] = []
        for dirpath, _dirs, files in os.walk(root):
            for filename in files:
                if not is_config_file(filename):
                    continue
                full = Path(dirpath) / filename
                if full.is_symlink() or not full.is_file():
                    continue
                found.append(full.relative_to(base).as_posix())
        return sorted(found)

    def prune_empty_dirs(self, rel_path: str) -> None:
        """Remove empty directories from the parent of rel_path up to the base directory."""
        base = self.base_path.resolve()
        current = self._validate_path(rel_path).parent
        while current != base and current.is_relative_to(base):
            try:
                current.rmdir()
            except OSError:
                return
            current = current.parent
