"""Checksums and deterministic file paths for configuration records.

Every path produced here is relative to the configured base directory and is a
pure function of a record's identity: storage tier, owning group, logical type
and id. Names chosen by users never reach the filesystem.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from typing import Protocol

from confsync.models.config import StorageTier

DYNAMIC_ROOT = "dynamic"
GROUPS_DIR = f"{DYNAMIC_ROOT}/groups"
STANDALONE_DIR = f"{DYNAMIC_ROOT}/standalone"
CONFIG_EXTENSION = ".yaml"
RECOGNIZED_EXTENSIONS = (".yml", ".yaml")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class PathIdentity(Protocol):
    """Attributes that determine where a record's file lives."""

    @property
    def id(self) -> str: ...

    @property
    def config_type(self) -> str: ...

    @property
    def storage_tier(self) -> str: ...


@dataclass(frozen=True)
class RecordIdentity:
    """Identity of a record that may not exist yet."""

    id: str
    config_type: str
    storage_tier: str


def checksum(content: str | bytes) -> str:
    """Compute the SHA-256 hex digest of content as it is written to disk."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def sanitize_segment(value: str) -> str | None:
    """Make a value safe to use as a single path segment.

    Returns None when nothing usable remains (empty, or only dots).
    """
    cleaned = _UNSAFE_CHARS.sub("_", value.strip())
    if not cleaned or set(cleaned) == {"."}:
        return None
    return cleaned


def scope_directory(group_name: str | None) -> str | None:
    """Relative directory holding the files of a group, or None if the name is unusable."""
    if group_name is None:
        return None
    segment = sanitize_segment(group_name)
    if segment is None:
        return None
    return f"{GROUPS_DIR}/{segment}"


def resolve_path(record: PathIdentity, group_name: str | None) -> str:
    """Derive the relative file path for a record.

    ``scoped`` records with a resolvable group name live under
    ``dynamic/groups/{group}/``; everything else falls back to
    ``dynamic/standalone/``. The file name is ``{type}-{id}.yaml`` so it is
    stable across renames.
    """
    record_segment = sanitize_segment(record.id)
    if record_segment is None:
        raise ValueError(f"Record id cannot be used in a file name: {record.id!r}")
    type_segment = sanitize_segment(str(record.config_type))
    if type_segment is None:
        raise ValueError(f"Invalid config type: {record.config_type!r}")

    filename = f"{type_segment}-{record_segment}{CONFIG_EXTENSION}"
    directory = (
        scope_directory(group_name) if record.storage_tier == StorageTier.SCOPED else None
    )
    if directory is None:
        directory = STANDALONE_DIR
    return f"{directory}/{filename}"


def is_config_file(name: str) -> bool:
    """Return True for file names with a recognized configuration extension."""
    return name.lower().endswith(RECOGNIZED_EXTENSIONS)
