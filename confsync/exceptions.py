"""Application-level exception types.

Convention:
- ``RecordNotFoundError`` / ``ScopeNotFoundError``: an operation referenced an
  id with no row behind it. Both are ``LookupError`` subclasses; the HTTP layer
  maps them to 404 and callers never retry them.
- ``ChecksumMismatchError``: a written file did not hash back to the content
  that was written. It is an ``OSError`` so it is handled exactly like any
  other I/O failure during materialization.
- ``ScopeConflictError``: a scope name would share a files directory with an
  existing scope. The scopes router answers it with 409.
- ``InternalServerError``: for errors whose details must never reach clients.
  The global handler logs the full message at ERROR and returns a generic
  "Internal server error" (500).
- ``ValueError``: for validation errors that are safe to forward to clients.
"""

from __future__ import annotations


class RecordNotFoundError(LookupError):
    """Raised when a configuration record id does not exist."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Configuration not found: {record_id}")
        self.record_id = record_id


class ScopeNotFoundError(LookupError):
    """Raised when a scope id does not exist."""

    def __init__(self, scope_id: str) -> None:
        super().__init__(f"Scope not found: {scope_id}")
        self.scope_id = scope_id


class ScopeConflictError(ValueError):
    """Raised when a new scope would share its files directory with an existing one."""

    def __init__(self, name: str, existing: str) -> None:
        super().__init__(f"Scope name {name!r} maps to the same directory as scope {existing!r}")
        self.name = name
        self.existing = existing


class ChecksumMismatchError(OSError):
    """Raised when a file read back after writing does not match the written content."""

    def __init__(self, path: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Checksum mismatch after writing {path}: expected {expected}, got {actual}"
        )
        self.path = path
        self.expected = expected
        self.actual = actual


class InternalServerError(Exception):
    """Raised for internal errors whose details must not be exposed to clients.

    The global exception handler in ``confsync/main.py`` catches this, logs
    the full message server-side, and returns HTTP 500 with a generic
    ``"Internal server error"`` detail.
    """
