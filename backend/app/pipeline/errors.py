from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    validation = "VALIDATION_ERROR"
    not_editable = "NOT_EDITABLE"
    conflict = "CONFLICT"
    not_found = "NOT_FOUND"
    permission_denied = "PERMISSION_DENIED"
    network = "NETWORK"
    unknown = "UNKNOWN"


# Kinds that abort the current operation and put the draft back into its locked state.
LOCKING_KINDS = frozenset({ErrorKind.not_editable, ErrorKind.permission_denied})


class PipelineError(Exception):
    """A failed pipeline operation with one human-readable message."""

    def __init__(self, kind: ErrorKind, message: str, details: dict | None = None):
        self.kind = kind
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def locks_draft(self) -> bool:
        return self.kind in LOCKING_KINDS

    @property
    def is_recoverable(self) -> bool:
        return self.kind in (ErrorKind.validation, ErrorKind.conflict)

    def __repr__(self) -> str:
        return f"PipelineError({self.kind.value}, {self.message!r})"
