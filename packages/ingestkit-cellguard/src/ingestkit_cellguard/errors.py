"""Normalized error codes and structured error model for ingestkit-cellguard.

``ErrorCode`` lists every error/warning the analysis pipeline can report.
``CellGuardError`` is the Pydantic data structure carried in results;
``CellGuardException`` wraps it so session operations can ``raise`` it.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Error codes for cell analysis and fix reconciliation.

    Values equal their names so they are stable strings suitable for
    metrics and alerting.  ``E_`` prefix = fatal, ``W_`` prefix = warning.
    """

    # Input errors (scan aborted, no partial issues retained)
    E_INPUT_UNSUPPORTED_TYPE = "E_INPUT_UNSUPPORTED_TYPE"
    E_INPUT_EMPTY = "E_INPUT_EMPTY"
    E_INPUT_UNPARSEABLE = "E_INPUT_UNPARSEABLE"
    E_INPUT_TOO_LARGE = "E_INPUT_TOO_LARGE"

    # Fatal I/O
    E_IO_STREAM = "E_IO_STREAM"

    # Resource errors (surfaced as "not found", never retried)
    E_SESSION_NOT_FOUND = "E_SESSION_NOT_FOUND"
    E_ISSUE_NOT_FOUND = "E_ISSUE_NOT_FOUND"
    E_SOURCE_FILE_MISSING = "E_SOURCE_FILE_MISSING"

    # User errors
    E_ISSUE_ALREADY_FIXED = "E_ISSUE_ALREADY_FIXED"
    E_ISSUE_DISMISSED = "E_ISSUE_DISMISSED"
    E_NO_ISSUES_TO_FIX = "E_NO_ISSUES_TO_FIX"
    E_NO_CHANGES = "E_NO_CHANGES"

    # Learning-store errors
    E_BACKEND_LEARNING_READ = "E_BACKEND_LEARNING_READ"
    E_BACKEND_LEARNING_WRITE = "E_BACKEND_LEARNING_WRITE"

    # Warnings (non-fatal)
    W_MALFORMED_ROW = "W_MALFORMED_ROW"
    W_LEARNING_DEGRADED = "W_LEARNING_DEGRADED"
    W_LARGE_FILE = "W_LARGE_FILE"


class CellGuardError(BaseModel):
    """Structured error with code, message, and cell/session context.

    Note: this is a Pydantic model (data structure), not a Python Exception.
    Use ``CellGuardException`` to raise it.
    """

    code: ErrorCode
    message: str
    stage: str | None = None
    recoverable: bool = False
    session_id: str | None = None
    row: int | None = None
    column: str | None = None


class CellGuardException(Exception):
    """Raisable exception wrapping a ``CellGuardError`` data model.

    Carries the structured error as ``.error``; the convenience properties
    delegate to it.
    """

    def __init__(self, **kwargs: object) -> None:
        self.error = CellGuardError(**kwargs)  # type: ignore[arg-type]
        super().__init__(self.error.message)

    @property
    def code(self) -> ErrorCode:
        return self.error.code

    @property
    def message(self) -> str:
        return self.error.message

    @property
    def stage(self) -> str | None:
        return self.error.stage

    @property
    def recoverable(self) -> bool:
        return self.error.recoverable
