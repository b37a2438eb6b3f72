"""Boundary protocols for the ingestkit-cellguard pipeline.

Defines the structural-subtyping interfaces the core consumes: tabular
sources, session persistence, learning persistence, and the progress sink.
All protocols are ``@runtime_checkable`` so callers can optionally verify
conformance with ``isinstance`` checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ingestkit_cellguard.models import (
        EnhancedSuggestion,
        LearningInsight,
        LearningStats,
        OverrideContext,
        ProblemType,
        ProgressUpdate,
        Session,
        WhitelistedCharacter,
    )


@runtime_checkable
class TabularSource(Protocol):
    """Row producer for CSV files, spreadsheets, or pre-parsed tables.

    Rows are ordered ``{header: text}`` mappings; missing cells are ``""``.
    """

    @property
    def headers(self) -> list[str]:
        """Column names in file order."""
        ...

    @property
    def estimated_rows(self) -> int | None:
        """Best-effort total data-row count, or None if unknown."""
        ...

    @property
    def malformed_rows(self) -> int:
        """Rows whose field count did not match the header so far."""
        ...

    def iter_batches(self, batch_size: int) -> Iterator[list[dict[str, str]]]:
        """Yield data rows in lists of at most *batch_size*."""
        ...


@runtime_checkable
class RawRowSource(TabularSource, Protocol):
    """A file-backed source that can replay its records as written."""

    @property
    def raw_headers(self) -> list[Any]:
        """Header cells as stored, before naming and deduplication."""
        ...

    def iter_raw_rows(self) -> Iterator[tuple[int | None, list[Any]]]:
        """Yield ``(row_index, values)``; blank records carry a None index."""
        ...


@runtime_checkable
class SessionStore(Protocol):
    """Process-lifetime session persistence keyed by opaque id."""

    def get(self, session_id: str) -> Session | None:
        ...

    def set(self, session: Session) -> None:
        ...

    def delete(self, session_id: str) -> None:
        ...

    def list_ids(self) -> list[str]:
        ...


@runtime_checkable
class ProgressSink(Protocol):
    """Receives progress checkpoints; read back by polling."""

    def update(self, session_id: str, percent: int, message: str = "") -> None:
        """Record progress.  Percent never decreases for a session."""
        ...

    def get(self, session_id: str) -> ProgressUpdate | None:
        ...


@runtime_checkable
class LearningStore(Protocol):
    """Persistent override history plus derived suggestions and insights."""

    def store_override_pattern(
        self,
        original: str,
        suggested_fix: str,
        user_override: str,
        context: OverrideContext,
    ) -> None:
        """Upsert an override; repeat occurrences increment its frequency."""
        ...

    def get_enhanced_suggestion(
        self,
        original: str,
        column_name: str,
        problem_type: ProblemType,
        default_suggestion: str,
    ) -> EnhancedSuggestion:
        ...

    def analyze_patterns(self) -> list[LearningInsight]:
        ...

    def get_learning_stats(self) -> LearningStats:
        ...

    def train(self) -> list[LearningInsight]:
        """Refresh derived mapping confidences; return current insights."""
        ...

    def export_data(self) -> dict[str, list[dict[str, Any]]]:
        ...

    def load_whitelist(self) -> list[WhitelistedCharacter]:
        ...

    def add_whitelisted_character(self, char: str, description: str = "") -> None:
        ...
