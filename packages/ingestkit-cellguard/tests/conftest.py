"""Shared test fixtures for ingestkit-cellguard tests.

Provides mock backends that satisfy the LearningStore and ProgressSink
protocols, config and policy fixtures, and file factories for CSV and
.xlsx inputs.
"""

from __future__ import annotations

import pathlib
from typing import Any, Callable

import openpyxl
import pytest

from ingestkit_cellguard.backends import InMemorySessionStore, SQLiteLearningStore
from ingestkit_cellguard.config import CellGuardConfig
from ingestkit_cellguard.errors import CellGuardException, ErrorCode
from ingestkit_cellguard.models import (
    CellPolicy,
    EnhancedSuggestion,
    LearningInsight,
    LearningStats,
    OverrideContext,
    ProblemType,
    ProgressUpdate,
    WhitelistedCharacter,
)


# ---------------------------------------------------------------------------
# Config / policy fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def config() -> CellGuardConfig:
    """Return a CellGuardConfig with all defaults."""
    return CellGuardConfig()


@pytest.fixture()
def strict_policy() -> CellPolicy:
    """Diacritics disallowed, empty whitelist."""
    return CellPolicy(allow_diacritics=False)


@pytest.fixture()
def lenient_policy() -> CellPolicy:
    """Diacritics allowed, empty whitelist."""
    return CellPolicy(allow_diacritics=True)


# ---------------------------------------------------------------------------
# Mock Backends
# ---------------------------------------------------------------------------


class MockProgressSink:
    """Records every update in order; ``get`` returns the latest."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, int, str]] = []

    def update(self, session_id: str, percent: int, message: str = "") -> None:
        self.calls.append((session_id, percent, message))

    def get(self, session_id: str) -> ProgressUpdate | None:
        for sid, percent, message in reversed(self.calls):
            if sid == session_id:
                return ProgressUpdate(session_id=sid, percent=percent, message=message)
        return None

    def percents(self, session_id: str) -> list[int]:
        return [p for sid, p, _ in self.calls if sid == session_id]


class FailingLearningStore:
    """Learning store whose every call raises a learning-backend error."""

    def __init__(self) -> None:
        self.calls = 0

    def _fail(self, code: ErrorCode = ErrorCode.E_BACKEND_LEARNING_READ) -> None:
        self.calls += 1
        raise CellGuardException(code=code, message="database is locked", stage="learning")

    def store_override_pattern(
        self,
        original: str,
        suggested_fix: str,
        user_override: str,
        context: OverrideContext,
    ) -> None:
        self._fail(ErrorCode.E_BACKEND_LEARNING_WRITE)

    def get_enhanced_suggestion(
        self,
        original: str,
        column_name: str,
        problem_type: ProblemType,
        default_suggestion: str,
    ) -> EnhancedSuggestion:
        self._fail()

    def analyze_patterns(self) -> list[LearningInsight]:
        self._fail()

    def get_learning_stats(self) -> LearningStats:
        self._fail()

    def train(self) -> list[LearningInsight]:
        self._fail(ErrorCode.E_BACKEND_LEARNING_WRITE)

    def export_data(self) -> dict[str, list[dict[str, Any]]]:
        self._fail()

    def load_whitelist(self) -> list[WhitelistedCharacter]:
        return []

    def add_whitelisted_character(self, char: str, description: str = "") -> None:
        self._fail(ErrorCode.E_BACKEND_LEARNING_WRITE)


@pytest.fixture()
def progress_sink() -> MockProgressSink:
    return MockProgressSink()


@pytest.fixture()
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture()
def learning_store() -> SQLiteLearningStore:
    store = SQLiteLearningStore(":memory:")
    yield store
    store.close()


@pytest.fixture()
def failing_learning_store() -> FailingLearningStore:
    return FailingLearningStore()


# ---------------------------------------------------------------------------
# File factories
# ---------------------------------------------------------------------------


@pytest.fixture()
def write_csv(tmp_path: pathlib.Path) -> Callable[..., pathlib.Path]:
    """Write raw CSV text to a file and return its path."""

    def _write(text: str, name: str = "data.csv", encoding: str = "utf-8") -> pathlib.Path:
        path = tmp_path / name
        path.write_bytes(text.encode(encoding))
        return path

    return _write


@pytest.fixture()
def write_xlsx(tmp_path: pathlib.Path) -> Callable[..., pathlib.Path]:
    """Write rows (first row = header) to a single-sheet .xlsx file."""

    def _write(rows: list[list[Any]], name: str = "data.xlsx") -> pathlib.Path:
        path = tmp_path / name
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Sheet1"
        for row in rows:
            ws.append(row)
        wb.save(path)
        return path

    return _write
