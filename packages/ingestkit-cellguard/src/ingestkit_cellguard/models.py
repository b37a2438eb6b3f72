"""Pydantic data models and enumerations for ingestkit-cellguard.

Defines the cell-level issue model, per-session records, scan results,
the learning-store records (override patterns, character mappings,
whitelisted characters), and the result shapes returned by the router.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from ingestkit_cellguard.errors import CellGuardError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ProblemType(str, Enum):
    """Which constraint(s) a flagged cell violates.

    Carried as structured data on every issue and learning record; never
    re-derived from the human-readable problem text.
    """

    INVALID_CHARACTERS = "invalid_characters"
    LENGTH_VIOLATION = "length_violation"
    INVALID_CHARACTERS_AND_LENGTH = "invalid_characters_and_length"

    @classmethod
    def from_flags(cls, invalid_chars: bool, too_long: bool) -> ProblemType | None:
        if invalid_chars and too_long:
            return cls.INVALID_CHARACTERS_AND_LENGTH
        if invalid_chars:
            return cls.INVALID_CHARACTERS
        if too_long:
            return cls.LENGTH_VIOLATION
        return None

    @property
    def has_invalid_characters(self) -> bool:
        return self is not ProblemType.LENGTH_VIOLATION

    @property
    def has_length_violation(self) -> bool:
        return self is not ProblemType.INVALID_CHARACTERS


class IssueStatus(str, Enum):
    """Lifecycle state of a detected issue within a session."""

    OPEN = "open"
    FIXED = "fixed"
    DISMISSED = "dismissed"


class SourceFormat(str, Enum):
    """Tabular formats accepted for analysis."""

    CSV = "csv"
    XLSX = "xlsx"


class ScanMode(str, Enum):
    """Which scanner path walked the source."""

    STREAMING = "streaming"
    IN_MEMORY = "in_memory"


class InsightType(str, Enum):
    """Families of learned patterns reported by ``analyze_patterns``."""

    EXACT_VALUE_MATCH = "exact_value_match"
    CHARACTER_MAPPING = "character_mapping"
    CHARACTER_SEQUENCE = "character_sequence"
    COLUMN_SPECIFIC = "column_specific"


# ---------------------------------------------------------------------------
# Analysis models
# ---------------------------------------------------------------------------


class CellPolicy(BaseModel):
    """Character-validity policy applied to every cell of a scan."""

    allow_diacritics: bool = True
    whitelist: frozenset[str] = frozenset()
    ignore_whitelist: bool = False


class InvalidCharacter(BaseModel):
    """One disallowed character found in a cell."""

    char: str
    position: int
    code_point: int
    replacement: str = ""
    description: str


class Issue(BaseModel):
    """A detected validity or length problem on a single cell.

    ``row_index`` is the 0-based data-row index; ``row`` is the displayed
    spreadsheet row (header row + 1-based display, i.e. ``row_index + 2``).
    """

    id: str
    cell_reference: str
    row: int
    row_index: int
    column: str
    column_index: int
    original_value: str
    suggested_fix: str
    default_fix: str
    problem: str
    problem_type: ProblemType
    invalid_characters: list[InvalidCharacter] = []
    has_invalid_chars: bool = False
    has_length_issue: bool = False
    length: int = 0
    fixed: bool = False
    status: IssueStatus = IssueStatus.OPEN
    confidence: float | None = None
    learned: bool = False
    suggestion_reason: str | None = None


class FixedIssue(Issue):
    """Snapshot of an issue at the moment it was resolved."""

    applied_fix: str
    overridden: bool = False
    fixed_at: datetime = Field(default_factory=utc_now)
    change_id: str


class BatchResult(BaseModel):
    """Issues found in one batch plus the progress checkpoint after it."""

    batch_index: int
    rows_in_batch: int
    rows_processed: int
    issues: list[Issue]
    percent: int
    is_final: bool = False


class ScanResult(BaseModel):
    """Aggregate output of a complete scan."""

    issues: list[Issue]
    total_rows: int
    headers: list[str]
    malformed_rows: int = 0
    mode: ScanMode = ScanMode.STREAMING
    duration_seconds: float = 0.0


class Session(BaseModel):
    """Server-side record of one uploaded file's analysis and fix state."""

    session_id: str
    filename: str
    file_path: str
    source_format: SourceFormat
    headers: list[str] = []
    total_rows: int = 0
    total_columns: int = 0
    policy: CellPolicy = CellPolicy()
    max_cell_length: int = 1_000_000
    scan_mode: ScanMode = ScanMode.STREAMING
    issues: list[Issue] = []
    fixed_issues: list[FixedIssue] = []
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def issue_count(self) -> int:
        return len(self.issues)

    @property
    def fixed_count(self) -> int:
        return len(self.fixed_issues)


class AnalysisResult(BaseModel):
    """Final result of ``CellGuardRouter.analyze()``."""

    session_id: str
    filename: str
    total_rows: int = 0
    total_columns: int = 0
    headers: list[str] = []
    issues: list[Issue] = []
    scan_mode: ScanMode | None = None
    malformed_rows: int = 0
    errors: list[str] = []
    warnings: list[str] = []
    error_details: list[CellGuardError] = []
    processing_time_seconds: float = 0.0

    @property
    def issue_count(self) -> int:
        return len(self.issues)


class RouterStatus(BaseModel):
    """Point-in-time snapshot of router state."""

    active_sessions: int
    open_issues: int
    fixed_issues: int
    whitelisted_characters: int
    learning_enabled: bool
    session_retention_hours: float


class ProgressUpdate(BaseModel):
    """Latest progress checkpoint for a session."""

    session_id: str
    percent: int
    message: str = ""
    updated_at: datetime = Field(default_factory=utc_now)


# ---------------------------------------------------------------------------
# Learning models
# ---------------------------------------------------------------------------


class OverrideContext(BaseModel):
    """Where an override happened."""

    column_name: str
    problem_type: ProblemType
    column_type: str | None = None


class OverridePattern(BaseModel):
    """A persisted (original -> user override) pair and its derived metadata."""

    original_value: str
    suggested_fix: str
    user_override: str
    column_name: str
    column_type: str = "text"
    problem_type: ProblemType
    character_pattern: str = ""
    language_context: str = "unknown"
    frequency_count: int = 1
    first_seen: datetime = Field(default_factory=utc_now)
    last_seen: datetime = Field(default_factory=utc_now)


class CharacterMapping(BaseModel):
    """Single-character substitution rule learned from overrides."""

    from_char: str
    to_char: str
    char_type: str
    usage_count: int = 1
    confidence_score: float = 0.2


class WhitelistedCharacter(BaseModel):
    """A character a user marked as "not an issue"."""

    char: str
    description: str = ""
    added_at: datetime = Field(default_factory=utc_now)


class EnhancedSuggestion(BaseModel):
    """Suggestion returned by ``get_enhanced_suggestion``."""

    suggestion: str
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str
    learned: bool = False


class LearningInsight(BaseModel):
    """One aggregated pattern mined from the override history."""

    type: InsightType
    pattern: str
    suggestion: str
    confidence: float = Field(ge=0.0, le=1.0)
    usage_count: int
    examples: list[str] = []
    column_name: str | None = None
    problem_type: ProblemType | None = None
    fix_variety: int | None = None
    sample_column: str | None = None


class ProblemTypeCount(BaseModel):
    problem_type: ProblemType
    count: int


class LearningStats(BaseModel):
    """Summary of the learning store contents."""

    total_patterns: int = 0
    unique_columns: int = 0
    unique_problem_types: int = 0
    total_overrides: int = 0
    average_frequency: float = 0.0
    last_override_at: datetime | None = None
    problem_breakdown: list[ProblemTypeCount] = []
