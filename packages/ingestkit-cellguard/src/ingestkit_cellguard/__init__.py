"""ingestkit-cellguard -- cell-level validation and learned fixes for tabular files.

Public API re-exports for convenient access.
"""

from ingestkit_cellguard.accent_fold import ACCENT_FOLD_TABLE, ascii_variants, fold_text
from ingestkit_cellguard.addressing import cell_reference, column_letters
from ingestkit_cellguard.analyzer import CellAnalyzer
from ingestkit_cellguard.backends import (
    InMemoryProgressSink,
    InMemorySessionStore,
    SQLiteLearningStore,
)
from ingestkit_cellguard.classifier import CharacterClassifier
from ingestkit_cellguard.config import CellGuardConfig
from ingestkit_cellguard.errors import CellGuardError, CellGuardException, ErrorCode
from ingestkit_cellguard.issue_store import IssueStore
from ingestkit_cellguard.models import (
    AnalysisResult,
    CellPolicy,
    EnhancedSuggestion,
    FixedIssue,
    Issue,
    IssueStatus,
    LearningInsight,
    LearningStats,
    ProblemType,
    ScanResult,
    Session,
)
from ingestkit_cellguard.protocols import (
    LearningStore,
    ProgressSink,
    RawRowSource,
    SessionStore,
    TabularSource,
)
from ingestkit_cellguard.reconciler import FixReconciler
from ingestkit_cellguard.router import CellGuardRouter
from ingestkit_cellguard.scanner import StreamingRowScanner
from ingestkit_cellguard.sources import CSVFileSource, ExcelFileSource, InMemoryTableSource
from ingestkit_cellguard.whitelist import WhitelistCache

__all__ = [
    "CellGuardRouter",
    "CellGuardConfig",
    "ErrorCode",
    "CellGuardError",
    "CellGuardException",
    # Core engine
    "CharacterClassifier",
    "CellAnalyzer",
    "StreamingRowScanner",
    "FixReconciler",
    "IssueStore",
    "WhitelistCache",
    "ACCENT_FOLD_TABLE",
    "ascii_variants",
    "fold_text",
    "cell_reference",
    "column_letters",
    # Sources
    "CSVFileSource",
    "ExcelFileSource",
    "InMemoryTableSource",
    # Models
    "AnalysisResult",
    "CellPolicy",
    "EnhancedSuggestion",
    "FixedIssue",
    "Issue",
    "IssueStatus",
    "LearningInsight",
    "LearningStats",
    "ProblemType",
    "ScanResult",
    "Session",
    # Protocols
    "TabularSource",
    "RawRowSource",
    "SessionStore",
    "LearningStore",
    "ProgressSink",
    # Backends
    "InMemorySessionStore",
    "InMemoryProgressSink",
    "SQLiteLearningStore",
]
