"""CellGuardRouter -- orchestrator and public API for ingestkit-cellguard.

Drives one uploaded file through the pipeline:

1. Pre-flight checks via :class:`CellGuardSecurityScanner`.
2. Open a source (streaming or in-memory) and scan it with
   :class:`StreamingRowScanner`, reporting progress under the session id.
3. Upgrade default fixes with learned suggestions from the
   :class:`LearningStore` (degrades to defaults if the store fails).
4. Persist the session; the caller then fixes, overrides, or dismisses
   issues and exports corrected output.

``analyze`` is **fail-closed**: any input or I/O error produces an
``AnalysisResult`` carrying the error and zero issues.  Session operations
raise ``CellGuardException``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
import uuid
from datetime import datetime, timedelta

from ingestkit_cellguard.analyzer import CellAnalyzer
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
    OverrideContext,
    ProgressUpdate,
    RouterStatus,
    Session,
    SourceFormat,
    utc_now,
)
from ingestkit_cellguard.protocols import LearningStore, ProgressSink, SessionStore
from ingestkit_cellguard.reconciler import FixReconciler
from ingestkit_cellguard.reports import changes_log, issues_report
from ingestkit_cellguard.scanner import StreamingRowScanner
from ingestkit_cellguard.security import CellGuardSecurityScanner
from ingestkit_cellguard.sources import (
    CSVFileSource,
    ExcelFileSource,
    open_source,
    source_format_for,
)
from ingestkit_cellguard.whitelist import WhitelistCache

logger = logging.getLogger("ingestkit_cellguard")


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------


class CellGuardRouter:
    """Orchestrator for cell analysis, fix reconciliation, and learning.

    Parameters
    ----------
    session_store:
        Where sessions live between calls.
    learning_store:
        Override history and whitelist persistence.  Learning is disabled
        when *None* or when ``config.enable_learning`` is False.
    progress_sink:
        Receives progress checkpoints keyed by session id.
    config:
        Pipeline configuration.  Uses defaults when *None*.
    """

    def __init__(
        self,
        session_store: SessionStore,
        learning_store: LearningStore | None = None,
        progress_sink: ProgressSink | None = None,
        config: CellGuardConfig | None = None,
    ) -> None:
        self._config = config or CellGuardConfig()
        self._sessions = session_store
        self._learning = learning_store if self._config.enable_learning else None
        self._progress = progress_sink

        self._issues = IssueStore(session_store)
        self._security_scanner = CellGuardSecurityScanner(self._config)
        self._scanner = StreamingRowScanner(
            CellAnalyzer(max_listed_chars=self._config.max_listed_invalid_chars),
            self._config,
        )
        self._reconciler = FixReconciler(batch_size=self._config.batch_size)

        self._whitelist = WhitelistCache()
        if learning_store is not None:
            try:
                self._whitelist = WhitelistCache(learning_store)
            except CellGuardException as exc:
                logger.warning("Whitelist unavailable, starting empty: %s", exc.message)

    @property
    def whitelist(self) -> WhitelistCache:
        return self._whitelist

    @property
    def learning_enabled(self) -> bool:
        return self._learning is not None

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    @staticmethod
    def new_session_id() -> str:
        """Allocate a session id before any work starts."""
        return str(uuid.uuid4())

    def analyze(
        self,
        file_path: str,
        session_id: str | None = None,
        filename: str | None = None,
        allow_diacritics: bool | None = None,
        ignore_whitelist: bool = False,
    ) -> AnalysisResult:
        """Analyze one CSV or Excel file and open a session for it.

        Parameters
        ----------
        file_path:
            Path of the uploaded file.
        session_id:
            Pre-allocated id (see :meth:`new_session_id`); progress is
            reported under it from the start.  Allocated when *None*.
        filename:
            User-facing file name; defaults to the basename of *file_path*.
        allow_diacritics:
            Overrides ``config.allow_diacritics`` for this file.
        ignore_whitelist:
            Flag whitelisted characters too.

        Returns
        -------
        AnalysisResult
            Issues and totals, or a fail-closed result with ``errors``.
        """
        overall_start = time.monotonic()
        config = self._config
        session_id = session_id or self.new_session_id()
        filename = filename or os.path.basename(file_path)
        self._report_progress(session_id, 0, "Starting analysis")

        # ----------------------------------------------------------
        # Step 1: Pre-flight checks
        # ----------------------------------------------------------
        preflight = self._security_scanner.scan(file_path, filename)
        fatal = [e for e in preflight if e.code.value.startswith("E_")]
        warnings = [e for e in preflight if e.code.value.startswith("W_")]
        if fatal:
            return self._fail_closed(session_id, filename, fatal, overall_start)

        source_format = source_format_for(filename) or source_format_for(file_path)

        # ----------------------------------------------------------
        # Step 2: Scan
        # ----------------------------------------------------------
        policy = CellPolicy(
            allow_diacritics=(
                config.allow_diacritics if allow_diacritics is None else allow_diacritics
            ),
            whitelist=self._whitelist.chars,
            ignore_whitelist=ignore_whitelist,
        )
        try:
            source, mode = open_source(file_path, config, source_format)
            scan = self._scanner.scan(
                source,
                policy,
                config.max_cell_length,
                on_progress=lambda pct: self._report_progress(
                    session_id, pct, "Analyzing rows"
                ),
                mode=mode,
            )
        except CellGuardException as exc:
            exc.error.session_id = session_id
            return self._fail_closed(session_id, filename, [exc.error], overall_start)

        if scan.malformed_rows:
            warnings.append(
                CellGuardError(
                    code=ErrorCode.W_MALFORMED_ROW,
                    message=(
                        f"{scan.malformed_rows} rows had more fields than the "
                        "header; extra fields were ignored"
                    ),
                    stage="scan",
                    recoverable=True,
                    session_id=session_id,
                )
            )

        # ----------------------------------------------------------
        # Step 3: Learned suggestions
        # ----------------------------------------------------------
        degraded = self._apply_learned_suggestions(scan.issues)
        if degraded is not None:
            warnings.append(degraded)

        # ----------------------------------------------------------
        # Step 4: Persist session
        # ----------------------------------------------------------
        session = Session(
            session_id=session_id,
            filename=filename,
            file_path=file_path,
            source_format=source_format,
            headers=scan.headers,
            total_rows=scan.total_rows,
            total_columns=len(scan.headers),
            policy=policy,
            max_cell_length=config.max_cell_length,
            scan_mode=scan.mode,
            issues=scan.issues,
        )
        self._issues.save(session)
        self._report_progress(session_id, 100, "Analysis complete")

        elapsed = time.monotonic() - overall_start
        logger.info(
            "Analyzed %s: session=%s rows=%d columns=%d issues=%d mode=%s time=%.3fs",
            filename,
            session_id,
            scan.total_rows,
            len(scan.headers),
            len(scan.issues),
            scan.mode.value,
            elapsed,
        )
        return AnalysisResult(
            session_id=session_id,
            filename=filename,
            total_rows=scan.total_rows,
            total_columns=len(scan.headers),
            headers=scan.headers,
            issues=scan.issues,
            scan_mode=scan.mode,
            malformed_rows=scan.malformed_rows,
            warnings=[w.code.value for w in warnings],
            error_details=warnings,
            processing_time_seconds=elapsed,
        )

    async def aanalyze(
        self,
        file_path: str,
        session_id: str | None = None,
        filename: str | None = None,
        allow_diacritics: bool | None = None,
        ignore_whitelist: bool = False,
    ) -> AnalysisResult:
        """Async wrapper around :meth:`analyze`.

        Offloads the synchronous ``analyze()`` call to a thread via
        ``asyncio.to_thread()``.
        """
        return await asyncio.to_thread(
            self.analyze,
            file_path,
            session_id,
            filename,
            allow_diacritics,
            ignore_whitelist,
        )

    def get_progress(self, session_id: str) -> ProgressUpdate | None:
        if self._progress is None:
            return None
        return self._progress.get(session_id)

    # ------------------------------------------------------------------
    # Issue resolution
    # ------------------------------------------------------------------

    def fix_issue(
        self,
        session_id: str,
        issue_id: str,
        override: str | None = None,
    ) -> FixedIssue:
        """Apply the suggested fix, or *override*, to one issue.

        Whenever the applied value differs from the default fix, the pair is
        recorded in the learning store.  A learning-store failure is logged
        and does not undo the fix.
        """
        fixed = self._issues.fix_issue(session_id, issue_id, override)

        # PII-safe logging
        if self._config.log_sample_data:
            logger.debug(
                "Fixed %s in session %s: %r -> %r",
                fixed.cell_reference,
                session_id,
                fixed.original_value,
                fixed.applied_fix,
            )

        if self._learning is not None and fixed.applied_fix != fixed.default_fix:
            try:
                self._learning.store_override_pattern(
                    fixed.original_value,
                    fixed.default_fix,
                    fixed.applied_fix,
                    OverrideContext(
                        column_name=fixed.column,
                        problem_type=fixed.problem_type,
                    ),
                )
            except CellGuardException as exc:
                logger.warning(
                    "%s: override not recorded for session %s: %s",
                    ErrorCode.W_LEARNING_DEGRADED.value,
                    session_id,
                    exc.message,
                )
        return fixed

    def fix_all(self, session_id: str) -> list[FixedIssue]:
        """Apply the suggested fix to every open issue."""
        return self._issues.fix_all(session_id)

    def dismiss_issue(self, session_id: str, issue_id: str) -> Issue:
        """Mark an issue "not an issue" and whitelist its characters.

        Control and zero-width characters are never whitelisted.  If the
        learning store rejects the write, the characters are whitelisted
        for this process only.
        """
        issue = self._issues.dismiss_issue(session_id, issue_id)
        chars = [(c.char, c.description) for c in issue.invalid_characters]
        try:
            added = self._whitelist.add_many(chars)
        except CellGuardException as exc:
            logger.warning(
                "%s: whitelist not persisted: %s",
                ErrorCode.W_LEARNING_DEGRADED.value,
                exc.message,
            )
            added = self._whitelist.add_many(chars, persist=False)
        if added:
            logger.info(
                "Session %s: whitelisted %d characters from issue %s",
                session_id,
                len(added),
                issue_id,
            )
        return issue

    # ------------------------------------------------------------------
    # Sessions and output
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Session:
        return self._issues.require(session_id)

    def export_fixed(self, session_id: str, out_path: str) -> int:
        """Write the corrected file; return the records written after the header.

        The original file is replayed as written and only fixed cells
        change.  ``.xlsx`` / ``.xlsm`` output paths produce a workbook,
        anything else CSV.

        Raises:
            CellGuardException: ``E_SESSION_NOT_FOUND`` or
                ``E_SOURCE_FILE_MISSING``.
        """
        session = self._issues.require(session_id)
        if not os.path.isfile(session.file_path):
            raise CellGuardException(
                code=ErrorCode.E_SOURCE_FILE_MISSING,
                message=f"Original file for session {session_id} is no longer available",
                stage="export",
                session_id=session_id,
            )
        if session.source_format is SourceFormat.XLSX:
            source = ExcelFileSource(session.file_path)
        else:
            source = CSVFileSource(session.file_path)
        fix_map = self._issues.fix_map(session_id)

        if os.path.splitext(out_path)[1].lower() in (".xlsx", ".xlsm"):
            return self._reconciler.write_xlsx(source, fix_map, out_path)
        return self._reconciler.write_csv(source, fix_map, out_path)

    def issues_report(self, session_id: str) -> str:
        return issues_report(self._issues.require(session_id))

    def changes_log(self, session_id: str) -> str:
        return changes_log(self._issues.require(session_id))

    def purge_expired_sessions(self, now: datetime | None = None) -> list[str]:
        """Drop sessions older than the retention window with their files."""
        cutoff = (now or utc_now()) - timedelta(
            hours=self._config.session_retention_hours
        )
        purged: list[str] = []
        for session_id in self._sessions.list_ids():
            session = self._sessions.get(session_id)
            if session is None or session.created_at >= cutoff:
                continue
            self._issues.discard(session_id)
            try:
                os.remove(session.file_path)
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.warning(
                    "Could not remove file for expired session %s: %s",
                    session_id,
                    exc,
                )
            purged.append(session_id)
        if purged:
            logger.info("Purged %d expired sessions", len(purged))
        return purged

    def status(self) -> RouterStatus:
        open_issues = 0
        fixed_issues = 0
        session_ids = self._sessions.list_ids()
        for session_id in session_ids:
            session = self._sessions.get(session_id)
            if session is None:
                continue
            open_issues += sum(1 for i in session.issues if i.status is IssueStatus.OPEN)
            fixed_issues += session.fixed_count
        return RouterStatus(
            active_sessions=len(session_ids),
            open_issues=open_issues,
            fixed_issues=fixed_issues,
            whitelisted_characters=len(self._whitelist),
            learning_enabled=self.learning_enabled,
            session_retention_hours=self._config.session_retention_hours,
        )

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def learning_stats(self) -> LearningStats:
        if self._learning is None:
            return LearningStats()
        return self._learning.get_learning_stats()

    def learning_insights(self) -> list[LearningInsight]:
        if self._learning is None:
            return []
        return self._learning.analyze_patterns()

    def train(self) -> list[LearningInsight]:
        if self._learning is None:
            return []
        return self._learning.train()

    def export_learning_data(self, out_path: str) -> dict[str, int]:
        """Write the learning tables as JSON; return row counts per table."""
        data = self._learning.export_data() if self._learning is not None else {}
        with open(out_path, "w", encoding="utf-8") as fh:
            json.dump(data, fh, ensure_ascii=False, indent=2, default=str)
        return {table: len(rows) for table, rows in data.items()}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _apply_learned_suggestions(self, issues: list[Issue]) -> CellGuardError | None:
        """Attach learned suggestions in place; return a warning if degraded."""
        if self._learning is None:
            return None
        cache: dict[tuple[str, str, str], EnhancedSuggestion] = {}
        for issue in issues:
            key = (issue.original_value, issue.column, issue.problem_type.value)
            suggestion = cache.get(key)
            if suggestion is None:
                try:
                    suggestion = self._learning.get_enhanced_suggestion(
                        issue.original_value,
                        issue.column,
                        issue.problem_type,
                        issue.default_fix,
                    )
                except CellGuardException as exc:
                    logger.warning(
                        "Learning store unavailable, using default fixes: %s",
                        exc.message,
                    )
                    return CellGuardError(
                        code=ErrorCode.W_LEARNING_DEGRADED,
                        message=f"Learned suggestions unavailable: {exc.message}",
                        stage="learning",
                        recoverable=True,
                    )
                cache[key] = suggestion
            issue.confidence = suggestion.confidence
            issue.learned = suggestion.learned
            issue.suggestion_reason = suggestion.reason
            if suggestion.learned:
                issue.suggested_fix = suggestion.suggestion
        return None

    def _report_progress(self, session_id: str, percent: int, message: str) -> None:
        if self._progress is not None:
            self._progress.update(session_id, percent, message)

    def _fail_closed(
        self,
        session_id: str,
        filename: str,
        errors: list[CellGuardError],
        start: float,
    ) -> AnalysisResult:
        for error in errors:
            logger.error(
                "Analysis of %s failed: %s: %s", filename, error.code.value, error.message
            )
        self._report_progress(session_id, 100, "Analysis failed")
        return AnalysisResult(
            session_id=session_id,
            filename=filename,
            errors=[e.code.value for e in errors],
            error_details=errors,
            processing_time_seconds=time.monotonic() - start,
        )
