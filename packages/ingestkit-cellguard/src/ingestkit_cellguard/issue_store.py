"""Per-session issue bookkeeping.

``IssueStore`` wraps a ``SessionStore`` and owns the fix / dismiss state
machine for issues:

    OPEN --fix--> FIXED
    OPEN --dismiss--> DISMISSED

Every fix appends exactly one ``FixedIssue`` to the session.  Operations on
the same session are serialized by a per-session lock; different sessions
never contend.
"""

from __future__ import annotations

import logging
import threading
import uuid

from ingestkit_cellguard.errors import CellGuardException, ErrorCode
from ingestkit_cellguard.models import FixedIssue, Issue, IssueStatus, Session, utc_now
from ingestkit_cellguard.protocols import SessionStore

logger = logging.getLogger("ingestkit_cellguard")

FixKey = tuple[int, str]


class IssueStore:
    """Issue lookup and resolution on top of an injected session store."""

    def __init__(self, session_store: SessionStore) -> None:
        self._sessions = session_store
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def lock_for(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[session_id] = lock
            return lock

    def save(self, session: Session) -> None:
        with self.lock_for(session.session_id):
            self._sessions.set(session)

    def require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise CellGuardException(
                code=ErrorCode.E_SESSION_NOT_FOUND,
                message=f"Session not found: {session_id}",
                stage="session",
                session_id=session_id,
            )
        return session

    def discard(self, session_id: str) -> None:
        self._sessions.delete(session_id)
        with self._locks_guard:
            self._locks.pop(session_id, None)

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    def get_issue(self, session_id: str, issue_id: str) -> Issue:
        return self._find(self.require(session_id), issue_id)

    def fix_issue(
        self,
        session_id: str,
        issue_id: str,
        override: str | None = None,
    ) -> FixedIssue:
        """Mark one issue fixed with its suggested fix or *override*.

        Raises:
            CellGuardException: ``E_SESSION_NOT_FOUND``,
                ``E_ISSUE_NOT_FOUND``, ``E_ISSUE_ALREADY_FIXED`` or
                ``E_ISSUE_DISMISSED``.
        """
        with self.lock_for(session_id):
            session = self.require(session_id)
            issue = self._find(session, issue_id)
            if issue.status is IssueStatus.FIXED:
                raise CellGuardException(
                    code=ErrorCode.E_ISSUE_ALREADY_FIXED,
                    message=f"Issue {issue_id} is already fixed",
                    stage="fix",
                    recoverable=True,
                    session_id=session_id,
                    row=issue.row,
                    column=issue.column,
                )
            if issue.status is IssueStatus.DISMISSED:
                raise CellGuardException(
                    code=ErrorCode.E_ISSUE_DISMISSED,
                    message=f"Issue {issue_id} was dismissed",
                    stage="fix",
                    recoverable=True,
                    session_id=session_id,
                    row=issue.row,
                    column=issue.column,
                )
            fixed = self._resolve(session, issue, override)
            self._sessions.set(session)
        return fixed

    def fix_all(self, session_id: str) -> list[FixedIssue]:
        """Fix every open issue with its suggested fix.

        Raises:
            CellGuardException: ``E_NO_ISSUES_TO_FIX`` when nothing is open.
        """
        with self.lock_for(session_id):
            session = self.require(session_id)
            open_issues = [i for i in session.issues if i.status is IssueStatus.OPEN]
            if not open_issues:
                raise CellGuardException(
                    code=ErrorCode.E_NO_ISSUES_TO_FIX,
                    message="No open issues to fix",
                    stage="fix",
                    recoverable=True,
                    session_id=session_id,
                )
            fixed = [self._resolve(session, issue, None) for issue in open_issues]
            self._sessions.set(session)
        logger.info("Fixed %d issues in session %s", len(fixed), session_id)
        return fixed

    def dismiss_issue(self, session_id: str, issue_id: str) -> Issue:
        """Mark an issue "not an issue".  Dismissing twice is a no-op."""
        with self.lock_for(session_id):
            session = self.require(session_id)
            issue = self._find(session, issue_id)
            if issue.status is IssueStatus.FIXED:
                raise CellGuardException(
                    code=ErrorCode.E_ISSUE_ALREADY_FIXED,
                    message=f"Issue {issue_id} is already fixed",
                    stage="dismiss",
                    recoverable=True,
                    session_id=session_id,
                    row=issue.row,
                    column=issue.column,
                )
            issue.status = IssueStatus.DISMISSED
            self._sessions.set(session)
        return issue

    def fix_map(self, session_id: str) -> dict[FixKey, str]:
        """Applied fixes keyed by ``(row_index, column_name)``."""
        session = self.require(session_id)
        return {(f.row_index, f.column): f.applied_fix for f in session.fixed_issues}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _find(session: Session, issue_id: str) -> Issue:
        for issue in session.issues:
            if issue.id == issue_id:
                return issue
        raise CellGuardException(
            code=ErrorCode.E_ISSUE_NOT_FOUND,
            message=f"Issue not found: {issue_id}",
            stage="session",
            session_id=session.session_id,
        )

    @staticmethod
    def _resolve(session: Session, issue: Issue, override: str | None) -> FixedIssue:
        applied = issue.suggested_fix if override is None else override
        issue.fixed = True
        issue.status = IssueStatus.FIXED
        fixed = FixedIssue(
            **issue.model_dump(),
            applied_fix=applied,
            overridden=override is not None and override != issue.suggested_fix,
            fixed_at=utc_now(),
            change_id=uuid.uuid4().hex,
        )
        session.fixed_issues.append(fixed)
        return fixed
