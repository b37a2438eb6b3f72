"""CSV reports for a session: detected issues and applied changes."""

from __future__ import annotations

from pathlib import Path

from ingestkit_cellguard.errors import CellGuardException, ErrorCode
from ingestkit_cellguard.models import Session
from ingestkit_cellguard.reconciler import rows_to_csv

ISSUES_REPORT_HEADERS = ["Row", "Column", "Problem", "Original Value", "Suggested Fix"]
CHANGES_LOG_HEADERS = [
    "Row",
    "Column",
    "Problem",
    "Original Value",
    "Fixed Value",
    "Fixed At",
]


def report_filename(session: Session, kind: str) -> str:
    """``data.csv`` + ``issues_report`` -> ``data_issues_report.csv``."""
    return f"{Path(session.filename).stem}_{kind}.csv"


def issues_report(session: Session) -> str:
    """Every detected issue, in scan order."""
    return rows_to_csv(
        ISSUES_REPORT_HEADERS,
        (
            {
                "Row": issue.row,
                "Column": issue.column,
                "Problem": issue.problem,
                "Original Value": issue.original_value,
                "Suggested Fix": issue.suggested_fix,
            }
            for issue in session.issues
        ),
    )


def changes_log(session: Session) -> str:
    """Every applied fix, in the order it was applied.

    Raises:
        CellGuardException: ``E_NO_CHANGES`` if nothing was fixed yet.
    """
    if not session.fixed_issues:
        raise CellGuardException(
            code=ErrorCode.E_NO_CHANGES,
            message="No changes to report",
            stage="report",
            recoverable=True,
            session_id=session.session_id,
        )
    return rows_to_csv(
        CHANGES_LOG_HEADERS,
        (
            {
                "Row": change.row,
                "Column": change.column,
                "Problem": change.problem,
                "Original Value": change.original_value,
                "Fixed Value": change.applied_fix,
                "Fixed At": change.fixed_at.isoformat(),
            }
            for change in session.fixed_issues
        ),
    )
