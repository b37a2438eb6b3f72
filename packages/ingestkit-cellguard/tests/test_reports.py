"""Tests for the issues report and changes log."""

from __future__ import annotations

import pytest

from ingestkit_cellguard.analyzer import CellAnalyzer
from ingestkit_cellguard.errors import CellGuardException, ErrorCode
from ingestkit_cellguard.issue_store import IssueStore
from ingestkit_cellguard.models import CellPolicy, Session, SourceFormat
from ingestkit_cellguard.reports import (
    CHANGES_LOG_HEADERS,
    ISSUES_REPORT_HEADERS,
    changes_log,
    issues_report,
    report_filename,
)


@pytest.fixture()
def issue_store(session_store) -> IssueStore:
    analyzer = CellAnalyzer()
    policy = CellPolicy(allow_diacritics=False)
    store = IssueStore(session_store)
    store.save(
        Session(
            session_id="s1",
            filename="customers.csv",
            file_path="/tmp/customers.csv",
            source_format=SourceFormat.CSV,
            issues=[
                analyzer.analyze("café", 100, policy, row_index=0, column="Name"),
                analyzer.analyze("Zoë", 100, policy, row_index=3, column="City", column_index=1),
            ],
        )
    )
    return store


@pytest.mark.unit
class TestReports:
    def test_filename(self, issue_store):
        session = issue_store.require("s1")
        assert report_filename(session, "issues_report") == "customers_issues_report.csv"

    def test_issues_report(self, issue_store):
        lines = issues_report(issue_store.require("s1")).splitlines()

        assert lines[0] == ",".join(ISSUES_REPORT_HEADERS)
        assert lines[1] == "2,Name,Invalid characters: 'é' (Accented character (é → e)),café,cafe"
        assert lines[2].startswith("5,City,")
        assert len(lines) == 3

    def test_changes_log_requires_changes(self, issue_store):
        with pytest.raises(CellGuardException) as info:
            changes_log(issue_store.require("s1"))
        assert info.value.code is ErrorCode.E_NO_CHANGES

    def test_changes_log_in_fix_order(self, issue_store):
        issue_store.fix_issue("s1", "3-1", override="Zoe Q")
        issue_store.fix_issue("s1", "0-0")

        lines = changes_log(issue_store.require("s1")).splitlines()

        assert lines[0] == ",".join(CHANGES_LOG_HEADERS)
        assert lines[1].startswith("5,City,")
        assert ",Zoë,Zoe Q," in lines[1]
        assert ",café,cafe," in lines[2]
