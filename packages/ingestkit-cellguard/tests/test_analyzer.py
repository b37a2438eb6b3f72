"""Tests for CellAnalyzer: detection, problem text, and default fixes."""

from __future__ import annotations

import math

import pytest

from ingestkit_cellguard.analyzer import CellAnalyzer, cell_text, issue_id
from ingestkit_cellguard.models import CellPolicy, IssueStatus, ProblemType

IDEMPOTENCE_SAMPLES = [
    "café",
    "Ünïcode",
    "Straße" * 3,
    "ßßßßßß",
    "tab\there",
    "zero\u200bwidth",
    "“smart” quotes — and… dots",
    "   padded   ",
    "plain ascii",
    "€100 ™ ©",
    "中文 text",
    "x" * 30,
    "ends with space after cut ",
]


@pytest.fixture()
def analyzer() -> CellAnalyzer:
    return CellAnalyzer()


@pytest.mark.unit
class TestHelpers:
    def test_issue_id(self):
        assert issue_id(5, 2) == "5-2"

    @pytest.mark.parametrize("value", [None, "", float("nan")])
    def test_empty_cells(self, value):
        assert cell_text(value) is None

    def test_non_string(self):
        assert cell_text(42) == "42"


@pytest.mark.unit
class TestAnalyze:
    def test_clean_cell(self, analyzer, strict_policy):
        assert analyzer.analyze("Hello, world!", 100, strict_policy) is None

    @pytest.mark.parametrize("value", [None, "", math.nan])
    def test_empty_skipped(self, analyzer, strict_policy, value):
        assert analyzer.analyze(value, 1, strict_policy) is None

    def test_cafe_strict(self, analyzer, strict_policy):
        issue = analyzer.analyze("café", 1_000_000, strict_policy)

        assert issue is not None
        assert issue.suggested_fix == "cafe"
        assert issue.default_fix == "cafe"
        assert issue.problem_type is ProblemType.INVALID_CHARACTERS
        assert issue.has_invalid_chars is True
        assert issue.has_length_issue is False
        assert issue.problem == "Invalid characters: 'é' (Accented character (é → e))"
        assert issue.status is IssueStatus.OPEN
        assert issue.fixed is False
        [bad] = issue.invalid_characters
        assert (bad.char, bad.position, bad.code_point, bad.replacement) == ("é", 3, 0xE9, "e")

    def test_cafe_lenient_is_clean(self, analyzer, lenient_policy):
        assert analyzer.analyze("café", 1_000_000, lenient_policy) is None

    def test_location_fields(self, analyzer, strict_policy):
        issue = analyzer.analyze(
            "Zoë", 100, strict_policy, row_index=5, column="Name", column_index=2
        )
        assert issue.id == "5-2"
        assert issue.cell_reference == "C7"
        assert issue.row == 7
        assert issue.row_index == 5
        assert issue.column == "Name"

    def test_length_violation(self, analyzer, lenient_policy):
        value = "x" * 1_000_005
        issue = analyzer.analyze(value, 1_000_000, lenient_policy)

        assert issue.problem_type is ProblemType.LENGTH_VIOLATION
        assert issue.suggested_fix == "x" * 1_000_000
        assert issue.length == 1_000_005
        assert issue.problem == "Length exceeds 1000000 characters (1000005 chars)"

    def test_combined_problem(self, analyzer, strict_policy):
        issue = analyzer.analyze("crème brûlée", 5, strict_policy)

        assert issue.problem_type is ProblemType.INVALID_CHARACTERS_AND_LENGTH
        assert issue.problem.startswith("Invalid characters: ")
        assert "; Length exceeds 5 characters (12 chars)" in issue.problem
        assert issue.suggested_fix == "creme"

    def test_listed_characters_capped(self, analyzer, strict_policy):
        issue = analyzer.analyze("éèêëà", 100, strict_policy)
        assert len(issue.invalid_characters) == 5
        assert issue.problem.endswith(", +2 more")
        assert issue.problem.count("Accented character") == 3

    def test_control_chars_named_by_code_point(self, analyzer, lenient_policy):
        issue = analyzer.analyze("a\x00b", 100, lenient_policy)
        assert issue.suggested_fix == "ab"
        assert "'U+0000' (Control character)" in issue.problem

    def test_whitelisted_char_not_reported(self, analyzer):
        policy = CellPolicy(allow_diacritics=False, whitelist=frozenset({"ñ"}))
        assert analyzer.analyze("España", 100, policy) is None

    def test_whitelist_cannot_hide_zero_width(self, analyzer):
        policy = CellPolicy(allow_diacritics=True, whitelist=frozenset({"\u200b"}))
        issue = analyzer.analyze("a\u200bb", 100, policy)
        assert issue is not None
        assert issue.suggested_fix == "ab"

    def test_length_uses_raw_value(self, analyzer, strict_policy):
        # raw length 6 is within the limit even though the fold expands it
        issue = analyzer.analyze("ßßßßßß", 10, strict_policy)
        assert issue.problem_type is ProblemType.INVALID_CHARACTERS
        assert issue.suggested_fix == "ssssssssss"


@pytest.mark.unit
class TestFixValue:
    def test_truncation_trims_trailing_whitespace(self, analyzer, lenient_policy):
        assert analyzer.fix_value("abc   def", 5, lenient_policy) == "abc"

    def test_clean_value_unchanged(self, analyzer, strict_policy):
        assert analyzer.fix_value("fine", 10, strict_policy) == "fine"

    @pytest.mark.parametrize("value", IDEMPOTENCE_SAMPLES)
    @pytest.mark.parametrize("allow", [True, False])
    @pytest.mark.parametrize("max_length", [5, 10, 1_000])
    def test_idempotent(self, analyzer, value, allow, max_length):
        policy = CellPolicy(allow_diacritics=allow)
        once = analyzer.fix_value(value, max_length, policy)
        assert analyzer.fix_value(once, max_length, policy) == once
        assert len(once) <= max_length

    @pytest.mark.parametrize("value", IDEMPOTENCE_SAMPLES)
    def test_fixed_value_is_clean(self, analyzer, strict_policy, value):
        fixed = analyzer.fix_value(value, 1_000, strict_policy)
        assert analyzer.analyze(fixed, 1_000, strict_policy) is None
