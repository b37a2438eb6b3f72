"""Tests for the pure learning helpers: metadata, substitutions, confidences."""

from __future__ import annotations

import pytest

from ingestkit_cellguard.learning import (
    character_fingerprint,
    column_confidence,
    derive_character_substitutions,
    detect_language_context,
    exact_match_confidence,
    infer_column_type,
    mapping_confidence,
    pattern_confidence,
    sequence_confidence,
)


@pytest.mark.unit
class TestFingerprint:
    def test_distinct_in_order(self):
        assert character_fingerprint("Ünïcode Ünïcode") == "Üï"

    def test_ascii_only_is_empty(self):
        assert character_fingerprint("plain text") == ""


@pytest.mark.unit
class TestLanguageContext:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Straße", "germanic"),
            ("Smørrebrød", "nordic"),
            ("crème brûlée", "french"),
            ("España", "spanish"),
            ("Łódź", "slavic"),
            ("Привет", "cyrillic"),
            ("Αθήνα", "greek"),
            ("中文", "cjk"),
            ("ā", "latin"),
            ("abc", "ascii"),
            ("", "unknown"),
        ],
    )
    def test_families(self, text, expected):
        assert detect_language_context(text) == expected

    def test_ties_go_to_first_family(self):
        # one germanic and one french character
        assert detect_language_context("Ünïcode") == "germanic"


@pytest.mark.unit
class TestColumnType:
    @pytest.mark.parametrize(
        "column,expected",
        [
            ("Email Address", "email"),
            ("customer_id", "identifier"),
            ("Last Name", "name"),
            ("Street", "address"),
            ("unit price", "numeric"),
            ("Created At", "date"),
        ],
    )
    def test_from_header(self, column, expected):
        assert infer_column_type(column) == expected

    def test_from_sample_value(self):
        assert infer_column_type("Notes", "a@b.co") == "email"
        assert infer_column_type("Notes", "12,5") == "numeric"
        assert infer_column_type("Notes", "hello") == "text"


@pytest.mark.unit
class TestSubstitutions:
    def test_single_replacement(self):
        assert derive_character_substitutions("café", "cafe") == [("é", "e", "accented")]

    def test_one_to_many(self):
        assert derive_character_substitutions("Straße", "Strasse") == [
            ("ß", "ss", "accented")
        ]

    def test_deletion(self):
        [(char, target, _)] = derive_character_substitutions("a\u200bb", "ab")
        assert (char, target) == ("\u200b", "")

    def test_repeats_reported_once(self):
        assert derive_character_substitutions("résumé", "resume") == [
            ("é", "e", "accented")
        ]

    def test_ascii_edits_ignored(self):
        assert derive_character_substitutions("abc", "abd") == []


@pytest.mark.unit
class TestConfidence:
    def test_exact_match(self):
        assert exact_match_confidence(2) == 0.6
        assert exact_match_confidence(3) == 0.9
        assert exact_match_confidence(10) == 1.0

    def test_pattern_capped(self):
        assert pattern_confidence(3) == 0.3
        assert pattern_confidence(50) == 0.7

    def test_mapping(self):
        assert mapping_confidence(2) == 0.4
        assert mapping_confidence(6) == 1.0

    def test_sequence(self):
        assert sequence_confidence(3, 1) == 0.45
        assert sequence_confidence(4, 2) == 0.3
        assert sequence_confidence(100, 1) == 0.7

    def test_column(self):
        assert column_confidence(2) == 0.3
        assert column_confidence(100) == 0.9

    @pytest.mark.parametrize(
        "formula",
        [exact_match_confidence, pattern_confidence, mapping_confidence, column_confidence],
    )
    def test_monotone(self, formula):
        values = [formula(n) for n in range(1, 30)]
        assert values == sorted(values)
        assert all(0.0 <= v <= 1.0 for v in values)
