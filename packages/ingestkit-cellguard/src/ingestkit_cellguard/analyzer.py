"""Per-cell analysis: invalid characters, length check, and default fix.

The suggested fix is built in a fixed order so it is idempotent:

1. Every invalid character is folded (diacritics disallowed and a fold
   table entry exists) or removed.
2. If the cell is too long, or the cleaned value grew past the limit
   because a fold expanded (``ß`` -> ``ss``), the cleaned value is cut to
   ``max_length`` and trailing whitespace is trimmed.

The length predicate itself is evaluated on the raw cell value.
"""

from __future__ import annotations

import math

from ingestkit_cellguard.addressing import data_cell_reference
from ingestkit_cellguard.classifier import CharacterClassifier
from ingestkit_cellguard.models import CellPolicy, InvalidCharacter, Issue, ProblemType


def issue_id(row_index: int, col_index: int) -> str:
    """Stable per-cell identifier used as the IssueStore key."""
    return f"{row_index}-{col_index}"


def cell_text(value: object) -> str | None:
    """Normalize a raw cell value to text; None for empty cells."""
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    text = value if isinstance(value, str) else str(value)
    return text if text != "" else None


def _display_char(char: str) -> str:
    return char if char.isprintable() and not char.isspace() else f"U+{ord(char):04X}"


class CellAnalyzer:
    """Applies the character classifier and the length limit to one cell.

    Parameters
    ----------
    classifier:
        Character rules; a default ``CharacterClassifier`` when *None*.
    max_listed_chars:
        How many invalid characters the human-readable problem lists before
        collapsing the rest into ``"+N more"``.
    """

    def __init__(
        self,
        classifier: CharacterClassifier | None = None,
        max_listed_chars: int = 3,
    ) -> None:
        self._classifier = classifier or CharacterClassifier()
        self._max_listed = max_listed_chars

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def find_invalid_characters(
        self, text: str, policy: CellPolicy
    ) -> list[InvalidCharacter]:
        classifier = self._classifier
        found: list[InvalidCharacter] = []
        for position, char in enumerate(text):
            if classifier.is_valid(char, policy):
                continue
            found.append(
                InvalidCharacter(
                    char=char,
                    position=position,
                    code_point=ord(char),
                    replacement=classifier.replacement_for(char, policy),
                    description=classifier.describe(char),
                )
            )
        return found

    def fix_value(self, value: str, max_length: int, policy: CellPolicy) -> str:
        """Return the default fix for *value*, or *value* itself if clean.

        ``fix_value(fix_value(s)) == fix_value(s)`` for every string.
        """
        text = cell_text(value)
        if text is None:
            return value
        invalid = self.find_invalid_characters(text, policy)
        too_long = len(text) > max_length
        if not invalid and not too_long:
            return text
        return self._build_fix(text, invalid, too_long, max_length)

    def analyze(
        self,
        value: object,
        max_length: int,
        policy: CellPolicy,
        *,
        row_index: int = 0,
        column: str = "",
        column_index: int = 0,
    ) -> Issue | None:
        """Analyze one cell; return an ``Issue`` or None when it is clean.

        Empty, None, and NaN cells are always skipped.
        """
        text = cell_text(value)
        if text is None:
            return None

        invalid = self.find_invalid_characters(text, policy)
        too_long = len(text) > max_length
        problem_type = ProblemType.from_flags(bool(invalid), too_long)
        if problem_type is None:
            return None

        fix = self._build_fix(text, invalid, too_long, max_length)
        return Issue(
            id=issue_id(row_index, column_index),
            cell_reference=data_cell_reference(row_index, column_index),
            row=row_index + 2,
            row_index=row_index,
            column=column,
            column_index=column_index,
            original_value=text,
            suggested_fix=fix,
            default_fix=fix,
            problem=self.describe_problem(text, invalid, too_long, max_length),
            problem_type=problem_type,
            invalid_characters=invalid,
            has_invalid_chars=bool(invalid),
            has_length_issue=too_long,
            length=len(text),
        )

    def describe_problem(
        self,
        text: str,
        invalid: list[InvalidCharacter],
        too_long: bool,
        max_length: int,
    ) -> str:
        parts: list[str] = []
        if invalid:
            listed = [
                f"'{_display_char(c.char)}' ({c.description})"
                for c in invalid[: self._max_listed]
            ]
            if len(invalid) > self._max_listed:
                listed.append(f"+{len(invalid) - self._max_listed} more")
            parts.append(f"Invalid characters: {', '.join(listed)}")
        if too_long:
            parts.append(
                f"Length exceeds {max_length} characters ({len(text)} chars)"
            )
        return "; ".join(parts)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _build_fix(
        text: str,
        invalid: list[InvalidCharacter],
        too_long: bool,
        max_length: int,
    ) -> str:
        fixed = text
        if invalid:
            pieces: list[str] = []
            cursor = 0
            for ic in invalid:
                pieces.append(text[cursor : ic.position])
                pieces.append(ic.replacement)
                cursor = ic.position + 1
            pieces.append(text[cursor:])
            fixed = "".join(pieces)
        if too_long or len(fixed) > max_length:
            fixed = fixed[:max_length].rstrip()
        return fixed
