"""Character validity rules and user-facing character descriptions.

Rules are evaluated in order, first match wins:

1. Control characters (U+0000-U+001F, U+007F-U+009F) and zero-width / BOM
   marks (U+200B, U+200C, U+200D, U+FEFF) are always invalid.  Neither the
   whitelist nor the policy can override this floor.
2. Whitelisted characters are valid (unless the policy ignores the
   whitelist).
3. With ``allow_diacritics`` every remaining character is valid.
4. Otherwise only ASCII letters, digits, space, and the fixed punctuation
   set in ``STRICT_PUNCTUATION`` are valid.
"""

from __future__ import annotations

from ingestkit_cellguard.accent_fold import fold_char
from ingestkit_cellguard.models import CellPolicy

ZERO_WIDTH_CHARS = frozenset({"\u200b", "\u200c", "\u200d", "\ufeff"})

STRICT_PUNCTUATION = frozenset(".,;:!?-_()[]{}@#$%&*+=/<>|\\^~`'\"")


def is_floor_char(char: str) -> bool:
    """Return True if *char* is rejected regardless of policy or whitelist."""
    cp = ord(char)
    return cp <= 0x1F or 0x7F <= cp <= 0x9F or char in ZERO_WIDTH_CHARS


def is_strict_ascii(char: str) -> bool:
    return (
        char == " "
        or char in STRICT_PUNCTUATION
        or ("0" <= char <= "9")
        or ("A" <= char <= "Z")
        or ("a" <= char <= "z")
    )


def char_category(char: str) -> str:
    """Coarse code-point range name, used for learned mappings and messages."""
    cp = ord(char)
    if cp > 0x7F and char.isalpha() and fold_char(char) is not None:
        return "accented"
    if cp <= 0x1F:
        return "control"
    if 0x7F <= cp <= 0x9F:
        return "extended_control"
    if char in ZERO_WIDTH_CHARS:
        return "zero_width"
    if cp == 0xFFFD:
        return "replacement"
    if cp < 0x7F:
        return "ascii"
    if 0xA0 <= cp <= 0xFF:
        return "latin1_supplement"
    if 0x100 <= cp <= 0x17F:
        return "latin_extended"
    if 0x2000 <= cp <= 0x206F:
        return "general_punctuation"
    if 0x2600 <= cp <= 0x26FF:
        return "symbol"
    return "other"


_CATEGORY_LABELS = {
    "control": "Control character",
    "extended_control": "Extended control character",
    "zero_width": "Zero-width or byte-order mark",
    "replacement": "Unicode replacement character",
    "latin1_supplement": "Latin-1 supplement character",
    "latin_extended": "Latin extended character",
    "general_punctuation": "General punctuation character",
    "symbol": "Miscellaneous symbol",
}


class CharacterClassifier:
    """Decides whether single characters are valid under a ``CellPolicy``."""

    def is_valid(self, char: str, policy: CellPolicy) -> bool:
        if is_floor_char(char):
            return False
        if not policy.ignore_whitelist and char in policy.whitelist:
            return True
        if policy.allow_diacritics:
            return True
        return is_strict_ascii(char)

    def describe(self, char: str) -> str:
        """Human-readable reason a character is flagged."""
        category = char_category(char)
        folded = fold_char(char)
        if category == "accented":
            return f"Accented character ({char} → {folded})"
        label = _CATEGORY_LABELS.get(category, "Invalid character")
        if folded is not None:
            return f"{label} ({char} → {folded})"
        return label

    def replacement_for(self, char: str, policy: CellPolicy) -> str:
        """Default replacement for an invalid character.

        Folds when diacritics are disallowed and a table entry exists;
        everything else is removed.
        """
        if not policy.allow_diacritics and not is_floor_char(char):
            folded = fold_char(char)
            if folded is not None:
                return folded
        return ""
