"""Pure helpers behind the learning store.

Derives the metadata stored with each override (character fingerprint,
language family, column type), extracts single-character substitutions
from a value and its fix, and holds the confidence formulas used for
suggestions and insights.  Nothing here touches storage.
"""

from __future__ import annotations

import difflib
import re

from ingestkit_cellguard.classifier import char_category, is_strict_ascii

# ---------------------------------------------------------------------------
# Confidence formulas
# ---------------------------------------------------------------------------

DEFAULT_CONFIDENCE = 0.5


def exact_match_confidence(frequency: int) -> float:
    return round(min(frequency * 0.3, 1.0), 2)


def pattern_confidence(count: int) -> float:
    return round(min(count * 0.1, 0.7), 2)


def exact_value_insight_confidence(count: int) -> float:
    return round(min(count * 0.3, 1.0), 2)


def mapping_confidence(usage_count: int) -> float:
    return round(min(usage_count * 0.2, 1.0), 2)


def sequence_confidence(count: int, variety: int) -> float:
    return round(min(count / max(variety, 1) * 0.15, 0.7), 2)


def column_confidence(count: int) -> float:
    return round(min(count * 0.15, 0.9), 2)


# ---------------------------------------------------------------------------
# Override metadata
# ---------------------------------------------------------------------------


def character_fingerprint(text: str) -> str:
    """Distinct non-strict-ASCII characters of *text*, in first-seen order.

    ``"Ünïcode Ünïcode"`` -> ``"Üï"``.  Values with only plain ASCII (pure
    length violations) have an empty fingerprint.
    """
    seen: dict[str, None] = {}
    for char in text:
        if not is_strict_ascii(char):
            seen.setdefault(char, None)
    return "".join(seen)


_LANGUAGE_CHARS: list[tuple[str, frozenset[str]]] = [
    ("germanic", frozenset("äöüßÄÖÜẞ")),
    ("nordic", frozenset("åæøÅÆØðþÐÞ")),
    ("french", frozenset("àâçèéêëîïôùûÿœÀÂÇÈÉÊËÎÏÔÙÛŸŒ")),
    ("spanish", frozenset("ñáíóúÑÁÍÓÚ¿¡")),
    ("slavic", frozenset("čćđšžřěůłńśźżďťňČĆĐŠŽŘĚŮŁŃŚŹŻĎŤŇ")),
]

_SCRIPT_RANGES: list[tuple[str, int, int]] = [
    ("cyrillic", 0x0400, 0x04FF),
    ("greek", 0x0370, 0x03FF),
    ("cjk", 0x3040, 0x30FF),
    ("cjk", 0x4E00, 0x9FFF),
    ("cjk", 0xAC00, 0xD7AF),
]


def detect_language_context(text: str) -> str:
    """Best-guess language family from the characters present.

    Returns one of ``germanic``, ``nordic``, ``french``, ``spanish``,
    ``slavic``, ``cyrillic``, ``greek``, ``cjk``, ``latin`` (other Latin
    non-ASCII), ``ascii``, or ``unknown`` for empty text.
    """
    if not text:
        return "unknown"
    scores: dict[str, int] = {}
    non_ascii = False
    for char in text:
        cp = ord(char)
        if cp < 0x80:
            continue
        non_ascii = True
        for family, chars in _LANGUAGE_CHARS:
            if char in chars:
                scores[family] = scores.get(family, 0) + 1
        for family, low, high in _SCRIPT_RANGES:
            if low <= cp <= high:
                scores[family] = scores.get(family, 0) + 1
    if not non_ascii:
        return "ascii"
    if not scores:
        return "latin"
    # first family in table order wins ties
    order = [f for f, _ in _LANGUAGE_CHARS] + [f for f, _, _ in _SCRIPT_RANGES]
    return max(scores, key=lambda f: (scores[f], -order.index(f)))


_COLUMN_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("email", ("email", "e-mail", "mail")),
    ("phone", ("phone", "mobile", "tel", "fax")),
    ("date", ("date", "time", "created", "updated", "dob")),
    ("url", ("url", "link", "website", "href")),
    ("identifier", ("id", "code", "sku", "key", "uuid")),
    ("numeric", ("amount", "price", "qty", "quantity", "total", "count", "number")),
    ("address", ("address", "street", "city", "zip", "postal", "country")),
    ("name", ("name", "first", "last", "surname", "title")),
]

_NUMERIC_RE = re.compile(r"^[+-]?\d+([.,]\d+)?$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def infer_column_type(column_name: str, sample_value: str | None = None) -> str:
    """Classify a column from its header tokens, then from a sample value."""
    tokens = re.split(r"[^a-z0-9]+", column_name.lower())
    for column_type, keywords in _COLUMN_KEYWORDS:
        if any(tok in keywords for tok in tokens if tok):
            return column_type
    if sample_value:
        value = sample_value.strip()
        if _EMAIL_RE.match(value):
            return "email"
        if _NUMERIC_RE.match(value):
            return "numeric"
    return "text"


# ---------------------------------------------------------------------------
# Character substitutions
# ---------------------------------------------------------------------------


def derive_character_substitutions(
    original: str, fixed: str, max_target_length: int = 3
) -> list[tuple[str, str, str]]:
    """Return ``(from_char, to_text, char_type)`` triples implied by a fix.

    Only characters that are not plain ASCII are considered.  A removed
    character maps to ``""``; a single character replaced by a short run
    (``ß`` -> ``ss``) keeps the run.  Duplicate pairs are reported once.
    """
    matcher = difflib.SequenceMatcher(None, original, fixed, autojunk=False)
    pairs: dict[tuple[str, str], None] = {}
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "delete":
            for char in original[i1:i2]:
                pairs.setdefault((char, ""), None)
        elif tag == "replace":
            source = original[i1:i2]
            target = fixed[j1:j2]
            if len(source) == len(target):
                for a, b in zip(source, target):
                    pairs.setdefault((a, b), None)
            elif len(source) == 1 and len(target) <= max_target_length:
                pairs.setdefault((source, target), None)
    return [
        (a, b, char_category(a))
        for (a, b) in pairs
        if not is_strict_ascii(a) and a != b
    ]
