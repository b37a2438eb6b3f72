"""Static fold table from accented / special characters to ASCII.

``ACCENT_FOLD_TABLE`` maps accented Latin letters, ligatures, smart
punctuation, and a handful of symbols to ASCII-safe equivalents.  Lookups
are O(1) dict hits.  ``ascii_variants()`` answers the reverse question
(which characters fold to a given ASCII string).
"""

from __future__ import annotations

from types import MappingProxyType

_LATIN_1 = {
    "À": "A", "Á": "A", "Â": "A", "Ã": "A", "Ä": "A", "Å": "A", "Æ": "AE",
    "à": "a", "á": "a", "â": "a", "ã": "a", "ä": "a", "å": "a", "æ": "ae",
    "È": "E", "É": "E", "Ê": "E", "Ë": "E",
    "è": "e", "é": "e", "ê": "e", "ë": "e",
    "Ì": "I", "Í": "I", "Î": "I", "Ï": "I",
    "ì": "i", "í": "i", "î": "i", "ï": "i",
    "Ò": "O", "Ó": "O", "Ô": "O", "Õ": "O", "Ö": "O", "Ø": "O",
    "ò": "o", "ó": "o", "ô": "o", "õ": "o", "ö": "o", "ø": "o",
    "Ù": "U", "Ú": "U", "Û": "U", "Ü": "U",
    "ù": "u", "ú": "u", "û": "u", "ü": "u",
    "Ý": "Y", "ý": "y", "ÿ": "y",
    "Ñ": "N", "ñ": "n",
    "Ç": "C", "ç": "c",
    "Ð": "D", "ð": "d",
    "Þ": "TH", "þ": "th",
    "ß": "ss",
}

_LATIN_EXTENDED_A = {
    "Ā": "A", "ā": "a", "Ă": "A", "ă": "a", "Ą": "A", "ą": "a",
    "Ć": "C", "ć": "c", "Ĉ": "C", "ĉ": "c", "Ċ": "C", "ċ": "c", "Č": "C", "č": "c",
    "Ď": "D", "ď": "d", "Đ": "D", "đ": "d",
    "Ē": "E", "ē": "e", "Ĕ": "E", "ĕ": "e", "Ė": "E", "ė": "e",
    "Ę": "E", "ę": "e", "Ě": "E", "ě": "e",
    "Ĝ": "G", "ĝ": "g", "Ğ": "G", "ğ": "g", "Ġ": "G", "ġ": "g", "Ģ": "G", "ģ": "g",
    "Ĥ": "H", "ĥ": "h", "Ħ": "H", "ħ": "h",
    "Ĩ": "I", "ĩ": "i", "Ī": "I", "ī": "i", "Ĭ": "I", "ĭ": "i",
    "Į": "I", "į": "i", "İ": "I", "ı": "i",
    "Ĵ": "J", "ĵ": "j",
    "Ķ": "K", "ķ": "k", "ĸ": "k",
    "Ĺ": "L", "ĺ": "l", "Ļ": "L", "ļ": "l", "Ľ": "L", "ľ": "l",
    "Ŀ": "L", "ŀ": "l", "Ł": "L", "ł": "l",
    "Ń": "N", "ń": "n", "Ņ": "N", "ņ": "n", "Ň": "N", "ň": "n",
    "ŉ": "n", "Ŋ": "N", "ŋ": "n",
    "Ō": "O", "ō": "o", "Ŏ": "O", "ŏ": "o", "Ő": "O", "ő": "o",
    "Œ": "OE", "œ": "oe",
    "Ŕ": "R", "ŕ": "r", "Ŗ": "R", "ŗ": "r", "Ř": "R", "ř": "r",
    "Ś": "S", "ś": "s", "Ŝ": "S", "ŝ": "s", "Ş": "S", "ş": "s", "Š": "S", "š": "s",
    "Ţ": "T", "ţ": "t", "Ť": "T", "ť": "t", "Ŧ": "T", "ŧ": "t",
    "Ũ": "U", "ũ": "u", "Ū": "U", "ū": "u", "Ŭ": "U", "ŭ": "u",
    "Ů": "U", "ů": "u", "Ű": "U", "ű": "u", "Ų": "U", "ų": "u",
    "Ŵ": "W", "ŵ": "w",
    "Ŷ": "Y", "ŷ": "y", "Ÿ": "Y",
    "Ź": "Z", "ź": "z", "Ż": "Z", "ż": "z", "Ž": "Z", "ž": "z",
}

_PUNCTUATION = {
    "“": '"', "”": '"', "„": '"', "«": '"', "»": '"',
    "‘": "'", "’": "'", "‚": "'",
    "–": "-", "—": "-",
    "…": "...",
    "\u00a0": " ",
}

_SYMBOLS = {
    "€": "EUR", "£": "GBP", "¥": "JPY",
    "©": "(c)", "®": "(r)", "™": "TM",
}

ACCENT_FOLD_TABLE: MappingProxyType[str, str] = MappingProxyType(
    {**_LATIN_1, **_LATIN_EXTENDED_A, **_PUNCTUATION, **_SYMBOLS}
)

_REVERSE: dict[str, tuple[str, ...]] = {}
for _char, _target in ACCENT_FOLD_TABLE.items():
    _REVERSE[_target] = _REVERSE.get(_target, ()) + (_char,)
del _char, _target


def fold_char(char: str) -> str | None:
    """Return the ASCII equivalent of *char*, or None if it has no entry."""
    return ACCENT_FOLD_TABLE.get(char)


def has_fold(char: str) -> bool:
    return char in ACCENT_FOLD_TABLE


def ascii_variants(target: str) -> tuple[str, ...]:
    """Return every character that folds to *target* (reverse lookup)."""
    return _REVERSE.get(target, ())


def fold_text(text: str) -> str:
    """Fold every character with a table entry; leave the rest untouched."""
    return "".join(ACCENT_FOLD_TABLE.get(ch, ch) for ch in text)
