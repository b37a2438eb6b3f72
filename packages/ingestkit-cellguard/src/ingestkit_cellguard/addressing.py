"""Spreadsheet-style cell addressing (``A1``, ``AA1001``).

``column_letters`` is the bijective base-26 numeral system over A-Z
(0 -> "A", 25 -> "Z", 26 -> "AA", 701 -> "ZZ", 702 -> "AAA").  All
functions are pure.
"""

from __future__ import annotations

import re

_CELL_REF_RE = re.compile(r"^([A-Z]+)([1-9][0-9]*)$")


def column_letters(index: int) -> str:
    """Convert a 0-based column index to spreadsheet letters."""
    if index < 0:
        raise ValueError(f"Column index must be >= 0, got {index}")
    letters = ""
    n = index
    while n >= 0:
        letters = chr(ord("A") + n % 26) + letters
        n = n // 26 - 1
    return letters


def column_index(letters: str) -> int:
    """Inverse of :func:`column_letters`."""
    if not letters or not letters.isascii() or not letters.isalpha():
        raise ValueError(f"Invalid column letters: {letters!r}")
    n = 0
    for ch in letters.upper():
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n - 1


def cell_reference(row_index: int, col_index: int) -> str:
    """``column_letters(col_index) + (row_index + 1)``."""
    if row_index < 0:
        raise ValueError(f"Row index must be >= 0, got {row_index}")
    return f"{column_letters(col_index)}{row_index + 1}"


def data_cell_reference(data_row_index: int, col_index: int) -> str:
    """Reference for a data row, accounting for the header row.

    Data row 0 sits on spreadsheet row 2.
    """
    return cell_reference(data_row_index + 1, col_index)


def parse_cell_reference(ref: str) -> tuple[int, int]:
    """Parse ``"C7"`` into ``(row_index, col_index)`` == ``(6, 2)``."""
    match = _CELL_REF_RE.match(ref.strip().upper())
    if match is None:
        raise ValueError(f"Invalid cell reference: {ref!r}")
    letters, digits = match.groups()
    return int(digits) - 1, column_index(letters)
