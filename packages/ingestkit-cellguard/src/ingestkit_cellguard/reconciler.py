"""Apply accepted fixes to source rows and write corrected output.

Fixes are keyed by ``(row_index, column_name)``.  Cells without a fix are
emitted exactly as read.  The source is re-read row by row, so writing
corrected output never holds the whole table in memory.

File-backed sources (:class:`~ingestkit_cellguard.protocols.RawRowSource`)
are replayed as written: the original header text, fields beyond the
header width, blank records and typed spreadsheet cells all pass through,
and fixes land by column position.  Other sources are written from their
``{header: text}`` rows.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Sequence

import openpyxl

from ingestkit_cellguard.errors import CellGuardException, ErrorCode
from ingestkit_cellguard.protocols import RawRowSource, TabularSource
from ingestkit_cellguard.sources import stringify_cell

logger = logging.getLogger("ingestkit_cellguard")

FixMap = Mapping[tuple[int, str], str]

_NEEDS_QUOTES = (",", '"', "\n", "\r")


def format_field(value: object) -> str:
    """Serialize one CSV field.

    None and ``""`` become a bare empty field.  A value is quoted only if it
    contains a comma, a double quote, or a line break; embedded quotes are
    doubled.
    """
    text = value if isinstance(value, str) else stringify_cell(value)
    if text == "":
        return ""
    if any(token in text for token in _NEEDS_QUOTES):
        return '"' + text.replace('"', '""') + '"'
    return text


def format_row(values: Iterable[object]) -> str:
    return ",".join(format_field(v) for v in values)


class FixReconciler:
    """Merges a fix map into rows and serializes the result.

    Parameters
    ----------
    batch_size:
        Rows read from the source per batch when writing output.
    """

    def __init__(self, batch_size: int = 1000) -> None:
        self._batch_size = batch_size

    def apply_fixes(
        self,
        rows: Iterable[Mapping[str, str]],
        fix_map: FixMap,
        first_row_index: int = 0,
    ) -> list[dict[str, str]]:
        """Return *rows* with fixed cells replaced; inputs are not mutated."""
        return list(self._iter_fixed(rows, fix_map, first_row_index))

    def iter_fixed_rows(
        self, source: TabularSource, fix_map: FixMap
    ) -> Iterator[dict[str, str]]:
        row_index = 0
        for batch in source.iter_batches(self._batch_size):
            yield from self._iter_fixed(batch, fix_map, row_index)
            row_index += len(batch)

    def iter_output_rows(
        self, source: TabularSource, fix_map: FixMap
    ) -> Iterator[list[Any]]:
        """Yield the header record, then every record with fixes applied."""
        if isinstance(source, RawRowSource):
            yield list(source.raw_headers)
            positions = list(enumerate(source.headers))
            for row_index, values in source.iter_raw_rows():
                if row_index is None or not fix_map:
                    yield list(values)
                else:
                    yield self._patch(values, row_index, positions, fix_map)
            return

        headers = source.headers
        yield list(headers)
        for row in self.iter_fixed_rows(source, fix_map):
            yield [row.get(h, "") for h in headers]

    def write_csv(
        self,
        source: TabularSource,
        fix_map: FixMap,
        out_path: str | Path,
    ) -> int:
        """Write the corrected table as CSV; return the records written after the header.

        Raises:
            CellGuardException: ``E_IO_STREAM`` if the output cannot be
                written.
        """
        start = time.monotonic()
        count = -1
        try:
            with open(out_path, "w", encoding="utf-8", newline="") as fh:
                for values in self.iter_output_rows(source, fix_map):
                    fh.write(format_row(values) + "\n")
                    count += 1
        except OSError as exc:
            raise CellGuardException(
                code=ErrorCode.E_IO_STREAM,
                message=f"Failed to write {out_path}: {exc}",
                stage="export",
            ) from exc
        self._log_written(count, fix_map, out_path, start)
        return count

    def write_xlsx(
        self,
        source: TabularSource,
        fix_map: FixMap,
        out_path: str | Path,
        sheet_title: str = "Sheet1",
    ) -> int:
        """Write the corrected table as a single-sheet workbook.

        Cells read from a workbook keep their stored type; only fixed
        cells are written as text.
        """
        start = time.monotonic()
        wb = openpyxl.Workbook(write_only=True)
        ws = wb.create_sheet(title=sheet_title)
        count = -1
        for values in self.iter_output_rows(source, fix_map):
            ws.append([None if v == "" else v for v in values])
            count += 1
        try:
            wb.save(out_path)
        except OSError as exc:
            raise CellGuardException(
                code=ErrorCode.E_IO_STREAM,
                message=f"Failed to write {out_path}: {exc}",
                stage="export",
            ) from exc
        self._log_written(count, fix_map, out_path, start)
        return count

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _patch(
        values: Sequence[Any],
        row_index: int,
        positions: list[tuple[int, str]],
        fix_map: FixMap,
    ) -> list[Any]:
        patched = list(values)
        for pos, column in positions:
            key = (row_index, column)
            if key not in fix_map:
                continue
            if pos >= len(patched):
                patched.extend([""] * (pos + 1 - len(patched)))
            patched[pos] = fix_map[key]
        return patched

    @staticmethod
    def _iter_fixed(
        rows: Iterable[Mapping[str, str]],
        fix_map: FixMap,
        first_row_index: int,
    ) -> Iterator[dict[str, str]]:
        for offset, row in enumerate(rows):
            row_index = first_row_index + offset
            fixed = dict(row)
            if fix_map:
                for column in fixed:
                    key = (row_index, column)
                    if key in fix_map:
                        fixed[column] = fix_map[key]
            yield fixed

    @staticmethod
    def _log_written(count: int, fix_map: FixMap, out_path: str | Path, start: float) -> None:
        logger.info(
            "Wrote %d rows (%d fixes) to %s in %.3fs",
            count,
            len(fix_map),
            Path(out_path).name,
            time.monotonic() - start,
        )


def rows_to_csv(headers: Sequence[str], rows: Iterable[Mapping[str, object]]) -> str:
    """Serialize rows in memory; used for small reports."""
    lines = [format_row(headers)]
    lines.extend(format_row(row.get(h) for h in headers) for row in rows)
    return "\n".join(lines) + "\n"
