"""Tabular source readers satisfying the ``TabularSource`` protocol.

Three readers, all producing ordered ``{header: text}`` rows:

* :class:`CSVFileSource` -- chunked ``pandas.read_csv``; never materializes
  the whole file.  Rows with extra fields are truncated to the header width
  and counted as malformed; short rows are padded with ``""``.
* :class:`ExcelFileSource` -- ``openpyxl`` read-only worksheet iteration.
* :class:`InMemoryTableSource` -- an already materialized table (small
  files, DataFrames, tests).

:func:`open_source` picks streaming or in-memory by file size.

The two file sources also expose ``raw_headers`` and ``iter_raw_rows()``,
the file as written (extra fields, blank lines and typed cells included),
which export uses to rewrite a file while touching only fixed cells.  The
CSV raw pass re-parses with ``csv.reader``.
"""

from __future__ import annotations

import csv
import logging
import math
import zipfile
from datetime import date, datetime, time as dt_time
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

import openpyxl
import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from ingestkit_cellguard.config import CellGuardConfig
from ingestkit_cellguard.errors import CellGuardException, ErrorCode
from ingestkit_cellguard.models import ScanMode, SourceFormat

logger = logging.getLogger("ingestkit_cellguard")

_ESTIMATE_SAMPLE_BYTES = 64 * 1024

CSV_EXTENSIONS = {".csv"}
EXCEL_EXTENSIONS = {".xlsx", ".xlsm"}


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------


def stringify_cell(value: Any) -> str:
    """Convert a parsed cell value to text; empty cells become ``""``."""
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (date, dt_time)):
        return value.isoformat()
    return str(value)


def align_fields(values: Sequence[Any], width: int) -> tuple[list[str], bool]:
    """Pad or truncate *values* to *width* text fields.

    Returns the aligned fields and whether the row was malformed.  Trailing
    empty cells beyond the header width do not count as malformed.
    """
    fields = [stringify_cell(v) for v in values]
    if len(fields) > width:
        extra = fields[width:]
        return fields[:width], any(extra)
    if len(fields) < width:
        return fields + [""] * (width - len(fields)), False
    return fields, False


def trim_trailing_empty(values: Sequence[Any]) -> list[Any]:
    """Drop trailing blank cells (read-only worksheets pad rows to max_column)."""
    trimmed = list(values)
    while trimmed and (trimmed[-1] is None or trimmed[-1] == ""):
        trimmed.pop()
    return trimmed


def _is_blank_record(fields: Sequence[str]) -> bool:
    # same rule pandas' python engine uses to skip blank lines
    return not fields or (len(fields) == 1 and not fields[0].strip())


def deduplicate_headers(names: Iterable[Any]) -> list[str]:
    """Name blank headers ``column_N`` and suffix duplicates with ``_1``, ``_2``."""
    seen: dict[str, int] = {}
    result: list[str] = []
    for i, raw in enumerate(names):
        name = stringify_cell(raw).strip() or f"column_{i}"
        if name in seen:
            seen[name] += 1
            result.append(f"{name}_{seen[name]}")
        else:
            seen[name] = 0
            result.append(name)
    return result


def estimate_csv_rows(path: Path) -> int | None:
    """Estimate data rows from file size and newline density of a sample."""
    try:
        size = path.stat().st_size
        with open(path, "rb") as fh:
            sample = fh.read(_ESTIMATE_SAMPLE_BYTES)
    except OSError:
        return None
    if not sample:
        return 0
    lines = sample.count(b"\n") or 1
    if size <= len(sample):
        return max(lines - 1, 0)
    return max(int(size * lines / len(sample)) - 1, 1)


def source_format_for(file_path: str) -> SourceFormat | None:
    suffix = Path(file_path).suffix.lower()
    if suffix in CSV_EXTENSIONS:
        return SourceFormat.CSV
    if suffix in EXCEL_EXTENSIONS:
        return SourceFormat.XLSX
    return None


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class CSVFileSource:
    """Streams a CSV file in row batches with chunked ``pandas.read_csv``.

    Every value is read as text (no NA inference) so cells pass through
    exactly as written.  Undecodable bytes become U+FFFD and are flagged
    downstream.
    """

    def __init__(
        self,
        path: str | Path,
        encoding: str = "utf-8-sig",
        estimated_rows: int | None = None,
    ) -> None:
        self._path = Path(path)
        self._encoding = encoding
        self._estimated_rows = estimated_rows
        self._headers: list[str] | None = None
        self._raw_headers: list[str] | None = None
        self._malformed = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def headers(self) -> list[str]:
        if self._headers is None:
            self._read_header()
        return self._headers or []

    @property
    def raw_headers(self) -> list[str]:
        """Header cells exactly as written, before naming and deduplication."""
        if self._raw_headers is None:
            self._read_header()
        return self._raw_headers or []

    @property
    def estimated_rows(self) -> int | None:
        if self._estimated_rows is None:
            self._estimated_rows = estimate_csv_rows(self._path)
        return self._estimated_rows

    @property
    def malformed_rows(self) -> int:
        return self._malformed

    def iter_batches(self, batch_size: int) -> Iterator[list[dict[str, str]]]:
        headers = self.headers
        self._malformed = 0
        reader = self._guarded(
            lambda: pd.read_csv(
                self._path,
                chunksize=batch_size,
                on_bad_lines=self._on_bad_line,
                **self._read_options(),
            )
        )
        skip_header = True
        with reader:
            while True:
                chunk = self._guarded(lambda: next(reader, None))
                if chunk is None:
                    break
                records = chunk.itertuples(index=False, name=None)
                if skip_header:
                    next(records, None)
                    skip_header = False
                rows = [
                    {h: stringify_cell(v) for h, v in zip(headers, values)}
                    for values in records
                ]
                if rows:
                    yield rows

    def iter_raw_rows(self) -> Iterator[tuple[int | None, list[str]]]:
        """Yield ``(row_index, fields)`` for every record after the header.

        Records keep all of their fields, including any beyond the header
        width.  Blank lines are yielded with a ``None`` index; data rows are
        numbered exactly as :meth:`iter_batches` numbers them.  Blank lines
        before the header are dropped.
        """
        row_index = 0
        seen_header = False
        try:
            with open(
                self._path, encoding=self._encoding, errors="replace", newline=""
            ) as fh:
                for fields in csv.reader(fh):
                    if _is_blank_record(fields):
                        if seen_header:
                            yield None, fields
                        continue
                    if not seen_header:
                        seen_header = True
                        continue
                    yield row_index, fields
                    row_index += 1
        except csv.Error as exc:
            raise CellGuardException(
                code=ErrorCode.E_INPUT_UNPARSEABLE,
                message=f"Could not parse CSV {self._path.name}: {exc}",
                stage="export",
            ) from exc
        except OSError as exc:
            raise CellGuardException(
                code=ErrorCode.E_IO_STREAM,
                message=f"I/O error reading {self._path.name}: {exc}",
                stage="export",
            ) from exc

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_header(self) -> None:
        frame = self._guarded(
            lambda: pd.read_csv(self._path, nrows=1, **self._read_options())
        )
        if frame.empty:
            raise CellGuardException(
                code=ErrorCode.E_INPUT_EMPTY,
                message=f"File has no header row: {self._path.name}",
                stage="parse",
            )
        self._raw_headers = [stringify_cell(v) for v in frame.iloc[0].tolist()]
        self._headers = deduplicate_headers(self._raw_headers)

    def _read_options(self) -> dict[str, Any]:
        # header=None: the header is read as row 0 so its width fixes the
        # column count and longer rows reach the bad-line handler
        return {
            "header": None,
            "dtype": object,
            "keep_default_na": False,
            "na_filter": False,
            "encoding": self._encoding,
            "encoding_errors": "replace",
            "engine": "python",
        }

    def _on_bad_line(self, fields: list[str]) -> list[str]:
        self._malformed += 1
        width = len(self._headers or [])
        logger.warning(
            "Malformed row in %s: %d fields, expected %d; extra fields not scanned",
            self._path.name,
            len(fields),
            width,
        )
        return fields[:width]

    def _guarded(self, call):
        try:
            return call()
        except pd.errors.EmptyDataError as exc:
            raise CellGuardException(
                code=ErrorCode.E_INPUT_EMPTY,
                message=f"File is empty or has no header row: {self._path.name}",
                stage="parse",
            ) from exc
        except pd.errors.ParserError as exc:
            raise CellGuardException(
                code=ErrorCode.E_INPUT_UNPARSEABLE,
                message=f"Could not parse CSV {self._path.name}: {exc}",
                stage="parse",
            ) from exc
        except OSError as exc:
            raise CellGuardException(
                code=ErrorCode.E_IO_STREAM,
                message=f"I/O error reading {self._path.name}: {exc}",
                stage="scan",
            ) from exc


class ExcelFileSource:
    """Streams the first (or a named) worksheet with openpyxl read-only mode.

    The first row is the header.  Fully blank rows are skipped, matching
    the usual sheet-to-rows conversion.
    """

    def __init__(self, path: str | Path, sheet_name: str | None = None) -> None:
        self._path = Path(path)
        self._sheet_name = sheet_name
        self._headers: list[str] | None = None
        self._raw_headers: list[Any] | None = None
        self._estimated_rows: int | None = None
        self._malformed = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def headers(self) -> list[str]:
        if self._headers is None:
            self._read_header()
        return self._headers or []

    @property
    def raw_headers(self) -> list[Any]:
        """Header cell values as stored, without trailing padding."""
        if self._raw_headers is None:
            self._read_header()
        return self._raw_headers or []

    @property
    def estimated_rows(self) -> int | None:
        if self._headers is None:
            self._read_header()
        return self._estimated_rows

    @property
    def malformed_rows(self) -> int:
        return self._malformed

    def iter_batches(self, batch_size: int) -> Iterator[list[dict[str, str]]]:
        self._malformed = 0
        wb = self._open()
        try:
            rows = self._worksheet(wb).iter_rows(values_only=True)
            headers = self._take_header(rows)
            width = len(headers)

            batch: list[dict[str, str]] = []
            for values in rows:
                if all(v is None or v == "" for v in values):
                    continue
                fields, malformed = align_fields(values, width)
                if malformed:
                    self._malformed += 1
                batch.append(dict(zip(headers, fields)))
                if len(batch) >= batch_size:
                    yield batch
                    batch = []
            if batch:
                yield batch
        except (OSError, zipfile.BadZipFile) as exc:
            raise CellGuardException(
                code=ErrorCode.E_IO_STREAM,
                message=f"I/O error reading {self._path.name}: {exc}",
                stage="scan",
            ) from exc
        finally:
            wb.close()

    def iter_raw_rows(self) -> Iterator[tuple[int | None, list[Any]]]:
        """Yield ``(row_index, values)`` with the cell values as stored.

        Numbers, dates and booleans keep their types.  Blank rows come back
        empty with a ``None`` index so the sheet layout survives a rewrite.
        """
        wb = self._open()
        try:
            rows = self._worksheet(wb).iter_rows(values_only=True)
            self._take_header(rows)
            row_index = 0
            for values in rows:
                trimmed = trim_trailing_empty(values)
                if not trimmed:
                    yield None, []
                    continue
                yield row_index, trimmed
                row_index += 1
        except (OSError, zipfile.BadZipFile) as exc:
            raise CellGuardException(
                code=ErrorCode.E_IO_STREAM,
                message=f"I/O error reading {self._path.name}: {exc}",
                stage="export",
            ) from exc
        finally:
            wb.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _open(self):
        try:
            return openpyxl.load_workbook(self._path, read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError) as exc:
            raise CellGuardException(
                code=ErrorCode.E_INPUT_UNPARSEABLE,
                message=f"Could not open workbook {self._path.name}: {exc}",
                stage="parse",
            ) from exc
        except OSError as exc:
            raise CellGuardException(
                code=ErrorCode.E_IO_STREAM,
                message=f"I/O error opening {self._path.name}: {exc}",
                stage="parse",
            ) from exc

    def _worksheet(self, wb):
        if self._sheet_name is None:
            return wb.worksheets[0]
        try:
            return wb[self._sheet_name]
        except KeyError as exc:
            raise CellGuardException(
                code=ErrorCode.E_INPUT_UNPARSEABLE,
                message=(
                    f"Worksheet {self._sheet_name!r} not found in {self._path.name}; "
                    f"available: {', '.join(wb.sheetnames)}"
                ),
                stage="parse",
            ) from exc

    def _take_header(self, rows: Iterator[tuple[Any, ...]]) -> list[str]:
        header_row = next(rows, None)
        if header_row is None:
            raise CellGuardException(
                code=ErrorCode.E_INPUT_EMPTY,
                message=f"Worksheet is empty: {self._path.name}",
                stage="parse",
            )
        self._raw_headers = trim_trailing_empty(header_row)
        self._headers = deduplicate_headers(self._raw_headers)
        return self._headers

    def _read_header(self) -> None:
        wb = self._open()
        try:
            ws = self._worksheet(wb)
            self._take_header(ws.iter_rows(values_only=True, max_row=1))
            max_row = ws.max_row
            self._estimated_rows = max_row - 1 if max_row else None
        finally:
            wb.close()


class InMemoryTableSource:
    """A pre-parsed table walked linearly.

    Rows may be mappings or positional sequences; both are aligned to the
    header width.
    """

    def __init__(
        self,
        headers: Sequence[str],
        rows: Iterable[dict[str, Any] | Sequence[Any]],
    ) -> None:
        self._headers = [str(h) for h in headers]
        self._malformed = 0
        self._rows: list[dict[str, str]] = []
        width = len(self._headers)
        for row in rows:
            if isinstance(row, dict):
                values = [row.get(h) for h in self._headers]
                if any(k not in self._headers for k in row):
                    self._malformed += 1
            else:
                values = list(row)
            fields, malformed = align_fields(values, width)
            if malformed:
                self._malformed += 1
            self._rows.append(dict(zip(self._headers, fields)))

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> InMemoryTableSource:
        return cls(
            [str(c) for c in df.columns],
            df.itertuples(index=False, name=None),
        )

    @classmethod
    def from_source(cls, source, batch_size: int = 10_000) -> InMemoryTableSource:
        """Materialize another source (used for small spreadsheets)."""
        rows: list[dict[str, str]] = []
        for batch in source.iter_batches(batch_size):
            rows.extend(batch)
        table = cls(source.headers, rows)
        table._malformed = source.malformed_rows
        return table

    @property
    def headers(self) -> list[str]:
        return self._headers

    @property
    def rows(self) -> list[dict[str, str]]:
        return self._rows

    @property
    def estimated_rows(self) -> int | None:
        return len(self._rows)

    @property
    def malformed_rows(self) -> int:
        return self._malformed

    def iter_batches(self, batch_size: int) -> Iterator[list[dict[str, str]]]:
        for start in range(0, len(self._rows), batch_size):
            yield self._rows[start : start + batch_size]


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def load_csv_table(path: str | Path, encoding: str = "utf-8-sig") -> InMemoryTableSource:
    """Read a whole CSV into memory with the same options as the streamer."""
    source = CSVFileSource(path, encoding=encoding)
    return InMemoryTableSource.from_source(source)


def open_source(
    file_path: str,
    config: CellGuardConfig,
    source_format: SourceFormat | None = None,
) -> tuple[Any, ScanMode]:
    """Return a source for *file_path* and the scan mode it implies.

    Files above ``config.streaming_threshold_mb`` are streamed; smaller ones
    are materialized and walked linearly.  *source_format* defaults to the
    one implied by the file extension.

    Raises:
        CellGuardException: ``E_INPUT_UNSUPPORTED_TYPE`` for unknown
            extensions, ``E_SOURCE_FILE_MISSING`` if the file is gone.
    """
    path = Path(file_path)
    fmt = source_format or source_format_for(file_path)
    if fmt is None:
        raise CellGuardException(
            code=ErrorCode.E_INPUT_UNSUPPORTED_TYPE,
            message=f"Unsupported file type: {path.suffix or '(none)'}",
            stage="parse",
        )
    if not path.is_file():
        raise CellGuardException(
            code=ErrorCode.E_SOURCE_FILE_MISSING,
            message=f"Source file not found: {file_path}",
            stage="parse",
        )

    threshold = config.streaming_threshold_mb * 1024 * 1024
    streaming = path.stat().st_size > threshold

    if fmt is SourceFormat.CSV:
        if streaming:
            return CSVFileSource(path), ScanMode.STREAMING
        return load_csv_table(path), ScanMode.IN_MEMORY

    if streaming:
        return ExcelFileSource(path), ScanMode.STREAMING
    return InMemoryTableSource.from_source(ExcelFileSource(path)), ScanMode.IN_MEMORY
