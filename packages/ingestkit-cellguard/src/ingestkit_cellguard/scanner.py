"""Bounded-memory row scanner.

Walks a ``TabularSource`` batch by batch, runs ``CellAnalyzer`` over every
cell, and reports progress after each batch.  Only one batch of rows is in
memory at a time; issues accumulate across batches.

Two consumers are supported:

* ``iter_batches()`` -- a plain generator of ``BatchResult``.
* ``astream_batches()`` -- an async iterator fed by a producer thread
  through a bounded queue.  The producer blocks while the queue is full.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
import time
from typing import AsyncIterator, Callable, Iterable, Iterator, Sequence

from ingestkit_cellguard.analyzer import CellAnalyzer
from ingestkit_cellguard.config import CellGuardConfig
from ingestkit_cellguard.errors import CellGuardException, ErrorCode
from ingestkit_cellguard.models import BatchResult, CellPolicy, Issue, ScanMode, ScanResult
from ingestkit_cellguard.protocols import TabularSource

logger = logging.getLogger("ingestkit_cellguard")

PROGRESS_CAP = 95

_DONE = object()


class ProgressTracker:
    """Non-decreasing progress percentage for one scan.

    Intermediate checkpoints are capped at 95; only ``finish()`` reports 100.
    With no row estimate the percentage grows against *rows_hint*.
    """

    def __init__(self, estimated_rows: int | None, rows_hint: int = 10_000) -> None:
        self._denominator = estimated_rows if estimated_rows else rows_hint
        self._percent = 0

    @property
    def percent(self) -> int:
        return self._percent

    def advance(self, rows_processed: int) -> int:
        estimate = int(rows_processed / max(self._denominator, 1) * PROGRESS_CAP)
        self._percent = max(self._percent, min(PROGRESS_CAP, estimate))
        return self._percent

    def finish(self) -> int:
        self._percent = 100
        return self._percent


class StreamingRowScanner:
    """Scans tabular sources for invalid characters and over-long cells.

    Parameters
    ----------
    analyzer:
        Per-cell analyzer; built from *config* when omitted.
    config:
        Batch size and progress settings.
    """

    def __init__(
        self,
        analyzer: CellAnalyzer | None = None,
        config: CellGuardConfig | None = None,
    ) -> None:
        self._config = config or CellGuardConfig()
        self._analyzer = analyzer or CellAnalyzer(
            max_listed_chars=self._config.max_listed_invalid_chars
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def iter_batches(
        self,
        source: TabularSource,
        policy: CellPolicy,
        max_length: int | None = None,
    ) -> Iterator[BatchResult]:
        """Yield one ``BatchResult`` per source batch.

        The last yielded result has ``is_final=True`` and ``percent=100``;
        an empty table yields exactly one empty final batch.

        Raises:
            CellGuardException: ``E_IO_STREAM`` on I/O failure mid-scan;
                input errors raised by the source propagate unchanged.
        """
        limit = self._config.max_cell_length if max_length is None else max_length
        headers = source.headers
        tracker = ProgressTracker(source.estimated_rows, self._config.progress_rows_hint)

        rows_processed = 0
        batch_index = 0
        pending: BatchResult | None = None
        batches = source.iter_batches(self._config.batch_size)
        try:
            for rows in batches:
                if pending is not None:
                    yield pending
                issues = self._analyze_rows(rows, headers, policy, limit, rows_processed)
                rows_processed += len(rows)
                pending = BatchResult(
                    batch_index=batch_index,
                    rows_in_batch=len(rows),
                    rows_processed=rows_processed,
                    issues=issues,
                    percent=tracker.advance(rows_processed),
                )
                batch_index += 1
        except OSError as exc:
            raise CellGuardException(
                code=ErrorCode.E_IO_STREAM,
                message=f"I/O error after {rows_processed} rows: {exc}",
                stage="scan",
            ) from exc
        finally:
            # releases the source's file handle when the caller stops early
            close = getattr(batches, "close", None)
            if close is not None:
                close()

        if pending is None:
            pending = BatchResult(
                batch_index=0,
                rows_in_batch=0,
                rows_processed=0,
                issues=[],
                percent=0,
            )
        pending.is_final = True
        pending.percent = tracker.finish()
        yield pending

    def scan(
        self,
        source: TabularSource,
        policy: CellPolicy,
        max_length: int | None = None,
        on_batch: Callable[[BatchResult], None] | None = None,
        on_progress: Callable[[int], None] | None = None,
        mode: ScanMode = ScanMode.STREAMING,
    ) -> ScanResult:
        """Scan the whole source and aggregate every batch.

        A failure part-way discards the issues collected so far.
        """
        start = time.monotonic()
        issues: list[Issue] = []
        total_rows = 0
        for batch in self.iter_batches(source, policy, max_length):
            issues.extend(batch.issues)
            total_rows = batch.rows_processed
            if on_batch is not None:
                on_batch(batch)
            if on_progress is not None:
                on_progress(batch.percent)

        elapsed = time.monotonic() - start
        logger.info(
            "Scanned %d rows x %d columns: %d issues in %.3fs (%s)",
            total_rows,
            len(source.headers),
            len(issues),
            elapsed,
            mode.value,
        )
        return ScanResult(
            issues=issues,
            total_rows=total_rows,
            headers=list(source.headers),
            malformed_rows=source.malformed_rows,
            mode=mode,
            duration_seconds=elapsed,
        )

    def scan_rows(
        self,
        rows: Iterable[dict[str, object]],
        headers: Sequence[str],
        policy: CellPolicy,
        max_length: int | None = None,
    ) -> list[Issue]:
        """Linear walk over an in-memory table, no batching or progress."""
        limit = self._config.max_cell_length if max_length is None else max_length
        return self._analyze_rows(rows, headers, policy, limit, 0)

    async def astream_batches(
        self,
        source: TabularSource,
        policy: CellPolicy,
        max_length: int | None = None,
    ) -> AsyncIterator[BatchResult]:
        """Async iterator over batches with a bounded hand-off queue.

        A worker thread runs ``iter_batches``; at most
        ``config.stream_queue_size`` results wait in the queue.  Errors in
        the worker are re-raised in the consumer.  Closing the iterator
        early stops the worker and waits for its thread, which closes the
        source's batch iterator.
        """
        channel: queue.Queue = queue.Queue(maxsize=self._config.stream_queue_size)
        stop = threading.Event()

        def offer(item: object) -> bool:
            while not stop.is_set():
                try:
                    channel.put(item, timeout=0.1)
                    return True
                except queue.Full:
                    continue
            return False

        def produce() -> None:
            batches = self.iter_batches(source, policy, max_length)
            try:
                for batch in batches:
                    if not offer(batch):
                        return
                offer(_DONE)
            except Exception as exc:  # handed to the consumer
                offer(exc)
            finally:
                batches.close()

        worker = threading.Thread(target=produce, name="cellguard-scan", daemon=True)
        worker.start()
        try:
            while True:
                try:
                    item = await asyncio.to_thread(channel.get, True, 0.1)
                except queue.Empty:
                    if not worker.is_alive() and channel.empty():
                        raise CellGuardException(
                            code=ErrorCode.E_IO_STREAM,
                            message="Scan worker stopped without finishing",
                            stage="scan",
                        )
                    continue
                if item is _DONE:
                    break
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            stop.set()
            await asyncio.to_thread(worker.join)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _analyze_rows(
        self,
        rows: Iterable[dict[str, object]],
        headers: Sequence[str],
        policy: CellPolicy,
        max_length: int,
        first_row_index: int,
    ) -> list[Issue]:
        analyzer = self._analyzer
        issues: list[Issue] = []
        for offset, row in enumerate(rows):
            row_index = first_row_index + offset
            for col_index, column in enumerate(headers):
                issue = analyzer.analyze(
                    row.get(column),
                    max_length,
                    policy,
                    row_index=row_index,
                    column=column,
                    column_index=col_index,
                )
                if issue is not None:
                    issues.append(issue)
        return issues
