"""Pre-flight checks for uploaded tabular files.

Runs before any parsing.  A fatal result means the file is never opened.
The checks run in order and stop at the first fatal finding; the only
warning, ``W_LARGE_FILE``, fires for files that will be scanned in
streaming mode (above ``streaming_threshold_mb``).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace

from ingestkit_cellguard.config import CellGuardConfig
from ingestkit_cellguard.errors import CellGuardError, ErrorCode

logger = logging.getLogger("ingestkit_cellguard")

_MB = 1024 * 1024


@dataclass(frozen=True)
class _Upload:
    path: str
    name: str
    size: int = 0


class CellGuardSecurityScanner:
    """Run pre-flight checks on a CSV or Excel file.

    Returns the findings in check order.  ``E_*`` codes mean the file
    should not be analyzed.
    """

    def __init__(self, config: CellGuardConfig) -> None:
        self.config = config

    def scan(self, file_path: str, filename: str | None = None) -> list[CellGuardError]:
        """Run all pre-flight checks.

        *filename* is the user-facing name whose extension is checked; it
        defaults to *file_path* (uploads are often stored under a temp name).
        """
        upload = _Upload(path=file_path, name=filename or file_path)

        for check in (self._check_extension, self._check_readable):
            finding = check(upload)
            if finding is not None:
                return [finding]

        upload = replace(upload, size=os.path.getsize(file_path))
        for check in (self._check_not_empty, self._check_size_limit):
            finding = check(upload)
            if finding is not None:
                return [finding]

        warning = self._check_streaming(upload)
        return [warning] if warning is not None else []

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_extension(self, upload: _Upload) -> CellGuardError | None:
        suffix = os.path.splitext(upload.name)[1].lower()
        allowed = sorted({ext.lower() for ext in self.config.allowed_extensions})
        if suffix in allowed:
            return None
        return self._finding(
            ErrorCode.E_INPUT_UNSUPPORTED_TYPE,
            f"{upload.name}: '{suffix or 'no extension'}' is not a tabular "
            f"format this service reads ({', '.join(allowed)})",
        )

    def _check_readable(self, upload: _Upload) -> CellGuardError | None:
        if os.path.isfile(upload.path) and os.access(upload.path, os.R_OK):
            return None
        return self._finding(
            ErrorCode.E_SOURCE_FILE_MISSING,
            f"{upload.name}: upload is missing or unreadable at {upload.path}",
        )

    def _check_not_empty(self, upload: _Upload) -> CellGuardError | None:
        if upload.size:
            return None
        return self._finding(
            ErrorCode.E_INPUT_EMPTY, f"{upload.name}: upload has no content"
        )

    def _check_size_limit(self, upload: _Upload) -> CellGuardError | None:
        limit_mb = self.config.max_file_size_mb
        if upload.size <= limit_mb * _MB:
            return None
        return self._finding(
            ErrorCode.E_INPUT_TOO_LARGE,
            f"{upload.name}: {upload.size / _MB:.1f} MB is over the "
            f"{limit_mb} MB upload limit",
        )

    def _check_streaming(self, upload: _Upload) -> CellGuardError | None:
        threshold_mb = self.config.streaming_threshold_mb
        if upload.size <= threshold_mb * _MB:
            return None
        logger.warning(
            "Large upload %s: %d bytes, streaming above %s MB",
            upload.name,
            upload.size,
            threshold_mb,
        )
        return self._finding(
            ErrorCode.W_LARGE_FILE,
            f"{upload.name}: {upload.size / _MB:.1f} MB is above the "
            f"{threshold_mb} MB streaming threshold; rows are scanned in "
            f"batches of {self.config.batch_size}",
            recoverable=True,
        )

    @staticmethod
    def _finding(
        code: ErrorCode, message: str, recoverable: bool = False
    ) -> CellGuardError:
        return CellGuardError(
            code=code, message=message, stage="security", recoverable=recoverable
        )
