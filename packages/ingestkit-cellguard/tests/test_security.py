"""Tests for the upload pre-flight checks."""

from __future__ import annotations

import pytest

from ingestkit_cellguard.config import CellGuardConfig
from ingestkit_cellguard.errors import ErrorCode
from ingestkit_cellguard.security import CellGuardSecurityScanner


@pytest.fixture()
def scanner(config) -> CellGuardSecurityScanner:
    return CellGuardSecurityScanner(config)


@pytest.mark.unit
class TestSecurityScanner:
    def test_clean_file(self, scanner, write_csv):
        assert scanner.scan(str(write_csv("a\n1\n"))) == []

    def test_unsupported_extension(self, scanner, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("a")
        [error] = scanner.scan(str(path))
        assert error.code is ErrorCode.E_INPUT_UNSUPPORTED_TYPE

    def test_extension_taken_from_filename(self, scanner, tmp_path):
        path = tmp_path / "upload-1234"
        path.write_text("a\n1\n")
        assert scanner.scan(str(path), filename="data.CSV") == []

    def test_missing(self, scanner, tmp_path):
        [error] = scanner.scan(str(tmp_path / "gone.xlsx"))
        assert error.code is ErrorCode.E_SOURCE_FILE_MISSING

    def test_empty(self, scanner, write_csv):
        [error] = scanner.scan(str(write_csv("")))
        assert error.code is ErrorCode.E_INPUT_EMPTY

    def test_too_large(self, write_csv):
        scanner = CellGuardSecurityScanner(CellGuardConfig(max_file_size_mb=0))
        [error] = scanner.scan(str(write_csv("a\n1\n")))
        assert error.code is ErrorCode.E_INPUT_TOO_LARGE

    def test_streaming_warning_follows_threshold(self, write_csv):
        path = str(write_csv("a\n" + "x\n" * 600))
        config = CellGuardConfig(streaming_threshold_mb=0.001, batch_size=250)

        [warning] = CellGuardSecurityScanner(config).scan(path)

        assert warning.code is ErrorCode.W_LARGE_FILE
        assert warning.recoverable is True
        assert "0.001 MB streaming threshold" in warning.message
        assert "batches of 250" in warning.message

    def test_no_warning_at_or_below_threshold(self, write_csv):
        path = str(write_csv("a\n" + "x\n" * 600))
        config = CellGuardConfig(streaming_threshold_mb=1)
        assert CellGuardSecurityScanner(config).scan(path) == []
