"""Tests for ErrorCode, CellGuardError, and CellGuardException."""

from __future__ import annotations

import pytest

from ingestkit_cellguard.errors import CellGuardError, CellGuardException, ErrorCode


@pytest.mark.unit
class TestErrorCode:
    def test_values_equal_names(self):
        for code in ErrorCode:
            assert code.value == code.name

    def test_prefixes(self):
        for code in ErrorCode:
            assert code.value.startswith(("E_", "W_"))

    def test_is_str(self):
        assert ErrorCode.E_IO_STREAM == "E_IO_STREAM"


@pytest.mark.unit
class TestCellGuardException:
    def test_wraps_model(self):
        exc = CellGuardException(
            code=ErrorCode.E_ISSUE_NOT_FOUND,
            message="Issue not found: 3-1",
            stage="session",
            session_id="abc",
        )
        assert isinstance(exc.error, CellGuardError)
        assert exc.code is ErrorCode.E_ISSUE_NOT_FOUND
        assert exc.message == "Issue not found: 3-1"
        assert exc.stage == "session"
        assert exc.recoverable is False
        assert exc.error.session_id == "abc"
        assert str(exc) == "Issue not found: 3-1"

    def test_is_raisable(self):
        with pytest.raises(CellGuardException) as info:
            raise CellGuardException(code=ErrorCode.E_INPUT_EMPTY, message="empty")
        assert info.value.code is ErrorCode.E_INPUT_EMPTY

    def test_error_serializes(self):
        error = CellGuardError(code=ErrorCode.W_MALFORMED_ROW, message="m", row=4)
        dumped = error.model_dump()
        assert dumped["code"] == "W_MALFORMED_ROW"
        assert dumped["row"] == 4
