"""Tests for FixReconciler and CSV field formatting."""

from __future__ import annotations

import datetime

import openpyxl
import pytest

from ingestkit_cellguard.errors import CellGuardException, ErrorCode
from ingestkit_cellguard.reconciler import FixReconciler, format_field, format_row, rows_to_csv
from ingestkit_cellguard.sources import CSVFileSource, ExcelFileSource, InMemoryTableSource


@pytest.mark.unit
class TestFormatField:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, ""),
            ("", ""),
            ("plain", "plain"),
            ("a,b", '"a,b"'),
            ('say "hi"', '"say ""hi"""'),
            ("two\nlines", '"two\nlines"'),
            ("cr\rhere", '"cr\rhere"'),
            ("  spaced  ", "  spaced  "),
            (42, "42"),
        ],
    )
    def test_quoting(self, value, expected):
        assert format_field(value) == expected

    def test_format_row(self):
        assert format_row(["a", None, "b,c"]) == 'a,,"b,c"'


@pytest.mark.unit
class TestApplyFixes:
    def test_only_fixed_cells_change(self):
        rows = [{"a": "é", "b": "x"}, {"a": "y", "b": "ü"}]
        fixed = FixReconciler().apply_fixes(rows, {(0, "a"): "e", (1, "b"): "u"})
        assert fixed == [{"a": "e", "b": "x"}, {"a": "y", "b": "u"}]
        assert rows[0]["a"] == "é"

    def test_offset_row_index(self):
        fixed = FixReconciler().apply_fixes([{"a": "é"}], {(5, "a"): "e"}, first_row_index=5)
        assert fixed == [{"a": "e"}]

    def test_fix_across_batches(self):
        source = InMemoryTableSource(["n"], [[str(i)] for i in range(7)])
        rows = list(FixReconciler(batch_size=3).iter_fixed_rows(source, {(6, "n"): "six"}))
        assert [r["n"] for r in rows] == ["0", "1", "2", "3", "4", "5", "six"]


@pytest.mark.unit
class TestWriteCSV:
    def test_zero_fixes_reproduces_input(self, write_csv, tmp_path):
        text = 'name,city,note\nZoë,"Köln, DE",\nBob,Paris,"said ""hi"""\n'
        out = tmp_path / "out.csv"

        count = FixReconciler().write_csv(CSVFileSource(write_csv(text)), {}, out)

        assert count == 2
        assert out.read_text(encoding="utf-8") == text

    def test_fixes_applied(self, write_csv, tmp_path):
        source = CSVFileSource(write_csv("name,city\nZoë,Köln\nBob,Paris\n"))
        out = tmp_path / "out.csv"

        FixReconciler(batch_size=1).write_csv(
            source, {(0, "name"): "Zoe", (0, "city"): "Koeln, DE"}, out
        )

        assert out.read_text(encoding="utf-8") == 'name,city\nZoe,"Koeln, DE"\nBob,Paris\n'

    def test_header_written_as_read(self, write_csv, tmp_path):
        text = "Name,Name, City ,\nAl,Bo,Rome,x\n"
        out = tmp_path / "out.csv"

        FixReconciler().write_csv(CSVFileSource(write_csv(text)), {}, out)

        assert out.read_text(encoding="utf-8") == text

    def test_extra_fields_kept(self, write_csv, tmp_path):
        source = CSVFileSource(write_csv("a,b\n1,2\n3,ü,5\n"))
        out = tmp_path / "out.csv"

        count = FixReconciler().write_csv(source, {(1, "b"): "u"}, out)

        assert count == 2
        assert out.read_text(encoding="utf-8") == "a,b\n1,2\n3,u,5\n"

    def test_blank_lines_kept_and_skipped_in_numbering(self, write_csv, tmp_path):
        source = CSVFileSource(write_csv("a,b\n1,é\n\n3,ü\n"))
        out = tmp_path / "out.csv"

        FixReconciler().write_csv(source, {(0, "b"): "e", (1, "b"): "u"}, out)

        assert out.read_text(encoding="utf-8") == "a,b\n1,e\n\n3,u\n"

    def test_unwritable_path(self, tmp_path):
        source = InMemoryTableSource(["a"], [["1"]])
        with pytest.raises(CellGuardException) as info:
            FixReconciler().write_csv(source, {}, tmp_path / "missing" / "out.csv")
        assert info.value.code is ErrorCode.E_IO_STREAM


@pytest.mark.unit
class TestWriteXLSX:
    def test_round_trip(self, tmp_path):
        source = InMemoryTableSource(["name", "city"], [["Zoë", ""], ["Bob", "Paris"]])
        out = tmp_path / "out.xlsx"

        count = FixReconciler().write_xlsx(source, {(0, "name"): "Zoe"}, out)

        assert count == 2
        wb = openpyxl.load_workbook(out)
        rows = list(wb.active.iter_rows(values_only=True))
        assert rows == [("name", "city"), ("Zoe", None), ("Bob", "Paris")]

    def test_workbook_cell_types_preserved(self, write_xlsx, tmp_path):
        when = datetime.datetime(2024, 1, 2)
        path = write_xlsx(
            [["id", "when", "name", "ok"], [42, when, "Zoë", True], [7, None, "Bob", False]]
        )
        out = tmp_path / "out.xlsx"

        FixReconciler().write_xlsx(ExcelFileSource(path), {(0, "name"): "Zoe"}, out)

        rows = list(openpyxl.load_workbook(out).active.iter_rows(values_only=True))
        assert rows == [
            ("id", "when", "name", "ok"),
            (42, when, "Zoe", True),
            (7, None, "Bob", False),
        ]
        assert isinstance(rows[1][0], int)


@pytest.mark.unit
def test_rows_to_csv():
    text = rows_to_csv(["a", "b"], [{"a": 1, "b": "x,y"}, {"a": None}])
    assert text == 'a,b\n1,"x,y"\n,\n'
