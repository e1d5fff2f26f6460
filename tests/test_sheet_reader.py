"""Tests for spreadsheet input loading and validation."""

import os
import time
from datetime import date, datetime

import openpyxl
import pytest

from qhslab_claims.errors import ConfigurationError, ValidationError
from qhslab_claims.sheet_reader import (
    build_row,
    find_input_file,
    load_input,
    normalize_column_key,
    parse_cpt_codes,
    parse_date,
    select_worksheet,
    value_to_string,
)


class TestValueHelpers:
    def test_normalize_column_key(self):
        assert normalize_column_key(" Orig Appt. Date ") == "origapptdate"
        assert normalize_column_key("CPT(s)") == "cpts"
        assert normalize_column_key(None) == ""

    def test_value_to_string(self):
        assert value_to_string(None) == ""
        assert value_to_string(12345.0) == "12345"
        assert value_to_string(datetime(2024, 1, 5, 9, 30)) == "01/05/2024"
        assert value_to_string("  F33.1 ") == "F33.1"

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("01/05/2024", date(2024, 1, 5)),
            ("1/5/2024", date(2024, 1, 5)),
            ("2024-01-05", date(2024, 1, 5)),
            (datetime(2024, 1, 5, 14, 0), date(2024, 1, 5)),
            (45000, date(2023, 3, 15)),
            ("45000", date(2023, 3, 15)),
            ("January 5, 2024", date(2024, 1, 5)),
        ],
    )
    def test_parse_date_formats(self, raw, expected):
        assert parse_date(raw) == expected

    @pytest.mark.parametrize("raw", ["13/45/2024", "not a date", ""])
    def test_parse_date_rejects(self, raw):
        assert parse_date(raw) is None

    def test_parse_cpt_codes(self):
        assert parse_cpt_codes("96127, 99213  G0444") == ("96127", "99213", "G0444")
        assert parse_cpt_codes(None) == ()


class TestBuildRow:
    def test_aliases(self):
        row = build_row(
            7,
            {
                "Patient MRN": "1001",
                "Custom ID": "C-1",
                "Date of Service": "2024-01-05",
                "Orig Appt. Date": datetime(2024, 1, 4),
                "CPT Codes": "96127,99213",
                "ICD Code": "F33.1",
                "QHS Billing Status": "QHSLAB",
                "Status": "Billed",
                "Provider": "Dr. Smith",
            },
        )

        assert row.row_number == 7
        assert row.mrn == "1001"
        assert row.custom_id == "C-1"
        assert row.dos == "01/05/2024"
        assert row.appointment_date == "01/04/2024"
        assert row.cpt_codes == ("96127", "99213")
        assert row.icd == "F33.1"
        assert row.raw_billing_classification == "QHSLAB"
        assert row.extra == {"Provider": "Dr. Smith"}

    def test_missing_mrn(self):
        with pytest.raises(ValidationError) as excinfo:
            build_row(3, {"MRN": "  ", "DOS": "01/05/2024"})

        assert excinfo.value.row_number == 3
        assert excinfo.value.problems == ["MRN is required"]

    def test_collects_every_problem(self):
        with pytest.raises(ValidationError) as excinfo:
            build_row(3, {"DOS": "someday", "Appointment Date": "later"})

        assert len(excinfo.value.problems) == 3
        assert 'DOS "someday" is not a valid date' in excinfo.value.problems


class TestLoadInput:
    def test_row_numbers_follow_the_sheet(self, make_workbook, config):
        path = make_workbook(
            [
                ["MRN", "DOS", "Billing Status"],
                ["1001", "01/05/2024", "QHSLAB"],
                [None, None, None],
                ["1002", "bad date", ""],
                ["1003", None, "cancel"],
            ]
        )

        loaded = load_input(config, path)

        assert [row.row_number for row in loaded.rows] == [2, 5]
        assert [error.row_number for error in loaded.rejected] == [4]
        assert loaded.sheet_name == "Input"

    def test_hidden_rows_skipped_when_enabled(self, tmp_path, config):
        path = tmp_path / "filtered.xlsx"
        wb = openpyxl.Workbook()
        ws = wb.active
        for values in (["MRN"], ["1001"], ["1002"], ["1003"]):
            ws.append(values)
        ws.row_dimensions[3].hidden = True
        wb.save(path)

        config.skip_hidden_rows = True
        assert [r.mrn for r in load_input(config, path).rows] == ["1001", "1003"]

        config.skip_hidden_rows = False
        assert [r.mrn for r in load_input(config, path).rows] == ["1001", "1002", "1003"]

    def test_csv_input(self, tmp_path, config):
        path = tmp_path / "claims.csv"
        path.write_text("MRN,Custom ID,DOS\n1001,C-1,01/05/2024\n,,\n1002,,\n", encoding="utf-8")

        loaded = load_input(config, path)

        assert [(r.row_number, r.mrn) for r in loaded.rows] == [(2, "1001"), (4, "1002")]
        assert loaded.rows[0].custom_id == "C-1"

    def test_explicit_path_from_config(self, make_workbook, config):
        path = make_workbook([["MRN"], ["1001"]], name="explicit.xlsx")
        config.excel_path = str(path)

        assert load_input(config).path == path

    def test_missing_explicit_path(self, config):
        config.excel_path = "nope.xlsx"

        with pytest.raises(ConfigurationError):
            load_input(config)


class TestDiscovery:
    def _touch(self, path, age):
        path.write_bytes(b"")
        stamp = time.time() - age
        os.utime(path, (stamp, stamp))
        return path

    def test_newest_non_report_file(self, tmp_path):
        self._touch(tmp_path / "older.xlsx", 100)
        newest = self._touch(tmp_path / "newer.xlsx", 10)
        self._touch(tmp_path / "claims_processing_report_2024.xlsx", 1)
        self._touch(tmp_path / "notes.txt", 0)

        assert find_input_file(tmp_path) == newest

    def test_preferred_name(self, tmp_path):
        preferred = self._touch(tmp_path / "January Claims.xlsx", 100)
        self._touch(tmp_path / "newer.xlsx", 10)

        assert find_input_file(tmp_path, "january") == preferred

    def test_reports_used_when_nothing_else(self, tmp_path):
        report = self._touch(tmp_path / "claims_processing_report_2024.xlsx", 1)

        assert find_input_file(tmp_path) == report

    def test_empty_directory(self, tmp_path):
        with pytest.raises(ConfigurationError):
            find_input_file(tmp_path)


class TestSelectWorksheet:
    def _workbook(self, *names):
        wb = openpyxl.Workbook()
        wb.active.title = names[0]
        for name in names[1:]:
            wb.create_sheet(name)
        return wb

    def test_prefers_input_sheet(self):
        assert select_worksheet(self._workbook("Summary", "Input")).title == "Input"

    def test_first_sheet_otherwise(self):
        assert select_worksheet(self._workbook("Summary", "Data")).title == "Summary"

    def test_unknown_name_lists_sheets(self):
        with pytest.raises(ConfigurationError, match="Summary, Data"):
            select_worksheet(self._workbook("Summary", "Data"), "Claims")
