# WORKFLOW: Tests for spreadsheet ingestion.
# Used by: CI, development testing
# Test scenarios:
# 1. Header variants are recognised (code/libelle/taux/unite)
# 2. Rows map to CandidateRecords with provenance; empty rows are skipped
# 3. Unrecognised sheets fall back to pipe-delimited text
# 4. ZIP archives of spreadsheets; unsupported formats rejected
# 5. Unreadable files become error sheets instead of disappearing

import zipfile

import pandas as pd
import pytest

from etl.ingest_table import dataframe_to_text, find_column, load_table, read_table_files, LABEL_COLUMNS, CODE_COLUMNS


def test_find_column_variants():
    columns = ["Code SH", "Libellé FR", "Libelle", "Taux"]
    assert find_column(columns, CODE_COLUMNS) == "Code SH"
    assert find_column(columns, LABEL_COLUMNS) == "Libelle"
    assert find_column(columns, ["missing"]) is None


def test_load_csv_maps_rows(tmp_path):
    path = tmp_path / "tarif.csv"
    path.write_text(
        "code,label,rate,unit,notes\n"
        "0101.21.00,Live horses,5,u,\n"
        ",,,,\n"
        "0102.21.00,Live cattle,ex,u,(a)\n",
        encoding="utf-8",
    )

    sheets = load_table(str(path))

    assert len(sheets) == 1
    sheet = sheets[0]
    assert not sheet.needs_extraction
    assert [c.raw_code for c in sheet.candidates] == ["0101.21.00", "0102.21.00"]
    assert sheet.candidates[0].numeric_rate == "5"
    assert sheet.candidates[0].notes is None
    assert sheet.candidates[1].notes == "(a)"
    assert sheet.candidates[0].origin_chunk.document_id == "tarif.csv:tarif"


def test_unrecognised_sheet_becomes_text(tmp_path):
    path = tmp_path / "export.csv"
    path.write_text("Position,Texte\n0101.21.00,Chevaux\n", encoding="utf-8")

    sheets = load_table(str(path))

    assert sheets[0].needs_extraction
    assert sheets[0].candidates == []
    assert sheets[0].text == "Position | Texte\n0101.21.00 | Chevaux"


def test_zip_of_spreadsheets(tmp_path):
    first = tmp_path / "a.csv"
    first.write_text("code;label\n0101.21.00;Live horses\n", encoding="utf-8")
    second = tmp_path / "b.csv"
    second.write_text("code;label\n0303.14.00;Trout\n0303.19.00;Other salmonidae\n", encoding="utf-8")
    archive = tmp_path / "tarif.zip"
    with zipfile.ZipFile(archive, "w") as zf:
        zf.write(first, "a.csv")
        zf.write(second, "b.csv")

    sheets = load_table(str(archive))

    assert [s.key for s in sheets] == ["a", "b"]
    assert [s.sheet_number for s in sheets] == [1, 2]
    assert len(sheets[1].candidates) == 2


def test_unreadable_workbook_becomes_error_sheet(tmp_path):
    path = tmp_path / "tarif.xlsx"
    path.write_bytes(b"not a real workbook")

    sheets = load_table(str(path))

    assert len(sheets) == 1
    assert sheets[0].key == "tarif"
    assert sheets[0].error.startswith("could not parse tarif.xlsx")
    assert sheets[0].candidates == []
    assert not sheets[0].needs_extraction


def test_read_table_files_keeps_going_after_a_failure(tmp_path):
    bad = tmp_path / "a.xlsx"
    bad.write_bytes(b"not a real workbook")
    good = tmp_path / "b.csv"
    good.write_text("code;label\n0101.21.00;Live horses\n", encoding="utf-8")

    dataframes, failures = read_table_files([str(bad), str(good)])

    assert list(dataframes) == ["b"]
    assert list(failures) == ["a"]


def test_unsupported_format(tmp_path):
    path = tmp_path / "tarif.pdf"
    path.write_bytes(b"%PDF-1.4")

    with pytest.raises(ValueError):
        load_table(str(path))


def test_dataframe_to_text():
    df = pd.DataFrame({"A": ["1", "2"], "B": [" x ", "y"]})
    assert dataframe_to_text(df) == "A | B\n1 | x\n2 | y"
