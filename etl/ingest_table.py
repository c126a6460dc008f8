# WORKFLOW: Spreadsheet ingestion for tariff nomenclature exports (CSV, XLSX, ZIP of XLSX).
# Used by: Pipeline runner (run_table_import), tests
# Functions:
# 1. extract_zip_file() - Extract spreadsheets from a ZIP archive
# 2. read_table_files() - Parse CSV/XLSX files into DataFrames keyed by file and sheet, plus parse failures
# 3. find_column() - Locate the code/label/rate/unit columns among header variants
# 4. map_row_to_candidate() - Map one row to a CandidateRecord
# 5. dataframe_to_text() - Render an unrecognised sheet as pipe-delimited text for the LLM path
# 6. load_table() - Full ingestion: files -> sheets -> candidates or text
#
# Ingestion flow: File -> Sheets -> Known columns? -> CandidateRecords (no LLM)
#                                   Unknown columns -> Pipe-delimited text -> Chunker path

"""
Spreadsheet ingestion for tariff nomenclature exports.
"""

import logging
import tempfile
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pandas as pd

from pipeline.models import CandidateRecord, SourceRef, UnitKind

logger = logging.getLogger(__name__)

CODE_COLUMNS = ["code", "code_10", "hs_code", "code_sh", "nomenclature", "codification"]
LABEL_COLUMNS = ["label", "label_fr", "libelle", "libelle_fr", "designation", "description"]
RATE_COLUMNS = ["rate", "droit", "droits", "duty", "taux", "di"]
UNIT_COLUMNS = ["unit", "unite", "unité", "uqn"]
NOTES_COLUMNS = ["notes", "note", "observations"]

SPREADSHEET_SUFFIXES = {".csv", ".xlsx", ".xls"}


class SheetData:
    """One parsed sheet: mapped candidates, text for LLM extraction, or a parse error."""

    def __init__(
        self,
        key: str,
        sheet_number: int,
        candidates: List[CandidateRecord],
        text: Optional[str] = None,
        error: Optional[str] = None,
    ):
        self.key = key
        self.sheet_number = sheet_number
        self.candidates = candidates
        self.text = text
        self.error = error

    @property
    def needs_extraction(self) -> bool:
        return self.text is not None and self.error is None


def extract_zip_file(zip_path: str, extract_dir: str) -> List[str]:
    """
    Extract spreadsheet files from a ZIP archive.

    Args:
        zip_path: Path to ZIP file
        extract_dir: Directory to extract files to

    Returns:
        List of extracted spreadsheet paths, sorted by name
    """
    try:
        with zipfile.ZipFile(zip_path, 'r') as zip_ref:
            zip_ref.extractall(extract_dir)

        files = sorted(
            str(f) for f in Path(extract_dir).rglob("*") if f.suffix.lower() in SPREADSHEET_SUFFIXES
        )
        logger.info(f"Extracted {len(files)} spreadsheet files from {zip_path}")
        return files

    except Exception as e:
        logger.error(f"Failed to extract ZIP file {zip_path}: {e}")
        raise


def read_table_files(files: List[str]) -> Tuple[Dict[str, pd.DataFrame], Dict[str, str]]:
    """
    Parse spreadsheet files into DataFrames.

    A file that cannot be parsed does not stop the others; it is reported in
    the second dictionary instead.

    Args:
        files: CSV or XLSX file paths

    Returns:
        Tuple of (dictionary mapping "<file stem>_<sheet>" to DataFrames with
        cells read as text, dictionary mapping file stem to parse error)
    """
    dataframes: Dict[str, pd.DataFrame] = {}
    failures: Dict[str, str] = {}

    for file_path in files:
        path = Path(file_path)
        try:
            if path.suffix.lower() == ".csv":
                # Separator sniffing covers ";", "," and tab exports
                df = pd.read_csv(path, sep=None, engine="python", dtype=str, keep_default_na=False)
                dataframes[path.stem] = df
                logger.info(f"Parsed CSV {file_path}: {len(df)} rows")
                continue

            sheets = pd.read_excel(path, sheet_name=None, dtype=str, keep_default_na=False)
            for sheet_name, df in sheets.items():
                dataframes[f"{path.stem}_{sheet_name}"] = df
            logger.info(f"Parsed {len(sheets)} sheets from {file_path}")

        except Exception as e:
            logger.error(f"Failed to parse spreadsheet {file_path}: {e}")
            failures[path.stem] = f"could not parse {path.name}: {e}"

    return dataframes, failures


def find_column(columns: List[str], variants: List[str]) -> Optional[str]:
    """
    Find the first column whose normalized header matches one of the variants.

    Args:
        columns: DataFrame column headers
        variants: Accepted header names (lowercase)

    Returns:
        Original column name or None
    """
    normalized = {str(column).strip().lower().replace(' ', '_'): column for column in columns}
    for variant in variants:
        if variant in normalized:
            return normalized[variant]
    return None


def _cell(row: pd.Series, column: Optional[str]) -> Optional[str]:
    if column is None:
        return None
    value = row.get(column)
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    text = str(value).strip()
    return text or None


def map_row_to_candidate(
    row: pd.Series,
    columns: Dict[str, Optional[str]],
    source: SourceRef,
) -> Optional[CandidateRecord]:
    """
    Map one spreadsheet row to a CandidateRecord.

    Args:
        row: DataFrame row
        columns: Resolved column names for code, label, rate, unit, notes
        source: Provenance of the sheet

    Returns:
        CandidateRecord, or None when the row has neither code nor label
    """
    code = _cell(row, columns["code"])
    label = _cell(row, columns["label"])
    if code is None and label is None:
        return None

    return CandidateRecord(
        raw_code=code,
        label=label,
        unit=_cell(row, columns.get("unit")),
        numeric_rate=_cell(row, columns.get("rate")),
        notes=_cell(row, columns.get("notes")),
        origin_chunk=source,
    )


def dataframe_to_text(df: pd.DataFrame) -> str:
    """Render a sheet as pipe-delimited rows, header first."""
    lines = [" | ".join(str(column) for column in df.columns)]
    for _, row in df.iterrows():
        lines.append(" | ".join(str(value).strip() for value in row.tolist()))
    return "\n".join(lines)


def load_table(path: str, document_id: Optional[str] = None) -> List[SheetData]:
    """
    Ingest a spreadsheet file or a ZIP of spreadsheets.

    Args:
        path: Path to a .csv, .xlsx/.xls or .zip file
        document_id: Identifier used for provenance (defaults to the file name)

    Returns:
        One SheetData per sheet, in file and sheet order, followed by one
        SheetData with `error` set per file that could not be parsed
    """
    source_path = Path(path)
    document_id = document_id or source_path.name
    suffix = source_path.suffix.lower()

    if suffix == ".zip":
        with tempfile.TemporaryDirectory() as extract_dir:
            files = extract_zip_file(path, extract_dir)
            dataframes, failures = read_table_files(files)
    elif suffix in SPREADSHEET_SUFFIXES:
        dataframes, failures = read_table_files([path])
    else:
        raise ValueError(f"Unsupported spreadsheet format: {source_path.suffix}")

    sheets: List[SheetData] = []
    for sheet_number, (key, df) in enumerate(dataframes.items(), start=1):
        source = SourceRef(document_id=f"{document_id}:{key}", unit_number=sheet_number, kind=UnitKind.TEXT)
        columns = {
            "code": find_column(list(df.columns), CODE_COLUMNS),
            "label": find_column(list(df.columns), LABEL_COLUMNS),
            "rate": find_column(list(df.columns), RATE_COLUMNS),
            "unit": find_column(list(df.columns), UNIT_COLUMNS),
            "notes": find_column(list(df.columns), NOTES_COLUMNS),
        }

        if columns["code"] is None or columns["label"] is None:
            logger.info(f"{key}: no recognisable code/label columns, falling back to LLM extraction")
            sheets.append(SheetData(key, sheet_number, [], text=dataframe_to_text(df)))
            continue

        candidates = []
        for _, row in df.iterrows():
            candidate = map_row_to_candidate(row, columns, source)
            if candidate is not None:
                candidates.append(candidate)

        logger.info(f"{key}: mapped {len(candidates)} candidates from {len(df)} rows")
        sheets.append(SheetData(key, sheet_number, candidates))

    for sheet_number, (key, message) in enumerate(failures.items(), start=len(sheets) + 1):
        sheets.append(SheetData(key, sheet_number, [], error=message))

    return sheets
