import json
import os
from typing import Any, Callable, Dict, List

import pandas as pd
from loguru import logger

from app.core.errors import FormatParseError, UnsupportedFormatError
from app.models.ingestion import ROW_ERROR_KEY, RawCatalogRow
from app.utils.file_storage import scoped_file

# Stands in for the first field of a CSV line with too many fields
RAGGED_MARKER = "\x00ragged:"


def normalize_column(name: Any) -> str:
    """'Product Name ' -> 'product_name'"""
    return str(name).lower().strip().replace(' ', '_')


def _plain(value: Any) -> Any:
    # numpy scalars from pandas -> builtin python values
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        try:
            return value.item()
        except (TypeError, ValueError):
            return value
    return value


def _is_missing(value: Any) -> bool:
    if isinstance(value, (list, dict)):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _frame_to_rows(df: pd.DataFrame) -> List[RawCatalogRow]:
    df.columns = [normalize_column(col) for col in df.columns]
    return [
        {key: _plain(value) for key, value in record.items() if not _is_missing(value)}
        for record in df.to_dict(orient="records")
    ]


def parse_csv(file_path: str, filename: str) -> List[RawCatalogRow]:
    read_options = dict(dtype=str, keep_default_na=False, encoding="utf-8-sig", skip_blank_lines=True)
    try:
        header = list(pd.read_csv(file_path, nrows=0, **read_options).columns)

        def flag_ragged(fields: List[str]) -> List[str]:
            # Keeps the line as a row so it is reported instead of dropped
            return [f"{RAGGED_MARKER}{len(fields)}"] + [""] * (len(header) - 1)

        # The header line is read as data so a long first row cannot become an index
        df = pd.read_csv(
            file_path,
            header=None,
            names=list(range(len(header))),
            engine="python",
            on_bad_lines=flag_ragged,
            **read_options,
        ).iloc[1:]
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        raise FormatParseError(filename, str(e)) from e
    df.columns = header
    # Rows made only of delimiters survive skip_blank_lines
    df = df[~(df == "").all(axis=1)]

    rows = _frame_to_rows(df)
    first_column = df.columns[0]
    for i, row in enumerate(rows):
        marker = str(row.get(first_column, ""))
        if marker.startswith(RAGGED_MARKER):
            seen = marker[len(RAGGED_MARKER):]
            rows[i] = {ROW_ERROR_KEY: f"expected {len(header)} fields, saw {seen}"}
            logger.warning(f"Malformed line in {filename} (row {i}): {seen} fields")
    return rows


def parse_excel(file_path: str, filename: str) -> List[RawCatalogRow]:
    try:
        # First sheet only
        df = pd.read_excel(file_path, sheet_name=0)
    except Exception as e:
        raise FormatParseError(filename, str(e)) from e
    df = df.dropna(how="all")
    return _frame_to_rows(df)


def parse_json(file_path: str, filename: str) -> List[RawCatalogRow]:
    try:
        with open(file_path, "r", encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise FormatParseError(filename, str(e)) from e

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise FormatParseError(filename, f"expected an array of product objects, got {type(data).__name__}")

    rows = []
    for item in data:
        if isinstance(item, dict):
            rows.append({normalize_column(k): v for k, v in item.items()})
        else:
            # Left for the normalizer to reject as a single bad row
            rows.append(item)
    return rows


PARSERS: Dict[str, Callable[[str, str], List[RawCatalogRow]]] = {
    ".csv": parse_csv,
    ".xlsx": parse_excel,
    ".xls": parse_excel,
    ".json": parse_json,
}


class FormatDispatcher:
    """Selects a parser for a bulk catalog file by its extension."""

    @staticmethod
    def supported_extensions() -> List[str]:
        return sorted(PARSERS)

    @staticmethod
    def parse(file_path: str, original_filename: str) -> List[RawCatalogRow]:
        """
        Parses ``file_path`` with the parser chosen from ``original_filename``'s
        extension. The file is removed afterwards whatever the outcome.
        """
        with scoped_file(file_path):
            ext = os.path.splitext(original_filename or "")[1].lower()
            parser = PARSERS.get(ext)
            if parser is None:
                logger.warning(f"Rejected bulk file with unsupported extension: {original_filename}")
                raise UnsupportedFormatError(original_filename, FormatDispatcher.supported_extensions())

            logger.info(f"Parsing {ext} catalog file: {original_filename}")
            rows = parser(file_path, original_filename)
            logger.success(f"Parsed {len(rows)} rows from {original_filename}")
            return rows
