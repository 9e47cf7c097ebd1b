"""Delimited text (CSV/TSV) bank and brokerage export parser."""

import csv
import io
import logging

from finledger.domain.errors import ParseError
from finledger.domain.normalizer import SourceFormat
from finledger.parsers.base import ParseResult, build_result, has_required_columns, map_columns

logger = logging.getLogger(__name__)

# Some exports put account summary lines above the header row
HEADER_SEARCH_ROWS = 15


def _detect_delimiter(text: str) -> str:
    sample = text[:4096]
    try:
        return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
    except csv.Error:
        first_line = sample.splitlines()[0] if sample else ""
        return "\t" if "\t" in first_line else ","


def parse_delimited(text: str) -> ParseResult:
    """Parse delimited text with a header row.

    Args:
        text: File contents or pasted text

    Returns:
        ParseResult with normalized line items and row errors

    Raises:
        ParseError: If no header row with a date and an amount column is
            found, or the text is not valid delimited data
    """
    delimiter = _detect_delimiter(text)
    try:
        rows = list(csv.reader(io.StringIO(text), delimiter=delimiter, strict=True))
    except csv.Error as e:
        raise ParseError(f"Truncated or corrupt delimited file: {e}")

    header_index = None
    mapping: dict[str, str] = {}
    for index, row in enumerate(rows[:HEADER_SEARCH_ROWS]):
        candidate = map_columns(cell.strip() for cell in row)
        if has_required_columns(candidate):
            header_index = index
            mapping = candidate
            break

    if header_index is None:
        raise ParseError(
            "Unrecognized format: no header row with a date column and an amount column"
        )

    header = [cell.strip() for cell in rows[header_index]]
    logger.debug("Delimited header at row %d mapped as %s", header_index + 1, mapping)

    def raw_rows():
        for offset, row in enumerate(rows[header_index + 1 :], start=header_index + 2):
            if not any(cell.strip() for cell in row):
                continue
            values = dict(zip(header, row))
            yield offset, {field: values.get(column) for field, column in mapping.items()}

    return build_result(raw_rows(), SourceFormat.DELIMITED)
