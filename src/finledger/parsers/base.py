"""Shared parser result type and column alias handling."""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from finledger.domain.entities import LineItem, StatementData
from finledger.domain.errors import NormalizationError
from finledger.domain.normalizer import RawRow, SourceFormat, normalize

logger = logging.getLogger(__name__)


@dataclass
class ParseResult:
    """Output of any format parser."""

    source_format: SourceFormat
    line_items: list[LineItem] = field(default_factory=list)
    statement: Optional[StatementData] = None
    errors: list[NormalizationError] = field(default_factory=list)

    @property
    def error_messages(self) -> list[str]:
        return [str(e) for e in self.errors]


# Canonical raw field -> accepted source column names (normalized form)
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "date": (
        "date",
        "transaction date",
        "trans date",
        "trade date",
        "run date",
        "activity date",
        "txn date",
        "booking date",
        "value date",
    ),
    "post_date": ("post date", "posting date", "posted date", "settlement date", "settle date"),
    "type": ("type", "transaction type", "trans type", "action", "activity", "details", "category type"),
    "description": (
        "description",
        "transaction description",
        "payee",
        "payee name",
        "name",
        "merchant",
        "merchant name",
        "narrative",
        "security description",
    ),
    "symbol": ("symbol", "ticker"),
    "quantity": ("quantity", "qty", "shares", "units"),
    "price": ("price", "unit price", "share price"),
    "commission": ("commission", "commissions", "comm"),
    "fee": ("fee", "fees"),
    "amount": ("amount", "net amount", "transaction amount", "total amount", "value"),
    "debit": ("debit", "debits", "debit amount", "money out", "paid out"),
    "credit": ("credit", "credits", "credit amount", "money in", "paid in"),
    "deposit": ("deposit", "deposits"),
    "withdrawal": ("withdrawal", "withdrawals"),
    "memo": ("memo", "notes", "note", "comment", "reference"),
    "balance": ("balance", "running balance", "account balance", "running bal"),
    "cusip": ("cusip",),
}

AMOUNT_FIELDS = ("amount", "debit", "credit", "deposit", "withdrawal")

_PARENTHETICAL = re.compile(r"\s*\(.*?\)")
_CAMEL = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def normalize_header(name: str) -> str:
    """Reduce a column/key name to its alias-table form."""
    name = _CAMEL.sub(" ", name or "")
    name = _PARENTHETICAL.sub("", name)
    name = name.replace("_", " ").replace(".", "").strip().lower()
    return " ".join(name.split())


def map_columns(columns: Iterable[str]) -> dict[str, str]:
    """Map canonical field names to the first matching source column.

    Returns:
        Dict of canonical field -> original column name
    """
    normalized = [(normalize_header(col), col) for col in columns if col is not None]
    mapping: dict[str, str] = {}
    for field_name, aliases in FIELD_ALIASES.items():
        for alias in aliases:
            match = next((orig for norm, orig in normalized if norm == alias), None)
            if match is not None and match not in mapping.values():
                mapping[field_name] = match
                break
    if "date" not in mapping and "post_date" in mapping:
        mapping["date"] = mapping.pop("post_date")
    return mapping


def has_required_columns(mapping: dict[str, str]) -> bool:
    return "date" in mapping and any(f in mapping for f in AMOUNT_FIELDS)


def build_result(
    rows: Iterable[tuple[int, RawRow]],
    source_format: SourceFormat,
    statement: Optional[StatementData] = None,
    reference_year: Optional[int] = None,
) -> ParseResult:
    """Normalize raw rows, collecting row-level errors instead of aborting."""
    result = ParseResult(source_format=source_format, statement=statement)
    for row_num, raw in rows:
        try:
            result.line_items.append(normalize(raw, source_format, reference_year=reference_year))
        except NormalizationError as e:
            error = e.with_row(row_num)
            logger.warning("Rejected %s row: %s", source_format.value, error)
            result.errors.append(error)
    logger.info(
        "Parsed %d line items (%d rejected) from %s source",
        len(result.line_items),
        len(result.errors),
        source_format.value,
    )
    return result
