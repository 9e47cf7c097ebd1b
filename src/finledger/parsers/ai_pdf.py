"""AI-extracted PDF statement envelope parser.

PDF statements are sent to a generative model elsewhere; this module only
reads the JSON it returns::

    {
      "statementInfo": {"brokerName": ..., "periodStart": "YYYY-MM-DD", ...},
      "statementDetails": [{"section": ..., "line_item": ..., ...}],
      "transactions": [{"date": ..., "description": ..., "amount": ..., "type": ...}]
    }

The payload may arrive bare, wrapped in a markdown ``json`` fence, or inside
the raw API response (``candidates[0].content.parts[0].text``).
"""

import json
import logging
import re
from typing import Any, Optional

from finledger.domain.entities import StatementData, StatementDetailRow, StatementInfo
from finledger.domain.errors import NormalizationError, ParseError
from finledger.domain.normalizer import SourceFormat
from finledger.parsers.base import ParseResult, build_result, map_columns
from finledger.utils.amount_parser import parse_decimal
from finledger.utils.date_parser import parse_date

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.S)
_ENVELOPE_KEYS = ("transactions", "statementInfo", "statementDetails", "error")


def strip_fences(text: str) -> str:
    return _FENCE.sub("", text.strip())


def looks_like_ai_envelope(document: Any) -> bool:
    return isinstance(document, dict) and (
        "candidates" in document or any(key in document for key in _ENVELOPE_KEYS)
    )


def _unwrap(document: Any) -> dict:
    if isinstance(document, dict) and "candidates" in document:
        try:
            text = document["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise ParseError("Failed to parse AI extraction response: no candidate text")
        document = _loads(text)
    if not isinstance(document, dict):
        raise ParseError("Failed to parse AI extraction response: expected a JSON object")
    return document


def _loads(text: str) -> Any:
    try:
        return json.loads(strip_fences(text))
    except json.JSONDecodeError as e:
        raise ParseError(f"Failed to parse AI extraction response: {e}")


def _optional_date(value: Optional[str]):
    if not value:
        return None
    try:
        return parse_date(str(value))
    except NormalizationError:
        logger.debug("Ignoring unparseable statement date %r", value)
        return None


def _statement(document: dict) -> Optional[StatementData]:
    info = document.get("statementInfo") or {}
    details = document.get("statementDetails") or []
    if not isinstance(info, dict):
        raise ParseError("Failed to parse AI extraction response: 'statementInfo' is not an object")
    if not isinstance(details, list):
        raise ParseError("Failed to parse AI extraction response: 'statementDetails' is not a list")
    if not info and not details:
        return None

    period_start = _optional_date(info.get("periodStart"))
    period_end = _optional_date(info.get("periodEnd"))
    period = None
    if period_start and period_end:
        period = f"{period_start.isoformat()} - {period_end.isoformat()}"

    rows = tuple(
        StatementDetailRow(
            section=" ".join(str(row.get("section") or "").split()),
            line_item=" ".join(str(row.get("line_item") or "").split()),
            statement_period_value=parse_decimal(row.get("statement_period_value")),
            ytd_value=parse_decimal(row.get("ytd_value")),
            is_percentage=bool(row.get("is_percentage")),
        )
        for row in details
        if isinstance(row, dict) and row.get("line_item")
    )
    return StatementData(
        info=StatementInfo(
            broker_name=info.get("brokerName"),
            account_number=info.get("accountNumber"),
            account_name=info.get("accountName"),
            period=period,
            period_start=period_start,
            period_end=period_end,
            closing_balance=parse_decimal(info.get("closingBalance"), default=None),
        ),
        details=rows,
    )


def parse_ai_envelope(payload: Any) -> ParseResult:
    """Parse an AI extraction response.

    Args:
        payload: Raw response text, or an already-decoded JSON document

    Raises:
        ParseError: If the response is not valid JSON or reports an error
    """
    document = _unwrap(_loads(payload) if isinstance(payload, str) else payload)
    if document.get("error"):
        raise ParseError(f"AI extraction failed: {document['error']}")

    statement = _statement(document)
    transactions = document.get("transactions") or []
    if not isinstance(transactions, list):
        raise ParseError("Failed to parse AI extraction response: 'transactions' is not a list")

    def raw_rows():
        for index, record in enumerate(transactions, start=1):
            if not isinstance(record, dict):
                continue
            mapping = map_columns(record.keys())
            yield index, {field: record.get(key) for field, key in mapping.items()}

    reference_year = None
    if statement is not None and statement.info.period_end is not None:
        reference_year = statement.info.period_end.year
    return build_result(
        raw_rows(), SourceFormat.AI_PDF, statement=statement, reference_year=reference_year
    )
