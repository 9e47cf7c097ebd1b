"""Browser history (HAR) export parser.

Online banking sites load transaction history through JSON API calls. A HAR
file recorded from the browser's network panel keeps those responses, so the
parser walks every JSON response body looking for lists of objects that
carry a date-like and an amount-like key.
"""

import base64
import binascii
import json
import logging
from typing import Any, Iterator

from finledger.domain.errors import ParseError
from finledger.domain.normalizer import SourceFormat
from finledger.parsers.base import ParseResult, build_result, has_required_columns, map_columns

logger = logging.getLogger(__name__)


def looks_like_har(document: Any) -> bool:
    return (
        isinstance(document, dict)
        and isinstance(document.get("log"), dict)
        and isinstance(document["log"].get("entries"), list)
    )


def _url(entry: dict) -> Any:
    request = entry.get("request")
    return request.get("url") if isinstance(request, dict) else None


def _response_bodies(document: dict) -> Iterator[Any]:
    for number, entry in enumerate(document["log"]["entries"], start=1):
        response = entry.get("response") if isinstance(entry, dict) else None
        content = response.get("content") if isinstance(response, dict) else None
        if not isinstance(content, dict):
            logger.debug("Skipping HAR entry %d without a response body", number)
            continue
        text = content.get("text")
        mime_type = str(content.get("mimeType") or "").lower()
        if not isinstance(text, str) or not text or "json" not in mime_type:
            continue
        if content.get("encoding") == "base64":
            try:
                text = base64.b64decode(text).decode("utf-8", errors="replace")
            except (binascii.Error, ValueError):
                logger.debug("Skipping undecodable base64 body of %s", _url(entry))
                continue
        try:
            yield json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Skipping non-JSON body of %s", _url(entry))


def _scalar(value: Any) -> Any:
    # {"amount": {"value": -12.5, "currency": "USD"}}
    if isinstance(value, dict):
        for key in ("value", "amount"):
            if key in value:
                return value[key]
        return None
    return value


def _transaction_lists(node: Any) -> Iterator[list[dict]]:
    if isinstance(node, list):
        records = [item for item in node if isinstance(item, dict)]
        if records and has_required_columns(map_columns(records[0].keys())):
            yield records
            return
        for item in node:
            yield from _transaction_lists(item)
    elif isinstance(node, dict):
        for value in node.values():
            yield from _transaction_lists(value)


def parse_har(document: dict) -> ParseResult:
    """Parse transactions out of a HAR document.

    Raises:
        ParseError: If no response in the capture holds transaction data
    """
    seen: set[str] = set()
    rows = []
    for body in _response_bodies(document):
        for records in _transaction_lists(body):
            for record in records:
                fingerprint = json.dumps(record, sort_keys=True, default=str)
                if fingerprint in seen:
                    continue
                seen.add(fingerprint)
                mapping = map_columns(record.keys())
                raw = {field: _scalar(record.get(key)) for field, key in mapping.items()}
                rows.append((len(rows) + 1, raw))

    if not rows:
        raise ParseError("No transaction data found in HAR file")
    return build_result(rows, SourceFormat.HAR)
