"""Limited QFX/OFX export parser.

Only what statement downloads actually need is supported: bank
``<STMTTRN>`` aggregates (also used inside ``<INVBANKTRAN>``) and the
investment buy/sell/income aggregates. Both the SGML flavour (leaf elements
without closing tags) and the XML flavour are read with the same
tag-scanning approach.
"""

import logging
import re
from typing import Optional

from finledger.domain.errors import ParseError
from finledger.domain.normalizer import SourceFormat
from finledger.parsers.base import ParseResult, build_result

logger = logging.getLogger(__name__)

_STMTTRN = re.compile(r"<STMTTRN>(.*?)</STMTTRN>", re.S | re.I)
_INVESTMENT = re.compile(
    r"<(?P<tag>(?:BUY|SELL)(?:STOCK|MF|OPT|DEBT|OTHER)|INCOME|REINVEST)>(?P<body>.*?)</(?P=tag)>",
    re.S | re.I,
)
_SECINFO = re.compile(r"<SECINFO>(.*?)</SECINFO>", re.S | re.I)
_OFX_DATE = re.compile(r"^(\d{4})(\d{2})(\d{2})")

_INVESTMENT_TYPES = {"BUY": "Buy", "SELL": "Sell", "INCOME": "Income", "REINVEST": "Reinvest"}


def looks_like_qfx(text: str) -> bool:
    head = text[:2048].upper()
    return "OFXHEADER" in head or "<OFX>" in text.upper()


def _leaf(block: str, tag: str) -> Optional[str]:
    match = re.search(rf"<{tag}>([^<\r\n]*)", block, re.I)
    if match is None:
        return None
    value = match.group(1).strip()
    return value or None


def ofx_date(value: Optional[str]) -> Optional[str]:
    """Reduce ``YYYYMMDD[hhmmss[.xxx]][[tz]]`` to an ISO date string."""
    if not value:
        return None
    match = _OFX_DATE.match(value)
    if match is None:
        return value
    return "-".join(match.groups())


def _securities(text: str) -> dict[str, dict[str, Optional[str]]]:
    securities = {}
    for block in _SECINFO.findall(text):
        unique_id = _leaf(block, "UNIQUEID")
        if unique_id:
            securities[unique_id] = {"ticker": _leaf(block, "TICKER"), "name": _leaf(block, "SECNAME")}
    return securities


def _bank_row(block: str) -> dict[str, Optional[str]]:
    posted = ofx_date(_leaf(block, "DTPOSTED"))
    return {
        "date": ofx_date(_leaf(block, "DTUSER")) or posted,
        "post_date": posted,
        "type": _leaf(block, "TRNTYPE"),
        "description": _leaf(block, "NAME") or _leaf(block, "PAYEE"),
        "memo": _leaf(block, "MEMO"),
        "amount": _leaf(block, "TRNAMT"),
    }


def _investment_row(tag: str, block: str, securities) -> dict[str, Optional[str]]:
    kind = next(label for prefix, label in _INVESTMENT_TYPES.items() if tag.upper().startswith(prefix))
    unique_id = _leaf(block, "UNIQUEID")
    security = securities.get(unique_id or "", {})
    id_type = (_leaf(block, "UNIQUEIDTYPE") or "CUSIP").upper()
    return {
        "date": ofx_date(_leaf(block, "DTTRADE")),
        "post_date": ofx_date(_leaf(block, "DTSETTLE")),
        "type": kind,
        "description": security.get("name") or _leaf(block, "MEMO") or kind,
        "symbol": security.get("ticker"),
        "cusip": unique_id if id_type == "CUSIP" else None,
        "quantity": _leaf(block, "UNITS"),
        "price": _leaf(block, "UNITPRICE"),
        "commission": _leaf(block, "COMMISSION"),
        "fee": _leaf(block, "FEES"),
        "memo": _leaf(block, "MEMO"),
        "amount": _leaf(block, "TOTAL"),
    }


def parse_qfx(text: str) -> ParseResult:
    """Parse a QFX/OFX statement download.

    Raises:
        ParseError: If the document has no OFX body or is cut off mid-way
    """
    upper = text.upper()
    if "<OFX>" not in upper:
        raise ParseError("Unrecognized QFX file: missing <OFX> element")
    if upper.count("<STMTTRN>") != upper.count("</STMTTRN>") or "</OFX>" not in upper:
        raise ParseError("Truncated QFX file: unterminated transaction list")

    securities = _securities(text)
    rows: list[tuple[int, dict[str, Optional[str]]]] = []
    for match in _STMTTRN.finditer(text):
        line_num = text.count("\n", 0, match.start()) + 1
        rows.append((line_num, _bank_row(match.group(1))))
    for match in _INVESTMENT.finditer(text):
        line_num = text.count("\n", 0, match.start()) + 1
        rows.append((line_num, _investment_row(match.group("tag"), match.group("body"), securities)))
    rows.sort(key=lambda pair: pair[0])

    logger.debug("QFX contains %d transactions and %d securities", len(rows), len(securities))
    return build_result(rows, SourceFormat.QFX)
