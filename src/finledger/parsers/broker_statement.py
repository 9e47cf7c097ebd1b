"""Broker activity statement CSV parser.

Interactive-Brokers-style statements are one CSV file made of many sections.
Every line starts with the section name and a row kind::

    Statement,Header,Field Name,Field Value
    Statement,Data,BrokerName,Interactive Brokers LLC
    Trades,Header,DataDiscriminator,Asset Category,Currency,Symbol,...
    Trades,Data,Order,Stocks,USD,AAPL,"2025-01-15, 10:30:00",...

A section may declare several headers (stocks and options trades differ);
each Data row is read against the most recent header of its section.
"""

import csv
import io
import logging
import re
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Optional

from finledger.domain.entities import (
    CashReportRow,
    NavRow,
    PerformanceRow,
    PositionRow,
    StatementData,
    StatementInfo,
)
from finledger.domain.errors import NormalizationError, ParseError
from finledger.domain.normalizer import SourceFormat
from finledger.parsers.base import ParseResult, build_result
from finledger.utils.amount_parser import parse_decimal
from finledger.utils.date_parser import parse_date

logger = logging.getLogger(__name__)

_SIGNATURE = re.compile(r'^\ufeff?"?Statement"?,"?Header"?', re.I)
_OPTION_SYMBOL = re.compile(
    r"^(?P<underlying>[A-Z.]+)\s+(?P<expiry>\d{2}[A-Z]{3}\d{2})\s+(?P<strike>[\d.]+)\s+(?P<right>[CP])$"
)
_DIVIDEND_SYMBOL = re.compile(r"^([A-Z.]+)\s*\(")

CASH_SECTIONS = {
    "Deposits & Withdrawals": None,
    "Dividends": "Dividend",
    "Withholding Tax": "Withholding Tax",
    "Interest": "Interest",
    "Fees": "Other Fees",
}


def looks_like_broker_statement(text: str) -> bool:
    first = next((line for line in text.splitlines() if line.strip()), "")
    return bool(_SIGNATURE.match(first))


def _read_sections(text: str) -> dict[str, list[tuple[int, dict[str, str]]]]:
    sections: dict[str, list[tuple[int, dict[str, str]]]] = defaultdict(list)
    headers: dict[str, list[str]] = {}
    try:
        for line_num, row in enumerate(csv.reader(io.StringIO(text), strict=True), start=1):
            if len(row) < 2:
                continue
            section, kind, cells = row[0].strip(), row[1].strip(), row[2:]
            if kind == "Header":
                headers[section] = [cell.strip() for cell in cells]
            elif kind == "Data":
                if section not in headers:
                    raise ParseError(f"Line {line_num}: '{section}' data before its header")
                sections[section].append((line_num, dict(zip(headers[section], cells))))
    except csv.Error as e:
        raise ParseError(f"Truncated or corrupt statement file: {e}")
    return sections


def _safe_date(value: Optional[str]):
    if not value:
        return None
    try:
        return parse_date(value)
    except NormalizationError:
        return None


def _dec(value: Optional[str]) -> Decimal:
    return parse_decimal(value)


def _statement_info(sections) -> StatementInfo:
    fields: dict[str, str] = {}
    for section in ("Statement", "Account Information"):
        for _, row in sections.get(section, []):
            name = (row.get("Field Name") or "").strip()
            if name:
                fields[name] = (row.get("Field Value") or "").strip()

    period = fields.get("Period")
    period_start = period_end = None
    if period:
        parts = [p.strip() for p in period.split(" - ")]
        period_start = _safe_date(parts[0])
        period_end = _safe_date(parts[-1])

    return StatementInfo(
        broker_name=fields.get("BrokerName"),
        account_number=fields.get("Account"),
        account_name=fields.get("Name"),
        period=period,
        period_start=period_start,
        period_end=period_end,
    )


def _statement_data(sections) -> StatementData:
    info = _statement_info(sections)

    nav = []
    total_nav = None
    for _, row in sections.get("Net Asset Value", []):
        asset_class = (row.get("Asset Class") or "").strip()
        if not asset_class:
            continue
        nav_row = NavRow(
            asset_class=asset_class,
            prior_total=_dec(row.get("Prior Total")),
            current_long=_dec(row.get("Current Long")),
            current_short=_dec(row.get("Current Short")),
            current_total=_dec(row.get("Current Total")),
            change=_dec(row.get("Change")),
        )
        nav.append(nav_row)
        if asset_class.lower() == "total":
            total_nav = nav_row.current_total

    positions = [
        PositionRow(
            asset_category=row.get("Asset Category", ""),
            currency=row.get("Currency", ""),
            symbol=row.get("Symbol", ""),
            quantity=_dec(row.get("Quantity")),
            multiplier=parse_decimal(row.get("Mult"), default=Decimal("1")),
            cost_price=_dec(row.get("Cost Price")),
            cost_basis=_dec(row.get("Cost Basis")),
            close_price=_dec(row.get("Close Price")),
            value=_dec(row.get("Value")),
            unrealized_pl=_dec(row.get("Unrealized P/L")),
        )
        for _, row in sections.get("Open Positions", [])
        if row.get("DataDiscriminator", "Summary") != "Lot"
    ]

    cash_report = [
        CashReportRow(
            line_item=row.get("Currency Summary", ""),
            currency=row.get("Currency", ""),
            total=_dec(row.get("Total")),
            securities=_dec(row.get("Securities")),
            futures=_dec(row.get("Futures")),
        )
        for _, row in sections.get("Cash Report", [])
    ]

    performance = [
        PerformanceRow(
            asset_category=row.get("Asset Category", ""),
            symbol=row.get("Symbol", ""),
            realized_total=_dec(row.get("Realized Total")),
            unrealized_total=_dec(row.get("Unrealized Total")),
            total=_dec(row.get("Total")),
        )
        for _, row in sections.get("Realized & Unrealized Performance Summary", [])
        if not (row.get("Asset Category") or "").startswith("Total")
    ]

    return StatementData(
        info=info,
        nav=tuple(nav),
        positions=tuple(positions),
        cash_report=tuple(cash_report),
        performance=tuple(performance),
        total_nav=total_nav,
    )


def _trade_row(row: dict[str, str]) -> dict[str, Optional[str]]:
    symbol = (row.get("Symbol") or "").strip()
    quantity = _dec(row.get("Quantity"))
    proceeds = _dec(row.get("Proceeds"))
    comm_fee = _dec(row.get("Comm/Fee"))
    action = "Buy" if quantity > 0 else "Sell"

    raw: dict[str, Optional[str]] = {
        "date": (row.get("Date/Time") or "").split(",")[0].strip(),
        "type": action,
        "description": f"{action} {abs(quantity)} {symbol}",
        "symbol": symbol,
        "quantity": str(quantity),
        "price": row.get("T. Price"),
        "commission": str(comm_fee),
        "amount": str(proceeds + comm_fee),
    }

    option = _OPTION_SYMBOL.match(symbol)
    if option:
        raw["symbol"] = option.group("underlying")
        raw["option_type"] = option.group("right")
        raw["option_strike"] = option.group("strike")
        raw["option_expiration"] = (
            datetime.strptime(option.group("expiry"), "%d%b%y").date().isoformat()
        )
    return raw


def _cash_row(row: dict[str, str], txn_type: Optional[str]) -> Optional[dict[str, Optional[str]]]:
    currency = (row.get("Currency") or "").strip()
    if not currency or currency.startswith("Total"):
        return None
    description = row.get("Description")
    amount = row.get("Amount")
    if txn_type is None:
        txn_type = "Deposit" if _dec(amount) >= 0 else "Withdrawal"
    symbol = None
    if description:
        match = _DIVIDEND_SYMBOL.match(description)
        if match and txn_type in ("Dividend", "Withholding Tax"):
            symbol = match.group(1)
    return {
        "date": row.get("Settle Date") or row.get("Date"),
        "type": txn_type,
        "description": description,
        "symbol": symbol,
        "amount": amount,
    }


def parse_broker_statement(text: str) -> ParseResult:
    """Parse a sectioned broker statement CSV.

    Args:
        text: Statement CSV contents

    Returns:
        ParseResult carrying line items and the statement data

    Raises:
        ParseError: If the file is truncated or contains no known sections
    """
    sections = _read_sections(text)
    if not sections:
        raise ParseError("Statement file contains no data rows")

    statement = _statement_data(sections)
    reference_year = statement.info.period_end.year if statement.info.period_end else None

    def raw_rows():
        for line_num, row in sections.get("Trades", []):
            if row.get("DataDiscriminator", "Order") not in ("Order", "Trade"):
                continue
            yield line_num, _trade_row(row)
        for section, txn_type in CASH_SECTIONS.items():
            for line_num, row in sections.get(section, []):
                raw = _cash_row(row, txn_type)
                if raw is not None:
                    yield line_num, raw

    logger.info(
        "Broker statement %s: %d NAV rows, %d positions",
        statement.info.period or "(no period)",
        len(statement.nav),
        len(statement.positions),
    )
    return build_result(
        raw_rows(), SourceFormat.BROKER_STATEMENT, statement=statement, reference_year=reference_year
    )
