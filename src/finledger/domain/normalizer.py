"""Raw row normalization into canonical line items.

Every parser maps its source columns onto the canonical raw-row keys below
and hands the row to :func:`normalize`; sign conventions, number cleanup and
date detection therefore live in exactly one place.
"""

import logging
from decimal import ROUND_HALF_EVEN, Decimal
from enum import Enum
from typing import Any, Mapping, Optional

from finledger.domain.entities import MONEY_PLACES, QUANTITY_PLACES, LineItem, ZERO
from finledger.domain.errors import NormalizationError
from finledger.utils.amount_parser import parse_amount, parse_decimal
from finledger.utils.date_parser import parse_date

logger = logging.getLogger(__name__)

RawRow = Mapping[str, Any]

RAW_FIELDS = (
    "date",
    "post_date",
    "type",
    "description",
    "symbol",
    "quantity",
    "price",
    "commission",
    "fee",
    "amount",
    "debit",
    "credit",
    "deposit",
    "withdrawal",
    "memo",
    "balance",
    "cusip",
    "option_type",
    "option_strike",
    "option_expiration",
)

WITHDRAWAL_TYPES = frozenset({"withdrawal", "withdraw", "debit", "fee", "fees", "service fee"})
DEPOSIT_TYPES = frozenset({"deposit", "credit"})

_OPTION_TYPES = {"c": "call", "call": "call", "p": "put", "put": "put"}


class SourceFormat(str, Enum):
    """Statement source a raw row came from."""

    DELIMITED = "delimited"
    BROKER_STATEMENT = "broker_statement"
    QFX = "qfx"
    HAR = "har"
    AI_PDF = "ai_pdf"


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


def _present(value: Any) -> bool:
    return _clean(value) is not None


def _signed_amount(raw: RawRow) -> Decimal:
    """Compute the signed amount: outflows negative, inflows positive."""
    if _present(raw.get("amount")):
        value = raw["amount"]
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            amount = Decimal(str(value))
        else:
            try:
                amount = parse_amount(str(value))
            except ValueError as e:
                raise NormalizationError(str(e), value=str(value))
    elif any(_present(raw.get(key)) for key in ("debit", "credit", "deposit", "withdrawal")):
        outflow = ZERO
        inflow = ZERO
        for key in ("debit", "withdrawal"):
            outflow += abs(parse_decimal(raw.get(key)))
        for key in ("credit", "deposit"):
            inflow += abs(parse_decimal(raw.get(key)))
        amount = inflow - outflow
    else:
        raise NormalizationError("Missing amount")

    txn_type = (_clean(raw.get("type")) or "").lower()
    if txn_type in WITHDRAWAL_TYPES:
        amount = -abs(amount)
    elif txn_type in DEPOSIT_TYPES:
        amount = abs(amount)
    return amount


def _to_places(value: Optional[Decimal], places: int) -> Optional[Decimal]:
    """Round to the number of decimal places the store keeps."""
    if value is None:
        return None
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_EVEN)


def _optional_date(value: Any, reference_year: Optional[int]):
    if not _present(value):
        return None
    try:
        return parse_date(str(value), reference_year=reference_year)
    except NormalizationError:
        logger.debug("Ignoring unparseable secondary date %r", value)
        return None


def normalize(
    raw_row: RawRow,
    source_format: SourceFormat,
    reference_year: Optional[int] = None,
) -> LineItem:
    """Convert one raw row into a canonical line item.

    Args:
        raw_row: Mapping keyed by the canonical raw field names
        source_format: Source the row came from
        reference_year: Year for date formats that omit it

    Returns:
        Unsaved LineItem candidate

    Raises:
        NormalizationError: If the date or amount cannot be interpreted
    """
    if not _present(raw_row.get("date")):
        raise NormalizationError("Missing date")
    txn_date = parse_date(str(raw_row["date"]), reference_year=reference_year)
    amount = _signed_amount(raw_row)

    option_type = _clean(raw_row.get("option_type"))
    if option_type is not None:
        option_type = _OPTION_TYPES.get(option_type.lower(), option_type.lower())

    symbol = _clean(raw_row.get("symbol"))
    item = LineItem(
        date=txn_date,
        amount=_to_places(amount, MONEY_PLACES),
        type=_clean(raw_row.get("type")),
        description=_clean(raw_row.get("description")),
        symbol=symbol.upper() if symbol else None,
        quantity=_to_places(parse_decimal(raw_row.get("quantity")), QUANTITY_PLACES),
        price=_to_places(parse_decimal(raw_row.get("price")), QUANTITY_PLACES),
        commission=_to_places(parse_decimal(raw_row.get("commission")), MONEY_PLACES),
        fee=_to_places(parse_decimal(raw_row.get("fee")), MONEY_PLACES),
        memo=_clean(raw_row.get("memo")),
        post_date=_optional_date(raw_row.get("post_date"), reference_year),
        account_balance=_to_places(parse_decimal(raw_row.get("balance"), default=None), MONEY_PLACES),
        cusip=_clean(raw_row.get("cusip")),
        option_type=option_type,
        option_strike=_to_places(parse_decimal(raw_row.get("option_strike"), default=None), MONEY_PLACES),
        option_expiration=_optional_date(raw_row.get("option_expiration"), reference_year),
    )
    logger.debug("Normalized %s row %s %s", source_format.value, item.date, item.amount)
    return item
