"""Domain model entities for finledger.

These are pure data classes representing business concepts, independent of
database schema. Line items produced by the parsers are unsaved candidates
(``id`` is None); the store returns the same type with ``id`` populated.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


ZERO = Decimal("0")

# Decimal places kept by the store for money and for quantities/prices
MONEY_PLACES = 4
QUANTITY_PLACES = 6


@dataclass(frozen=True)
class Account:
    """Ledger account domain entity."""

    id: int
    name: str
    institution: str
    created_at: datetime


@dataclass(frozen=True)
class LineItem:
    """A single normalized financial transaction."""

    date: date
    amount: Decimal
    type: Optional[str] = None
    description: Optional[str] = None
    symbol: Optional[str] = None
    quantity: Decimal = ZERO
    price: Decimal = ZERO
    commission: Decimal = ZERO
    fee: Decimal = ZERO
    memo: Optional[str] = None
    post_date: Optional[date] = None
    account_balance: Optional[Decimal] = None
    cusip: Optional[str] = None
    option_type: Optional[str] = None
    option_strike: Optional[Decimal] = None
    option_expiration: Optional[date] = None
    id: Optional[int] = None
    account_id: Optional[int] = None
    parent_id: Optional[int] = None
    child_ids: tuple[int, ...] = ()
    tags: tuple[str, ...] = ()

    @property
    def is_linked(self) -> bool:
        return self.parent_id is not None or len(self.child_ids) > 0


@dataclass(frozen=True)
class DuplicateGroup:
    """Already-stored line items judged to be the same real-world transaction."""

    items: tuple[LineItem, ...]
    keep_id: int
    delete_ids: tuple[int, ...]

    @property
    def member_ids(self) -> frozenset[int]:
        return frozenset(item.id for item in self.items if item.id is not None)


@dataclass(frozen=True)
class LinkablePair:
    """Two line items in different accounts that may be one transfer."""

    item_a: LineItem
    item_b: LineItem
    are_opposite_signs: bool
    amount_diff: Decimal
    date_diff_days: int

    @property
    def key(self) -> tuple[int, int]:
        """Order-independent identity of the pair."""
        a, b = self.item_a.id or 0, self.item_b.id or 0
        return (min(a, b), max(a, b))


@dataclass(frozen=True)
class StatementInfo:
    """Broker and account metadata of a custodial statement."""

    broker_name: Optional[str] = None
    account_number: Optional[str] = None
    account_name: Optional[str] = None
    period: Optional[str] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    closing_balance: Optional[Decimal] = None


@dataclass(frozen=True)
class NavRow:
    asset_class: str
    prior_total: Decimal
    current_long: Decimal
    current_short: Decimal
    current_total: Decimal
    change: Decimal


@dataclass(frozen=True)
class PositionRow:
    asset_category: str
    currency: str
    symbol: str
    quantity: Decimal
    multiplier: Decimal
    cost_price: Decimal
    cost_basis: Decimal
    close_price: Decimal
    value: Decimal
    unrealized_pl: Decimal


@dataclass(frozen=True)
class CashReportRow:
    line_item: str
    currency: str
    total: Decimal
    securities: Decimal
    futures: Decimal


@dataclass(frozen=True)
class PerformanceRow:
    asset_category: str
    symbol: str
    realized_total: Decimal
    unrealized_total: Decimal
    total: Decimal


@dataclass(frozen=True)
class StatementDetailRow:
    """One section/line-item row of an AI-extracted PDF statement summary."""

    section: str
    line_item: str
    statement_period_value: Decimal
    ytd_value: Decimal
    is_percentage: bool = False


@dataclass(frozen=True)
class StatementData:
    """Parsed custodial statement side data."""

    info: StatementInfo
    nav: tuple[NavRow, ...] = ()
    positions: tuple[PositionRow, ...] = ()
    cash_report: tuple[CashReportRow, ...] = ()
    performance: tuple[PerformanceRow, ...] = ()
    details: tuple[StatementDetailRow, ...] = ()
    total_nav: Optional[Decimal] = None


@dataclass(frozen=True)
class StoredStatement:
    """Statement record as persisted by the store."""

    id: int
    account_id: int
    broker_name: Optional[str]
    period: Optional[str]
    period_start: Optional[date]
    period_end: Optional[date]
    total_nav: Optional[Decimal]
    row_counts: dict[str, int]
    created_at: datetime


class ImportState(str, Enum):
    """States of the chunked batch import."""

    IDLE = "idle"
    PREVIEWING = "previewing"
    IMPORTING = "importing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RETRYING = "retrying"
    CANCELLED = "cancelled"


@dataclass
class ImportBatch:
    """Transient state of one in-progress import."""

    chunks: list[list[LineItem]] = field(default_factory=list)
    processed_count: int = 0
    total_count: int = 0
    last_error: Optional[str] = None
    failed_chunk: Optional[int] = None
    next_chunk: int = 0
    state: ImportState = ImportState.IDLE
    created: list[LineItem] = field(default_factory=list)
    run_id: str = ""
    sent_chunks: set[int] = field(default_factory=set)

    @property
    def progress(self) -> float:
        if self.total_count == 0:
            return 0.0
        return self.processed_count / self.total_count

    def as_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "processed": self.processed_count,
            "total": self.total_count,
            "chunks": len(self.chunks),
            "failed_chunk": self.failed_chunk,
            "error": self.last_error,
        }
