"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic, so schema changes stay out of the
domain services.
"""

import dataclasses
from datetime import date
from decimal import Decimal
from typing import Any

from finledger.domain import entities as domain
from finledger.database.models import (
    Account as ORMAccount,
    LineItem as ORMLineItem,
    Statement as ORMStatement,
)

# Line item columns that callers may set directly
LINE_ITEM_FIELDS = (
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
    "memo",
    "account_balance",
    "cusip",
    "option_type",
    "option_strike",
    "option_expiration",
)

STATEMENT_SECTIONS = ("nav", "positions", "cash_report", "performance", "details")


def account_to_domain(orm_account: ORMAccount) -> domain.Account:
    """Convert SQLAlchemy Account model to domain Account entity."""
    return domain.Account(
        id=orm_account.id,
        name=orm_account.name,
        institution=orm_account.institution,
        created_at=orm_account.created_at,
    )


def line_item_to_domain(orm_item: ORMLineItem) -> domain.LineItem:
    """Convert SQLAlchemy LineItem model to domain LineItem entity."""
    values = {name: getattr(orm_item, name) for name in LINE_ITEM_FIELDS}
    return domain.LineItem(
        **values,
        id=orm_item.id,
        account_id=orm_item.account_id,
        parent_id=orm_item.parent_id,
        child_ids=tuple(sorted(child.id for child in orm_item.children)),
        tags=tuple(orm_item.tags or ()),
    )


def line_item_to_orm(account_id: int, item: domain.LineItem) -> ORMLineItem:
    """Build an unsaved SQLAlchemy LineItem from a domain candidate."""
    values = {name: getattr(item, name) for name in LINE_ITEM_FIELDS}
    return ORMLineItem(account_id=account_id, tags=list(item.tags), **values)


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def statement_row_payload(row: Any) -> dict[str, Any]:
    """Convert a statement sub-table row dataclass to a JSON-safe dict."""
    return {key: _json_value(value) for key, value in dataclasses.asdict(row).items()}


def statement_to_domain(orm_statement: ORMStatement) -> domain.StoredStatement:
    """Convert SQLAlchemy Statement model to domain StoredStatement entity."""
    row_counts = {section: 0 for section in STATEMENT_SECTIONS}
    for row in orm_statement.rows:
        row_counts[row.section] = row_counts.get(row.section, 0) + 1
    return domain.StoredStatement(
        id=orm_statement.id,
        account_id=orm_statement.account_id,
        broker_name=orm_statement.broker_name,
        period=orm_statement.period,
        period_start=orm_statement.period_start,
        period_end=orm_statement.period_end,
        total_nav=orm_statement.total_nav,
        row_counts=row_counts,
        created_at=orm_statement.created_at,
    )
