"""Plain-text rendering of line items for CLI output."""

from decimal import Decimal

import click

from finledger.domain.entities import LineItem


def format_amount(amount: Decimal) -> str:
    return f"{amount:,.2f}"


def format_line_item(item: LineItem, show_account: bool = False) -> str:
    """One-line summary of a line item."""
    description = (item.description or "")[:40]
    parts = [f"{item.id or '-':>6}", item.date.isoformat()]
    if show_account:
        parts.append(f"acct {item.account_id:>3}")
    parts.append(f"{format_amount(item.amount):>14}")
    parts.append(f"{description:40s}")
    if item.symbol:
        parts.append(item.symbol)
    if item.parent_id is not None:
        parts.append(f"-> {item.parent_id}")
    elif item.child_ids:
        parts.append("<- " + ",".join(str(c) for c in item.child_ids))
    return " | ".join(parts)


def echo_line_items(items: list[LineItem], show_account: bool = False) -> None:
    account_header = f" | {'Account':8s}" if show_account else ""
    click.echo(f"{'ID':>6} | {'Date':10s}{account_header} | {'Amount':>14} | Description")
    click.echo("-" * 80)
    for item in items:
        click.echo(format_line_item(item, show_account=show_account))
