"""Line item management commands."""

import click
from finledger.cli.account_resolution import resolve_account_or_exit
from finledger.cli.error_handling import handle_domain_error
from finledger.cli.formatting import echo_line_items, format_line_item
from finledger.domain.account import AccountService
from finledger.domain.errors import DomainError
from finledger.domain.line_item import LineItemService
from finledger.utils.amount_parser import parse_amount
from finledger.utils.date_parser import parse_date


@click.group()
def items_group():
    """Manage line items."""
    pass


@items_group.command("list")
@click.option("--account", help="Account name or ID")
@click.option("--year", type=int, help="Only show line items dated in this year")
@click.pass_context
def list_items(ctx, account: str | None, year: int | None):
    """List line items.

    Examples:
        finledger items list --account "Checking" --year 2025
    """
    db = ctx.obj["db"]
    service = LineItemService(db)

    account_id = None
    if account is not None:
        account_id = resolve_account_or_exit(ctx, AccountService(db), account)

    line_items = service.list_line_items(account_id=account_id, year=year)
    if not line_items:
        click.echo("No line items found.")
        return
    echo_line_items(line_items, show_account=account_id is None)
    click.echo(f"\n{len(line_items)} line item(s)")


@items_group.command("update")
@click.argument("item_id", type=int)
@click.option("--date", "date_str", help="Date (e.g. 2025-01-15, 01/15/2025, Jan 15 '25)")
@click.option("--amount", help="Signed amount (e.g. -75.50 or (75.50))")
@click.option("--description", help="Description")
@click.option("--type", "txn_type", help="Type (e.g. Deposit, Withdrawal, Buy)")
@click.option("--symbol", help="Ticker symbol")
@click.option("--memo", help="Memo")
@click.pass_context
def update_item(
    ctx,
    item_id: int,
    date_str: str | None,
    amount: str | None,
    description: str | None,
    txn_type: str | None,
    symbol: str | None,
    memo: str | None,
) -> None:
    """Update a line item.

    Updates only the fields that are provided.

    Examples:
        finledger items update 12 --amount -75.00
        finledger items update 12 --description "Grocery Store" --memo "split with Sam"
    """
    db = ctx.obj["db"]
    service = LineItemService(db)

    try:
        item = service.update_line_item(
            item_id,
            date=parse_date(date_str) if date_str is not None else None,
            amount=parse_amount(amount) if amount is not None else None,
            description=description,
            type=txn_type,
            symbol=symbol.upper() if symbol else None,
            memo=memo,
        )
        click.echo(f"Updated line item {item_id}")
        click.echo(format_line_item(item))
    except (DomainError, ValueError) as e:
        handle_domain_error(ctx, e)


@items_group.command("delete")
@click.argument("item_id", type=int)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_item(ctx, item_id: int, yes: bool) -> None:
    """Delete a line item.

    Line items linked to it keep existing but lose the link.
    """
    db = ctx.obj["db"]
    service = LineItemService(db)

    try:
        item = service.get_line_item(item_id)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(format_line_item(item))
    if not yes and not click.confirm(f"Delete line item {item_id}?"):
        click.echo("Deletion cancelled.")
        return

    service.delete_line_item(item_id)
    click.echo(f"Deleted line item {item_id}")


def register_commands(cli):
    """Register line item commands with main CLI."""
    cli.add_command(items_group, name="items")
