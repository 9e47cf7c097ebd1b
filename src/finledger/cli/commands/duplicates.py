"""Duplicate review commands."""

import click
from finledger.cli.account_resolution import resolve_account_or_exit
from finledger.cli.error_handling import handle_domain_error
from finledger.cli.formatting import format_line_item
from finledger.domain.account import AccountService
from finledger.domain.duplicates import DuplicateService
from finledger.domain.errors import DomainError


@click.group()
def duplicates_group():
    """Review duplicate line items."""
    pass


@duplicates_group.command("list")
@click.option("--account", required=True, help="Account name or ID")
@click.option("--year", type=int, help="Only consider line items dated in this year")
@click.pass_context
def list_duplicates(ctx, account: str, year: int | None):
    """List groups of line items that look like duplicates.

    In every group the line item with the highest ID is kept by default.
    """
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)
    groups = DuplicateService(db).find_groups(account_id, year=year)

    if not groups:
        click.echo("No duplicates found.")
        return

    for number, group in enumerate(groups, start=1):
        click.echo(f"\nGroup {number}:")
        for item in group.items:
            marker = "keep  " if item.id == group.keep_id else "delete"
            click.echo(f"  {marker} {format_line_item(item)}")
    click.echo(f"\n{len(groups)} duplicate group(s)")


@duplicates_group.command("merge")
@click.argument("keep_id", type=int)
@click.argument("delete_ids", type=int, nargs=-1, required=True)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def merge_duplicates(ctx, keep_id: int, delete_ids: tuple[int, ...], yes: bool):
    """Keep KEEP_ID and delete its duplicates DELETE_IDS.

    A transfer link of a deleted duplicate moves to the kept line item
    when the kept one has none.

    Examples:
        finledger duplicates merge 42 17 23
    """
    db = ctx.obj["db"]
    if not yes and not click.confirm(
        f"Delete line item(s) {', '.join(map(str, delete_ids))} and keep {keep_id}?"
    ):
        click.echo("Merge cancelled.")
        return

    try:
        DuplicateService(db).merge(keep_id, list(delete_ids))
        click.echo(f"Merged {len(delete_ids)} duplicate(s) into line item {keep_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@duplicates_group.command("ignore")
@click.argument("item_ids", type=int, nargs=-1, required=True)
@click.pass_context
def ignore_duplicates(ctx, item_ids: tuple[int, ...]):
    """Mark ITEM_IDS as distinct line items, not duplicates.

    The group is no longer reported by 'duplicates list'.
    """
    db = ctx.obj["db"]
    try:
        DuplicateService(db).mark_not_duplicate(list(item_ids))
        click.echo(f"Marked line items {', '.join(map(str, item_ids))} as not duplicates")
    except DomainError as e:
        handle_domain_error(ctx, e)


@duplicates_group.command("resolve")
@click.option("--account", required=True, help="Account name or ID")
@click.option("--year", type=int, help="Only consider line items dated in this year")
@click.option(
    "--delete",
    "delete_ids",
    type=int,
    multiple=True,
    help="Line item to delete (repeatable); groups without one are marked not duplicates",
)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def resolve_duplicates(ctx, account: str, year: int | None, delete_ids: tuple[int, ...], yes: bool):
    """Resolve every duplicate group of an account in one pass.

    Groups containing a --delete item are merged into their highest
    remaining line item; all other groups are marked as not duplicates.
    """
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)
    service = DuplicateService(db)
    groups = service.find_groups(account_id, year=year)
    if not groups:
        click.echo("No duplicates found.")
        return

    if not yes and not click.confirm(f"Resolve {len(groups)} duplicate group(s)?"):
        click.echo("Cancelled.")
        return

    try:
        stats = service.resolve_groups(groups, delete_ids)
        click.echo(
            f"Merged {stats['merged']} group(s) ({stats['deleted']} line items deleted), "
            f"marked {stats['ignored']} group(s) as not duplicates"
        )
    except DomainError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register duplicate commands with main CLI."""
    cli.add_command(duplicates_group, name="duplicates")
