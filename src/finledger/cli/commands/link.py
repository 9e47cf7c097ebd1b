"""Transfer linking commands."""

import click
from finledger.cli.account_resolution import resolve_account_or_exit
from finledger.cli.error_handling import handle_domain_error
from finledger.cli.formatting import format_amount, format_line_item
from finledger.domain.account import AccountService
from finledger.domain.entities import LinkablePair
from finledger.domain.errors import DomainError
from finledger.domain.linking import TransferLinkService


def _echo_pair(number: int, pair: LinkablePair) -> None:
    signal = "opposite signs" if pair.are_opposite_signs else "same sign"
    click.echo(
        f"\n{number:3d}. {signal}, {pair.date_diff_days} day(s) apart, "
        f"amount diff {format_amount(pair.amount_diff)}"
    )
    click.echo(f"     {format_line_item(pair.item_a, show_account=True)}")
    click.echo(f"     {format_line_item(pair.item_b, show_account=True)}")


@click.group()
def link_group():
    """Link transfers between accounts."""
    pass


@link_group.command("candidates")
@click.argument("item_id", type=int)
@click.option("--year", type=int, help="Only consider line items dated in this year")
@click.pass_context
def list_candidates(ctx, item_id: int, year: int | None):
    """List line items in other accounts that may be the other leg of ITEM_ID."""
    db = ctx.obj["db"]
    try:
        pairs = TransferLinkService(db).find_linkable(item_id, year=year)
    except DomainError as e:
        handle_domain_error(ctx, e)

    if not pairs:
        click.echo("No link candidates found.")
        return
    for number, pair in enumerate(pairs, start=1):
        _echo_pair(number, pair)


@link_group.command("pairs")
@click.option("--account", required=True, help="Account name or ID")
@click.option("--year", type=int, help="Only consider line items dated in this year")
@click.option("--apply", "apply_links", is_flag=True, help="Link every opposite-sign pair found")
@click.pass_context
def list_pairs(ctx, account: str, year: int | None, apply_links: bool):
    """List likely transfer pairs between an account and all other accounts.

    With --apply, every pair with opposite signs is linked; same-sign pairs
    are only listed.
    """
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)
    service = TransferLinkService(db)
    pairs = service.find_linkable_pairs(account_id, year=year)

    if not pairs:
        click.echo("No linkable pairs found.")
        return
    for number, pair in enumerate(pairs, start=1):
        _echo_pair(number, pair)
    click.echo(f"\n{len(pairs)} pair(s)")

    if apply_links:
        stats = service.link_pairs(pair for pair in pairs if pair.are_opposite_signs)
        click.echo(f"Linked {stats['linked']} pair(s), {stats['failed']} failed")
        for error in stats["errors"]:
            click.echo(f"  {error}", err=True)


@link_group.command("add")
@click.argument("item_id", type=int)
@click.argument("other_id", type=int)
@click.pass_context
def add_link(ctx, item_id: int, other_id: int):
    """Link two line items as one transfer.

    The negative (outflow) line item becomes the parent.
    """
    db = ctx.obj["db"]
    try:
        parent_id, child_id = TransferLinkService(db).link(item_id, other_id)
        click.echo(f"Linked line item {child_id} to parent {parent_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@link_group.command("remove")
@click.argument("item_id", type=int)
@click.argument("linked_id", type=int)
@click.pass_context
def remove_link(ctx, item_id: int, linked_id: int):
    """Remove the link between two line items."""
    db = ctx.obj["db"]
    try:
        TransferLinkService(db).unlink(item_id, linked_id)
        click.echo(f"Unlinked line items {item_id} and {linked_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@link_group.command("show")
@click.argument("item_id", type=int)
@click.pass_context
def show_links(ctx, item_id: int):
    """Show the line items linked to ITEM_ID."""
    db = ctx.obj["db"]
    try:
        links = TransferLinkService(db).get_links(item_id)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(format_line_item(links.item, show_account=True))
    if links.parent is not None:
        click.echo(f"  parent: {format_line_item(links.parent, show_account=True)}")
    for child in links.children:
        click.echo(f"  child:  {format_line_item(child, show_account=True)}")
    if not links.linked_items:
        click.echo("  (not linked)")
    elif links.is_balanced:
        click.echo("  Linked line items are balanced")
    else:
        click.echo("  Linked line items are not balanced")


def register_commands(cli):
    """Register link commands with main CLI."""
    cli.add_command(link_group, name="link")
