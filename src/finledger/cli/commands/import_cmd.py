"""Statement import command."""

import click
from finledger.cli.account_resolution import resolve_account_or_exit
from finledger.cli.error_handling import handle_domain_error
from finledger.cli.formatting import echo_line_items, format_amount
from finledger.domain.account import AccountService
from finledger.domain.batch_import import CHUNK_SIZE
from finledger.domain.errors import ChunkWriteError, DomainError
from finledger.domain.line_item_import import ImportPreview, ImportService


def _echo_preview(preview: ImportPreview) -> None:
    click.echo(f"\nDetected format: {preview.source_format.value}")
    click.echo(f"  New line items: {len(preview.new_items)}")
    click.echo(f"  Duplicates (will be skipped): {len(preview.duplicates)}")
    if preview.errors:
        click.echo(f"  Rejected rows: {len(preview.errors)}")
        for error in preview.errors:
            click.echo(f"    {error}", err=True)

    statement = preview.statement
    if statement is not None:
        info = statement.info
        click.echo("\nStatement:")
        click.echo(f"  Broker: {info.broker_name or '-'}")
        click.echo(f"  Period: {info.period or '-'}")
        if statement.total_nav is not None:
            click.echo(f"  Total NAV: {format_amount(statement.total_nav)}")
        if info.closing_balance is not None:
            click.echo(f"  Closing balance: {format_amount(info.closing_balance)}")
        click.echo(
            f"  Rows: {len(statement.nav)} NAV, {len(statement.positions)} positions, "
            f"{len(statement.cash_report)} cash report, {len(statement.performance)} performance, "
            f"{len(statement.details)} detail"
        )


@click.command("import")
@click.argument("statement_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--account", required=True, help="Account name or ID")
@click.option(
    "--chunk-size",
    type=click.IntRange(min=1),
    default=CHUNK_SIZE,
    show_default=True,
    envvar="FINLEDGER_CHUNK_SIZE",
    help="Line items written per store call",
)
@click.option("--dry-run", is_flag=True, help="Show what would be imported without writing")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.option("--skip-statement", is_flag=True, help="Do not store statement summary data")
@click.pass_context
def import_statement(
    ctx,
    statement_file: str,
    account: str,
    chunk_size: int,
    dry_run: bool,
    yes: bool,
    skip_statement: bool,
):
    """Import line items from a statement file.

    The format is detected automatically: CSV/TSV exports, broker activity
    statements, QFX/OFX downloads, HAR captures and AI-extracted PDF
    statement JSON are supported. Items already in the account are skipped.

    Examples:
        finledger import checking.csv --account "Checking"
        finledger import activity.csv --account "IBKR Brokerage" --yes
    """
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)
    service = ImportService(db)

    try:
        preview = service.preview_file(account_id, statement_file)
    except (DomainError, OSError) as e:
        handle_domain_error(ctx, e)

    _echo_preview(preview)

    if dry_run:
        if preview.new_items:
            click.echo("")
            echo_line_items(preview.new_items)
        click.echo("\nDry run: nothing written.")
        return

    if not preview.new_items and (preview.statement is None or skip_statement):
        click.echo("\nNothing to import.")
        return

    if not yes and not click.confirm(f"\nImport {len(preview.new_items)} line item(s)?", default=True):
        click.echo("Import cancelled.")
        return

    if not skip_statement:
        statement_id = service.import_statement(preview)
        if statement_id is not None:
            click.echo(f"Stored statement (ID: {statement_id})")

    def report(processed: int, total: int) -> None:
        click.echo(f"  {processed}/{total} line items written")

    importer = service.create_importer(preview, chunk_size=chunk_size, progress=report)
    run = importer.start
    while True:
        try:
            batch = run()
            break
        except ChunkWriteError as e:
            click.echo(f"Error: {e}", err=True)
            if not yes and click.confirm(f"Retry from chunk {e.chunk_index + 1}?", default=True):
                run = importer.retry
                continue
            batch = importer.cancel()
            click.echo(
                f"Import cancelled: {batch.processed_count} of {batch.total_count} line items written.",
                err=True,
            )
            ctx.exit(1)

    click.echo("\nImport complete:")
    click.echo(f"  Imported: {batch.processed_count} line items")
    click.echo(f"  Skipped: {len(preview.duplicates)} duplicates")
    if preview.errors:
        click.echo(f"  Errors: {len(preview.errors)}")


def register_commands(cli):
    """Register import command with main CLI."""
    cli.add_command(import_statement)
