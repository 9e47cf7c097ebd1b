"""Main CLI entry point."""

import logging

import click
from finledger.database.factories import DB_PATH_ENVVAR, create_sqlite_database

# Import and register all commands at module level
from finledger.cli.commands import (
    account,
    duplicates,
    import_cmd,
    items,
    link,
)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(debug: bool) -> None:
    """Send finledger log records to stderr; DEBUG and up with --debug."""
    logging.basicConfig(
        level=logging.WARNING, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"
    )
    # Rejected rows and failed chunks are already reported by the commands
    logging.getLogger("finledger").setLevel(logging.DEBUG if debug else logging.ERROR)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help=f"Path to database file (overrides {DB_PATH_ENVVAR} environment variable)",
    envvar=DB_PATH_ENVVAR,
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.version_option(package_name="finledger")
@click.pass_context
def cli(ctx, db_path: str | None, debug: bool):
    """finledger - household ledger import tool.

    Import bank and broker statements (CSV, broker activity statements,
    QFX, browser HAR captures, AI-extracted PDF statements), review
    duplicates and link transfers between accounts.
    """
    ctx.ensure_object(dict)
    configure_logging(debug)

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        db = create_sqlite_database(database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.call_on_close(db.disconnect)


# Register all commands
account.register_commands(cli)
import_cmd.register_commands(cli)
items.register_commands(cli)
duplicates.register_commands(cli)
link.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
