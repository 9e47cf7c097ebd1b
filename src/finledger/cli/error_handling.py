"""CLI error handling helpers."""

import logging
from typing import NoReturn

import click

from finledger.domain.errors import DomainError

logger = logging.getLogger(__name__)


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError | OSError) -> NoReturn:
    """Print ``Error: ...`` to stderr and exit with status 1.

    The traceback goes to the debug log, so ``--debug`` shows where a
    command failed.
    """
    logger.debug("%s failed", ctx.command_path, exc_info=error)
    click.echo(f"Error: {error}", err=True)
    ctx.exit(1)
