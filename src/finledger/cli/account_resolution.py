"""Resolve the --account option of CLI commands."""

import click
from finledger.cli.error_handling import handle_domain_error
from finledger.domain.account import AccountService
from finledger.domain.errors import DomainError
from finledger.utils.account_resolver import resolve_account


def resolve_account_or_exit(ctx: click.Context, account_service: AccountService, account: str | int) -> int:
    """Return the ID of the account named or numbered by ``account``.

    Unknown accounts end the command through :func:`handle_domain_error`.
    """
    try:
        return resolve_account(account_service, account)
    except DomainError as exc:
        handle_domain_error(ctx, exc)
