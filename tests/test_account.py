"""Tests for account commands and the account service."""

import pytest

from finledger.cli.main import cli
from finledger.domain.errors import ConflictError, ValidationError


def test_account_create_with_institution(cli_runner, temp_db):
    """Test creating an account with --institution option."""
    result = cli_runner.invoke(
        cli,
        ["--db-path", temp_db.database_path, "account", "create", "Checking", "--institution", "Chase"],
    )

    assert result.exit_code == 0
    assert "Created account 'Checking'" in result.output
    assert "ID:" in result.output


def test_account_create_without_institution(cli_runner, temp_db):
    """Test that the institution defaults to the account name."""
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "account", "create", "Chase"])
    assert result.exit_code == 0

    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "account", "list"])
    assert "Institution: Chase" in result.output


def test_account_list_empty(cli_runner, temp_db):
    """Test listing accounts when none exist."""
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "account", "list"])

    assert result.exit_code == 0
    assert "No accounts found" in result.output


def test_account_list_with_data(cli_runner, temp_db, sample_account):
    """Test listing accounts with data."""
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "account", "list"])

    assert result.exit_code == 0
    assert "Checking" in result.output
    assert "Test Bank" in result.output


def test_account_create_duplicate(cli_runner, temp_db, sample_account):
    """Test creating duplicate account name fails."""
    result = cli_runner.invoke(cli, ["--db-path", temp_db.database_path, "account", "create", "Checking"])

    assert result.exit_code == 1
    assert "Error:" in result.output
    assert "already exists" in result.output


def test_service_rejects_blank_name(account_service):
    with pytest.raises(ValidationError):
        account_service.create_account(name="  ", institution="Bank")


def test_service_rejects_duplicate_name(account_service, sample_account):
    with pytest.raises(ConflictError):
        account_service.create_account(name="Checking", institution="Other")


def test_service_lists_accounts_by_name(account_service, sample_account, other_account):
    names = [account.name for account in account_service.list_accounts()]
    assert names == ["Checking", "Savings"]
