"""Shared pytest fixtures for finledger tests."""

import tempfile
import os
from datetime import date
from decimal import Decimal
from pathlib import Path
import pytest

from finledger.database.factories import create_sqlite_database
from finledger.domain.account import AccountService
from finledger.domain.duplicates import DuplicateService
from finledger.domain.entities import LineItem
from finledger.domain.line_item import LineItemService
from finledger.domain.line_item_import import ImportService
from finledger.domain.linking import TransferLinkService


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def account_service(temp_db):
    """Create an AccountService with a temporary database."""
    return AccountService(temp_db)


@pytest.fixture
def line_item_service(temp_db):
    return LineItemService(temp_db)


@pytest.fixture
def duplicate_service(temp_db):
    return DuplicateService(temp_db)


@pytest.fixture
def link_service(temp_db):
    return TransferLinkService(temp_db)


@pytest.fixture
def import_service(temp_db):
    return ImportService(temp_db)


@pytest.fixture
def sample_account(account_service):
    """Create a sample account for testing."""
    account_id = account_service.create_account(name="Checking", institution="Test Bank")
    return account_service.get_account(account_id)


@pytest.fixture
def other_account(account_service):
    """Create a second account for cross-account tests."""
    account_id = account_service.create_account(name="Savings", institution="Other Bank")
    return account_service.get_account(account_id)


@pytest.fixture
def make_item():
    """Build an unsaved line item with sensible defaults."""

    def _make(when="2025-01-02", amount="-75.50", description="GROCERY STORE", **kwargs):
        return LineItem(
            date=date.fromisoformat(when),
            amount=Decimal(amount),
            description=description,
            **kwargs,
        )

    return _make


@pytest.fixture
def add_items(temp_db, make_item):
    """Store line items in an account and return them with ids."""

    def _add(account_id, *rows):
        return temp_db.create_line_items(account_id, [make_item(*row) for row in rows])

    return _add


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def fixtures_dir():
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"
