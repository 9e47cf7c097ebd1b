"""Account domain service."""

from typing import Optional
from finledger.database.base import Database
from finledger.domain.entities import Account as AccountEntity
from finledger.domain.errors import ConflictError, ValidationError


class AccountService:
    """Service for managing accounts."""

    def __init__(self, db: Database):
        """Initialize account service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_account(self, name: str, institution: str) -> int:
        """Create a new account.

        Args:
            name: Account name
            institution: Bank or broker holding the account

        Returns:
            Account ID

        Raises:
            ValidationError: If the name is blank
            ConflictError: If account name already exists
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Account name must not be empty")

        for acc in self.db.list_accounts():
            if acc.name == name:
                raise ConflictError(f"Account with name '{name}' already exists")

        return self.db.create_account(name=name, institution=institution)

    def get_account(self, account_id: int) -> Optional[AccountEntity]:
        """Get account by ID.

        Args:
            account_id: Account ID

        Returns:
            Account entity or None if not found
        """
        return self.db.get_account(account_id)

    def list_accounts(self) -> list[AccountEntity]:
        """List all accounts.

        Returns:
            List of account entities
        """
        return self.db.list_accounts()
