"""Abstract database interface."""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

# Import entities directly to avoid circular import through the domain services
from finledger.domain.entities import Account, LineItem, StatementData, StoredStatement


class Database(ABC):
    """Abstract line item store for finledger."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    # Account operations
    @abstractmethod
    def create_account(self, name: str, institution: str) -> int:
        """Create a new account. Returns account ID."""
        pass

    @abstractmethod
    def get_account(self, account_id: int) -> Optional[Account]:
        """Get account by ID."""
        pass

    @abstractmethod
    def list_accounts(self) -> list[Account]:
        """List all accounts."""
        pass

    # Line item operations
    @abstractmethod
    def create_line_items(
        self, account_id: int, items: Iterable[LineItem], chunk_key: Optional[str] = None
    ) -> list[LineItem]:
        """Insert line items in one transaction. Returns the stored items.

        When ``chunk_key`` was already applied, nothing is inserted and an
        empty list is returned.
        """
        pass

    @abstractmethod
    def is_chunk_applied(self, chunk_key: str) -> bool:
        """Check whether a batch-import chunk key was already written."""
        pass

    @abstractmethod
    def get_line_item(self, item_id: int) -> Optional[LineItem]:
        """Get line item by ID."""
        pass

    @abstractmethod
    def list_line_items(
        self,
        account_id: Optional[int] = None,
        year: Optional[int] = None,
        exclude_account_id: Optional[int] = None,
    ) -> list[LineItem]:
        """List line items ordered by date then ID."""
        pass

    @abstractmethod
    def update_line_item(self, item_id: int, **fields: Any) -> LineItem:
        """Update editable line item fields. Returns the updated item."""
        pass

    @abstractmethod
    def delete_line_item(self, item_id: int) -> None:
        """Delete a line item, detaching any linked children."""
        pass

    @abstractmethod
    def delete_line_items(self, item_ids: Iterable[int]) -> int:
        """Delete several line items in one transaction. Returns count deleted."""
        pass

    @abstractmethod
    def set_parent(self, child_id: int, parent_id: Optional[int]) -> None:
        """Set or clear the transfer parent of a line item."""
        pass

    # Duplicate suppression
    @abstractmethod
    def mark_not_duplicate(self, item_ids: Iterable[int]) -> int:
        """Record that the given items are not duplicates. Returns mark ID."""
        pass

    @abstractmethod
    def list_not_duplicate_sets(self, account_id: int) -> list[frozenset[int]]:
        """List the item id sets marked as not duplicates for an account."""
        pass

    # Statements
    @abstractmethod
    def import_statement(self, account_id: int, statement: StatementData) -> int:
        """Store statement side data for an account. Returns statement ID."""
        pass

    @abstractmethod
    def list_statements(self, account_id: int) -> list[StoredStatement]:
        """List stored statements of an account, newest period first."""
        pass
