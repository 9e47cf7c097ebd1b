"""Line item domain service."""

from typing import Any, Optional

from finledger.database.base import Database
from finledger.domain.entities import LineItem
from finledger.domain.errors import NotFoundError, account_not_found, line_item_not_found


class LineItemService:
    """Service for reading and editing stored line items."""

    def __init__(self, db: Database):
        self.db = db

    def get_line_item(self, item_id: int) -> LineItem:
        """Get a line item.

        Raises:
            NotFoundError: If the line item does not exist
        """
        item = self.db.get_line_item(item_id)
        if item is None:
            raise NotFoundError(line_item_not_found(item_id))
        return item

    def list_line_items(
        self, account_id: Optional[int] = None, year: Optional[int] = None
    ) -> list[LineItem]:
        """List line items, optionally for one account and one calendar year."""
        if account_id is not None and self.db.get_account(account_id) is None:
            raise NotFoundError(account_not_found(account_id))
        return self.db.list_line_items(account_id=account_id, year=year)

    def update_line_item(self, item_id: int, **fields: Any) -> LineItem:
        """Update line item fields, skipping the ones passed as None.

        Returns:
            The updated line item
        """
        self.get_line_item(item_id)
        changes = {name: value for name, value in fields.items() if value is not None}
        if not changes:
            return self.get_line_item(item_id)
        return self.db.update_line_item(item_id, **changes)

    def delete_line_item(self, item_id: int) -> None:
        """Delete a line item; items linked to it lose their link."""
        self.get_line_item(item_id)
        self.db.delete_line_item(item_id)
