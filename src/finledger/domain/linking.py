"""Cross-account transfer linking.

A transfer between two accounts shows up once in each account's statement.
Linking records that relationship as a one-hop parent/child edge: the
outflow (negative) leg is the parent, the inflow leg its child. A parent may
have several children (one withdrawal split over several deposits) but a
child never has children of its own.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from finledger.database.base import Database
from finledger.domain.entities import LinkablePair, LineItem
from finledger.domain.errors import (
    DomainError,
    LinkConflict,
    NotFoundError,
    line_item_not_found,
)

logger = logging.getLogger(__name__)

MAX_DATE_DIFF_DAYS = 7
AMOUNT_TOLERANCE = Decimal("0.05")


@dataclass(frozen=True)
class TransferLinks:
    """A line item with the items it is linked to."""

    item: LineItem
    parent: Optional[LineItem]
    children: tuple[LineItem, ...]

    @property
    def linked_items(self) -> list[LineItem]:
        linked = list(self.children)
        if self.parent is not None:
            linked.insert(0, self.parent)
        return linked

    @property
    def is_balanced(self) -> bool:
        return is_balanced(self.item, self.linked_items)


def is_balanced(item: LineItem, linked_items: Iterable[LineItem]) -> bool:
    """Check whether an item and its linked legs sum to zero."""
    return item.amount + sum((other.amount for other in linked_items), Decimal("0")) == 0


def orient(a: LineItem, b: LineItem) -> tuple[LineItem, LineItem]:
    """Return ``(parent, child)``: the negative leg is the parent.

    When both legs have the same sign the given order is kept.
    """
    if b.amount < 0 <= a.amount:
        return b, a
    return a, b


def link_problem(a: LineItem, b: LineItem) -> Optional[str]:
    """Explain why two line items cannot be linked, or return None."""
    if a.id is not None and a.id == b.id:
        return "A line item cannot be linked to itself"
    if a.account_id == b.account_id:
        return "Linked line items must be in different accounts"
    parent, child = orient(a, b)
    if child.parent_id == parent.id or parent.parent_id == child.id:
        return f"Line items {parent.id} and {child.id} are already linked"
    if parent.parent_id is not None:
        return f"Line item {parent.id} is already linked as a child of {parent.parent_id}"
    if child.child_ids:
        return f"Line item {child.id} already has linked children"
    if child.parent_id is not None:
        return f"Line item {child.id} is already linked to line item {child.parent_id}"
    return None


def _within_tolerance(base: Decimal, other: Decimal) -> bool:
    return abs(abs(base) - abs(other)) <= AMOUNT_TOLERANCE * abs(base)


def find_candidates(
    item: LineItem,
    other_items: Iterable[LineItem],
    linked_items: Sequence[LineItem] = (),
) -> list[LinkablePair]:
    """Find items in other accounts that may be the other leg of a transfer.

    Args:
        item: The item to find a counterpart for
        other_items: Items of the other accounts
        linked_items: Items already linked to ``item``

    Returns:
        Pairs ordered opposite signs first, then by date gap, then by
        amount difference. Empty when ``item`` is already balanced.
    """
    if is_balanced(item, linked_items):
        return []

    pairs = []
    for other in other_items:
        if other.id == item.id or other.account_id == item.account_id:
            continue
        date_diff = abs((other.date - item.date).days)
        if date_diff > MAX_DATE_DIFF_DAYS:
            continue
        if not _within_tolerance(item.amount, other.amount):
            continue
        if link_problem(item, other) is not None:
            continue
        pairs.append(
            LinkablePair(
                item_a=item,
                item_b=other,
                are_opposite_signs=(item.amount < 0) != (other.amount < 0),
                amount_diff=abs(abs(item.amount) - abs(other.amount)),
                date_diff_days=date_diff,
            )
        )
    pairs.sort(key=lambda p: (not p.are_opposite_signs, p.date_diff_days, p.amount_diff, p.item_b.id or 0))
    return pairs


class TransferLinkService:
    """Store-backed transfer linking."""

    def __init__(self, db: Database):
        """Initialize transfer link service.

        Args:
            db: Database instance
        """
        self.db = db

    def _require(self, item_id: int) -> LineItem:
        item = self.db.get_line_item(item_id)
        if item is None:
            raise NotFoundError(line_item_not_found(item_id))
        return item

    def link(self, item_id: int, other_id: int) -> tuple[int, int]:
        """Link two line items as one transfer.

        Argument order does not matter: the negative leg becomes the parent.

        Returns:
            ``(parent_id, child_id)``

        Raises:
            NotFoundError: If either item does not exist
            LinkConflict: If the link would break the one-hop parent/child
                structure, repeat an existing edge, or stay within one account
        """
        if item_id == other_id:
            raise LinkConflict("A line item cannot be linked to itself")
        a = self._require(item_id)
        b = self._require(other_id)
        problem = link_problem(a, b)
        if problem is not None:
            raise LinkConflict(problem)

        parent, child = orient(a, b)
        self.db.set_parent(child.id, parent.id)
        logger.info("Linked line item %d (child) to %d (parent)", child.id, parent.id)
        return parent.id, child.id

    def unlink(self, item_id: int, linked_id: int) -> None:
        """Remove the link between two line items; other links stay.

        Raises:
            NotFoundError: If either item does not exist or they are not linked
        """
        a = self._require(item_id)
        b = self._require(linked_id)
        if a.parent_id == b.id:
            self.db.set_parent(a.id, None)
        elif b.parent_id == a.id:
            self.db.set_parent(b.id, None)
        else:
            raise NotFoundError(f"Line items {item_id} and {linked_id} are not linked")
        logger.info("Unlinked line items %d and %d", item_id, linked_id)

    def get_links(self, item_id: int) -> TransferLinks:
        """Get a line item together with its parent and children."""
        item = self._require(item_id)
        parent = self.db.get_line_item(item.parent_id) if item.parent_id is not None else None
        children = tuple(
            child for child in (self.db.get_line_item(cid) for cid in item.child_ids) if child is not None
        )
        return TransferLinks(item=item, parent=parent, children=children)

    def find_linkable(self, item_id: int, year: Optional[int] = None) -> list[LinkablePair]:
        """Find link candidates for one line item."""
        links = self.get_links(item_id)
        others = self.db.list_line_items(exclude_account_id=links.item.account_id, year=year)
        return find_candidates(links.item, others, links.linked_items)

    def find_linkable_pairs(self, account_id: int, year: Optional[int] = None) -> list[LinkablePair]:
        """Find link candidates for every unbalanced item of an account.

        Each pair of items is proposed once.
        """
        items = self.db.list_line_items(account_id=account_id, year=year)
        others = self.db.list_line_items(exclude_account_id=account_id, year=year)
        by_id = {item.id: item for item in items}
        by_id.update((other.id, other) for other in others)

        def lookup(linked_id: int) -> Optional[LineItem]:
            if linked_id not in by_id:
                by_id[linked_id] = self.db.get_line_item(linked_id)
            return by_id[linked_id]

        pairs: list[LinkablePair] = []
        seen: set[tuple[int, int]] = set()
        for item in items:
            linked_ids = list(item.child_ids)
            if item.parent_id is not None:
                linked_ids.append(item.parent_id)
            linked = [found for found in map(lookup, linked_ids) if found is not None]
            for pair in find_candidates(item, others, linked):
                if pair.key in seen:
                    continue
                seen.add(pair.key)
                pairs.append(pair)
        logger.info("Account %d: %d linkable pair(s)", account_id, len(pairs))
        return pairs

    def link_pairs(self, pairs: Iterable[LinkablePair]) -> dict[str, Any]:
        """Link several pairs, continuing past individual failures.

        Returns:
            Dict with ``linked`` and ``failed`` counts and per-pair ``errors``
        """
        stats: dict[str, Any] = {"linked": 0, "failed": 0, "errors": []}
        for pair in pairs:
            try:
                self.link(pair.item_a.id, pair.item_b.id)
                stats["linked"] += 1
            except DomainError as e:
                logger.warning("Could not link %d and %d: %s", pair.item_a.id, pair.item_b.id, e)
                stats["failed"] += 1
                stats["errors"].append(f"{pair.item_a.id} <-> {pair.item_b.id}: {e}")
        return stats
