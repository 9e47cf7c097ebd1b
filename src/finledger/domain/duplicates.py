"""Duplicate detection for imported and stored line items.

Two line items are duplicates when they share the date, the exact signed
amount, and the description (case-insensitive, or both empty). When both
carry a ticker symbol the symbols must agree too, which keeps brokerage rows
that happen to share a date and amount apart.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from datetime import date
from typing import Iterable, Optional, Sequence

from finledger.database.base import Database
from finledger.domain.entities import DuplicateGroup, LineItem
from finledger.domain.errors import (
    NotFoundError,
    ValidationError,
    account_not_found,
    line_item_not_found,
)

logger = logging.getLogger(__name__)


def _description_key(item: LineItem) -> str:
    return " ".join((item.description or "").split()).casefold()


def is_duplicate(a: LineItem, b: LineItem) -> bool:
    """Check whether two line items describe the same transaction."""
    if a.date != b.date or a.amount != b.amount:
        return False
    if _description_key(a) != _description_key(b):
        return False
    if a.symbol and b.symbol and a.symbol.upper() != b.symbol.upper():
        return False
    return True


def _bucket_key(item: LineItem) -> tuple[date, Decimal]:
    # Decimal hashes by value, so -75.5 and -75.50 share a bucket
    return (item.date, item.amount)


@dataclass
class DetectionResult:
    """Partition of import candidates against an account's existing items."""

    new_items: list[LineItem] = field(default_factory=list)
    duplicates: list[LineItem] = field(default_factory=list)


def detect(candidates: Iterable[LineItem], existing: Iterable[LineItem]) -> DetectionResult:
    """Split candidates into new items and duplicates of existing items.

    Input order is preserved in both lists.
    """
    buckets: dict[tuple[date, Decimal], list[LineItem]] = defaultdict(list)
    for item in existing:
        buckets[_bucket_key(item)].append(item)

    result = DetectionResult()
    for candidate in candidates:
        matches = buckets.get(_bucket_key(candidate), ())
        if any(is_duplicate(candidate, other) for other in matches):
            result.duplicates.append(candidate)
        else:
            result.new_items.append(candidate)
    return result


def detect_groups(
    existing: Iterable[LineItem], suppressed: Iterable[Iterable[int]] = ()
) -> list[DuplicateGroup]:
    """Group stored line items that duplicate each other.

    Groups are the connected components of the duplicate relation. A group
    whose member ids all belong to one suppressed set is left out.

    Args:
        existing: Stored line items (ids required)
        suppressed: Item id sets the user marked as not duplicates

    Returns:
        Groups ordered by date, each keeping its highest id
    """
    items = [item for item in existing if item.id is not None]
    suppressed_sets = [frozenset(ids) for ids in suppressed]

    parent: dict[int, int] = {item.id: item.id for item in items}

    def find(item_id: int) -> int:
        while parent[item_id] != item_id:
            parent[item_id] = parent[parent[item_id]]
            item_id = parent[item_id]
        return item_id

    buckets: dict[tuple[date, Decimal], list[LineItem]] = defaultdict(list)
    for item in items:
        buckets[_bucket_key(item)].append(item)
    for bucket in buckets.values():
        for i, a in enumerate(bucket):
            for b in bucket[i + 1 :]:
                if is_duplicate(a, b):
                    parent[find(a.id)] = find(b.id)

    components: dict[int, list[LineItem]] = defaultdict(list)
    for item in items:
        components[find(item.id)].append(item)

    groups = []
    for members in components.values():
        if len(members) < 2:
            continue
        member_ids = frozenset(item.id for item in members)
        if any(member_ids <= marked for marked in suppressed_sets):
            continue
        members.sort(key=lambda item: item.id)
        keep_id = members[-1].id
        groups.append(
            DuplicateGroup(
                items=tuple(members),
                keep_id=keep_id,
                delete_ids=tuple(item.id for item in members[:-1]),
            )
        )
    groups.sort(key=lambda group: (group.items[0].date, group.keep_id))
    return groups


class DuplicateService:
    """Store-backed duplicate review for one account."""

    def __init__(self, db: Database):
        """Initialize duplicate service.

        Args:
            db: Database instance
        """
        self.db = db

    def _require_account(self, account_id: int) -> None:
        if self.db.get_account(account_id) is None:
            raise NotFoundError(account_not_found(account_id))

    def find_groups(self, account_id: int, year: Optional[int] = None) -> list[DuplicateGroup]:
        """Find duplicate groups among an account's stored line items."""
        self._require_account(account_id)
        items = self.db.list_line_items(account_id=account_id, year=year)
        groups = detect_groups(items, self.db.list_not_duplicate_sets(account_id))
        logger.info("Account %d: %d duplicate group(s) among %d items", account_id, len(groups), len(items))
        return groups

    def mark_not_duplicate(self, item_ids: Sequence[int]) -> int:
        """Remember that the given items are distinct transactions.

        Returns:
            ID of the stored mark
        """
        return self.db.mark_not_duplicate(item_ids)

    def merge(self, keep_id: int, delete_ids: Sequence[int]) -> LineItem:
        """Delete duplicates of a kept line item.

        When the kept item has no transfer link and a deleted duplicate
        does, the link moves over to the kept item.

        Returns:
            The kept line item after the merge
        """
        keep = self.db.get_line_item(keep_id)
        if keep is None:
            raise NotFoundError(line_item_not_found(keep_id))
        if keep_id in delete_ids:
            raise ValidationError("The kept line item cannot also be deleted")

        doomed = []
        for item_id in delete_ids:
            item = self.db.get_line_item(item_id)
            if item is None:
                raise NotFoundError(line_item_not_found(item_id))
            if item.account_id != keep.account_id:
                raise ValidationError(
                    f"Line item {item_id} is not in the same account as line item {keep_id}"
                )
            doomed.append(item)

        carried_parent = None
        carried_children: tuple[int, ...] = ()
        if not keep.is_linked:
            donor = next((item for item in doomed if item.is_linked), None)
            if donor is not None:
                doomed_ids = set(delete_ids)
                if donor.parent_id is not None and donor.parent_id not in doomed_ids:
                    carried_parent = donor.parent_id
                elif donor.child_ids:
                    carried_children = tuple(c for c in donor.child_ids if c not in doomed_ids)
                logger.info("Carrying transfer link of line item %d over to %d", donor.id, keep_id)

        self.db.delete_line_items(delete_ids)
        if carried_parent is not None:
            self.db.set_parent(keep_id, carried_parent)
        for child_id in carried_children:
            self.db.set_parent(child_id, keep_id)

        logger.info("Merged %d duplicate(s) into line item %d", len(delete_ids), keep_id)
        return self.db.get_line_item(keep_id)

    def resolve_groups(
        self, groups: Iterable[DuplicateGroup], selected_delete_ids: Iterable[int]
    ) -> dict[str, int]:
        """Apply a review of duplicate groups.

        Groups with at least one selected item are merged into their highest
        unselected member (or their ``keep_id`` if every member is selected).
        Groups with no selected item are marked as not duplicates.

        Returns:
            Dict with ``merged``, ``deleted`` and ``ignored`` counts
        """
        selected = set(selected_delete_ids)
        stats = {"merged": 0, "deleted": 0, "ignored": 0}
        for group in groups:
            chosen = group.member_ids & selected
            if not chosen:
                self.mark_not_duplicate(sorted(group.member_ids))
                stats["ignored"] += 1
                continue
            unselected = group.member_ids - chosen
            keep_id = max(unselected) if unselected else group.keep_id
            delete_ids = sorted(group.member_ids - {keep_id})
            self.merge(keep_id, delete_ids)
            stats["merged"] += 1
            stats["deleted"] += len(delete_ids)
        return stats
