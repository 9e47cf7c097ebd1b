"""Tests for duplicate detection and duplicate review."""

import pytest
from dataclasses import replace

from finledger.domain.duplicates import detect, detect_groups, is_duplicate
from finledger.domain.errors import NotFoundError, ValidationError


class TestIsDuplicate:
    def test_case_insensitive_description(self, make_item):
        existing = make_item("2025-01-02", "-75.50", "GROCERY STORE")
        candidate = make_item("2025-01-02", "-75.50", "grocery store")
        assert is_duplicate(existing, candidate)

    def test_trailing_zeros_do_not_matter(self, make_item):
        assert is_duplicate(make_item(amount="-75.5"), make_item(amount="-75.50"))

    def test_both_descriptions_empty(self, make_item):
        assert is_duplicate(make_item(description=None), make_item(description=""))

    def test_one_description_empty(self, make_item):
        assert not is_duplicate(make_item(description=None), make_item(description="X"))

    def test_different_date_or_amount(self, make_item):
        base = make_item()
        assert not is_duplicate(base, make_item(when="2025-01-03"))
        assert not is_duplicate(base, make_item(amount="-75.51"))
        assert not is_duplicate(base, make_item(amount="75.50"))

    def test_symbols_compared_only_when_both_present(self, make_item):
        aapl = make_item(description="Buy", symbol="AAPL")
        msft = make_item(description="Buy", symbol="MSFT")
        bare = make_item(description="Buy")
        assert not is_duplicate(aapl, msft)
        assert is_duplicate(aapl, bare)

    def test_symmetric(self, make_item):
        items = [
            make_item(),
            make_item(description="grocery store"),
            make_item(description=None),
            make_item(symbol="AAPL"),
            make_item(symbol="MSFT"),
            make_item(amount="-75.5"),
        ]
        for a in items:
            for b in items:
                assert is_duplicate(a, b) == is_duplicate(b, a)


class TestDetect:
    def test_partition_preserves_order(self, make_item):
        existing = [make_item("2025-01-02", "-75.50", "GROCERY STORE")]
        candidates = [
            make_item("2025-01-01", "1000.00", "DEPOSIT"),
            make_item("2025-01-02", "-75.50", "grocery store"),
            make_item("2025-01-03", "-25.00", "ONLINE PAYMENT"),
        ]
        result = detect(candidates, existing)

        assert [c.description for c in result.new_items] == ["DEPOSIT", "ONLINE PAYMENT"]
        assert [c.description for c in result.duplicates] == ["grocery store"]

    def test_idempotent(self, make_item):
        existing = [make_item(), make_item("2025-02-01", "10", "A")]
        candidates = [make_item(), make_item("2025-02-01", "10", "a"), make_item("2025-02-02", "10", "A")]
        first = detect(candidates, existing)
        second = detect(candidates, existing)
        assert first == second

    def test_no_existing_items(self, make_item):
        result = detect([make_item()], [])
        assert len(result.new_items) == 1
        assert result.duplicates == []


class TestDetectGroups:
    def _stored(self, make_item, item_id, **kwargs):
        return replace(make_item(**kwargs), id=item_id, account_id=1)

    def test_groups_keep_highest_id(self, make_item):
        items = [
            self._stored(make_item, 3),
            self._stored(make_item, 9, description="grocery store"),
            self._stored(make_item, 5),
            self._stored(make_item, 4, when="2025-02-01"),
        ]
        (group,) = detect_groups(items)

        assert group.keep_id == 9
        assert group.delete_ids == (3, 5)
        assert group.keep_id not in group.delete_ids
        assert {group.keep_id, *group.delete_ids} == group.member_ids
        assert len(group.member_ids) >= 2

    def test_suppressed_group_is_excluded(self, make_item):
        items = [self._stored(make_item, 1), self._stored(make_item, 2)]
        assert detect_groups(items, suppressed=[{1, 2}]) == []
        assert detect_groups(items, suppressed=[{1, 2, 3}]) == []

    def test_group_growing_past_suppressed_set_is_reported_again(self, make_item):
        items = [self._stored(make_item, 1), self._stored(make_item, 2), self._stored(make_item, 7)]
        (group,) = detect_groups(items, suppressed=[{1, 2}])
        assert group.member_ids == {1, 2, 7}

    def test_singletons_are_not_groups(self, make_item):
        items = [self._stored(make_item, 1), self._stored(make_item, 2, amount="1")]
        assert detect_groups(items) == []


class TestDuplicateService:
    def test_find_groups_and_mark_not_duplicate(self, duplicate_service, sample_account, add_items):
        a, b, _ = add_items(
            sample_account.id,
            ("2025-01-02", "-75.50", "GROCERY STORE"),
            ("2025-01-02", "-75.50", "Grocery Store"),
            ("2025-01-03", "-75.50", "GROCERY STORE"),
        )
        (group,) = duplicate_service.find_groups(sample_account.id)
        assert group.keep_id == b.id
        assert group.delete_ids == (a.id,)

        duplicate_service.mark_not_duplicate([a.id, b.id])
        assert duplicate_service.find_groups(sample_account.id) == []

    def test_find_groups_year_filter(self, duplicate_service, sample_account, add_items):
        add_items(
            sample_account.id,
            ("2024-06-01", "-5", "X"),
            ("2024-06-01", "-5", "X"),
        )
        assert duplicate_service.find_groups(sample_account.id, year=2025) == []
        assert len(duplicate_service.find_groups(sample_account.id, year=2024)) == 1

    def test_find_groups_unknown_account(self, duplicate_service):
        with pytest.raises(NotFoundError):
            duplicate_service.find_groups(999)

    def test_merge_deletes_duplicates(self, duplicate_service, line_item_service, sample_account, add_items):
        a, b, c = add_items(sample_account.id, ("2025-01-02",), ("2025-01-02",), ("2025-01-02",))

        kept = duplicate_service.merge(c.id, [a.id, b.id])

        assert kept.id == c.id
        remaining = line_item_service.list_line_items(account_id=sample_account.id)
        assert [item.id for item in remaining] == [c.id]

    def test_merge_carries_link_to_kept_item(
        self, duplicate_service, link_service, temp_db, sample_account, other_account, add_items
    ):
        dup_old, dup_new = add_items(sample_account.id, ("2025-03-04", "500.00", "XFER"), ("2025-03-04", "500.00", "XFER"))
        (outflow,) = add_items(other_account.id, ("2025-03-01", "-500.00", "XFER"))
        link_service.link(outflow.id, dup_old.id)

        duplicate_service.merge(dup_new.id, [dup_old.id])

        kept = temp_db.get_line_item(dup_new.id)
        assert kept.parent_id == outflow.id
        assert temp_db.get_line_item(outflow.id).child_ids == (dup_new.id,)

    def test_merge_rejects_keep_in_delete_list(self, duplicate_service, sample_account, add_items):
        a, b = add_items(sample_account.id, ("2025-01-02",), ("2025-01-02",))
        with pytest.raises(ValidationError):
            duplicate_service.merge(a.id, [a.id, b.id])

    def test_merge_rejects_cross_account(self, duplicate_service, sample_account, other_account, add_items):
        (a,) = add_items(sample_account.id, ("2025-01-02",))
        (b,) = add_items(other_account.id, ("2025-01-02",))
        with pytest.raises(ValidationError):
            duplicate_service.merge(a.id, [b.id])

    def test_resolve_groups(self, duplicate_service, temp_db, sample_account, add_items):
        a1, a2, a3 = add_items(sample_account.id, ("2025-01-02",), ("2025-01-02",), ("2025-01-02",))
        b1, b2 = add_items(sample_account.id, ("2025-02-02", "-9"), ("2025-02-02", "-9"))
        groups = duplicate_service.find_groups(sample_account.id)
        assert len(groups) == 2

        # Selecting the newest item of the first group keeps the highest unselected one
        stats = duplicate_service.resolve_groups(groups, [a3.id])

        assert stats == {"merged": 1, "deleted": 2, "ignored": 1}
        remaining = {item.id for item in temp_db.list_line_items(account_id=sample_account.id)}
        assert remaining == {a2.id, b1.id, b2.id}
        assert duplicate_service.find_groups(sample_account.id) == []
