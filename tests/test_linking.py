"""Tests for cross-account transfer linking."""

import pytest
from dataclasses import replace
from decimal import Decimal

from finledger.domain.errors import LinkConflict, NotFoundError
from finledger.domain.linking import find_candidates, is_balanced, orient


@pytest.fixture
def third_account(account_service):
    account_id = account_service.create_account(name="Brokerage", institution="Broker")
    return account_service.get_account(account_id)


def _stored(make_item, item_id, account_id, when, amount):
    return replace(make_item(when, amount, "TRANSFER"), id=item_id, account_id=account_id)


class TestFindCandidates:
    def test_opposite_signs_rank_first(self, make_item):
        item = _stored(make_item, 1, 1, "2025-03-01", "-100.00")
        same_sign = _stored(make_item, 2, 2, "2025-03-01", "-100.00")
        opposite = _stored(make_item, 3, 2, "2025-03-04", "100.00")

        pairs = find_candidates(item, [same_sign, opposite])

        assert [p.item_b.id for p in pairs] == [3, 2]
        assert pairs[0].are_opposite_signs
        assert pairs[0].date_diff_days == 3
        assert not pairs[1].are_opposite_signs

    def test_date_window(self, make_item):
        item = _stored(make_item, 1, 1, "2025-03-01", "-100.00")
        seven = _stored(make_item, 2, 2, "2025-03-08", "100.00")
        eight = _stored(make_item, 3, 2, "2025-02-21", "100.00")

        assert [p.item_b.id for p in find_candidates(item, [seven, eight])] == [2]

    def test_amount_tolerance_is_five_percent_of_item(self, make_item):
        item = _stored(make_item, 1, 1, "2025-03-01", "-100.00")
        at_limit = _stored(make_item, 2, 2, "2025-03-01", "105.00")
        over_limit = _stored(make_item, 3, 2, "2025-03-01", "105.01")
        under = _stored(make_item, 4, 2, "2025-03-01", "95.00")

        pairs = find_candidates(item, [at_limit, over_limit, under])

        assert {p.item_b.id for p in pairs} == {2, 4}
        assert all(p.amount_diff == Decimal("5.00") for p in pairs)

    def test_same_account_is_never_a_candidate(self, make_item):
        item = _stored(make_item, 1, 1, "2025-03-01", "-100.00")
        sibling = _stored(make_item, 2, 1, "2025-03-01", "100.00")
        assert find_candidates(item, [sibling]) == []

    def test_balanced_item_has_no_candidates(self, make_item):
        item = _stored(make_item, 1, 1, "2025-03-01", "-100.00")
        child = replace(_stored(make_item, 2, 2, "2025-03-01", "100.00"), parent_id=1)
        spare = _stored(make_item, 3, 3, "2025-03-01", "100.00")
        item = replace(item, child_ids=(2,))

        assert is_balanced(item, [child])
        assert find_candidates(item, [spare], [child]) == []

    def test_orient_puts_negative_leg_first(self, make_item):
        outflow = _stored(make_item, 1, 1, "2025-03-01", "-100.00")
        inflow = _stored(make_item, 2, 2, "2025-03-01", "100.00")
        assert orient(inflow, outflow) == (outflow, inflow)
        assert orient(outflow, inflow) == (outflow, inflow)


class TestTransferLinkService:
    def test_three_day_transfer_is_found_and_linked(
        self, link_service, temp_db, sample_account, other_account, add_items
    ):
        (outflow,) = add_items(sample_account.id, ("2025-03-01", "-500.00", "TRANSFER TO SAVINGS"))
        (inflow,) = add_items(other_account.id, ("2025-03-04", "500.00", "TRANSFER FROM CHECKING"))

        (pair,) = link_service.find_linkable(outflow.id)
        assert pair.item_b.id == inflow.id
        assert pair.are_opposite_signs
        assert pair.date_diff_days == 3

        # Argument order does not decide the parent
        parent_id, child_id = link_service.link(inflow.id, outflow.id)
        assert (parent_id, child_id) == (outflow.id, inflow.id)

        links = link_service.get_links(outflow.id)
        assert [c.id for c in links.children] == [inflow.id]
        assert links.parent is None
        assert links.is_balanced
        assert temp_db.get_line_item(inflow.id).parent_id == outflow.id
        assert link_service.find_linkable(outflow.id) == []

    def test_split_transfer_stays_unbalanced_until_complete(
        self, link_service, sample_account, other_account, third_account, add_items
    ):
        (outflow,) = add_items(sample_account.id, ("2025-03-01", "-500.00", "XFER"))
        (part_one,) = add_items(other_account.id, ("2025-03-02", "300.00", "XFER"))
        link_service.link(outflow.id, part_one.id)

        assert not link_service.get_links(outflow.id).is_balanced

        (part_two,) = add_items(third_account.id, ("2025-03-03", "200.00", "XFER"))
        link_service.link(part_two.id, outflow.id)

        assert link_service.get_links(outflow.id).is_balanced

    def test_link_to_self(self, link_service, sample_account, add_items):
        (item,) = add_items(sample_account.id, ("2025-03-01", "-500.00"))
        with pytest.raises(LinkConflict):
            link_service.link(item.id, item.id)

    def test_link_within_one_account(self, link_service, sample_account, add_items):
        a, b = add_items(sample_account.id, ("2025-03-01", "-500.00"), ("2025-03-02", "500.00"))
        with pytest.raises(LinkConflict):
            link_service.link(a.id, b.id)

    def test_link_twice(self, link_service, sample_account, other_account, add_items):
        (a,) = add_items(sample_account.id, ("2025-03-01", "-500.00"))
        (b,) = add_items(other_account.id, ("2025-03-02", "500.00"))
        link_service.link(a.id, b.id)
        with pytest.raises(LinkConflict, match="already linked"):
            link_service.link(b.id, a.id)

    def test_child_cannot_take_second_parent(
        self, link_service, sample_account, other_account, third_account, add_items
    ):
        (first,) = add_items(sample_account.id, ("2025-03-01", "-500.00"))
        (child,) = add_items(other_account.id, ("2025-03-02", "500.00"))
        (second,) = add_items(third_account.id, ("2025-03-02", "-500.00"))
        link_service.link(first.id, child.id)

        with pytest.raises(LinkConflict):
            link_service.link(second.id, child.id)

    def test_parent_cannot_become_child(
        self, link_service, sample_account, other_account, third_account, add_items
    ):
        (parent,) = add_items(sample_account.id, ("2025-03-01", "-500.00"))
        (child,) = add_items(other_account.id, ("2025-03-02", "500.00"))
        (other,) = add_items(third_account.id, ("2025-03-02", "-500.00"))
        link_service.link(parent.id, child.id)

        with pytest.raises(LinkConflict):
            link_service.link(other.id, parent.id)

    def test_link_unknown_item(self, link_service, sample_account, add_items):
        (item,) = add_items(sample_account.id, ("2025-03-01", "-500.00"))
        with pytest.raises(NotFoundError):
            link_service.link(item.id, 9999)

    def test_unlink_removes_only_named_edge(
        self, link_service, temp_db, sample_account, other_account, third_account, add_items
    ):
        (parent,) = add_items(sample_account.id, ("2025-03-01", "-500.00"))
        (first,) = add_items(other_account.id, ("2025-03-02", "250.00"))
        (second,) = add_items(third_account.id, ("2025-03-02", "250.00"))
        link_service.link(parent.id, first.id)
        link_service.link(parent.id, second.id)
        assert link_service.get_links(parent.id).is_balanced

        link_service.unlink(first.id, parent.id)

        assert temp_db.get_line_item(parent.id).child_ids == (second.id,)
        assert temp_db.get_line_item(first.id).parent_id is None
        assert temp_db.get_line_item(second.id).parent_id == parent.id

    def test_unlink_items_that_are_not_linked(self, link_service, sample_account, other_account, add_items):
        (a,) = add_items(sample_account.id, ("2025-03-01", "-500.00"))
        (b,) = add_items(other_account.id, ("2025-03-02", "500.00"))
        with pytest.raises(NotFoundError):
            link_service.unlink(a.id, b.id)

    def test_find_linkable_year_filter(self, link_service, sample_account, other_account, add_items):
        (a,) = add_items(sample_account.id, ("2025-01-02", "-500.00"))
        add_items(other_account.id, ("2024-12-30", "500.00"))

        assert len(link_service.find_linkable(a.id)) == 1
        assert link_service.find_linkable(a.id, year=2025) == []

    def test_find_and_link_pairs(self, link_service, sample_account, other_account, add_items):
        outflow, unrelated = add_items(
            sample_account.id,
            ("2025-03-01", "-500.00", "XFER"),
            ("2025-03-10", "-20.00", "COFFEE"),
        )
        (inflow,) = add_items(other_account.id, ("2025-03-03", "500.00", "XFER"))

        pairs = link_service.find_linkable_pairs(sample_account.id)
        assert [pair.key for pair in pairs] == [(outflow.id, inflow.id)]

        stats = link_service.link_pairs(pairs)
        assert stats == {"linked": 1, "failed": 0, "errors": []}

        again = link_service.link_pairs(pairs)
        assert again["linked"] == 0
        assert again["failed"] == 1
        assert len(again["errors"]) == 1
        assert link_service.find_linkable_pairs(sample_account.id) == []
