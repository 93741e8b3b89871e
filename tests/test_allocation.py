"""
Tests for Ownership Allocation

Tests covering:
1. Equal redistribution (remainder to the first holder)
2. Exactly one primary after every list operation
3. Validation of totals, primary count and share bounds
"""

from __future__ import annotations

import pytest

from core.wizard.allocation import (
    MAX_HOLDERS,
    add_holder,
    is_valid_allocation,
    redistribute,
    remove_holder,
    set_primary,
    update_holder,
    validate_allocations,
)
from core.wizard.schema import OwnershipAllocation


def _holders(*ids, primary=None):
    return tuple(
        OwnershipAllocation(holder_id=h, percentage=0, is_primary=(h == primary)) for h in ids
    )


# =============================================================================
# Redistribution
# =============================================================================


class TestRedistribute:
    def test_three_holders_give_remainder_to_first(self):
        """100 split three ways is 34/33/33."""
        result = redistribute(_holders("a", "b", "c", primary="a"))
        assert [a.percentage for a in result] == [34, 33, 33]

    def test_four_holders_split_evenly(self):
        result = redistribute(_holders("a", "b", "c", "d", primary="a"))
        assert [a.percentage for a in result] == [25, 25, 25, 25]

    def test_single_holder_gets_everything(self):
        result = redistribute(_holders("a"))
        assert result[0].percentage == 100
        assert result[0].is_primary

    def test_empty_list_stays_empty(self):
        assert redistribute(()) == ()

    @pytest.mark.parametrize("count", range(1, 12))
    def test_sum_is_100_with_one_primary(self, count):
        """Any redistribution totals 100 with exactly one primary."""
        result = redistribute(_holders(*[f"h{i}" for i in range(count)]))
        assert sum(a.percentage for a in result) == 100
        assert sum(1 for a in result if a.is_primary) == 1

    def test_keeps_existing_primary(self):
        result = redistribute(_holders("a", "b", "c", primary="b"))
        assert [a.is_primary for a in result] == [False, True, False]

    def test_multiple_primaries_collapse_to_first(self):
        holders = (
            OwnershipAllocation("a", 50, False),
            OwnershipAllocation("b", 25, True),
            OwnershipAllocation("c", 25, True),
        )
        result = redistribute(holders)
        assert [a.is_primary for a in result] == [False, True, False]


# =============================================================================
# List Operations
# =============================================================================


class TestListOperations:
    def test_first_added_holder_is_primary(self):
        result = add_holder((), "a")
        assert result == (OwnershipAllocation("a", 100, True),)

    def test_adding_holders_redistributes(self):
        owners = add_holder(add_holder(add_holder((), "a"), "b"), "c")
        assert [a.percentage for a in owners] == [34, 33, 33]
        assert [a.holder_id for a in owners] == ["a", "b", "c"]
        assert owners[0].is_primary

    def test_removing_primary_promotes_new_first(self):
        owners = add_holder(add_holder(add_holder((), "a"), "b"), "c")
        result = remove_holder(owners, 0)
        assert [a.holder_id for a in result] == ["b", "c"]
        assert [a.percentage for a in result] == [50, 50]
        assert result[0].is_primary
        assert not result[1].is_primary

    def test_removing_non_primary_keeps_primary(self):
        owners = set_primary(add_holder(add_holder((), "a"), "b"), 1)
        result = remove_holder(owners, 0)
        assert result == (OwnershipAllocation("b", 100, True),)

    def test_removing_last_holder_gives_empty_list(self):
        assert remove_holder(add_holder((), "a"), 0) == ()

    def test_add_past_holder_limit_raises(self):
        owners = redistribute(_holders(*(f"h-{i}" for i in range(MAX_HOLDERS)), primary="h-0"))
        assert min(a.percentage for a in owners) == 1
        with pytest.raises(ValueError):
            add_holder(owners, "one-too-many")

    def test_remove_bad_index_raises(self):
        with pytest.raises(IndexError):
            remove_holder(add_holder((), "a"), 3)

    def test_set_primary_clears_others(self):
        owners = add_holder(add_holder((), "a"), "b")
        result = set_primary(owners, 1)
        assert [a.is_primary for a in result] == [False, True]

    def test_update_holder_does_not_redistribute(self):
        owners = add_holder(add_holder((), "a"), "b")
        result = update_holder(owners, 0, percentage=70)
        assert [a.percentage for a in result] == [70, 50]
        assert not is_valid_allocation(result)

    def test_update_holder_id(self):
        owners = add_holder((), "")
        result = update_holder(owners, 0, holder_id="owner-9")
        assert result[0].holder_id == "owner-9"
        assert result[0].percentage == 100


# =============================================================================
# Validation
# =============================================================================


class TestValidation:
    def test_empty_list_is_valid(self):
        result = validate_allocations(())
        assert result.valid
        assert result.errors == ()

    def test_valid_list(self):
        owners = (OwnershipAllocation("a", 60, True), OwnershipAllocation("b", 40))
        result = validate_allocations(owners)
        assert result.valid
        assert result.summary == "100% total • 1 primary owner"

    def test_wrong_total_is_invalid(self):
        owners = (OwnershipAllocation("a", 60, True), OwnershipAllocation("b", 30))
        result = validate_allocations(owners)
        assert not result.valid
        assert result.total_percentage == 90
        assert any("100%" in e for e in result.errors)

    def test_no_primary_is_invalid(self):
        owners = (OwnershipAllocation("a", 50), OwnershipAllocation("b", 50))
        result = validate_allocations(owners)
        assert not result.valid
        assert result.summary == "100% total • No primary owner"

    def test_two_primaries_is_invalid(self):
        owners = (OwnershipAllocation("a", 50, True), OwnershipAllocation("b", 50, True))
        result = validate_allocations(owners)
        assert not result.valid
        assert result.primary_count == 2

    def test_zero_share_is_invalid(self):
        owners = (OwnershipAllocation("a", 100, True), OwnershipAllocation("b", 0))
        assert not is_valid_allocation(owners)

    def test_to_dict(self):
        data = validate_allocations((OwnershipAllocation("a", 100, True),)).to_dict()
        assert data["valid"] is True
        assert data["holder_count"] == 1
        assert data["errors"] == []
