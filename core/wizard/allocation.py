"""
Ownership Allocation - Share Rules for the Ownership Step

Implements the ownership-share invariants and the equal-redistribution
rule applied after every add or remove.

Invariant: an allocation list is either empty, or its percentages sum to
exactly 100 and exactly one holder is primary.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Final, Optional, Sequence

from core.wizard.schema import OwnershipAllocation
from utils.formatting import format_percent


Allocations = tuple[OwnershipAllocation, ...]

# Each holder needs at least 1%
MAX_HOLDERS: Final[int] = 100


# =============================================================================
# Validation Result
# =============================================================================


@dataclass(frozen=True)
class AllocationValidationResult:
    """
    Result of allocation validation.

    Contains the totals the ownership step displays and the error messages.
    """

    valid: bool
    total_percentage: int
    primary_count: int
    holder_count: int
    errors: tuple[str, ...]

    @property
    def summary(self) -> str:
        """Status line shown above the holder list."""
        if self.primary_count == 1:
            primary = "1 primary owner"
        elif self.primary_count == 0:
            primary = "No primary owner"
        else:
            primary = f"{self.primary_count} primary owners"
        return f"{format_percent(self.total_percentage, decimals=0)} total • {primary}"

    def to_dict(self) -> dict:
        """Convert result to dictionary."""
        return {
            "valid": self.valid,
            "total_percentage": self.total_percentage,
            "primary_count": self.primary_count,
            "holder_count": self.holder_count,
            "summary": self.summary,
            "errors": list(self.errors),
        }


def validate_allocations(allocations: Sequence[OwnershipAllocation]) -> AllocationValidationResult:
    """
    Validate an allocation list against the ownership invariant.

    Args:
        allocations: Current holders

    Returns:
        AllocationValidationResult with validation outcome
    """
    total = sum(a.percentage for a in allocations)
    primary_count = sum(1 for a in allocations if a.is_primary)
    errors: list[str] = []

    if allocations:
        if total != 100:
            errors.append(f"Ownership must total 100% (currently {total}%)")
        if primary_count == 0:
            errors.append("Select a primary owner")
        elif primary_count > 1:
            errors.append("Only one owner can be primary")
        for index, allocation in enumerate(allocations):
            if not 1 <= allocation.percentage <= 100:
                errors.append(f"Owner {index + 1} share must be between 1% and 100%")

    return AllocationValidationResult(
        valid=not errors,
        total_percentage=total,
        primary_count=primary_count,
        holder_count=len(allocations),
        errors=tuple(errors),
    )


def is_valid_allocation(allocations: Sequence[OwnershipAllocation]) -> bool:
    """Check the ownership invariant (empty lists are valid)."""
    return validate_allocations(allocations).valid


# =============================================================================
# List Operations
# =============================================================================


def _check_index(allocations: Sequence[OwnershipAllocation], index: int) -> None:
    if not 0 <= index < len(allocations):
        raise IndexError(f"No owner at position {index} (have {len(allocations)})")


def redistribute(allocations: Sequence[OwnershipAllocation]) -> Allocations:
    """
    Split 100% equally among all holders.

    Each holder gets 100 // N and the first holder also takes the remainder,
    so the total is always exactly 100. Afterwards exactly one holder is
    primary: the first existing primary, or the first holder if none was.
    """
    if not allocations:
        return ()

    count = len(allocations)
    equal_share = 100 // count
    remainder = 100 % count

    primary_index = next(
        (i for i, a in enumerate(allocations) if a.is_primary),
        0,
    )

    return tuple(
        replace(
            allocation,
            percentage=equal_share + (remainder if index == 0 else 0),
            is_primary=index == primary_index,
        )
        for index, allocation in enumerate(allocations)
    )


def add_holder(allocations: Sequence[OwnershipAllocation], holder_id: str = "") -> Allocations:
    """
    Append a holder (primary if it is the first) and redistribute.

    Raises:
        ValueError: If the list already has MAX_HOLDERS holders
    """
    if len(allocations) >= MAX_HOLDERS:
        raise ValueError(f"An allocation can have at most {MAX_HOLDERS} owners")
    new_holder = OwnershipAllocation(
        holder_id=holder_id,
        percentage=0,
        is_primary=len(allocations) == 0,
    )
    return redistribute([*allocations, new_holder])


def remove_holder(allocations: Sequence[OwnershipAllocation], index: int) -> Allocations:
    """
    Remove a holder and redistribute.

    Removing the primary holder promotes the new first holder.

    Raises:
        IndexError: If no holder exists at index
    """
    _check_index(allocations, index)
    remaining = [a for i, a in enumerate(allocations) if i != index]
    if allocations[index].is_primary and remaining:
        remaining[0] = replace(remaining[0], is_primary=True)
    return redistribute(remaining)


def set_primary(allocations: Sequence[OwnershipAllocation], index: int) -> Allocations:
    """
    Mark one holder primary and clear the flag on every other holder.

    Raises:
        IndexError: If no holder exists at index
    """
    _check_index(allocations, index)
    return tuple(replace(a, is_primary=i == index) for i, a in enumerate(allocations))


def update_holder(
    allocations: Sequence[OwnershipAllocation],
    index: int,
    holder_id: Optional[str] = None,
    percentage: Optional[int] = None,
) -> Allocations:
    """
    Edit one holder's id or percentage in place.

    Manual percentage edits are not redistributed; the step gate reports
    the list as invalid until the shares total 100 again.

    Raises:
        IndexError: If no holder exists at index
    """
    _check_index(allocations, index)
    current = allocations[index]
    updated = replace(
        current,
        holder_id=current.holder_id if holder_id is None else holder_id,
        percentage=current.percentage if percentage is None else int(percentage),
    )
    return tuple(updated if i == index else a for i, a in enumerate(allocations))
