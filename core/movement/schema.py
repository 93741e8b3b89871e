"""
Movement Schema - Location Movements and Housing Units

Defines the draft collected by the location-movement wizard and the housing
units its picker offers.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Final, Optional


# =============================================================================
# Enums
# =============================================================================


class MovementType(Enum):
    """Direction of a movement."""

    IN = "in"
    OUT = "out"
    TRANSFER = "transfer"


class OccupancyPolicy(Enum):
    """How many horses a housing unit takes."""

    SINGLE = "single"
    MULTI = "multi"


class HousingDecision(Enum):
    """
    What happened on the housing step.

    UNSET means the step was never decided, SKIPPED means the user chose
    "no housing". Only UNSET should trigger a housing reminder.
    """

    UNSET = "unset"
    SKIPPED = "skipped"
    ASSIGNED = "assigned"


# =============================================================================
# Constants
# =============================================================================

MOVEMENTS_TABLE: Final[str] = "horse_movements"
HOUSING_UNITS_TABLE: Final[str] = "housing_units"


# =============================================================================
# Housing Unit
# =============================================================================


@dataclass(frozen=True)
class HousingUnit:
    """A stall, paddock or other unit a horse can be housed in."""

    id: str
    code: str
    occupancy_policy: OccupancyPolicy
    capacity: int
    current_occupant_count: int = 0
    name: Optional[str] = None
    area_id: Optional[str] = None
    branch_id: Optional[str] = None

    @property
    def is_assignable(self) -> bool:
        """Single units take one horse, multi units up to capacity."""
        if self.occupancy_policy == OccupancyPolicy.SINGLE:
            return self.current_occupant_count < 1
        return self.current_occupant_count < self.capacity

    @property
    def capacity_label(self) -> str:
        if self.occupancy_policy == OccupancyPolicy.SINGLE:
            return "occupied" if self.current_occupant_count >= 1 else "available"
        return f"{self.current_occupant_count}/{self.capacity}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "occupancy_policy": self.occupancy_policy.value,
            "capacity": self.capacity,
            "current_occupant_count": self.current_occupant_count,
            "area_id": self.area_id,
            "branch_id": self.branch_id,
        }

    @classmethod
    def from_row(cls, row: dict) -> "HousingUnit":
        """Create from a housing_units row."""
        policy = OccupancyPolicy(row.get("occupancy") or OccupancyPolicy.SINGLE.value)
        capacity = row.get("capacity")
        return cls(
            id=row["id"],
            code=row.get("code") or row["id"],
            occupancy_policy=policy,
            capacity=int(capacity) if capacity is not None else 1,
            current_occupant_count=int(row.get("current_occupants") or 0),
            name=row.get("name"),
            area_id=row.get("area_id"),
            branch_id=row.get("branch_id"),
        )


# =============================================================================
# Movement Draft
# =============================================================================


@dataclass(frozen=True)
class MovementDraft:
    """Every field collected across the movement wizard."""

    movement_type: Optional[MovementType] = None
    horse_id: str = ""
    from_location_id: str = ""
    to_location_id: str = ""
    to_area_id: str = ""
    to_unit_id: str = ""
    housing_decision: HousingDecision = HousingDecision.UNSET
    reason: str = ""
    notes: str = ""
    internal_location_note: str = ""
    movement_at: str = ""  # ISO timestamp, defaults to commit time

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))

    @property
    def is_internal_relocation(self) -> bool:
        """A transfer whose origin and destination are the same location."""
        return (
            self.movement_type == MovementType.TRANSFER
            and bool(self.from_location_id)
            and self.from_location_id == self.to_location_id
        )

    def to_dict(self) -> dict:
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = value.value if isinstance(value, Enum) else value
        data["is_internal_relocation"] = self.is_internal_relocation
        return data


def coerce_movement_field(name: str, value: Any) -> Any:
    """
    Convert a raw patch value into the movement draft field's type.

    Raises:
        ValueError: If the value cannot be converted
    """
    if name == "movement_type":
        return MovementType(value) if value not in (None, "") else None
    if name == "housing_decision":
        return HousingDecision(value)
    if value is None:
        return ""
    return value
