"""
Horse Wizard Schema - Draft, Allocation and Media Records

Defines the in-memory draft collected across the horse-registration wizard
and the records it carries until commit.

Principles:
- The draft is a value: every change produces a new draft
- Media references are a read-model copy, storage owns the bytes
- The parent payload never includes owners or media
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Final, Optional


# =============================================================================
# Enums
# =============================================================================


class WizardMode(Enum):
    """Whether a wizard session creates a new entity or edits one."""

    CREATE = "create"
    EDIT = "edit"


class Gender(Enum):
    """Horse gender (the identity step's required category)."""

    MALE = "male"
    FEMALE = "female"


class HorseStatus(Enum):
    """Lifecycle status of a horse record."""

    ACTIVE = "active"
    INACTIVE = "inactive"


# =============================================================================
# Constants
# =============================================================================

HORSE_ENTITY_TYPE: Final[str] = "horse"

# Backend tables
HORSES_TABLE: Final[str] = "horses"
OWNERSHIP_TABLE: Final[str] = "horse_ownership"
MEDIA_ASSETS_TABLE: Final[str] = "media_assets"
MEDIA_MIGRATIONS_TABLE: Final[str] = "media_migrations"

DEFAULT_MEDIA_BUCKET: Final[str] = "horse-media"

# MIME types accepted by the media step
ALLOWED_MIME_TYPES: Final[frozenset[str]] = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/webp",
        "image/gif",
        "image/heic",
        "video/mp4",
        "video/quicktime",
        "video/webm",
        "application/pdf",
    }
)

# Maximum file size (20MB)
MAX_FILE_SIZE_BYTES: Final[int] = 20 * 1024 * 1024


def generate_id() -> str:
    """Generate an opaque UUID-class identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _parse_measure(name: str, value: str) -> Optional[float]:
    value = value.strip()
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None


# =============================================================================
# Ownership Allocation
# =============================================================================


@dataclass(frozen=True)
class OwnershipAllocation:
    """One holder's percentage share of a horse."""

    holder_id: str
    percentage: int
    is_primary: bool = False

    def to_row(self, horse_id: str) -> dict:
        """Convert to a horse_ownership row."""
        return {
            "horse_id": horse_id,
            "owner_id": self.holder_id,
            "ownership_percentage": self.percentage,
            "is_primary": self.is_primary,
        }

    @classmethod
    def from_row(cls, row: dict) -> "OwnershipAllocation":
        """Create from a horse_ownership row."""
        return cls(
            holder_id=row["owner_id"],
            percentage=int(row["ownership_percentage"]),
            is_primary=bool(row.get("is_primary", False)),
        )


# =============================================================================
# Media Asset Reference
# =============================================================================


@dataclass(frozen=True)
class MediaAssetRef:
    """
    Reference to a binary already uploaded to object storage.

    Mirrors one media_assets row. The draft holds these for rendering only.
    """

    id: str
    storage_path: str
    bucket: str
    filename: str
    mime_type: Optional[str]
    size_bytes: int
    entity_id: str = ""
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialisation."""
        return {
            "id": self.id,
            "storage_path": self.storage_path,
            "bucket": self.bucket,
            "filename": self.filename,
            "mime_type": self.mime_type,
            "size_bytes": self.size_bytes,
            "entity_id": self.entity_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_row(cls, row: dict) -> "MediaAssetRef":
        """Create from a media_assets row."""
        created_at = row.get("created_at")
        return cls(
            id=row["id"],
            storage_path=row["path"],
            bucket=row["bucket"],
            filename=row["filename"],
            mime_type=row.get("mime_type"),
            size_bytes=int(row.get("size_bytes") or 0),
            entity_id=row.get("entity_id", ""),
            created_at=as_utc(datetime.fromisoformat(created_at)) if created_at else None,
        )


# =============================================================================
# Horse Draft
# =============================================================================

# Draft fields written to the horses table as-is (blank strings become NULL)
HORSE_TEXT_FIELDS: Final[tuple[str, ...]] = (
    "name",
    "name_ar",
    "birth_date",
    "birth_at",
    "breed_id",
    "color_id",
    "age_category",
    "microchip_number",
    "passport_number",
    "ueln",
    "branch_id",
    "stable_id",
    "housing_unit_id",
    "housing_notes",
    "breeding_role",
    "mane_marks",
    "body_marks",
    "legs_marks",
    "distinctive_marks_notes",
    "mother_id",
    "mother_name",
    "mother_name_ar",
    "father_id",
    "father_name",
    "father_name_ar",
    "maternal_grandmother",
    "maternal_grandfather",
    "paternal_grandmother",
    "paternal_grandfather",
    "breeder_id",
)


# Set by the session (edit id, uploads), never by a field patch
SESSION_MANAGED_FIELDS: Final[frozenset[str]] = frozenset({"entity_id", "media"})


@dataclass(frozen=True)
class HorseDraft:
    """
    Every field collected across the horse-registration wizard.

    Strings default to empty; the commit projection turns blanks into NULL.
    """

    # === REGISTRATION CHECK ===
    is_registered: bool = False
    existing_horse_id: str = ""

    # === IDENTITY ===
    name: str = ""
    name_ar: str = ""
    gender: Optional[Gender] = None
    birth_date: str = ""
    birth_at: str = ""  # ISO timestamp with offset
    breed_id: str = ""
    color_id: str = ""
    age_category: str = ""
    microchip_number: str = ""
    passport_number: str = ""
    ueln: str = ""

    # === DETAILS ===
    branch_id: str = ""
    stable_id: str = ""
    housing_unit_id: str = ""
    housing_notes: str = ""
    status: HorseStatus = HorseStatus.ACTIVE
    is_pregnant: bool = False
    pregnancy_months: int = 0
    is_gelded: bool = False
    breeding_role: str = ""

    # === PHYSICAL ===
    height: str = ""
    weight: str = ""
    mane_marks: str = ""
    body_marks: str = ""
    legs_marks: str = ""
    distinctive_marks_notes: str = ""

    # === PEDIGREE ===
    mother_id: str = ""
    mother_name: str = ""
    mother_name_ar: str = ""
    father_id: str = ""
    father_name: str = ""
    father_name_ar: str = ""
    maternal_grandmother: str = ""
    maternal_grandfather: str = ""
    paternal_grandmother: str = ""
    paternal_grandfather: str = ""
    breeder_id: str = ""

    # === OWNERSHIP & MEDIA ===
    owners: tuple[OwnershipAllocation, ...] = ()
    media: tuple[MediaAssetRef, ...] = ()
    external_links: tuple[str, ...] = ()

    # === EDIT MODE ===
    entity_id: Optional[str] = None

    @classmethod
    def field_names(cls) -> frozenset[str]:
        """Names a patch may target."""
        return frozenset(f.name for f in fields(cls))

    def to_payload(self, tenant_id: str) -> dict:
        """
        Build the horses-table payload from the scalar draft fields.

        Raises:
            ValueError: If height or weight is not a number
        """
        payload: dict[str, Any] = {"tenant_id": tenant_id}
        for name in HORSE_TEXT_FIELDS:
            payload[name] = _blank_to_none(getattr(self, name))

        payload["gender"] = self.gender.value if self.gender else None
        payload["status"] = self.status.value
        payload["is_pregnant"] = self.is_pregnant
        payload["pregnancy_months"] = self.pregnancy_months if self.is_pregnant else None
        payload["is_gelded"] = self.is_gelded
        payload["height"] = _parse_measure("height", self.height)
        payload["weight"] = _parse_measure("weight", self.weight)
        payload["external_links"] = [link for link in self.external_links if link.strip()]
        return payload

    @classmethod
    def from_entity(
        cls,
        row: dict,
        owners: tuple[OwnershipAllocation, ...] = (),
        media: tuple[MediaAssetRef, ...] = (),
    ) -> "HorseDraft":
        """Project an existing horses row into a draft for edit mode."""
        values: dict[str, Any] = {
            name: row.get(name) or "" for name in HORSE_TEXT_FIELDS
        }

        gender = row.get("gender")
        values["gender"] = Gender(gender) if gender else None
        values["status"] = HorseStatus(row.get("status") or HorseStatus.ACTIVE.value)
        values["is_pregnant"] = bool(row.get("is_pregnant"))
        values["pregnancy_months"] = int(row.get("pregnancy_months") or 0)
        values["is_gelded"] = bool(row.get("is_gelded"))
        values["height"] = "" if row.get("height") is None else str(row["height"])
        values["weight"] = "" if row.get("weight") is None else str(row["weight"])
        values["external_links"] = tuple(row.get("external_links") or ())

        return cls(
            owners=owners,
            media=media,
            entity_id=row["id"],
            **values,
        )

    def to_dict(self) -> dict:
        """Convert draft to dictionary for serialisation."""
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif f.name == "owners":
                value = [
                    {"holder_id": o.holder_id, "percentage": o.percentage, "is_primary": o.is_primary}
                    for o in value
                ]
            elif f.name == "media":
                value = [asset.to_dict() for asset in value]
            elif isinstance(value, tuple):
                value = list(value)
            data[f.name] = value
        return data


def coerce_horse_field(name: str, value: Any) -> Any:
    """
    Convert a raw patch value (e.g. from JSON) into the draft field's type.

    Raises:
        ValueError: If the value cannot be converted
    """
    if name == "gender":
        return Gender(value) if value not in (None, "") else None
    if name == "status":
        return HorseStatus(value)
    if name in SESSION_MANAGED_FIELDS:
        raise ValueError(f"{name} is managed by the wizard session, not patches")
    if name == "owners":
        return tuple(_coerce_owner(o) for o in _as_list(name, value))
    if name == "external_links":
        links = _as_list(name, value)
        if not all(isinstance(link, str) for link in links):
            raise ValueError("external_links must be a list of strings")
        return tuple(links)
    return value


def _as_list(name: str, value: Any) -> list:
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{name} must be a list, got {type(value).__name__}")
    return list(value)


def _coerce_owner(value: Any) -> OwnershipAllocation:
    if isinstance(value, OwnershipAllocation):
        return value
    if not isinstance(value, dict):
        raise ValueError(f"Each owner must be an object, got {type(value).__name__}")
    try:
        percentage = int(value.get("percentage", 0))
    except (TypeError, ValueError):
        raise ValueError(f"Invalid owner percentage: {value.get('percentage')!r}") from None
    return OwnershipAllocation(
        holder_id=str(value.get("holder_id", "")),
        percentage=percentage,
        is_primary=bool(value.get("is_primary", False)),
    )
