from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

IMAGE_COLOR_PALETTE = ("teal", "indigo", "rose", "amber", "emerald", "blue", "purple")
DEFAULT_IMAGE_COLOR = "gray"


class Condition(str, Enum):
    NEW = "New"
    LIKE_NEW = "Like New"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor / For Parts"

    @classmethod
    def _missing_(cls, value: object) -> Optional["Condition"]:
        if isinstance(value, str):
            compact = "".join(value.split()).lower()
            for member in cls:
                if "".join(member.value.split()).lower() == compact:
                    return member
        return None


class Category(str, Enum):
    FURNITURE = "Furniture"
    ELECTRONICS = "Electronics"
    BOOKS = "Books"
    CLOTHING = "Clothing"
    KITCHEN = "Kitchen"
    MISC = "Misc"

    @classmethod
    def _missing_(cls, value: object) -> Optional["Category"]:
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return None


def coerce_choice(enum_cls: Any, value: Any) -> Any:
    """Resolve loose spellings ("Poor/For Parts", "books") before enum validation."""
    if isinstance(value, str):
        try:
            return enum_cls(value)
        except ValueError:
            return value
    return value


def normalize_image_color(value: Any) -> str:
    """Map a stored color tag onto the palette; accepts `bg-<color>-600` tags."""
    if not isinstance(value, str):
        return DEFAULT_IMAGE_COLOR
    tag = value.strip().lower()
    if tag.startswith("bg-"):
        tag = tag[3:].rsplit("-", 1)[0]
    return tag if tag in IMAGE_COLOR_PALETTE else DEFAULT_IMAGE_COLOR


def parse_timestamp(value: Any) -> Optional[float]:
    """Server timestamps arrive as numbers, ISO strings, datetimes or {"seconds": n}.

    Anything unusable raises ValueError so pydantic reports it as a field error.
    """
    try:
        timestamp = _parse_timestamp(value)
    except (TypeError, OverflowError) as exc:
        raise ValueError(f"Unsupported timestamp value: {value!r}") from exc
    if timestamp is not None and not math.isfinite(timestamp):
        raise ValueError(f"Timestamp is not finite: {value!r}")
    return timestamp


def _parse_timestamp(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("createdAt must be a timestamp")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return _parse_timestamp(datetime.fromisoformat(text))
    if isinstance(value, dict) and "seconds" in value:
        seconds = float(value["seconds"])
        nanos = float(value.get("nanoseconds") or value.get("nanos") or 0)
        return seconds + nanos / 1e9
    raise ValueError(f"Unsupported timestamp value: {value!r}")


class ListingFields(BaseModel):
    """What a person fills in to list an item."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    condition: Condition = Condition.GOOD
    category: Category = Category.MISC
    location: str = Field(min_length=1)
    dimensions: Optional[str] = None
    availability: str = Field(min_length=1)

    @field_validator("condition", mode="before")
    @classmethod
    def _condition(cls, value: Any) -> Any:
        return coerce_choice(Condition, value)

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value: Any) -> Any:
        return coerce_choice(Category, value)

    @field_validator("dimensions")
    @classmethod
    def _blank_dimensions(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    def to_document(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "condition": self.condition.value,
            "category": self.category.value,
            "location": self.location,
            "dimensions": self.dimensions,
            "availability": self.availability,
        }


class Listing(BaseModel):
    """A listing as observed in the store. Immutable; `created_at` is None while pending."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str
    title: str
    description: str
    condition: Condition
    category: Category = Category.MISC
    location: str
    dimensions: Optional[str] = None
    availability: str
    image_color: str = Field(
        default=DEFAULT_IMAGE_COLOR,
        validation_alias=AliasChoices("image_color", "imageColor"),
    )
    owner_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("owner_id", "ownerId"))
    created_at: Optional[float] = Field(default=None, validation_alias=AliasChoices("created_at", "createdAt"))

    @field_validator("condition", mode="before")
    @classmethod
    def _condition(cls, value: Any) -> Any:
        return coerce_choice(Condition, value)

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value: Any) -> Any:
        return coerce_choice(Category, value)

    @field_validator("image_color", mode="before")
    @classmethod
    def _palette(cls, value: Any) -> str:
        return normalize_image_color(value)

    @field_validator("created_at", mode="before")
    @classmethod
    def _timestamp(cls, value: Any) -> Optional[float]:
        return parse_timestamp(value)

    @field_validator("dimensions", mode="before")
    @classmethod
    def _optional_dimensions(cls, value: Any) -> Optional[str]:
        return value or None

    @property
    def pending(self) -> bool:
        return self.created_at is None

    @property
    def short_location(self) -> str:
        if not self.location:
            return "Unknown"
        return self.location.split(",")[0].strip() or "Unknown"
