"""Typed preference bag shared by both extractors and the agent state."""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

LAKH = 100_000
CRORE = 10_000_000

_PROPERTY_TYPE_SYNONYMS = {
    "villa": "villa",
    "villas": "villa",
    "apartment": "apartment",
    "apartments": "apartment",
    "flat": "apartment",
    "flats": "apartment",
    "plot": "plot",
    "plots": "plot",
    "land": "plot",
}

_AMOUNT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(lakhs?|lacs?|crores?|cr|l|k)?\b", re.IGNORECASE)
_BHK_RE = re.compile(r"(\d+)\s*-?\s*bhk", re.IGNORECASE)
_RANGE_SPLIT_RE = re.compile(r"\s+to\s+|\s*-\s*", re.IGNORECASE)
_PLACEHOLDER_NAMES = {"unknown", "unknown customer", "customer", "user"}


def unit_multiplier(unit: Optional[str]) -> int:
    if not unit:
        return 1
    unit = unit.lower()
    if unit.startswith("cr"):
        return CRORE
    if unit.startswith("l"):
        return LAKH
    if unit == "k":
        return 1_000
    return 1


def to_base_units(amount: float, unit: Optional[str]) -> int:
    return int(round(amount * unit_multiplier(unit)))


def normalize_budget(value: Any) -> Optional[int]:
    """Coerce a budget figure ("55 lakhs", "1.5 crore", 4500000) to base currency units."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(round(value)) if value > 0 else None
    text = re.sub(r"(?<=\d),(?=\d)", "", str(value)).strip()
    match = _AMOUNT_RE.search(text)
    if not match:
        return None
    normalized = to_base_units(float(match.group(1)), match.group(2))
    return normalized or None


def normalize_budget_range(value: Any) -> Optional[Dict[str, int]]:
    """Accept {min, max}, a two-item sequence or "45 to 55 lakhs"; anything else is dropped."""
    if isinstance(value, BudgetRange):
        return value.model_dump()
    if isinstance(value, dict):
        low, high = value.get("min"), value.get("max")
    elif isinstance(value, (list, tuple)) and len(value) == 2:
        low, high = value
    elif isinstance(value, str):
        parts = _RANGE_SPLIT_RE.split(value.strip(), maxsplit=1)
        if len(parts) != 2:
            return None
        low, high = parts
        # "45 to 55 lakhs": the unit after the upper bound applies to both
        low_match, high_match = _AMOUNT_RE.search(low), _AMOUNT_RE.search(high)
        if low_match and high_match and not low_match.group(2) and high_match.group(2):
            low = f"{low_match.group(1)} {high_match.group(2)}"
    else:
        return None

    low, high = normalize_budget(low), normalize_budget(high)
    if low is None and high is None:
        return None
    low = low if low is not None else high
    high = high if high is not None else low
    return {"min": min(low, high), "max": max(low, high)}


def normalize_bhk(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return f"{value}BHK" if value > 0 else None
    text = str(value).strip()
    match = _BHK_RE.search(text)
    if match:
        return f"{int(match.group(1))}BHK"
    if text.isdigit():
        return f"{int(text)}BHK"
    return None


def normalize_property_type(value: Any) -> Optional[str]:
    if not value:
        return None
    return _PROPERTY_TYPE_SYNONYMS.get(str(value).strip().lower())


def is_placeholder_name(name: Optional[str]) -> bool:
    return not name or name.strip().lower() in _PLACEHOLDER_NAMES


class BudgetRange(BaseModel):
    min: int
    max: int


class Preferences(BaseModel):
    model_config = ConfigDict(extra="ignore", alias_generator=to_camel, populate_by_name=True)

    name: Optional[str] = None
    location: Optional[str] = None
    property_type: Optional[str] = None
    bhk_type: Optional[str] = None
    budget: Optional[int] = None
    budget_range: Optional[BudgetRange] = None
    timeline: Optional[str] = None
    requirements: Optional[str] = None
    area: Optional[int] = Field(default=None, description="Requested built-up area in sq ft.")

    @field_validator("name", "timeline", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("name")
    @classmethod
    def _drop_placeholder_name(cls, value: Optional[str]) -> Optional[str]:
        return None if is_placeholder_name(value) else value

    @field_validator("location", mode="before")
    @classmethod
    def _normalize_location(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip().lower()
        return text or None

    @field_validator("property_type", mode="before")
    @classmethod
    def _normalize_property_type(cls, value: Any) -> Optional[str]:
        return normalize_property_type(value)

    @field_validator("bhk_type", mode="before")
    @classmethod
    def _normalize_bhk(cls, value: Any) -> Optional[str]:
        return normalize_bhk(value)

    @field_validator("budget", mode="before")
    @classmethod
    def _normalize_budget(cls, value: Any) -> Optional[int]:
        return normalize_budget(value)

    @field_validator("budget_range", mode="before")
    @classmethod
    def _normalize_budget_range(cls, value: Any) -> Optional[Dict[str, int]]:
        return normalize_budget_range(value)

    @field_validator("requirements", mode="before")
    @classmethod
    def _flatten_requirements(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, (list, tuple)):
            value = ", ".join(str(item) for item in value if item)
        elif isinstance(value, dict):
            value = ", ".join(f"{key}: {item}" for key, item in value.items() if item)
        text = str(value).strip()
        return text or None

    @field_validator("area", mode="before")
    @classmethod
    def _normalize_area(cls, value: Any) -> Optional[int]:
        if value is None or isinstance(value, bool):
            return None
        match = re.search(r"\d+", str(value).replace(",", ""))
        return int(match.group()) if match else None

    def is_empty(self) -> bool:
        return not self.filled_fields()

    def filled_fields(self) -> Dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in type(self).model_fields
            if getattr(self, name) not in (None, "")
        }

    def to_payload(self) -> Dict[str, Any]:
        """camelCase mapping with empty fields left out."""
        return self.model_dump(by_alias=True, exclude_none=True)


def merge_preferences(base: Preferences, overlay: Preferences) -> Preferences:
    """Return ``base`` updated with every non-empty field of ``overlay``.

    Empty fields in ``overlay`` never erase a value already present in ``base``,
    so repeated merges only ever add or overwrite information.
    """
    updates = overlay.filled_fields()
    if not updates:
        return base.model_copy()
    return base.model_copy(update=updates)


def has_enough_context(preferences: Preferences) -> bool:
    """Location, property type and some budget signal are all known."""
    has_budget = bool(preferences.budget) or preferences.budget_range is not None
    return bool(preferences.location) and bool(preferences.property_type) and has_budget


def is_fully_qualified(preferences: Preferences) -> bool:
    return bool(
        preferences.name
        and preferences.property_type
        and preferences.budget
        and preferences.location
    )
