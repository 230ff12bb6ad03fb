from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PropertyAddress(BaseModel):
    model_config = ConfigDict(extra="allow")

    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class PropertyLocation(BaseModel):
    model_config = ConfigDict(extra="allow")

    address: PropertyAddress = Field(default_factory=PropertyAddress)
    locality: Optional[str] = None


class Property(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    type: Optional[str] = None
    bhk_type: Optional[str] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    location: PropertyLocation = Field(default_factory=PropertyLocation)
    description: Optional[str] = None
    amenities: List[str] = Field(default_factory=list)
    area_sqft: Optional[int] = None
    status: str = "available"
    is_sample: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("location", mode="before")
    @classmethod
    def _coerce_location(cls, value: Any) -> Any:
        # Graph-store properties keep location as "City, Locality" text
        if value is None:
            return {}
        if isinstance(value, str):
            city, _, locality = value.partition(",")
            return {"address": {"city": city.strip()}, "locality": locality.strip() or None}
        return value

    @field_validator("amenities", mode="before")
    @classmethod
    def _default_amenities(cls, value: Any) -> List[str]:
        return list(value or [])

    @field_validator("area_sqft", mode="before")
    @classmethod
    def _coerce_area(cls, value: Any) -> Optional[int]:
        if value in (None, ""):
            return None
        return int(float(value))


class PropertyQuery(BaseModel):
    property_type: Optional[str] = None
    bhk_type: Optional[str] = None
    budget: Optional[float] = None
    location: Optional[str] = None
    company_id: Optional[str] = None
    limit: int = Field(default=5, ge=1, le=5)

    def budget_band(self, tolerance: float = 0.2) -> Optional[tuple[float, float]]:
        if not self.budget:
            return None
        return self.budget * (1 - tolerance), self.budget * (1 + tolerance)

    def as_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
