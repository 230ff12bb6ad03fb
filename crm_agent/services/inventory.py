"""Property inventory search over the CRM's relational ``properties`` table."""

from __future__ import annotations

import asyncio
from typing import List, Optional

import logging
from pydantic import ValidationError
from sqlalchemy import String, cast, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_agent.db.models import PropertyRecord
from crm_agent.logging.flight_recorder import FlightRecorder
from crm_agent.models.preferences import Preferences
from crm_agent.models.property import Property, PropertyQuery
from crm_agent.utils.fixture_loader import load_sample_properties

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_LOCATION = "coimbatore"


def query_from_preferences(preferences: Preferences, company_id: Optional[str] = None, limit: int = 5) -> PropertyQuery:
    budget = preferences.budget
    if not budget and preferences.budget_range:
        budget = preferences.budget_range.max
    return PropertyQuery(
        property_type=preferences.property_type,
        bhk_type=preferences.bhk_type,
        budget=budget,
        location=preferences.location,
        company_id=company_id,
        limit=max(1, min(limit, 5)),
    )


def _format_lakhs(value: float) -> str:
    return f"₹{value / 1_000_000:.1f}L"


def format_price(prop: Property) -> str:
    if prop.price_min and prop.price_max:
        low, high = _format_lakhs(prop.price_min), _format_lakhs(prop.price_max)
        return low if low == high else f"{low} - {high}"
    if prop.price_min:
        return _format_lakhs(prop.price_min)
    return "Price on request"


def format_property(prop: Property) -> str:
    city = prop.location.address.city
    if city:
        locality = prop.location.locality
        location = f"{locality}, {city}" if locality else city
    else:
        location = "Location details available"

    lines = [
        f"🏠 **{prop.title}**",
        f"💰 Price: {format_price(prop)}",
        f"📍 Location: {location}",
    ]
    if prop.area_sqft:
        lines.append(f"📏 Area: {prop.area_sqft} sq ft")
    if prop.amenities:
        lines.append(f"✨ Amenities: {', '.join(prop.amenities[:3])}")
    return "\n".join(lines)


def sample_properties(location: Optional[str], limit: int = 5) -> List[Property]:
    """Placeholder listings returned when the property store cannot answer.

    Every entry is flagged ``is_sample`` so callers and logs can tell it
    apart from real inventory.
    """
    city = (location or DEFAULT_SAMPLE_LOCATION).title()
    samples = [Property.model_validate({**raw, "is_sample": True}) for raw in load_sample_properties(city)]
    return samples[:limit]


class InventorySearch:
    def __init__(
        self,
        sessionmaker: Optional[async_sessionmaker[AsyncSession]],
        recorder: Optional[FlightRecorder] = None,
        timeout: float = 5.0,
    ) -> None:
        self.sessionmaker = sessionmaker
        self.recorder = recorder or FlightRecorder()
        self.timeout = timeout

    async def search(self, query: PropertyQuery) -> List[Property]:
        logger.info("inventory.search %s", query.as_dict())
        if not self.sessionmaker:
            return self._fallback(query, reason="not_configured")

        try:
            with self.recorder.stage("SEARCH", location=query.location, property_type=query.property_type):
                records = await asyncio.wait_for(self._query(query), timeout=self.timeout)
        except Exception as exc:  # noqa: BLE001
            logger.error("inventory.query_error %s", exc)
            return self._fallback(query, reason=type(exc).__name__)

        properties = []
        for record in records:
            try:
                properties.append(_to_property(record))
            except ValidationError as exc:
                logger.warning("inventory.skip_record id=%s %s", record.id, exc.errors())
        logger.info("inventory.results count=%s", len(properties))
        return properties

    async def _query(self, query: PropertyQuery) -> List[PropertyRecord]:
        stmt = select(PropertyRecord).where(PropertyRecord.status == "available")
        if query.company_id:
            stmt = stmt.where(PropertyRecord.company_id == query.company_id)
        if query.property_type:
            stmt = stmt.where(PropertyRecord.type == query.property_type)
        if query.bhk_type:
            stmt = stmt.where(PropertyRecord.bhk_type == query.bhk_type)

        band = query.budget_band()
        if band:
            low, high = band
            stmt = stmt.where(PropertyRecord.price_max <= high, PropertyRecord.price_min >= low)

        if query.location:
            pattern = f"%{query.location.lower()}%"
            stmt = stmt.where(
                or_(
                    cast(PropertyRecord.location, String).ilike(pattern),
                    PropertyRecord.title.ilike(pattern),
                    PropertyRecord.description.ilike(pattern),
                )
            )

        stmt = stmt.limit(query.limit)
        async with self.sessionmaker() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    def _fallback(self, query: PropertyQuery, reason: str) -> List[Property]:
        samples = sample_properties(query.location, query.limit)
        logger.warning("inventory.fallback_samples reason=%s count=%s", reason, len(samples))
        self.recorder.log("SEARCH", "fallback_samples", reason=reason, count=len(samples))
        return samples


def _to_property(record: PropertyRecord) -> Property:
    return Property.model_validate(
        {
            "id": record.id,
            "title": record.title,
            "type": record.type,
            "bhk_type": record.bhk_type,
            "price_min": record.price_min,
            "price_max": record.price_max,
            "location": record.location,
            "description": record.description,
            "amenities": record.amenities,
            "area_sqft": record.area_sqft,
            "status": record.status,
        }
    )
