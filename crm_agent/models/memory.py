from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _as_mapping(value: Any) -> Dict[str, Any]:
    # Preferences and requirements are stored on graph nodes as JSON strings
    if value is None:
        return {}
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


class InteractionHistory(BaseModel):
    total_conversations: int = 1
    engagement_level: Literal["high", "medium", "low"] = "low"
    last_interaction: Optional[str] = None

    @field_validator("total_conversations", mode="before")
    @classmethod
    def _default_count(cls, value: Any) -> int:
        return int(value) if value is not None else 1

    @field_validator("last_interaction", mode="before")
    @classmethod
    def _stringify_timestamp(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if hasattr(value, "iso_format"):
            return value.iso_format()
        if isinstance(value, datetime):
            return value.isoformat()
        return str(value)


class LeadJourney(BaseModel):
    stage: str = "new"
    score: int = 0
    requirements: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("stage", mode="before")
    @classmethod
    def _default_stage(cls, value: Any) -> str:
        return str(value) if value else "new"

    @field_validator("score", mode="before")
    @classmethod
    def _default_score(cls, value: Any) -> int:
        if value is None:
            return 0
        return max(0, min(100, int(value)))

    @field_validator("requirements", mode="before")
    @classmethod
    def _decode_requirements(cls, value: Any) -> Dict[str, Any]:
        return _as_mapping(value)


class CustomerMemoryContext(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str
    preferences: Dict[str, Any] = Field(default_factory=dict)
    interaction_history: InteractionHistory = Field(default_factory=InteractionHistory)
    lead_journey: LeadJourney = Field(default_factory=LeadJourney)
    is_fallback: bool = False

    @field_validator("preferences", mode="before")
    @classmethod
    def _decode_preferences(cls, value: Any) -> Dict[str, Any]:
        return _as_mapping(value)

    @classmethod
    def fallback(cls, customer_id: str) -> "CustomerMemoryContext":
        """Context used whenever the graph store cannot be reached."""
        return cls(
            user_id=customer_id,
            preferences={},
            interaction_history=InteractionHistory(
                total_conversations=1,
                engagement_level="low",
                last_interaction=datetime.now(timezone.utc).isoformat(),
            ),
            lead_journey=LeadJourney(stage="new", score=0, requirements={}),
            is_fallback=True,
        )
