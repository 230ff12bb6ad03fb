from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from dateutil import parser as dateparser
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class AgentStage(str, Enum):
    GREETING = "greeting"
    NAME_COLLECTION = "name_collection"
    QUALIFICATION = "qualification"
    BUDGET_COLLECTION = "budget_collection"
    LOCATION_COLLECTION = "location_collection"
    PROPERTY_MATCHING = "property_matching"
    SCHEDULING = "scheduling"
    FOLLOW_UP = "follow_up"


class Customer(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    company_id: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    whatsapp_number: Optional[str] = None
    telegram_id: Optional[str] = None
    source: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class HistoryMessage(BaseModel):
    """One entry of the caller's message log for a conversation."""

    model_config = ConfigDict(extra="ignore")

    content: Optional[str] = None
    sender_type: Literal["customer", "agent", "system"]
    created_at: Optional[datetime] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Optional[datetime]:
        if value in (None, ""):
            return None
        if isinstance(value, datetime):
            return value
        return dateparser.isoparse(str(value))


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_history(cls, message: HistoryMessage) -> "ConversationTurn":
        return cls(
            role="user" if message.sender_type == "customer" else "assistant",
            content=message.content or "",
            timestamp=message.created_at or datetime.now(timezone.utc),
        )


class AIResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str
    next_stage: str
    actions: List[str] = Field(default_factory=list)
    should_create_lead: bool = False
    should_schedule_follow_up: bool = False
    confidence: float = Field(..., ge=0.0, le=1.0)
    extracted_info: Dict[str, Any] = Field(default_factory=dict)


class ProcessMessageRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    customer: Customer
    conversation_id: str
    message_text: str = ""
    message_history: List[Dict[str, Any]] = Field(default_factory=list)
