from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class AgentSettings:
    # Text completion
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4"
    openai_base_url: Optional[str] = None
    completion_timeout: float = 20.0
    completion_temperature: float = 0.7
    completion_max_tokens: int = 500

    # Graph memory store
    neo4j_uri: Optional[str] = None
    neo4j_user: str = "neo4j"
    neo4j_password: Optional[str] = None
    neo4j_database: Optional[str] = None
    graph_timeout: float = 5.0

    # Inventory (relational property store)
    database_url: Optional[str] = None
    inventory_timeout: float = 5.0
    company_id: Optional[str] = None

    # Qualification and memory thresholds
    qualification_threshold: int = 70
    engagement_high_messages: int = 10
    engagement_medium_messages: int = 5

    # Conversation state cache
    state_cache_size: int = 1000
    state_ttl_seconds: float = 24 * 60 * 60

    history_window: int = 5
    listing_limit: int = 5

    @classmethod
    def from_env(cls) -> "AgentSettings":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4"),
            openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
            completion_timeout=_env_float("COMPLETION_TIMEOUT_SECONDS", 20.0),
            neo4j_uri=os.getenv("NEO4J_URI") or None,
            neo4j_user=os.getenv("NEO4J_USER", "neo4j"),
            neo4j_password=os.getenv("NEO4J_PASSWORD") or None,
            neo4j_database=os.getenv("NEO4J_DATABASE") or None,
            graph_timeout=_env_float("NEO4J_TIMEOUT_SECONDS", 5.0),
            database_url=os.getenv("DATABASE_URL") or None,
            inventory_timeout=_env_float("INVENTORY_TIMEOUT_SECONDS", 5.0),
            company_id=os.getenv("CRM_COMPANY_ID") or None,
            qualification_threshold=_env_int("QUALIFICATION_THRESHOLD", 70),
            engagement_high_messages=_env_int("ENGAGEMENT_HIGH_MESSAGES", 10),
            engagement_medium_messages=_env_int("ENGAGEMENT_MEDIUM_MESSAGES", 5),
            state_cache_size=_env_int("AGENT_STATE_CACHE_SIZE", 1000),
            state_ttl_seconds=_env_float("AGENT_STATE_TTL_SECONDS", 24 * 60 * 60),
            history_window=_env_int("AGENT_HISTORY_WINDOW", 5),
            listing_limit=_env_int("AGENT_LISTING_LIMIT", 5),
        )


@lru_cache(maxsize=1)
def get_settings() -> AgentSettings:
    return AgentSettings.from_env()
