"""Cypher queries for the customer memory graph.

Graph shape: ``(:Customer)-[:HAS_SESSION]->(:Session)-[:HAS_MESSAGE]->(:Message)``
and ``(:Customer)-[:VIEWED]->(:Property)``. Every write uses MERGE on the node
ids so retries never duplicate customers, sessions or properties.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional

import logging
from neo4j import AsyncDriver, AsyncGraphDatabase

from crm_agent.config import AgentSettings

logger = logging.getLogger(__name__)

_INDEXES = [
    "CREATE INDEX customer_id IF NOT EXISTS FOR (c:Customer) ON (c.id)",
    "CREATE INDEX session_id IF NOT EXISTS FOR (s:Session) ON (s.id)",
    "CREATE INDEX property_id IF NOT EXISTS FOR (p:Property) ON (p.id)",
]

CREATE_CUSTOMER = """
MERGE (c:Customer {id: $customerId})
ON CREATE SET c.created_at = datetime()
SET c.name = $name,
    c.email = $email,
    c.phone = $phone,
    c.source = $source,
    c.updated_at = datetime()
RETURN c.id AS id
"""

CREATE_SESSION = """
MERGE (c:Customer {id: $customerId})
ON CREATE SET c.created_at = datetime()
MERGE (s:Session {id: $sessionId})
ON CREATE SET s.created_at = datetime(), s.platform = 'real_estate_crm'
MERGE (c)-[:HAS_SESSION]->(s)
RETURN s.id AS id
"""

ADD_MESSAGE = """
MATCH (s:Session {id: $sessionId})
CREATE (m:Message {content: $content, role: $role, timestamp: datetime()})
MERGE (s)-[:HAS_MESSAGE]->(m)
RETURN m.role AS role
"""

CUSTOMER_CONTEXT = """
MATCH (c:Customer {id: $customerId})
OPTIONAL MATCH (c)-[:HAS_SESSION]->(s:Session)
OPTIONAL MATCH (s)-[:HAS_MESSAGE]->(m:Message)
WITH c, count(DISTINCT s) AS sessionCount, count(m) AS messageCount
RETURN {
  user_id: c.id,
  preferences: c.preferences,
  interaction_history: {
    total_conversations: sessionCount,
    engagement_level: CASE
      WHEN messageCount > $highThreshold THEN 'high'
      WHEN messageCount > $mediumThreshold THEN 'medium'
      ELSE 'low'
    END,
    last_interaction: c.updated_at
  },
  lead_journey: {
    stage: c.lead_stage,
    score: c.lead_score,
    requirements: c.requirements
  }
} AS context
"""

UPDATE_PREFERENCES = """
MATCH (c:Customer {id: $customerId})
SET c.preferences = $preferences,
    c.updated_at = datetime()
RETURN c.id AS id
"""

UPDATE_LEAD_SCORE = """
MATCH (c:Customer {id: $customerId})
SET c.lead_score = $score,
    c.updated_at = datetime()
RETURN c.id AS id
"""

RECORD_VIEW = """
MATCH (c:Customer {id: $customerId})
MERGE (p:Property {id: $propertyId})
ON CREATE SET p.title = $title,
              p.type = $type,
              p.bhk_type = $bhkType,
              p.price_min = $priceMin,
              p.price_max = $priceMax,
              p.location = $location
MERGE (c)-[v:VIEWED]->(p)
ON CREATE SET v.first_seen = datetime()
SET v.last_seen = datetime()
RETURN p.id AS id
"""

SIMILAR_PROPERTIES = """
MATCH (c:Customer {id: $customerId})
MATCH (p:Property)
WHERE ($propertyType IS NULL OR p.type = $propertyType)
  AND ($bhkType IS NULL OR p.bhk_type = $bhkType)
  AND ($maxBudget IS NULL OR p.price_min <= $maxBudget)
  AND ($location IS NULL OR toLower(p.location) CONTAINS toLower($location))
OPTIONAL MATCH (c)-[v:VIEWED]->(p)
RETURN p AS property, count(v) AS relevance
ORDER BY relevance DESC
LIMIT $limit
"""


class Neo4jGraphStore:
    def __init__(self, settings: AgentSettings, driver: Optional[AsyncDriver] = None) -> None:
        self._uri = settings.neo4j_uri
        self._user = settings.neo4j_user
        self._password = settings.neo4j_password
        self._database = settings.neo4j_database
        self._timeout = settings.graph_timeout
        self.high_threshold = settings.engagement_high_messages
        self.medium_threshold = settings.engagement_medium_messages
        self._driver = driver
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected and self._driver is not None

    async def connect(self) -> bool:
        if not self._driver:
            if not self._uri or not self._password:
                logger.warning("graph.disabled reason=missing_credentials")
                return False
            self._driver = AsyncGraphDatabase.driver(
                self._uri,
                auth=(self._user, self._password),
                connection_timeout=self._timeout,
            )
        try:
            await asyncio.wait_for(self._driver.verify_connectivity(), timeout=self._timeout)
            for statement in _INDEXES:
                await asyncio.wait_for(self._run(statement), timeout=self._timeout)
        except Exception as exc:  # noqa: BLE001
            logger.error("graph.connect_failed %s", exc)
            self._connected = False
            return False
        self._connected = True
        logger.info("graph.connected uri=%s", self._uri)
        return True

    async def close(self) -> None:
        if self._driver:
            await self._driver.close()
        self._driver = None
        self._connected = False

    async def _run(self, query: str, **params: Any) -> List[Dict[str, Any]]:
        records, _, _ = await self._driver.execute_query(
            query,
            parameters_=params,
            database_=self._database,
        )
        return [record.data() for record in records]

    async def create_customer(self, customer: Dict[str, Any]) -> bool:
        rows = await self._run(
            CREATE_CUSTOMER,
            customerId=customer["id"],
            name=customer.get("name"),
            email=customer.get("email"),
            phone=customer.get("phone"),
            source=customer.get("source"),
        )
        return bool(rows)

    async def create_session(self, customer_id: str, session_id: str) -> bool:
        rows = await self._run(CREATE_SESSION, customerId=customer_id, sessionId=session_id)
        return bool(rows)

    async def add_message_to_session(self, session_id: str, content: str, role: str) -> bool:
        rows = await self._run(ADD_MESSAGE, sessionId=session_id, content=content, role=role)
        return bool(rows)

    async def get_customer_context(self, customer_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._run(
            CUSTOMER_CONTEXT,
            customerId=customer_id,
            highThreshold=self.high_threshold,
            mediumThreshold=self.medium_threshold,
        )
        return rows[0]["context"] if rows else None

    async def update_customer_preferences(self, customer_id: str, preferences: Dict[str, Any]) -> bool:
        rows = await self._run(UPDATE_PREFERENCES, customerId=customer_id, preferences=json.dumps(preferences))
        return bool(rows)

    async def update_lead_score(self, customer_id: str, score: int) -> bool:
        rows = await self._run(UPDATE_LEAD_SCORE, customerId=customer_id, score=score)
        return bool(rows)

    async def record_property_view(self, customer_id: str, prop: Dict[str, Any]) -> bool:
        rows = await self._run(
            RECORD_VIEW,
            customerId=customer_id,
            propertyId=prop["id"],
            title=prop.get("title"),
            type=prop.get("type"),
            bhkType=prop.get("bhk_type"),
            priceMin=prop.get("price_min"),
            priceMax=prop.get("price_max"),
            location=prop.get("location_text"),
        )
        return bool(rows)

    async def find_similar_properties(self, customer_id: str, requirements: Dict[str, Any], limit: int = 5) -> List[Dict[str, Any]]:
        rows = await self._run(
            SIMILAR_PROPERTIES,
            customerId=customer_id,
            propertyType=requirements.get("propertyType"),
            bhkType=requirements.get("bhkType"),
            maxBudget=requirements.get("budget"),
            location=requirements.get("location"),
            limit=limit,
        )
        return [row["property"] for row in rows]
