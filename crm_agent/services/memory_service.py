"""Best-effort customer memory backed by the Neo4j graph store."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

import logging
from pydantic import ValidationError

from crm_agent.logging.flight_recorder import FlightRecorder
from crm_agent.models.conversation import Customer
from crm_agent.models.memory import CustomerMemoryContext
from crm_agent.models.property import Property
from crm_agent.services.graph_store import Neo4jGraphStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MemoryService:
    """Wraps graph store calls so that none of them can fail a conversation.

    Every method checks connectivity before touching the store and bounds the
    call with a timeout. Failures come back as ``False``, ``[]`` or the
    fallback customer context.
    """

    def __init__(self, store: Optional[Neo4jGraphStore], recorder: FlightRecorder, timeout: float = 5.0) -> None:
        self.store = store
        self.recorder = recorder
        self.timeout = timeout

    async def connect(self) -> bool:
        if not self.store:
            self.recorder.log("MEMORY", "disabled", reason="no_store")
            return False
        connected = await self.store.connect()
        self.recorder.log("MEMORY", "initialized" if connected else "unavailable", provider="neo4j")
        return connected

    async def close(self) -> None:
        if self.store:
            await self.store.close()

    def is_available(self) -> bool:
        return bool(self.store and self.store.is_connected)

    async def _call(self, operation: str, call: Awaitable[T]) -> T:
        with self.recorder.stage("MEMORY", operation=operation):
            return await asyncio.wait_for(call, timeout=self.timeout)

    async def create_customer(self, customer: Customer) -> bool:
        if not self.is_available():
            return False

        try:
            return await self._call(
                "create_customer",
                self.store.create_customer(customer.model_dump(include={"id", "name", "email", "phone", "source"})),
            )
        except Exception as e:  # noqa: BLE001
            logger.error("memory.customer_error %s", e)
            self.recorder.log("MEMORY", "customer_error", error=str(e))
            return False

    async def create_session(self, customer_id: str, session_id: str) -> bool:
        if not self.is_available():
            return False

        try:
            created = await self._call("create_session", self.store.create_session(customer_id, session_id))
        except Exception as e:  # noqa: BLE001
            logger.error("memory.session_error %s", e)
            self.recorder.log("MEMORY", "session_error", error=str(e))
            return False

        self.recorder.log("MEMORY", "session_ready", user_id=customer_id, session_id=session_id)
        return created

    async def add_message_to_session(self, session_id: str, content: str, role: str) -> bool:
        if not self.is_available():
            return False

        try:
            return await self._call("add_message", self.store.add_message_to_session(session_id, content, role))
        except Exception as e:  # noqa: BLE001
            logger.error("memory.message_error %s", e)
            self.recorder.log("MEMORY", "message_error", error=str(e), role=role)
            return False

    async def get_customer_context(self, customer_id: str) -> CustomerMemoryContext:
        if not self.is_available():
            return CustomerMemoryContext.fallback(customer_id)

        try:
            raw = await self._call("get_context", self.store.get_customer_context(customer_id))
        except Exception as e:  # noqa: BLE001
            logger.error("memory.context_error %s", e)
            self.recorder.log("MEMORY", "context_error", error=str(e))
            return CustomerMemoryContext.fallback(customer_id)

        if not raw:
            # Customer has no node yet
            return CustomerMemoryContext.fallback(customer_id)

        try:
            context = CustomerMemoryContext.model_validate({**raw, "user_id": raw.get("user_id") or customer_id})
        except ValidationError as e:
            logger.warning("memory.context_invalid %s", e.errors())
            return CustomerMemoryContext.fallback(customer_id)

        self.recorder.log(
            "MEMORY",
            "context_loaded",
            engagement=context.interaction_history.engagement_level,
            score=context.lead_journey.score,
        )
        return context

    async def update_customer_preferences(self, customer_id: str, preferences: Dict[str, Any]) -> bool:
        if not self.is_available():
            return False

        try:
            return await self._call(
                "update_preferences",
                self.store.update_customer_preferences(customer_id, preferences),
            )
        except Exception as e:  # noqa: BLE001
            logger.error("memory.preferences_error %s", e)
            self.recorder.log("MEMORY", "preferences_error", error=str(e))
            return False

    async def update_lead_score(self, customer_id: str, score: int) -> bool:
        if not self.is_available():
            return False

        try:
            return await self._call("update_lead_score", self.store.update_lead_score(customer_id, score))
        except Exception as e:  # noqa: BLE001
            logger.error("memory.score_error %s", e)
            self.recorder.log("MEMORY", "score_error", error=str(e))
            return False

    async def record_property_views(self, customer_id: str, properties: List[Property]) -> bool:
        """Link shown listings to the customer so similarity search can rank them."""
        if not self.is_available():
            return False

        shown = [prop for prop in properties if not prop.is_sample]
        if not shown:
            return False

        try:
            for prop in shown:
                city = prop.location.address.city
                locality = prop.location.locality
                await self._call(
                    "record_view",
                    self.store.record_property_view(
                        customer_id,
                        {
                            **prop.model_dump(include={"id", "title", "type", "bhk_type", "price_min", "price_max"}),
                            "location_text": ", ".join(part for part in (city, locality) if part) or None,
                        },
                    ),
                )
        except Exception as e:  # noqa: BLE001
            logger.error("memory.view_error %s", e)
            self.recorder.log("MEMORY", "view_error", error=str(e))
            return False
        return True

    async def find_similar_properties(
        self,
        customer_id: str,
        requirements: Dict[str, Any],
        limit: int = 5,
    ) -> List[Property]:
        if not self.is_available():
            return []

        try:
            rows = await self._call(
                "similar_properties",
                self.store.find_similar_properties(customer_id, requirements, limit),
            )
        except Exception as e:  # noqa: BLE001
            logger.error("memory.similar_error %s", e)
            self.recorder.log("MEMORY", "similar_error", error=str(e))
            return []

        properties = []
        for row in rows:
            try:
                properties.append(Property.model_validate(row))
            except ValidationError as e:
                logger.warning("memory.similar_skip %s", e.errors())
        return properties
