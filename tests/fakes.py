"""In-memory fakes for the graph store, completion model and inventory."""
import json
from typing import Any, Dict, List, Optional

from crm_agent.models.property import Property
from crm_agent.services.prompts import EXTRACTION_SYSTEM_PROMPT


class FakeGraphStore:
    """In-memory stand-in for Neo4jGraphStore with the same method surface."""

    def __init__(self, connected: bool = True, fail: bool = False) -> None:
        self.is_connected = connected
        self.fail = fail
        self.sessions: Dict[str, str] = {}
        self.messages: List[Dict[str, str]] = []
        self.preferences: Dict[str, Dict[str, Any]] = {}
        self.scores: Dict[str, int] = {}
        self.views: List[Dict[str, Any]] = []
        self.similar: List[Dict[str, Any]] = []
        self.context: Optional[Dict[str, Any]] = None
        self.customers: Dict[str, Dict[str, Any]] = {}

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError("graph store unreachable")

    async def connect(self) -> bool:
        return self.is_connected

    async def close(self) -> None:
        self.is_connected = False

    async def create_customer(self, customer: Dict[str, Any]) -> bool:
        self._check()
        self.customers[customer["id"]] = dict(customer)
        return True

    async def create_session(self, customer_id: str, session_id: str) -> bool:
        self._check()
        self.sessions[session_id] = customer_id
        return True

    async def add_message_to_session(self, session_id: str, content: str, role: str) -> bool:
        self._check()
        self.messages.append({"session_id": session_id, "content": content, "role": role})
        return True

    async def get_customer_context(self, customer_id: str) -> Optional[Dict[str, Any]]:
        self._check()
        return self.context

    async def update_customer_preferences(self, customer_id: str, preferences: Dict[str, Any]) -> bool:
        self._check()
        self.preferences[customer_id] = json.loads(json.dumps(preferences))
        return True

    async def update_lead_score(self, customer_id: str, score: int) -> bool:
        self._check()
        self.scores[customer_id] = score
        return True

    async def record_property_view(self, customer_id: str, prop: Dict[str, Any]) -> bool:
        self._check()
        self.views.append({"customer_id": customer_id, **prop})
        return True

    async def find_similar_properties(self, customer_id: str, requirements: Dict[str, Any], limit: int = 5):
        self._check()
        return self.similar[:limit]


class FakeCompletion:
    """Answers extraction prompts from ``extractions`` and everything else with ``reply``."""

    def __init__(self, extractions: Optional[Dict[str, Dict[str, Any]]] = None, reply: str = "How can I help?") -> None:
        self.extractions = extractions or {}
        self.reply = reply
        self.calls: List[List[Dict[str, str]]] = []

    @property
    def available(self) -> bool:
        return True

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        self.calls.append(messages)
        if messages[0]["content"] == EXTRACTION_SYSTEM_PROMPT:
            # The customer's message is the first quoted string in the prompt
            message = messages[-1]["content"].split('"')[1]
            for needle, fields in self.extractions.items():
                if needle in message:
                    return json.dumps(fields)
            return "{}"
        return self.reply

    async def generate(self, messages: List[Dict[str, str]]) -> Optional[str]:
        return await self.complete(messages)

    def reply_calls(self) -> List[List[Dict[str, str]]]:
        return [call for call in self.calls if call[0]["content"] != EXTRACTION_SYSTEM_PROMPT]


class RaisingCompletion:
    @property
    def available(self) -> bool:
        return True

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        raise RuntimeError("completion endpoint exploded")

    async def generate(self, messages: List[Dict[str, str]]) -> Optional[str]:
        raise RuntimeError("completion endpoint exploded")


class FailingCompletion:
    """A configured model whose calls fail: ``complete`` degrades, ``generate`` reports ``None``."""

    @property
    def available(self) -> bool:
        return True

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        return "I'm here to help you find your perfect property!"

    async def generate(self, messages: List[Dict[str, str]]) -> Optional[str]:
        return None


class FakeInventory:
    def __init__(self, properties: Optional[List[Property]] = None) -> None:
        self.properties = properties or []
        self.queries = []

    async def search(self, query):
        self.queries.append(query)
        return list(self.properties)


def make_property(**overrides: Any) -> Property:
    data = {
        "id": "prop-1",
        "title": "Modern 3BHK Villa in Coimbatore",
        "type": "villa",
        "bhk_type": "3BHK",
        "price_min": 4_500_000,
        "price_max": 5_000_000,
        "location": {"address": {"city": "Coimbatore"}, "locality": "Peelamedu"},
        "amenities": ["Garden", "Parking", "Security", "Gym"],
        "area_sqft": 2200,
    }
    data.update(overrides)
    return Property.model_validate(data)


