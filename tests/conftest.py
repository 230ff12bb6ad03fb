from typing import Any, Dict

import pytest

from crm_agent.config import AgentSettings
from crm_agent.logging.flight_recorder import FlightRecorder
from crm_agent.services.memory_service import MemoryService
from crm_agent.services.state_store import AgentStateStore

from tests.fakes import FakeGraphStore


@pytest.fixture
def recorder() -> FlightRecorder:
    return FlightRecorder()


@pytest.fixture
def settings() -> AgentSettings:
    return AgentSettings()


@pytest.fixture
def graph_store() -> FakeGraphStore:
    return FakeGraphStore()


@pytest.fixture
def memory(graph_store, recorder) -> MemoryService:
    return MemoryService(graph_store, recorder, timeout=1.0)


@pytest.fixture
def states() -> AgentStateStore:
    return AgentStateStore(max_entries=10, ttl_seconds=None)


@pytest.fixture
def customer() -> Dict[str, Any]:
    return {"id": "cust-1", "company_id": "company-1", "name": "Arun", "whatsapp_number": "+919800000000"}
