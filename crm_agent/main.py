from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from crm_agent.config import AgentSettings, get_settings
from crm_agent.db.session import build_engine, build_sessionmaker
from crm_agent.logging.flight_recorder import FlightRecorder
from crm_agent.routes import agent as agent_routes
from crm_agent.routes import health
from crm_agent.services.agent_service import LeadQualificationAgent
from crm_agent.services.completion import TextCompletion
from crm_agent.services.graph_store import Neo4jGraphStore
from crm_agent.services.inventory import InventorySearch
from crm_agent.services.memory_service import MemoryService
from crm_agent.services.state_store import AgentStateStore

logger = logging.getLogger(__name__)


@dataclass
class AgentRuntime:
    agent: LeadQualificationAgent
    memory: MemoryService
    engine: Optional[AsyncEngine] = None

    async def start(self) -> None:
        await self.memory.connect()

    async def stop(self) -> None:
        await self.memory.close()
        if self.engine is not None:
            await self.engine.dispose()


def build_runtime(settings: AgentSettings, recorder: Optional[FlightRecorder] = None) -> AgentRuntime:
    recorder = recorder or FlightRecorder()
    store = Neo4jGraphStore(settings) if settings.neo4j_uri else None
    memory = MemoryService(store, recorder, timeout=settings.graph_timeout)

    engine = build_engine(settings)
    inventory = InventorySearch(
        build_sessionmaker(engine) if engine is not None else None,
        recorder,
        timeout=settings.inventory_timeout,
    )
    states = AgentStateStore(
        max_entries=settings.state_cache_size,
        ttl_seconds=settings.state_ttl_seconds,
    )
    agent = LeadQualificationAgent(
        memory=memory,
        completion=TextCompletion(settings, recorder),
        inventory=inventory,
        states=states,
        recorder=recorder,
        settings=settings,
    )
    return AgentRuntime(agent=agent, memory=memory, engine=engine)


def create_app(runtime: Optional[AgentRuntime] = None) -> FastAPI:
    runtime = runtime or build_runtime(get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await runtime.start()
        logger.info(
            "app.started memory_available=%s completion=%s",
            runtime.memory.is_available(),
            "model" if runtime.agent.completion.available else "canned",
        )
        try:
            yield
        finally:
            await runtime.stop()
            logger.info("app.stopped")

    app = FastAPI(title="CRM Lead Agent", version="0.1.0", lifespan=lifespan)
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(agent_routes.router, prefix="/agent", tags=["agent"])

    return app


app = create_app()
