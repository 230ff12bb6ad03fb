"""Bounded in-process cache of per-conversation agent state.

Access is serialized per (customer, conversation) key: ``acquire`` holds an
``asyncio.Lock`` for that key for the whole turn, so two messages on the same
conversation never race to create or overwrite its state. Different
conversations proceed concurrently.

The lock stays held across the dependency calls made
during the turn. Releasing it around those calls would let a second message
read state the first one has not written back yet, so the whole turn is the
unit of serialization. A slow dependency therefore delays only later messages
of the same conversation.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, List, Optional, Tuple

import logging

from crm_agent.models.conversation import AgentStage, ConversationTurn
from crm_agent.models.preferences import Preferences

logger = logging.getLogger(__name__)

StateKey = Tuple[str, str]


@dataclass
class AgentState:
    customer_id: str
    conversation_id: str
    current_stage: AgentStage = AgentStage.GREETING
    collected_info: Preferences = field(default_factory=Preferences)
    conversation_history: List[ConversationTurn] = field(default_factory=list)
    last_interaction: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    user_intent: str = "low"
    qualification_score: int = 0
    qualification_threshold: int = 70

    @property
    def is_qualified(self) -> bool:
        return self.qualification_score >= self.qualification_threshold

    def touch(self) -> None:
        self.last_interaction = datetime.now(timezone.utc)


@dataclass
class _Entry:
    state: AgentState
    lock: asyncio.Lock
    touched_at: float
    holders: int = 0


class AgentStateStore:
    def __init__(
        self,
        max_entries: int = 1000,
        ttl_seconds: Optional[float] = 24 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[StateKey, _Entry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: StateKey) -> bool:
        return key in self._entries

    def peek(self, customer_id: str, conversation_id: str) -> Optional[AgentState]:
        entry = self._entries.get((customer_id, conversation_id))
        return entry.state if entry else None

    @asynccontextmanager
    async def acquire(
        self,
        customer_id: str,
        conversation_id: str,
        factory: Callable[[], AgentState],
    ) -> AsyncIterator[AgentState]:
        key = (customer_id, conversation_id)
        entry = self._entries.get(key)
        if entry is None:
            entry = _Entry(state=factory(), lock=asyncio.Lock(), touched_at=self._clock())
            self._entries[key] = entry
            logger.debug("state.created key=%s", key)

        entry.holders += 1
        try:
            async with entry.lock:
                self._entries.move_to_end(key)
                yield entry.state
                entry.touched_at = self._clock()
        finally:
            entry.holders -= 1
            self._evict()

    def _evict(self) -> None:
        now = self._clock()
        if self.ttl_seconds is not None:
            expired = [
                key
                for key, entry in self._entries.items()
                if not self._in_use(entry) and now - entry.touched_at > self.ttl_seconds
            ]
            for key in expired:
                del self._entries[key]
                logger.debug("state.expired key=%s", key)

        if len(self._entries) <= self.max_entries:
            return
        for key in list(self._entries):
            if len(self._entries) <= self.max_entries:
                break
            if self._in_use(self._entries[key]):
                continue
            del self._entries[key]
            logger.debug("state.evicted key=%s", key)

    @staticmethod
    def _in_use(entry: _Entry) -> bool:
        return entry.holders > 0 or entry.lock.locked()
