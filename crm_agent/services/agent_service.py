"""Lead-qualification agent: one inbound customer message in, one reply out.

A turn runs while holding the conversation's state lock:

1. ensure a memory session and load the customer's memory context
2. rebuild the turn history from the caller's message log
3. extract fields from the new message, then re-scan the whole history
4. list matching inventory when enough is known, otherwise ask the
   completion model for the next question (the fixed stage flow answers
   when the model fails)
5. record the turn to memory (best-effort, never affects the reply)

``process_message`` never raises. Dependencies degrade on their own; anything
unexpected in the orchestration returns ``fallback_response()``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import logging

from crm_agent.config import AgentSettings
from crm_agent.logging.flight_recorder import FlightRecorder
from crm_agent.models.conversation import (
    AgentStage,
    AIResponse,
    ConversationTurn,
    Customer,
    HistoryMessage,
)
from crm_agent.models.memory import CustomerMemoryContext
from crm_agent.models.preferences import (
    Preferences,
    has_enough_context,
    is_fully_qualified,
    is_placeholder_name,
    merge_preferences,
)
from crm_agent.models.property import Property
from crm_agent.services.completion import FALLBACK_PROMPT
from crm_agent.services.extraction import CompletionClient, MessageExtractor
from crm_agent.services.history_extractor import extract_preferences_from_history
from crm_agent.services.inventory import InventorySearch, format_property, query_from_preferences
from crm_agent.services.lead_scoring import score_turn
from crm_agent.services.memory_service import MemoryService
from crm_agent.services.prompts import (
    CONVERSATION_STATE_PROMPT,
    CUSTOMER_CONTEXT_PROMPT,
    LISTING_INTRO,
    LISTING_OUTRO,
    PERSONA_PROMPT,
)
from crm_agent.services.state_store import AgentState, AgentStateStore

logger = logging.getLogger(__name__)

LISTING_CONFIDENCE = 0.95
CONTENT_CONFIDENCE = 0.9
FALLBACK_CONFIDENCE = 0.7

STAGE_ACTIONS: Dict[AgentStage, List[str]] = {
    AgentStage.NAME_COLLECTION: ["collect_name"],
    AgentStage.QUALIFICATION: ["collect_property_type", "collect_budget", "collect_location"],
    AgentStage.BUDGET_COLLECTION: ["collect_budget"],
    AgentStage.LOCATION_COLLECTION: ["collect_location"],
    AgentStage.PROPERTY_MATCHING: ["search_properties", "create_qualified_lead"],
}


@dataclass(frozen=True)
class StageReply:
    message: str
    next_stage: AgentStage
    actions: List[str]
    should_create_lead: bool = False
    should_schedule_follow_up: bool = False
    confidence: float = 0.8


# Used when the completion model fails to produce a reply. Each stage has one successor.
STAGE_REPLIES: Dict[AgentStage, StageReply] = {
    AgentStage.GREETING: StageReply(
        "Hello! I'm Priya, your real estate consultant. How can I help you find your dream property today? 🏠✨",
        AgentStage.NAME_COLLECTION,
        ["collect_name"],
    ),
    AgentStage.NAME_COLLECTION: StageReply(
        "Great! What type of property are you looking for - apartment, villa, or plot? 🏘️",
        AgentStage.QUALIFICATION,
        ["collect_property_type"],
    ),
    AgentStage.QUALIFICATION: StageReply(
        "Perfect! What's your budget range? This will help me find the best options for you. 💰",
        AgentStage.BUDGET_COLLECTION,
        ["collect_budget"],
    ),
    AgentStage.BUDGET_COLLECTION: StageReply(
        "Excellent! Which area or city are you interested in? 🏙️",
        AgentStage.LOCATION_COLLECTION,
        ["collect_location"],
    ),
    AgentStage.LOCATION_COLLECTION: StageReply(
        "Perfect! Let me search for properties that match your requirements. 🔍",
        AgentStage.PROPERTY_MATCHING,
        ["search_properties"],
        should_create_lead=True,
        should_schedule_follow_up=True,
        confidence=0.9,
    ),
    AgentStage.PROPERTY_MATCHING: StageReply(
        "I found some great properties for you! Would you like to schedule a site visit? 📅",
        AgentStage.SCHEDULING,
        ["schedule_visit"],
        should_create_lead=True,
        should_schedule_follow_up=True,
        confidence=0.9,
    ),
    AgentStage.SCHEDULING: StageReply(
        "Which day and time suit you for a site visit? I'll check availability and confirm right away. 📅",
        AgentStage.FOLLOW_UP,
        ["schedule_visit"],
        should_create_lead=True,
        should_schedule_follow_up=True,
        confidence=0.9,
    ),
    AgentStage.FOLLOW_UP: StageReply(
        "Thanks for your time! I'll keep an eye out for new listings that match and get back to you soon. 😊",
        AgentStage.FOLLOW_UP,
        ["continue_conversation"],
        should_schedule_follow_up=True,
    ),
}


def fallback_response() -> AIResponse:
    return AIResponse(
        message=FALLBACK_PROMPT,
        next_stage=AgentStage.GREETING.value,
        actions=["continue_conversation"],
        should_create_lead=False,
        should_schedule_follow_up=False,
        confidence=FALLBACK_CONFIDENCE,
        extracted_info={},
    )


def determine_next_stage(preferences: Preferences) -> AgentStage:
    if not preferences.name:
        return AgentStage.NAME_COLLECTION
    if not preferences.property_type:
        return AgentStage.QUALIFICATION
    if not preferences.budget:
        return AgentStage.BUDGET_COLLECTION
    if not preferences.location:
        return AgentStage.LOCATION_COLLECTION
    if is_fully_qualified(preferences):
        return AgentStage.PROPERTY_MATCHING
    return AgentStage.QUALIFICATION


def determine_actions(stage: AgentStage) -> List[str]:
    return list(STAGE_ACTIONS.get(stage, ["continue_conversation"]))


def missing_fields(preferences: Preferences) -> List[str]:
    checks = (
        ("name", preferences.name),
        ("property type", preferences.property_type),
        ("budget", preferences.budget or preferences.budget_range),
        ("location", preferences.location),
    )
    return [label for label, value in checks if not value]


def build_system_prompt(state: AgentState, context: Optional[CustomerMemoryContext]) -> str:
    prompt = PERSONA_PROMPT
    # The fallback context holds defaults, not anything known about the customer
    if context and not context.is_fallback:
        prompt += CUSTOMER_CONTEXT_PROMPT.format(
            preferences=json.dumps(context.preferences) if context.preferences else "none recorded",
            total_conversations=context.interaction_history.total_conversations,
            engagement_level=context.interaction_history.engagement_level,
            lead_stage=context.lead_journey.stage,
        )
    prompt += CONVERSATION_STATE_PROMPT.format(
        stage=state.current_stage.value,
        collected_info=json.dumps(state.collected_info.to_payload(), ensure_ascii=False),
        missing=", ".join(missing_fields(state.collected_info)) or "nothing",
        score=state.qualification_score,
    )
    return prompt


def format_listing(properties: Sequence[Property]) -> str:
    body = "\n\n".join(format_property(prop) for prop in properties)
    return f"{LISTING_INTRO}\n\n{body}\n\n{LISTING_OUTRO}"


def rebuild_history(message_history: Optional[Sequence[Dict[str, Any]]], message_text: str) -> List[ConversationTurn]:
    """Turn the caller's message log into user/assistant turns ending with ``message_text``."""
    turns = [
        ConversationTurn.from_history(HistoryMessage.model_validate(entry))
        for entry in (message_history or [])
    ]
    if message_text and not (turns and turns[-1].role == "user" and turns[-1].content == message_text):
        turns.append(ConversationTurn(role="user", content=message_text))
    return turns


class LeadQualificationAgent:
    def __init__(
        self,
        memory: MemoryService,
        completion: CompletionClient,
        inventory: InventorySearch,
        states: AgentStateStore,
        recorder: FlightRecorder,
        settings: Optional[AgentSettings] = None,
        extractor: Optional[MessageExtractor] = None,
    ) -> None:
        self.memory = memory
        self.completion = completion
        self.inventory = inventory
        self.states = states
        self.recorder = recorder
        self.settings = settings or AgentSettings()
        self.extractor = extractor or MessageExtractor(completion, recorder)

    async def process_message(
        self,
        customer: Union[Customer, Dict[str, Any]],
        conversation_id: str,
        message_text: str,
        message_history: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> AIResponse:
        try:
            if not isinstance(customer, Customer):
                customer = Customer.model_validate(customer)
            with self.recorder.stage("PLAN", conversation_id=conversation_id):
                return await self._process(customer, conversation_id, message_text or "", message_history)
        except Exception:  # noqa: BLE001
            logger.exception("agent.turn_failed conversation=%s", conversation_id)
            self.recorder.log("PLAN", "fallback_response", conversation_id=conversation_id)
            return fallback_response()

    def _new_state(self, customer: Customer, conversation_id: str) -> AgentState:
        seed = Preferences()
        if not is_placeholder_name(customer.name):
            seed = Preferences(name=customer.name)
        return AgentState(
            customer_id=customer.id,
            conversation_id=conversation_id,
            collected_info=seed,
            qualification_threshold=self.settings.qualification_threshold,
        )

    async def _process(
        self,
        customer: Customer,
        conversation_id: str,
        message_text: str,
        message_history: Optional[Sequence[Dict[str, Any]]],
    ) -> AIResponse:
        async with self.states.acquire(
            customer.id,
            conversation_id,
            lambda: self._new_state(customer, conversation_id),
        ) as state:
            is_new = not state.conversation_history
            context = await self._open_session(customer, conversation_id, is_new)

            state.conversation_history = rebuild_history(message_history, message_text)
            state.user_intent = context.interaction_history.engagement_level
            state.qualification_score = context.lead_journey.score
            state.touch()

            per_turn = await self.extractor.extract(message_text)
            state.collected_info = merge_preferences(state.collected_info, per_turn)

            if message_text:
                await self._record_message(conversation_id, message_text, "user")

            scanned = extract_preferences_from_history(state.conversation_history)
            state.collected_info = merge_preferences(state.collected_info, scanned)
            merged = state.collected_info
            logger.info(
                "agent.preferences conversation=%s stage=%s merged=%s",
                conversation_id,
                state.current_stage.value,
                merged.to_payload(),
            )

            shown: List[Property] = []
            if has_enough_context(merged):
                shown = await self._search(merged)

            if shown:
                response = AIResponse(
                    message=format_listing(shown),
                    next_stage=AgentStage.PROPERTY_MATCHING.value,
                    actions=["show_properties"],
                    should_create_lead=True,
                    should_schedule_follow_up=True,
                    confidence=LISTING_CONFIDENCE,
                    extracted_info=merged.to_payload(),
                )
            else:
                response = await self._generate_reply(state, context)

            state.current_stage = AgentStage(response.next_stage)
            state.conversation_history.append(ConversationTurn(role="assistant", content=response.message))
            self.recorder.log(
                "PLAN",
                "turn_complete",
                next_stage=response.next_stage,
                actions=response.actions,
                listings=len(shown),
            )

            await self._record_turn(customer, state, message_text, response, shown)
            return response

    async def _open_session(self, customer: Customer, conversation_id: str, is_new: bool) -> CustomerMemoryContext:
        customer_id = customer.id
        if is_new:
            try:
                await self.memory.create_customer(customer)
            except Exception as exc:  # noqa: BLE001
                logger.warning("agent.customer_failed customer=%s %s", customer_id, exc)
        try:
            await self.memory.create_session(customer_id, conversation_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("agent.session_failed conversation=%s %s", conversation_id, exc)
        try:
            return await self.memory.get_customer_context(customer_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("agent.context_failed customer=%s %s", customer_id, exc)
            return CustomerMemoryContext.fallback(customer_id)

    async def _search(self, preferences: Preferences) -> List[Property]:
        query = query_from_preferences(
            preferences,
            company_id=self.settings.company_id,
            limit=self.settings.listing_limit,
        )
        try:
            properties = await self.inventory.search(query)
        except Exception as exc:  # noqa: BLE001
            logger.error("agent.search_error %s", exc)
            return []
        if any(prop.is_sample for prop in properties):
            logger.warning("agent.listing_uses_samples location=%s", query.location)
        return list(properties[: query.limit])

    async def _generate_reply(self, state: AgentState, context: CustomerMemoryContext) -> AIResponse:
        messages = [{"role": "system", "content": build_system_prompt(state, context)}]
        messages.extend(
            {"role": turn.role, "content": turn.content}
            for turn in state.conversation_history[-self.settings.history_window:]
        )
        reply = await self.completion.generate(messages)
        if not reply or not reply.strip():
            logger.warning(
                "agent.generation_failed conversation=%s stage=%s", state.conversation_id, state.current_stage.value
            )
            self.recorder.log("LLM", "stage_flow", stage=state.current_stage.value)
            return self._stage_reply(state)

        preferences = state.collected_info
        next_stage = determine_next_stage(preferences)
        qualified = is_fully_qualified(preferences)
        return AIResponse(
            message=reply,
            next_stage=next_stage.value,
            actions=determine_actions(next_stage),
            should_create_lead=qualified,
            should_schedule_follow_up=qualified,
            confidence=CONTENT_CONFIDENCE,
            extracted_info=preferences.to_payload(),
        )

    def _stage_reply(self, state: AgentState) -> AIResponse:
        reply = STAGE_REPLIES[state.current_stage]
        logger.info("agent.stage_reply stage=%s next=%s", state.current_stage.value, reply.next_stage.value)
        return AIResponse(
            message=reply.message,
            next_stage=reply.next_stage.value,
            actions=list(reply.actions),
            should_create_lead=reply.should_create_lead,
            should_schedule_follow_up=reply.should_schedule_follow_up,
            confidence=reply.confidence,
            extracted_info=state.collected_info.to_payload(),
        )

    async def _record_message(self, conversation_id: str, content: str, role: str) -> None:
        try:
            await self.memory.add_message_to_session(conversation_id, content, role)
        except Exception as exc:  # noqa: BLE001
            logger.warning("agent.record_message_failed role=%s %s", role, exc)

    async def _record_turn(
        self,
        customer: Customer,
        state: AgentState,
        message_text: str,
        response: AIResponse,
        shown: List[Property],
    ) -> None:
        await self._record_message(state.conversation_id, response.message, "assistant")
        try:
            if message_text:
                state.qualification_score = score_turn(state.qualification_score, message_text, customer)
                await self.memory.update_lead_score(customer.id, state.qualification_score)
            if not state.collected_info.is_empty():
                await self.memory.update_customer_preferences(customer.id, state.collected_info.to_payload())
            if shown:
                await self.memory.record_property_views(customer.id, shown)
        except Exception as exc:  # noqa: BLE001
            logger.warning("agent.record_turn_failed conversation=%s %s", state.conversation_id, exc)
