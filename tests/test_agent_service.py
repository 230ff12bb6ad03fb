import asyncio

from crm_agent.config import AgentSettings
from crm_agent.services.completion import TextCompletion
from crm_agent.models.conversation import AgentStage
from crm_agent.services.agent_service import LeadQualificationAgent, determine_next_stage
from crm_agent.services.memory_service import MemoryService
from crm_agent.models.preferences import Preferences

from tests.fakes import (
    FakeCompletion,
    FakeGraphStore,
    FakeInventory,
    RaisingCompletion,
    FailingCompletion,
    make_property,
)


def _agent(memory, states, recorder, completion, inventory=None, **settings):
    return LeadQualificationAgent(
        memory=memory,
        completion=completion,
        inventory=inventory or FakeInventory(),
        states=states,
        recorder=recorder,
        settings=AgentSettings(**settings),
    )


def _history(*pairs):
    entries = []
    for sender, content in pairs:
        entries.append({"content": content, "sender_type": sender, "created_at": "2024-05-01T10:00:00Z"})
    return entries


async def test_two_turn_conversation_reaches_listing(memory, graph_store, states, recorder, customer):
    completion = FakeCompletion(
        extractions={
            "3BHK villa": {"propertyType": "villa", "bhkType": "3BHK"},
            "55 lakhs": {"budget": 5500000, "location": "Coimbatore"},
        },
        reply="Lovely choice! What budget do you have in mind? 💰",
    )
    inventory = FakeInventory([make_property()])
    agent = _agent(memory, states, recorder, completion, inventory)

    first = await agent.process_message(customer, "conv-1", "Looking for a 3BHK villa", [])

    assert first.message == "Lovely choice! What budget do you have in mind? 💰"
    assert first.next_stage == "budget_collection"
    assert first.actions == ["collect_budget"]
    assert first.confidence == 0.9
    assert not first.should_create_lead
    assert first.extracted_info["propertyType"] == "villa"
    assert first.extracted_info["bhkType"] == "3BHK"
    system_prompt = completion.reply_calls()[0][0]["content"]
    assert "Still missing: budget, location" in system_prompt
    assert inventory.queries == []

    history = _history(("customer", "Looking for a 3BHK villa"), ("agent", first.message))
    second = await agent.process_message(customer, "conv-1", "Budget is 55 lakhs in Coimbatore", history)

    assert second.next_stage == "property_matching"
    assert second.actions == ["show_properties"]
    assert second.should_create_lead and second.should_schedule_follow_up
    assert second.confidence == 0.95
    assert "₹4.5L - ₹5.0L" in second.message
    assert second.message.startswith("Perfect! Based on your requirements")
    assert second.extracted_info["budget"] == 5_500_000
    assert second.extracted_info["location"] == "coimbatore"
    assert second.extracted_info["propertyType"] == "villa"
    assert second.extracted_info["bhkType"] == "3BHK"
    assert len(completion.reply_calls()) == 1

    query = inventory.queries[0]
    assert (query.property_type, query.bhk_type, query.budget, query.location) == ("villa", "3BHK", 5_500_000, "coimbatore")

    assert [m["role"] for m in graph_store.messages] == ["user", "assistant", "user", "assistant"]
    assert graph_store.sessions == {"conv-1": "cust-1"}
    assert graph_store.customers["cust-1"]["name"] == "Arun"
    assert graph_store.preferences["cust-1"]["location"] == "coimbatore"
    assert graph_store.scores["cust-1"] == 65
    assert [view["id"] for view in graph_store.views] == ["prop-1"]
    assert states.peek("cust-1", "conv-1").current_stage == AgentStage.PROPERTY_MATCHING


async def test_throwing_completion_with_empty_input_returns_fallback(memory, states, recorder, customer):
    agent = _agent(memory, states, recorder, RaisingCompletion())

    response = await agent.process_message(customer, "conv-1", "", [])

    assert response.confidence == 0.7
    assert response.next_stage == "greeting"
    assert response.extracted_info == {}
    assert response.message
    assert "fallback_response" in recorder.messages("PLAN")


async def test_malformed_history_returns_fallback(memory, states, recorder, customer):
    agent = _agent(memory, states, recorder, FakeCompletion())

    for history in ([{"content": "hi"}], "not a list of messages", [{"sender_type": "robot"}]):
        response = await agent.process_message(customer, "conv-1", "hello", history)
        assert response.confidence == 0.7
        assert response.next_stage == "greeting"


async def test_malformed_customer_returns_fallback(memory, states, recorder):
    agent = _agent(memory, states, recorder, FakeCompletion())
    response = await agent.process_message({"name": "no id"}, "conv-1", "hello", [])
    assert response.next_stage == "greeting"
    assert response.confidence == 0.7


async def test_unreachable_graph_store_still_replies(states, recorder, customer):
    memory = MemoryService(FakeGraphStore(connected=False), recorder)
    completion = FakeCompletion(reply="Which type of property?")
    agent = _agent(memory, states, recorder, completion)

    response = await agent.process_message(customer, "conv-1", "hello", [])

    assert response.message == "Which type of property?"
    prompt = completion.reply_calls()[0][0]["content"]
    assert "Customer Context" not in prompt
    assert "Still missing" in prompt
    assert response.confidence == 0.9
    state = states.peek("cust-1", "conv-1")
    assert state.user_intent == "low"
    assert state.qualification_score == 50


async def test_failing_memory_recording_does_not_change_reply(states, recorder, customer):
    class RecordingFailsMemory(MemoryService):
        async def add_message_to_session(self, session_id, content, role):
            raise RuntimeError("write failed")

        async def update_lead_score(self, customer_id, score):
            raise RuntimeError("write failed")

    memory = RecordingFailsMemory(FakeGraphStore(), recorder)
    agent = _agent(memory, states, recorder, FakeCompletion(reply="What is your budget?"))

    response = await agent.process_message(customer, "conv-1", "I want a villa", [])

    assert response.message == "What is your budget?"
    assert response.next_stage == "budget_collection"
    assert response.confidence == 0.9


async def test_memory_context_feeds_prompt_and_qualification(memory, graph_store, states, recorder, customer):
    graph_store.context = {
        "user_id": "cust-1",
        "preferences": {"location": "pune"},
        "interaction_history": {"total_conversations": 4, "engagement_level": "high"},
        "lead_journey": {"stage": "qualified", "score": 82},
    }
    completion = FakeCompletion(reply="Welcome back!")
    agent = _agent(memory, states, recorder, completion)

    await agent.process_message(customer, "conv-1", "hi again", [])

    prompt = completion.reply_calls()[0][0]["content"]
    assert "Engagement level: high" in prompt
    assert "Lead stage: qualified" in prompt
    state = states.peek("cust-1", "conv-1")
    assert state.user_intent == "high"
    assert state.is_qualified


async def test_stage_flow_when_model_fails(memory, states, recorder, customer):
    agent = _agent(memory, states, recorder, FailingCompletion())
    stages = []
    for text in ("hello", "ok", "sure", "fine"):
        response = await agent.process_message(customer, "conv-1", text, [])
        stages.append(response.next_stage)

    assert stages == ["name_collection", "qualification", "budget_collection", "location_collection"]
    assert response.confidence == 0.8
    assert "stage_flow" in recorder.messages("LLM")


async def test_offline_completion_follows_collected_fields(memory, states, recorder, customer):
    inventory = FakeInventory([make_property()])
    agent = _agent(memory, states, recorder, TextCompletion(AgentSettings()), inventory)

    first = await agent.process_message(customer, "conv-1", "Looking for a 3BHK villa", [])

    assert first.next_stage == "budget_collection"
    assert first.actions == ["collect_budget"]
    assert first.confidence == 0.9
    assert "budget range" in first.message
    assert first.extracted_info == {"name": "Arun", "propertyType": "villa", "bhkType": "3BHK"}

    history = _history(("customer", "Looking for a 3BHK villa"), ("agent", first.message))
    second = await agent.process_message(customer, "conv-1", "Budget is 55 lakhs in Coimbatore", history)

    assert second.next_stage == "property_matching"
    assert second.should_create_lead
    assert "₹4.5L - ₹5.0L" in second.message
    assert "stage_flow" not in recorder.messages("LLM")


async def test_whole_history_wins_over_single_turn_extraction(memory, states, recorder, customer):
    completion = FakeCompletion(extractions={"villa please": {"propertyType": "apartment", "bhkType": "2BHK"}})
    agent = _agent(memory, states, recorder, completion)

    response = await agent.process_message(customer, "conv-1", "A villa please", [])

    assert response.extracted_info["propertyType"] == "villa"
    assert response.extracted_info["bhkType"] == "2BHK"


async def test_fields_are_kept_when_a_turn_extracts_nothing(memory, states, recorder, customer):
    completion = FakeCompletion(extractions={"plot": {"propertyType": "plot", "location": "Pune"}})
    agent = _agent(memory, states, recorder, completion)

    await agent.process_message(customer, "conv-1", "Any plot in Pune?", [])
    response = await agent.process_message(customer, "conv-1", "thanks", [])

    assert response.extracted_info["propertyType"] == "plot"
    assert response.extracted_info["location"] == "pune"


async def test_stage_can_move_backwards(memory, states, recorder):
    inventory = FakeInventory([make_property()])
    agent = _agent(memory, states, recorder, FakeCompletion(reply="May I know your name?"), inventory)
    anonymous = {"id": "cust-2", "name": "Unknown Customer"}

    first = await agent.process_message(anonymous, "conv-9", "3BHK villa in Coimbatore for 55 lakhs", [])
    assert first.next_stage == "property_matching"

    inventory.properties = []
    second = await agent.process_message(anonymous, "conv-9", "anything cheaper?", [])
    assert second.next_stage == "name_collection"
    assert second.actions == ["collect_name"]
    assert not second.should_create_lead


async def test_sample_listings_are_still_shown(memory, states, recorder, customer):
    inventory = FakeInventory([make_property(id="sample-1", is_sample=True)])
    agent = _agent(memory, states, recorder, FakeCompletion(), inventory)

    response = await agent.process_message(customer, "conv-1", "villa in Kochi, budget 60 lakh", [])

    assert response.actions == ["show_properties"]


def test_next_stage_precedence():
    assert determine_next_stage(Preferences()) == AgentStage.NAME_COLLECTION
    assert determine_next_stage(Preferences(name="Arun")) == AgentStage.QUALIFICATION
    assert determine_next_stage(Preferences(name="Arun", property_type="villa")) == AgentStage.BUDGET_COLLECTION
    assert (
        determine_next_stage(Preferences(name="Arun", property_type="villa", budget=1))
        == AgentStage.LOCATION_COLLECTION
    )
    assert (
        determine_next_stage(Preferences(name="Arun", property_type="villa", budget=1, location="pune"))
        == AgentStage.PROPERTY_MATCHING
    )


async def test_slow_turn_blocks_only_its_own_conversation(memory, states, recorder, customer):
    release = asyncio.Event()

    class GatedCompletion(FakeCompletion):
        async def generate(self, messages):
            if messages[-1]["content"] == "slow question":
                await release.wait()
            return await self.complete(messages)

    agent = _agent(memory, states, recorder, GatedCompletion(reply="Noted!"))

    slow = asyncio.create_task(agent.process_message(customer, "conv-a", "slow question", []))
    await asyncio.sleep(0)
    queued = asyncio.create_task(agent.process_message(customer, "conv-a", "follow up", []))
    other = await asyncio.wait_for(agent.process_message(customer, "conv-b", "hello", []), timeout=1)

    assert other.message == "Noted!"
    assert not slow.done() and not queued.done()

    release.set()
    await asyncio.wait_for(asyncio.gather(slow, queued), timeout=1)
    history = states.peek("cust-1", "conv-a").conversation_history
    assert [turn.content for turn in history if turn.role == "user"] == ["follow up"]
