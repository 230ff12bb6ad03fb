#!/usr/bin/env python3
"""
Scripted two-turn lead qualification conversation.

Runs offline by default: without OPENAI_API_KEY, NEO4J_URI or DATABASE_URL the
agent uses canned replies, the fallback memory context and sample listings.
"""

import asyncio
from datetime import datetime, timezone

from crm_agent.config import AgentSettings
from crm_agent.main import build_runtime
from logging_config import setup_logging

CUSTOMER = {"id": "demo-customer-1", "company_id": "demo-company", "name": "Arun", "source": "whatsapp"}
SCRIPT = [
    "Hi, I'm looking for a 3BHK villa",
    "Budget is 55 lakhs in Coimbatore",
]


async def run_demo() -> None:
    runtime = build_runtime(AgentSettings.from_env())
    await runtime.start()

    conversation_id = f"demo-{datetime.now().strftime('%Y%m%d_%H%M%S')}"
    history = []
    print("🏠 Lead qualification demo")
    print("=" * 50)
    try:
        for text in SCRIPT:
            print(f"\n👤 Customer: {text}")
            response = await runtime.agent.process_message(CUSTOMER, conversation_id, text, history)
            print(f"🤖 Agent: {response.message}")
            print(f"   stage={response.next_stage} actions={response.actions} confidence={response.confidence}")
            print(f"   extracted={response.extracted_info}")

            now = datetime.now(timezone.utc).isoformat()
            history.append({"content": text, "sender_type": "customer", "created_at": now})
            history.append({"content": response.message, "sender_type": "agent", "created_at": now})
    finally:
        await runtime.stop()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(run_demo())
