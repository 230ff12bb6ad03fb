from __future__ import annotations

from typing import Any, Dict

import logging
from fastapi import APIRouter, Request

from crm_agent.models.conversation import ProcessMessageRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/messages")
async def process_message(body: ProcessMessageRequest, request: Request) -> Dict[str, Any]:
    agent = request.app.state.runtime.agent
    agent.recorder.log("API", "message_received", conversation_id=body.conversation_id)
    response = await agent.process_message(
        body.customer,
        body.conversation_id,
        body.message_text,
        body.message_history,
    )
    logger.info(
        "agent.reply conversation=%s next_stage=%s actions=%s",
        body.conversation_id,
        response.next_stage,
        response.actions,
    )
    return response.model_dump(by_alias=True)
