"""Text completion over an OpenAI-compatible chat endpoint.

``TextCompletion.complete`` never raises: without a credential it answers from
a small canned reply table, and on any API failure it answers with the generic
fallback prompt so the conversation always has something to send.
``generate`` is the same call but reports a failed model call as ``None`` so
callers can pick their own fallback.
"""

from __future__ import annotations

from typing import Dict, List, Optional

import logging
from openai import AsyncOpenAI

from crm_agent.config import AgentSettings
from crm_agent.logging.flight_recorder import FlightRecorder

logger = logging.getLogger(__name__)

FALLBACK_PROMPT = "I'm here to help you find your perfect property! What are you looking for? 🏠"

_CANNED_REPLIES = [
    (("hello", "hi", "hey"), "Hello! I'm Priya, your real estate consultant. How can I help you find your dream property today? 🏠✨"),
    (("apartment", "flat", "house"), "Great! What type of property are you looking for - apartment, villa, or plot? 🏘️"),
    (("villa",), "Perfect! What's your budget range? This will help me find the best options for you. 💰"),
    (("budget", "price", "amount"), "Excellent! Which area or city are you interested in? 🏙️"),
    (("location", "city", "area"), "Perfect! Let me search for properties that match your requirements. 🔍"),
    (("property", "find", "search"), "I found some great properties for you! Would you like to schedule a site visit? 📅"),
]


class CompletionError(Exception):
    """Raised internally when the completion endpoint returns nothing usable."""


def canned_reply(message: str) -> str:
    text = (message or "").lower()
    for keywords, reply in _CANNED_REPLIES:
        if any(keyword in text for keyword in keywords):
            return reply
    return FALLBACK_PROMPT


class TextCompletion:
    def __init__(
        self,
        settings: AgentSettings,
        recorder: Optional[FlightRecorder] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.recorder = recorder or FlightRecorder()
        self._model = settings.openai_model
        self._temperature = settings.completion_temperature
        self._max_tokens = settings.completion_max_tokens
        self._client = client
        if self._client is None and settings.openai_api_key:
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=settings.completion_timeout,
                max_retries=1,
            )
        if self._client is None:
            logger.warning("completion.disabled reason=no_api_key")

    @property
    def available(self) -> bool:
        return self._client is not None

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        return await self.generate(messages) or FALLBACK_PROMPT

    async def generate(self, messages: List[Dict[str, str]]) -> Optional[str]:
        if not self._client:
            return canned_reply(messages[-1]["content"] if messages else "")

        try:
            with self.recorder.stage("LLM", model=self._model, turns=len(messages)):
                return await self._create(messages)
        except Exception as exc:  # noqa: BLE001
            logger.error("completion.error %s", exc)
            self.recorder.log("LLM", "completion_error", error=str(exc))
            return None

    async def _create(self, messages: List[Dict[str, str]]) -> str:
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )
        if not response.choices:
            raise CompletionError("no choices returned")
        content = response.choices[0].message.content
        if not content or not content.strip():
            raise CompletionError("empty completion")
        return content.strip()
