from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional, Protocol

import logging
from pydantic import ValidationError

from crm_agent.logging.flight_recorder import FlightRecorder
from crm_agent.models.preferences import Preferences
from crm_agent.services.prompts import EXTRACTION_SYSTEM_PROMPT, EXTRACTION_USER_PROMPT

logger = logging.getLogger(__name__)

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class CompletionClient(Protocol):
    @property
    def available(self) -> bool: ...

    async def complete(self, messages: list[dict[str, str]]) -> str: ...

    async def generate(self, messages: list[dict[str, str]]) -> Optional[str]: ...


def extract_json(text: str) -> Dict[str, Any]:
    """Pull a JSON object out of a model reply that may carry extra text."""
    text = (text or "").strip()
    candidates = [text]
    fenced = _FENCED_JSON_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    braced = _OBJECT_RE.search(text)
    if braced:
        candidates.append(braced.group())

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return {}


class MessageExtractor:
    """Asks the completion model for structured fields found in one message."""

    def __init__(self, completion: CompletionClient, recorder: Optional[FlightRecorder] = None) -> None:
        self.completion = completion
        self.recorder = recorder or FlightRecorder()

    async def extract(self, message: str) -> Preferences:
        if not message or not message.strip():
            return Preferences()

        messages = [
            {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
            {"role": "user", "content": EXTRACTION_USER_PROMPT.format(message=message.strip())},
        ]
        try:
            reply = await self.completion.complete(messages)
        except Exception as exc:  # noqa: BLE001
            logger.warning("extract.completion_error %s", exc)
            return Preferences()

        raw = extract_json(reply)
        if not raw:
            logger.info("extract.no_parse")
            return Preferences()

        try:
            extracted = Preferences.model_validate(raw)
        except ValidationError as exc:
            logger.warning("extract.invalid_fields %s", exc.errors())
            return Preferences()

        self.recorder.log("EXTRACT", "message_fields", fields=sorted(extracted.filled_fields()))
        logger.info("extract.fields %s", extracted.to_payload())
        return extracted
