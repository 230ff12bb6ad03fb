from __future__ import annotations

import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Deque, Dict

import logging

logger = logging.getLogger(__name__)

_STAGE_ORDER = [
    "API",
    "MEMORY",
    "EXTRACT",
    "SEARCH",
    "LLM",
    "PLAN",
]

_REDACTED_KEYS = {"phone", "email", "name", "whatsapp_number"}


@dataclass
class StageEvent:
    stage: str
    message: str
    elapsed_ms: float
    metadata: Dict[str, Any] = field(default_factory=dict)


class FlightRecorder:
    def __init__(self, max_events: int = 500) -> None:
        self.events: Deque[StageEvent] = deque(maxlen=max_events)
        self.start_time = time.perf_counter()

    @contextmanager
    def stage(self, stage: str, **metadata: Any):
        if stage not in _STAGE_ORDER:
            logger.warning("flight_recorder.unknown_stage stage=%s", stage)
        stage_start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - stage_start) * 1000
            total_ms = (time.perf_counter() - self.start_time) * 1000
            redacted = _redact(metadata)
            self.events.append(
                StageEvent(
                    stage=stage,
                    message=f"{stage} completed",
                    elapsed_ms=elapsed_ms,
                    metadata={"total_ms": round(total_ms, 2), **redacted},
                )
            )
            logger.debug(
                "flight_recorder.stage stage=%s elapsed_ms=%.2f metadata=%s",
                stage,
                round(elapsed_ms, 2),
                redacted,
            )

    def log(self, stage: str, message: str, **metadata: Any) -> None:
        if stage not in _STAGE_ORDER:
            logger.warning("flight_recorder.unknown_stage stage=%s", stage)
        total_ms = (time.perf_counter() - self.start_time) * 1000
        redacted = _redact(metadata)
        self.events.append(
            StageEvent(
                stage=stage,
                message=message,
                elapsed_ms=0,
                metadata={"total_ms": round(total_ms, 2), **redacted},
            )
        )
        logger.info(
            "flight_recorder.log stage=%s message=%s metadata=%s",
            stage,
            message,
            redacted,
        )

    def messages(self, stage: str) -> list[str]:
        return [event.message for event in self.events if event.stage == stage]


def _redact(payload: Dict[str, Any]) -> Dict[str, Any]:
    redacted = {}
    for key, value in payload.items():
        if key in _REDACTED_KEYS and value:
            redacted[key] = "***"
        else:
            redacted[key] = value
    return redacted
