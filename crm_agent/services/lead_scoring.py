"""Keyword lead scoring for inbound customer messages.

Scores live in 0..100. A customer without a score yet gets an initial score
from base 50; afterwards each message nudges the existing score.
"""

from __future__ import annotations

import re

from crm_agent.models.conversation import Customer

BASE_SCORE = 50

_BHK_RE = re.compile(r"\d+\s*bhk", re.IGNORECASE)
_BUY_RE = re.compile(r"\b(buy|buying|purchase)\b")
_URGENT_RE = re.compile(r"\b(urgent|urgently|immediate|immediately)\b")
_FINANCE_RE = re.compile(r"\b(loan|finance|financing)\b")
_POSITIVE_RE = re.compile(r"\b(interested|yes)\b")
_NEGATIVE_RE = re.compile(r"\b(not interested|no)\b")
_HESITANT_RE = re.compile(r"\bthink about it\b")
_ASAP_RE = re.compile(r"\b(urgent|asap)\b")


def _clamp(score: int) -> int:
    return max(0, min(score, 100))


def initial_lead_score(message: str, customer: Customer) -> int:
    content = (message or "").lower()
    score = BASE_SCORE

    if "budget" in content:
        score += 15
    if _BUY_RE.search(content):
        score += 20
    if _URGENT_RE.search(content):
        score += 10
    if _FINANCE_RE.search(content):
        score += 10
    if _BHK_RE.search(content):
        score += 15

    if customer.source == "whatsapp":
        score += 10
    if "repeat-customer" in customer.tags:
        score += 20

    return _clamp(score)


def updated_lead_score(current: int, message: str) -> int:
    content = (message or "").lower()
    score = current + 5

    if _NEGATIVE_RE.search(content):
        score -= 15
    elif _POSITIVE_RE.search(content):
        score += 10
    if _HESITANT_RE.search(content):
        score -= 5
    if _ASAP_RE.search(content):
        score += 15

    return _clamp(score)


def score_turn(current: int, message: str, customer: Customer) -> int:
    if current <= 0:
        return initial_lead_score(message, customer)
    return updated_lead_score(current, message)
