"""Deterministic preference recovery from a whole conversation.

Everything here is pure: the same history always yields the same
``Preferences``. Only the customer's own turns are scanned, since assistant
turns echo listings whose prices and cities are not the customer's wishes.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence

from word2number import w2n

from crm_agent.models.conversation import ConversationTurn
from crm_agent.models.preferences import BudgetRange, Preferences, to_base_units

KNOWN_CITIES = (
    "coimbatore",
    "bangalore",
    "mumbai",
    "delhi",
    "chennai",
    "hyderabad",
    "pune",
    "kochi",
    "ahmedabad",
    "kolkata",
)

_CITY_ALIASES = {
    "bengaluru": "bangalore",
    "bombay": "mumbai",
    "madras": "chennai",
    "cochin": "kochi",
    "calcutta": "kolkata",
}

_NUMBER_WORDS = (
    "zero one two three four five six seven eight nine ten eleven twelve thirteen fourteen "
    "fifteen sixteen seventeen eighteen nineteen twenty thirty forty fifty sixty seventy "
    "eighty ninety hundred and"
).split()

_UNIT_AMOUNT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(lakhs?|lacs?|crores?|cr|l)\b")
_WORD_AMOUNT_RE = re.compile(
    r"\b((?:(?:%s)[\s-]+)+)(lakhs?|lacs?|crores?)\b" % "|".join(_NUMBER_WORDS)
)
_RANGE_RE = re.compile(r"(\d{6,})\s*to\s*(\d{6,})")
_LARGE_NUMBER_RE = re.compile(r"\b(\d{7,})\b")
_DIGIT_GROUPING_RE = re.compile(r"(?<=\d),(?=\d)")
_BHK_RE = re.compile(r"(\d+)\s*bhk")
_AREA_RE = re.compile(r"(\d+)\s*(?:sqft|sq\.?\s*ft|square\s*feet)")

# Later entries win when a message mentions more than one type.
_PROPERTY_TYPE_KEYWORDS = (
    ("villa", ("villa",)),
    ("apartment", ("apartment", "flat")),
    ("plot", ("plot",)),
)


def _word_amounts(content: str) -> List[int]:
    amounts = []
    for words, unit in _WORD_AMOUNT_RE.findall(content):
        phrase = " ".join(part for part in re.split(r"[\s-]+", words) if part and part != "and")
        if not phrase:
            continue
        try:
            number = w2n.word_to_num(phrase)
        except ValueError:
            continue
        amounts.append(to_base_units(number, unit))
    return amounts


def budget_mentions(content: str) -> List[int]:
    """All budget figures in one lower-cased message, in base currency units."""
    content = _DIGIT_GROUPING_RE.sub("", content)
    amounts = [to_base_units(float(amount), unit) for amount, unit in _UNIT_AMOUNT_RE.findall(content)]
    amounts.extend(_word_amounts(content))

    range_match = _RANGE_RE.search(content)
    if range_match:
        amounts.extend(int(value) for value in range_match.groups())
    else:
        amounts.extend(int(value) for value in _LARGE_NUMBER_RE.findall(content))
    return [amount for amount in amounts if amount > 0]


def detect_property_type(content: str) -> Optional[str]:
    found = None
    for property_type, keywords in _PROPERTY_TYPE_KEYWORDS:
        if any(keyword in content for keyword in keywords):
            found = property_type
    return found


def detect_city(content: str) -> Optional[str]:
    for city in KNOWN_CITIES:
        if city in content:
            return city
    for alias, city in _CITY_ALIASES.items():
        if alias in content:
            return city
    return None


def _user_texts(history: Iterable[ConversationTurn]) -> List[str]:
    return [turn.content.lower() for turn in history if turn.role == "user" and turn.content]


def extract_preferences_from_history(history: Sequence[ConversationTurn]) -> Preferences:
    found = {}
    budgets: List[int] = []

    for content in _user_texts(history):
        budgets.extend(budget_mentions(content))

        property_type = detect_property_type(content)
        if property_type:
            found["property_type"] = property_type

        bhk = _BHK_RE.search(content)
        if bhk:
            found["bhk_type"] = f"{int(bhk.group(1))}BHK"

        area = _AREA_RE.search(content)
        if area:
            found["area"] = int(area.group(1))

        city = detect_city(content)
        if city:
            found["location"] = city

    if budgets:
        found["budget"] = max(budgets)
        found["budget_range"] = BudgetRange(min=min(budgets), max=max(budgets))

    return Preferences(**found)
