"""Intent classifier -- keyword heuristics over the user's message.

Each detection is an ordered list of keyword groups; the first group with a
substring hit wins. No scoring, no ML: the same message always yields the
same Analysis.
"""

from __future__ import annotations

import re
from typing import Any

from kaiwa.core.values import as_mapping
from kaiwa.models import MAX_MESSAGE_LENGTH, Analysis, DataTypeLabel, FormatLabel, IntentLabel


# ---------------------------------------------------------------------------
# Keyword groups -- ordered by precedence
# ---------------------------------------------------------------------------

_INTENT_KEYWORDS: list[tuple[IntentLabel, tuple[str, ...]]] = [
    (IntentLabel.SYSTEM_INFO, ("system", "info", "status")),
    (IntentLabel.DATA_QUERY, ("data", "query", "show")),
    (IntentLabel.HELP_REQUEST, ("help", "how", "what")),
]

_DATA_TYPE_KEYWORDS: list[tuple[DataTypeLabel, tuple[str, ...]]] = [
    (DataTypeLabel.STRUCTURED, ("table", "list", "format")),
    (DataTypeLabel.VISUAL, ("chart", "graph", "visual")),
    (DataTypeLabel.SUMMARY, ("summary", "overview")),
]

# (intent, data type or None for "any other") -> format, checked in order
_FORMAT_TABLE: list[tuple[IntentLabel, DataTypeLabel | None, FormatLabel]] = [
    (IntentLabel.SYSTEM_INFO, DataTypeLabel.STRUCTURED, FormatLabel.TABLE),
    (IntentLabel.SYSTEM_INFO, DataTypeLabel.VISUAL, FormatLabel.CARD),
    (IntentLabel.SYSTEM_INFO, None, FormatLabel.LIST),
    (IntentLabel.DATA_QUERY, DataTypeLabel.STRUCTURED, FormatLabel.TABLE),
    (IntentLabel.DATA_QUERY, None, FormatLabel.TEXT),
]

_EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_PHONE_PATTERN = re.compile(r"\b\d{3}-\d{3}-\d{4}\b")
_SYSTEM_TERM_PATTERN = re.compile(r"\b(system|status|info|data|query)\b", re.IGNORECASE)
_FORMAT_TERM_PATTERN = re.compile(r"\b(table|list|card|chart|graph)\b", re.IGNORECASE)

_BASE_CONFIDENCE = 0.5
_SYSTEM_CONTEXT_BONUS = 0.3
_ENTITY_BONUS = 0.2


def _first_match(text: str, groups: list[tuple[Any, tuple[str, ...]]], default: Any) -> Any:
    for label, keywords in groups:
        if any(kw in text for kw in keywords):
            return label
    return default


def detect_intent(message: str) -> IntentLabel:
    return _first_match(message.lower(), _INTENT_KEYWORDS, IntentLabel.GENERAL_QUERY)


def detect_data_type(message: str) -> DataTypeLabel:
    return _first_match(message.lower(), _DATA_TYPE_KEYWORDS, DataTypeLabel.TEXT)


def extract_entities(message: str) -> dict[str, str]:
    """Pull email/phone values and system/format markers out of the message."""
    entities: dict[str, str] = {}
    email = _EMAIL_PATTERN.search(message)
    if email:
        entities["email"] = email.group()
    phone = _PHONE_PATTERN.search(message)
    if phone:
        entities["phone"] = phone.group()
    if _SYSTEM_TERM_PATTERN.search(message):
        entities["type"] = "system_query"
    if _FORMAT_TERM_PATTERN.search(message):
        entities["format"] = "structured"
    return entities


def suggest_format(intent: IntentLabel, data_type: DataTypeLabel) -> FormatLabel:
    for rule_intent, rule_type, fmt in _FORMAT_TABLE:
        if rule_intent is intent and (rule_type is None or rule_type is data_type):
            return fmt
    return FormatLabel.TEXT


def _confidence(intent: IntentLabel, entities: dict[str, str], context: dict) -> float:
    confidence = _BASE_CONFIDENCE
    if intent is IntentLabel.SYSTEM_INFO and context:
        confidence += _SYSTEM_CONTEXT_BONUS
    if entities:
        confidence += _ENTITY_BONUS
    return min(round(confidence, 4), 1.0)


def classify(message: str, context: Any = None) -> Analysis:
    """Classify a chat message against an optional context tree."""
    message = (message or "")[:MAX_MESSAGE_LENGTH]
    ctx = as_mapping(context)

    intent = detect_intent(message)
    data_type = detect_data_type(message)
    entities = extract_entities(message)

    return Analysis(
        intent=intent,
        data_type=data_type,
        entities=entities,
        suggested_format=suggest_format(intent, data_type),
        confidence=_confidence(intent, entities, ctx),
        requires_system_data=intent in (IntentLabel.SYSTEM_INFO, IntentLabel.DATA_QUERY),
    )
