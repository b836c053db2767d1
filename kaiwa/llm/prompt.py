"""Prompt construction for the language-model call.

Folds the request's system context, prior exchanges, current page and the
classifier's intent into one prompt string. Context rendering is bounded so
a huge telemetry tree can't blow up the prompt.
"""

from __future__ import annotations

from typing import Any, Iterable

from kaiwa.core.values import ValueKind, as_mapping, display, kind_of
from kaiwa.models import Analysis, ChatRequest, IntentLabel

SYSTEM_PROMPT = (
    "You are a helpful AI assistant integrated into a backend management system. "
    "You can process system data and provide formatted responses."
)

_MAX_CONTEXT_CHARS = 8000
_MAX_VALUE_CHARS = 500

_INSTRUCTIONS: dict[IntentLabel, str] = {
    IntentLabel.SYSTEM_INFO: (
        "Provide detailed system information in a structured format. "
        "If system data is available, use it to provide accurate information. "
        "Format the response appropriately based on the data type requested."
    ),
    IntentLabel.DATA_QUERY: (
        "Process the available system data to answer the query. "
        "Format the response as requested (table, list, or card format). "
        "Ensure data accuracy and provide relevant context."
    ),
    IntentLabel.HELP_REQUEST: (
        "Explain clearly and step by step. "
        "If system data is relevant, incorporate it appropriately."
    ),
    IntentLabel.GENERAL_QUERY: (
        "Provide a helpful and informative response. "
        "If system data is relevant, incorporate it appropriately."
    ),
}


def _inline(value: Any) -> str:
    kind = kind_of(value)
    if kind is ValueKind.MAPPING:
        text = "{" + ", ".join(f"{k}={display(v)}" for k, v in value.items()) + "}"
    elif kind is ValueKind.SEQUENCE:
        text = "[" + ", ".join(display(v) for v in value) + "]"
    else:
        text = display(value)
    if len(text) > _MAX_VALUE_CHARS:
        text = text[:_MAX_VALUE_CHARS] + "..."
    return text


def format_context(context: Any) -> str:
    """One 'key: value' line per top-level entry, nested values flattened inline."""
    lines = [f"{key}: {_inline(value)}" for key, value in as_mapping(context).items()]
    text = "\n".join(lines)
    if len(text) > _MAX_CONTEXT_CHARS:
        text = text[:_MAX_CONTEXT_CHARS] + "\n... (context truncated)"
    return text


def format_exchange(message: str, response: str) -> str:
    return f"User: {message}\nAssistant: {response}"


def build_prompt(request: ChatRequest, history: Iterable[str], analysis: Analysis) -> str:
    """Assemble the full prompt text for one chat turn."""
    parts: list[str] = []

    context = as_mapping(request.system_context)
    if context:
        parts.append("System Context and Available Data:\n" + format_context(context))

    history = list(history)
    if history:
        parts.append("Previous Conversation:\n" + "\n".join(history))

    if request.current_page:
        parts.append(f"Current page: {request.current_page}")

    parts.append(f"User Query: {request.message}")
    parts.append("Instructions: " + _INSTRUCTIONS[analysis.intent])

    return "\n\n".join(parts)
