"""Kaiwa chat pipeline -- classify, reduce, generate, render.

respond() runs one request through the core: classifier and analyzer on the
message and context, reducer on the context, one call to the language-model
collaborator, and the renderer on the reduced tree. ChatService wraps it
with session persistence.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from kaiwa.core.values import as_mapping, is_number, visible_items
from kaiwa.intelligence.analyzer import analyze
from kaiwa.intelligence.classifier import classify
from kaiwa.intelligence.reducer import reduce
from kaiwa.intelligence.renderer import FORMAT_HINT_KEY, render
from kaiwa.llm.prompt import build_prompt, format_exchange
from kaiwa.log import logger
from kaiwa.models import (
    ActionButton, ActionType, Analysis, ChatRequest, ChatResponse, DataTypeLabel,
    FormatLabel, IntentLabel, ReductionIntent, StructuralFacts,
)

Generator = Callable[[str], str]

LLM_FAILURE_MESSAGE = "I apologize, but I encountered an error processing your request. Please try again."
SERVICE_FAILURE_MESSAGE = "I apologize, but I encountered an error. Please try again."

_STATUS_KEYS = ("status", "uptime", "health", "alerts")

_INTENT_ACTIONS: dict[IntentLabel, list[ActionButton]] = {
    IntentLabel.SYSTEM_INFO: [
        ActionButton(label="Export Data", action="export_system_data", type=ActionType.FUNCTION),
        ActionButton(label="Detailed Report", action="generate_detailed_report", type=ActionType.FUNCTION),
    ],
    IntentLabel.DATA_QUERY: [],
    IntentLabel.HELP_REQUEST: [],
    IntentLabel.GENERAL_QUERY: [],
}


# ---------------------------------------------------------------------------
# Label bridging
# ---------------------------------------------------------------------------

def reduction_intent(analysis: Analysis, facts: StructuralFacts, context: dict, message: str = "") -> ReductionIntent:
    """Map the classifier's labels onto a reducer strategy."""
    if analysis.data_type is DataTypeLabel.SUMMARY:
        return ReductionIntent.REPORT_GENERATION

    if analysis.intent is IntentLabel.SYSTEM_INFO:
        if any(key in context for key in _STATUS_KEYS):
            return ReductionIntent.SYSTEM_STATUS
        return ReductionIntent.SYSTEM_DATA_QUERY

    if analysis.intent is IntentLabel.DATA_QUERY:
        if facts.has_user_data and "user" in message.lower():
            return ReductionIntent.USER_MANAGEMENT
        if analysis.data_type is DataTypeLabel.STRUCTURED and facts.has_table_data:
            return ReductionIntent.TABLE_QUERY
        if facts.has_list_data:
            return ReductionIntent.LIST_QUERY

    return ReductionIntent.GENERAL_QUERY


def choose_format(
    analysis: Analysis,
    facts: StructuralFacts,
    reduced: dict,
    preferences: dict | None = None,
) -> tuple[FormatLabel, str]:
    """Pick the render format and report which signal decided it."""
    preferred = FormatLabel.parse(as_mapping(preferences).get("responseFormat"))
    if preferred is not None:
        return preferred, "user_preference"

    hinted = FormatLabel.parse(reduced.get(FORMAT_HINT_KEY))
    if hinted is not None:
        return hinted, "reducer_hint"

    if analysis.data_type is DataTypeLabel.VISUAL and (facts.metrics_summary or facts.has_system_metrics):
        return FormatLabel.CHART, "context_analysis"

    suggested = analysis.suggested_format
    if suggested is FormatLabel.TABLE and not facts.has_table_data:
        return (FormatLabel.LIST if facts.has_list_data else FormatLabel.TEXT), "context_analysis"
    if suggested is FormatLabel.LIST and not (facts.has_list_data or facts.has_system_metrics):
        return FormatLabel.TEXT, "context_analysis"
    return suggested, "classifier"


def _chartable(tree: dict) -> bool:
    return any(is_number(v) for _, v in visible_items(tree))


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def respond(
    request: ChatRequest,
    history: Iterable[str] = (),
    generate: Generator | None = None,
    *,
    now: float | None = None,
) -> ChatResponse:
    """Run one chat turn through the pipeline.

    Args:
        request: Validated chat request.
        history: Prior exchanges as "User: ...\\nAssistant: ..." strings, oldest first.
        generate: The language-model call. Defaults to the configured LLMClient.
        now: Optional pinned clock (epoch seconds) for metadata timestamps.
    """
    if generate is None:
        from kaiwa.llm.client import LLMClient
        generate = LLMClient.from_config()

    context = as_mapping(request.system_context)
    analysis = classify(request.message, context)
    facts = analyze(context)
    intent = reduction_intent(analysis, facts, context, request.message)
    reduced = reduce(context, intent, now=now)
    fmt, format_source = choose_format(analysis, facts, reduced, request.user_preferences)

    if fmt is FormatLabel.CHART and not _chartable(reduced) and not _chartable(context):
        logger.debug("Chart requested but no numeric data; rendering text instead")
        fmt, format_source = FormatLabel.TEXT, "context_analysis"

    # Chart data lives at the top level of the raw context; reducers nest it
    render_source = context if fmt is FormatLabel.CHART and not _chartable(reduced) else reduced

    prompt = build_prompt(request, history, analysis)
    try:
        text = generate(prompt)
    except Exception as exc:
        logger.warning("Language model call failed: %s", exc, exc_info=True)
        return ChatResponse(
            session_id=request.session_id,
            message=LLM_FAILURE_MESSAGE,
            response_format=FormatLabel.TEXT.wire,
            content=None,
            timestamp=_now_iso(),
            success=False,
            error=str(exc),
        )

    formatted = render(text, render_source, fmt, now=now)

    metadata = {
        **formatted.metadata,
        "analysis": analysis.model_dump(mode="json", by_alias=True),
        "context_analysis": facts.model_dump(mode="json"),
        "reduction_intent": intent.value,
        "format_source": format_source,
    }

    return ChatResponse(
        session_id=request.session_id,
        message=formatted.message,
        response_format=formatted.format.wire,
        content=formatted.content,
        timestamp=_now_iso(),
        success=formatted.success,
        error=formatted.error,
        metadata=metadata,
        suggested_actions=[*formatted.suggested_actions, *_INTENT_ACTIONS[analysis.intent]],
    )


# ---------------------------------------------------------------------------
# Service (persistence around the pipeline)
# ---------------------------------------------------------------------------

class ChatService:
    """Session-aware chat entry point used by the API and CLI."""

    def __init__(self, store: Any = None, generate: Generator | None = None) -> None:
        self._store = store
        self._generate = generate

    @property
    def store(self):
        if self._store is None:
            from kaiwa.history.store import ConversationStore
            self._store = ConversationStore.get()
        return self._store

    def _history_settings(self) -> tuple[int, float]:
        try:
            from kaiwa.config.loader import get_history_config
            cfg = get_history_config()
            return int(cfg.get("max_exchanges", 10)), float(cfg.get("window_hours", 24))
        except Exception:
            logger.debug("Config unavailable for history settings, using defaults")
            return 10, 24.0

    def _history(self, session_id: str) -> list[str]:
        limit, window = self._history_settings()
        try:
            exchanges = self.store.recent_exchanges(session_id, limit=limit, window_hours=window)
        except Exception:
            logger.warning("Failed to load conversation history for %s", session_id, exc_info=True)
            return []
        return [format_exchange(e["message"], e["response"]) for e in exchanges]

    def process_message(self, request: ChatRequest) -> ChatResponse:
        try:
            session = self.store.get_or_create_session(
                request.session_id, request.user_id, as_mapping(request.system_context),
            )
            session_id = session["session_id"]
            history = self._history(session_id)

            response = respond(
                request.model_copy(update={"session_id": session_id}),
                history,
                self._generate,
            )

            try:
                self.store.append_exchange(
                    session_id,
                    session.get("user_id"),
                    request.message,
                    response.message,
                    response_format=response.response_format,
                    metadata=response.metadata,
                )
                self.store.touch_session(session_id)
            except Exception:
                logger.error("Failed to save message exchange for %s", session_id, exc_info=True)

            return response
        except Exception as exc:
            logger.error("Error processing chat message: %s", exc, exc_info=True)
            return ChatResponse(
                session_id=request.session_id,
                message=SERVICE_FAILURE_MESSAGE,
                response_format=FormatLabel.TEXT.wire,
                timestamp=_now_iso(),
                success=False,
                error=str(exc),
            )

    def get_history(self, session_id: str) -> list[dict]:
        return self.store.get_history(session_id)

    def get_user_sessions(self, user_id: str) -> list[dict]:
        return self.store.get_user_sessions(user_id)

    def end_session(self, session_id: str) -> bool:
        return self.store.end_session(session_id)

    def clear_history(self, session_id: str) -> int:
        return self.store.clear_history(session_id)

    def cleanup_old_sessions(self) -> dict:
        inactive_days, retention_days = 7.0, 30.0
        try:
            from kaiwa.config.loader import get_history_config
            cfg = get_history_config()
            inactive_days = float(cfg.get("inactive_days", inactive_days))
            retention_days = float(cfg.get("retention_days", retention_days))
        except Exception:
            logger.debug("Config unavailable for cleanup settings, using defaults")
        return self.store.cleanup(inactive_days=inactive_days, retention_days=retention_days)
