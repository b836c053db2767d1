"""Data reducer -- intent-specific extraction with UI size caps.

Each strategy builds a new mapping from the context tree; none mutates its
input. Strategies that imply a layout tag the result with a
'response_format' hint. Every non-empty result carries '_metadata'.
"""

from __future__ import annotations

from typing import Any, Callable

from kaiwa.core.values import (
    ValueKind, as_mapping, epoch_millis, is_table_shaped, kind_of,
    runtime_kind_name, visible_items, visible_keys,
)
from kaiwa.intelligence.analyzer import has_system_metrics, has_user_data
from kaiwa.log import logger
from kaiwa.models import FormatLabel, ReductionIntent

MAX_USERS = 10
MAX_LIST_ITEMS = 20
MAX_TABLE_ROWS = 50
MAX_GENERAL_MAPPING = 5
MAX_GENERAL_SEQUENCE = 10

PERFORMANCE_KEYS = ("cpu", "memory", "disk", "network", "performance")
NO_SESSION_DATA = "No active session data available"
NO_TREND_DATA = "No trend data available"


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

def _system_data_query(ctx: dict, now_ms: int) -> dict:
    return {
        "system_info": dict(as_mapping(ctx.get("system"))),
        "performance_metrics": {k: ctx[k] for k in PERFORMANCE_KEYS if k in ctx},
        "resource_usage": dict(as_mapping(ctx.get("resources"))),
        "active_sessions": ctx.get("activeSessions", NO_SESSION_DATA),
    }


def _user_management(ctx: dict, now_ms: int) -> dict:
    result: dict = {}
    if "users" in ctx:
        users = ctx["users"]
        if kind_of(users) is ValueKind.SEQUENCE:
            result["user_list"] = list(users[:MAX_USERS])
            result["user_stats"] = {
                "total_users": len(users),
                "displayed_users": min(len(users), MAX_USERS),
            }
        else:
            result["user_list"] = users
            result["user_stats"] = {}
    for key in ("roles", "permissions"):
        if key in ctx:
            result[key] = ctx[key]
    result["response_format"] = FormatLabel.TABLE.value
    return result


def _system_status(ctx: dict, now_ms: int) -> dict:
    health = {"status": "OK", "timestamp": now_ms}
    health.update(as_mapping(ctx.get("health")))
    return {
        "status": ctx.get("status", "Unknown"),
        "uptime": ctx.get("uptime", "Unknown"),
        "health_check": health,
        "alerts": ctx.get("alerts", []),
        "response_format": FormatLabel.CARD.value,
    }


def _list_query(ctx: dict, now_ms: int) -> dict:
    result = {
        key: list(value[:MAX_LIST_ITEMS])
        for key, value in visible_items(ctx)
        if kind_of(value) is ValueKind.SEQUENCE
    }
    result["response_format"] = FormatLabel.LIST.value
    return result


def _table_query(ctx: dict, now_ms: int) -> dict:
    result = {
        key: list(value[:MAX_TABLE_ROWS])
        for key, value in visible_items(ctx)
        if is_table_shaped(value)
    }
    result["response_format"] = FormatLabel.TABLE.value
    return result


def _report_generation(ctx: dict, now_ms: int) -> dict:
    data_types: list[str] = []
    for _, value in visible_items(ctx):
        name = runtime_kind_name(value)
        if name not in data_types:
            data_types.append(name)

    insights = []
    if has_user_data(ctx):
        insights.append("User management data is available for analysis")
    if has_system_metrics(ctx):
        insights.append("System performance metrics can be monitored")

    return {
        "summary": {
            "total_data_points": len(visible_keys(ctx)),
            "data_types": data_types,
        },
        "trends": {"status": NO_TREND_DATA},
        "insights": insights,
        "response_format": FormatLabel.CARD.value,
    }


def _simplify(value: Any) -> Any:
    kind = kind_of(value)
    if kind is ValueKind.MAPPING and len(value) > MAX_GENERAL_MAPPING:
        return dict(list(value.items())[:MAX_GENERAL_MAPPING])
    if kind is ValueKind.SEQUENCE and len(value) > MAX_GENERAL_SEQUENCE:
        return list(value[:MAX_GENERAL_SEQUENCE])
    return value


def _general_query(ctx: dict, now_ms: int) -> dict:
    return {key: _simplify(value) for key, value in visible_items(ctx) if value is not None}


_STRATEGIES: dict[ReductionIntent, Callable[[dict, int], dict]] = {
    ReductionIntent.SYSTEM_DATA_QUERY: _system_data_query,
    ReductionIntent.USER_MANAGEMENT: _user_management,
    ReductionIntent.SYSTEM_STATUS: _system_status,
    ReductionIntent.LIST_QUERY: _list_query,
    ReductionIntent.TABLE_QUERY: _table_query,
    ReductionIntent.REPORT_GENERATION: _report_generation,
    ReductionIntent.GENERAL_QUERY: _general_query,
}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def _intent_label(intent: Any) -> str:
    if isinstance(intent, ReductionIntent):
        return intent.value
    if intent is None:
        return ReductionIntent.GENERAL_QUERY.value
    return str(intent)


def reduce(context: Any, intent: Any, *, now: float | None = None) -> dict:
    """Reduce a context tree to the subset relevant to `intent`.

    Args:
        context: The context tree. None or non-mapping input counts as empty.
        intent: A ReductionIntent or its string value. Unknown labels use
            the general strategy.
        now: Optional pinned clock (epoch seconds) for timestamps.

    Returns:
        A new mapping with an optional 'response_format' hint and a
        '_metadata' entry {intent, processed_at, data_keys}. Empty context
        reduces to {}.
    """
    ctx = as_mapping(context)
    if not ctx:
        return {}

    now_ms = epoch_millis(now)
    strategy = _STRATEGIES[ReductionIntent.parse(intent)]

    try:
        result = strategy(ctx, now_ms)
    except Exception as exc:
        logger.error("Failed to reduce context for intent %s: %s", _intent_label(intent), exc, exc_info=True)
        result = {"error": f"Failed to process system data: {exc}"}

    return {
        **result,
        "_metadata": {
            "intent": _intent_label(intent),
            "processed_at": now_ms,
            "data_keys": visible_keys(result),
        },
    }
