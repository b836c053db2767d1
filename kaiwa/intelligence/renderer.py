"""Response renderer -- turns a reduced tree into one of five UI content shapes.

Formats: text (markdown-ish string), card, list, table, chart. Every shape
is capped (8 card fields, 20 list items, 50 table rows) regardless of input
size. Rendering never raises: failures come back as a text response with
success=False.
"""

from __future__ import annotations

import math
from typing import Any, Callable

from kaiwa.core.values import (
    ValueKind, display, epoch_millis, is_date_like, is_number, is_reserved,
    is_table_shaped, kind_of, title_case,
)
from kaiwa.log import logger
from kaiwa.models import ActionButton, ActionType, FormatLabel, FormattedResponse

MAX_CARD_FIELDS = 8
MAX_LIST_ITEMS = 20
MAX_TABLE_ROWS = 50
MAX_TEXT_BULLETS = 20
INLINE_PAIRS = 3
LIST_PREVIEW = 3

FORMAT_HINT_KEY = "response_format"

CHART_PALETTE = (
    "#FF6384", "#36A2EB", "#FFCE56", "#4BC0C0",
    "#9966FF", "#FF9F40", "#FF6384", "#36A2EB",
)


def _content_items(mapping: dict) -> list[tuple[str, Any]]:
    """Renderable entries: reserved keys and the reducer's format hint are skipped."""
    return [(k, v) for k, v in mapping.items() if not is_reserved(k) and k != FORMAT_HINT_KEY]


def _is_mapping(value: Any) -> bool:
    return kind_of(value) is ValueKind.MAPPING


def _is_sequence(value: Any) -> bool:
    return kind_of(value) is ValueKind.SEQUENCE


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------

def _inline_value(value: Any) -> str:
    """One-line text for a value at any depth; never a Python repr."""
    kind = kind_of(value)
    if kind is ValueKind.MAPPING:
        return _inline_pairs(value) if value else "Empty"
    if kind is ValueKind.SEQUENCE:
        return _list_value(value)
    return display(value)


def _nested_lines(mapping: dict, indent: str = "  ") -> str:
    return "".join(
        f"{indent}- {title_case(k)}: {_inline_value(v)}\n"
        for k, v in mapping.items() if not is_reserved(k)
    )


def _list_value(items: list) -> str:
    if not items:
        return "Empty list"
    if len(items) == 1:
        return _inline_value(items[0])
    preview = ", ".join(_inline_value(x) for x in items[:LIST_PREVIEW])
    suffix = "..." if len(items) > LIST_PREVIEW else ""
    return f"{len(items)} items: {preview}{suffix}"


def _inline_pairs(mapping: dict) -> str:
    pairs = [(k, v) for k, v in mapping.items() if not is_reserved(k)][:INLINE_PAIRS]
    return ", ".join(f"{k}: {_inline_value(v)}" for k, v in pairs)


def _mapping_as_text(mapping: dict) -> str:
    paragraphs = []
    for key, value in _content_items(mapping):
        if _is_mapping(value):
            body = "\n" + _nested_lines(value)
        elif _is_sequence(value):
            body = _list_value(value)
        else:
            body = display(value)
        paragraphs.append(f"**{title_case(key)}**: {body}")
    return "\n\n".join(p.rstrip() for p in paragraphs).strip()


def _sequence_as_text(items: list) -> str:
    lines = []
    for item in items[:MAX_TEXT_BULLETS]:
        body = _inline_value(item)
        lines.append(f"• {body}")
    if len(items) > MAX_TEXT_BULLETS:
        lines.append(f"... and {len(items) - MAX_TEXT_BULLETS} more items")
    return "\n".join(lines).strip()


def _render_text(message: str, content: Any, now_ms: int) -> FormattedResponse:
    kind = kind_of(content)
    if kind is ValueKind.MAPPING:
        text, content_type = _mapping_as_text(content), "structured_data"
    elif kind is ValueKind.SEQUENCE:
        text, content_type = _sequence_as_text(content), "list_data"
    else:
        text, content_type = ("" if content is None else str(content)), "simple_text"

    return FormattedResponse(
        message=message,
        format=FormatLabel.TEXT,
        content=text,
        metadata={"content_type": content_type, "formatted_at": now_ms},
    )


# ---------------------------------------------------------------------------
# Card
# ---------------------------------------------------------------------------

def _card_title(content: dict) -> str:
    for key in ("title", "name"):
        if key in content:
            return display(content[key])
    if "system_info" in content:
        return "System Information"
    if "user_list" in content:
        return "User Management"
    return "Information Card"


def _field_type(value: Any) -> str:
    if is_number(value):
        return "number"
    if isinstance(value, bool):
        return "boolean"
    kind = kind_of(value)
    if kind is ValueKind.SEQUENCE:
        return "list"
    if kind is ValueKind.MAPPING:
        return "object"
    return "text"


def _field_value(value: Any) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    kind = kind_of(value)
    if kind is ValueKind.SEQUENCE:
        return f"{len(value)} items"
    if kind is ValueKind.MAPPING:
        return f"{len(value)} properties"
    return display(value)


def _card_type(content: dict) -> str:
    if "status" in content:
        return "status_card"
    if "metrics" in content or "performance" in content:
        return "metrics_card"
    if "users" in content or "user_list" in content:
        return "user_card"
    return "info_card"


def _has_users(content: dict) -> bool:
    return "user_list" in content or "users" in content


def _render_card(message: str, content: Any, now_ms: int) -> FormattedResponse:
    mapping = content if _is_mapping(content) else {}

    fields = [
        {"name": title_case(k), "value": _field_value(v), "type": _field_type(v)}
        for k, v in _content_items(mapping)[:MAX_CARD_FIELDS]
    ]

    card_actions = []
    suggested = []
    if _has_users(mapping):
        card_actions.append({"label": "View All Users", "action": "view_users", "type": ActionType.NAVIGATION.value})
        suggested.append(ActionButton(label="View All Users", action="view_users", type=ActionType.NAVIGATION))
    if "system_info" in mapping:
        card_actions.append({"label": "System Details", "action": "system_details", "type": ActionType.FUNCTION.value})
        suggested.append(ActionButton(label="System Settings", action="system_settings", type=ActionType.FUNCTION))

    return FormattedResponse(
        message=message,
        format=FormatLabel.CARD,
        content={
            "title": _card_title(mapping),
            "description": message,
            "fields": fields,
            "actions": card_actions,
        },
        metadata={"card_type": _card_type(mapping), "formatted_at": now_ms},
        suggested_actions=suggested,
    )


# ---------------------------------------------------------------------------
# List
# ---------------------------------------------------------------------------

_ITEM_TEXT_KEYS = ("name", "title", "description")


def _list_item(item: Any) -> dict:
    if not _is_mapping(item):
        return {"title": display(item), "description": "", "metadata": {}}

    if "name" in item:
        title = display(item["name"])
    elif "title" in item:
        title = display(item["title"])
    elif "id" in item:
        title = f"Item {display(item['id'])}"
    else:
        title = "List Item"

    if "description" in item:
        description = display(item["description"])
    elif "summary" in item:
        description = display(item["summary"])
    else:
        description = ""

    return {
        "title": title,
        "description": description,
        "metadata": {k: v for k, v in item.items() if k not in _ITEM_TEXT_KEYS},
    }


def _list_sources(content: Any) -> list[list]:
    """Sequences that feed the list, in encounter order."""
    if _is_sequence(content):
        return [content]
    if _is_mapping(content):
        return [v for _, v in _content_items(content) if _is_sequence(v)]
    return []


def _list_type(content: Any) -> str:
    if _is_mapping(content):
        if _has_users(content):
            return "user_list"
        if "alerts" in content:
            return "alert_list"
        if "logs" in content:
            return "log_list"
    return "generic_list"


def _render_list(message: str, content: Any, now_ms: int) -> FormattedResponse:
    sources = _list_sources(content)
    items = []
    for source in sources:
        for item in source:
            if len(items) >= MAX_LIST_ITEMS:
                break
            items.append(_list_item(item))

    return FormattedResponse(
        message=message,
        format=FormatLabel.LIST,
        content={
            "title": "System Information",
            "items": items,
            "total_count": sum(len(s) for s in sources),
        },
        metadata={"list_type": _list_type(content), "formatted_at": now_ms},
    )


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------

def _column_type(value: Any) -> str:
    if is_number(value):
        return "number"
    if isinstance(value, bool):
        return "boolean"
    if is_date_like(value):
        return "date"
    return "text"


def _first_table(content: Any) -> list:
    if _is_mapping(content):
        for _, value in _content_items(content):
            if is_table_shaped(value):
                return value
    return []


def pagination(total: int, page_size: int = MAX_TABLE_ROWS) -> dict:
    return {
        "total": total,
        "page_size": min(page_size, total),
        "current_page": 1,
        "total_pages": max(1, math.ceil(total / page_size)),
    }


def _table_type(content: Any) -> str:
    if _is_mapping(content):
        if _has_users(content):
            return "user_table"
        if "logs" in content:
            return "log_table"
        if "metrics" in content:
            return "metrics_table"
    return "data_table"


def _render_table(message: str, content: Any, now_ms: int) -> FormattedResponse:
    table = _first_table(content)

    columns = []
    if table:
        first_row = table[0]
        columns = [
            {"key": key, "title": title_case(key), "type": _column_type(value), "sortable": True}
            for key, value in first_row.items()
        ]

    rows = [row for row in table if _is_mapping(row)][:MAX_TABLE_ROWS]

    return FormattedResponse(
        message=message,
        format=FormatLabel.TABLE,
        content={
            "title": "Data Table",
            "columns": columns,
            "rows": rows,
            "pagination": pagination(len(table)),
        },
        metadata={"table_type": _table_type(content), "formatted_at": now_ms},
    )


# ---------------------------------------------------------------------------
# Chart
# ---------------------------------------------------------------------------

def _chart_type(content: Any) -> str:
    if _is_mapping(content):
        if "metrics" in content or "performance" in content:
            return "line"
        if "categories" in content:
            return "bar"
        if "percentage" in content or "ratio" in content:
            return "pie"
    return "bar"


def _chart_config() -> dict:
    return {
        "responsive": True,
        "maintainAspectRatio": False,
        "plugins": {
            "legend": {"display": True},
            "title": {"display": True, "text": "Data Visualization"},
        },
    }


def _render_chart(message: str, content: Any, now_ms: int) -> FormattedResponse:
    labels: list[str] = []
    values: list[int | float] = []
    if _is_mapping(content):
        for key, value in _content_items(content):
            if is_number(value):
                labels.append(title_case(key))
                values.append(value)

    colors = [CHART_PALETTE[i % len(CHART_PALETTE)] for i in range(len(values))]

    return FormattedResponse(
        message=message,
        format=FormatLabel.CHART,
        content={
            "title": "Data Visualization",
            "chart_type": _chart_type(content),
            "data": {
                "labels": labels,
                "datasets": [{"label": "Data", "data": values, "backgroundColor": colors}],
            },
            "config": _chart_config(),
        },
        metadata={"chart_library": "Chart.js", "formatted_at": now_ms},
    )


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

_RENDERERS: dict[FormatLabel, Callable[[str, Any, int], FormattedResponse]] = {
    FormatLabel.TEXT: _render_text,
    FormatLabel.CARD: _render_card,
    FormatLabel.LIST: _render_list,
    FormatLabel.TABLE: _render_table,
    FormatLabel.CHART: _render_chart,
}


def render(message: str, content: Any, fmt: Any = None, *, now: float | None = None) -> FormattedResponse:
    """Render reduced content in the requested format.

    `fmt` may be a FormatLabel or a case-insensitive string; None or an
    unknown label falls back to text. Exceptions are converted into a
    success=False text response that keeps the original message.
    """
    label = FormatLabel.parse(fmt, FormatLabel.TEXT)
    message = message or ""
    now_ms = epoch_millis(now)
    try:
        return _RENDERERS[label](message, content, now_ms)
    except Exception as exc:
        logger.error("Error formatting %s response: %s", label.value, exc, exc_info=True)
        return FormattedResponse(
            message=message,
            format=FormatLabel.TEXT,
            content="",
            metadata={"formatted_at": now_ms},
            success=False,
            error=str(exc),
        )
