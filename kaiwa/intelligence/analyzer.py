"""Context analyzer -- structural facts about a context tree.

Only top-level entries are inspected and reserved `_` keys are skipped.
Results are independent of entry order except key_entities (first five keys).
"""

from __future__ import annotations

from typing import Any

from kaiwa.core.values import (
    ValueKind, as_mapping, is_number, is_table_shaped, kind_of, visible_items, visible_keys,
)
from kaiwa.models import Complexity, FormatLabel, StructuralFacts

USER_KEYS = ("users", "user", "userList", "currentUser")
METRIC_KEYS = ("metrics", "performance", "cpu", "memory")

# Complexity weight per top-level value kind
_COMPLEXITY_WEIGHTS = {
    ValueKind.MAPPING: 2,
    ValueKind.SEQUENCE: 1,
    ValueKind.SCALAR: 0,
}
_HIGH_THRESHOLD = 10
_MEDIUM_THRESHOLD = 5


def has_user_data(context: dict) -> bool:
    return any(key in context for key in USER_KEYS)


def has_system_metrics(context: dict) -> bool:
    return any(key in context for key in METRIC_KEYS)


def has_list_data(context: dict) -> bool:
    return any(kind_of(v) is ValueKind.SEQUENCE for _, v in visible_items(context))


def has_table_data(context: dict) -> bool:
    return any(is_table_shaped(v) for _, v in visible_items(context))


def complexity_score(context: dict) -> int:
    return sum(_COMPLEXITY_WEIGHTS[kind_of(v)] for _, v in visible_items(context))


def complexity_level(score: int) -> Complexity:
    if score > _HIGH_THRESHOLD:
        return Complexity.HIGH
    if score > _MEDIUM_THRESHOLD:
        return Complexity.MEDIUM
    return Complexity.LOW


def analyze(context: Any) -> StructuralFacts:
    """Characterise a context tree. None or non-mapping input is analysed as {}."""
    ctx = as_mapping(context)

    users = has_user_data(ctx)
    metrics = has_system_metrics(ctx)
    lists = has_list_data(ctx)
    tables = has_table_data(ctx)
    score = complexity_score(ctx)

    categories = [
        name for name, present in (
            ("user_management", users),
            ("system_metrics", metrics),
            ("list_data", lists),
            ("table_data", tables),
        ) if present
    ]

    if metrics:
        visualization = "metrics_dashboard"
    elif tables:
        visualization = "data_table"
    elif lists:
        visualization = "list_view"
    else:
        visualization = "text_display"

    if tables:
        suggested = FormatLabel.TABLE
    elif lists:
        suggested = FormatLabel.LIST
    elif metrics:
        suggested = FormatLabel.CARD
    else:
        suggested = FormatLabel.TEXT

    return StructuralFacts(
        has_user_data=users,
        has_system_metrics=metrics,
        has_list_data=lists,
        has_table_data=tables,
        complexity=complexity_level(score),
        complexity_score=score,
        categories=categories,
        visualization=visualization,
        suggested_format=suggested,
        key_entities=visible_keys(ctx)[:5],
        metrics_summary={k: v for k, v in visible_items(ctx) if is_number(v)},
    )
