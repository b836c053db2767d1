"""Value tree helpers -- the tagged view over JSON-like context documents.

A context tree is plain Python data: dicts, lists and scalars. Consumers
never isinstance-check ad hoc; they ask kind_of() and branch on ValueKind.
"""

from __future__ import annotations

import re
import time
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterator


class ValueKind(str, Enum):
    SCALAR = "scalar"
    SEQUENCE = "sequence"
    MAPPING = "mapping"


def kind_of(value: Any) -> ValueKind:
    """Classify a value. Anything that isn't a list/tuple or dict is a scalar."""
    if isinstance(value, dict):
        return ValueKind.MAPPING
    if isinstance(value, (list, tuple)):
        return ValueKind.SEQUENCE
    return ValueKind.SCALAR


def is_reserved(key: Any) -> bool:
    """Keys starting with '_' carry internal metadata, never user data."""
    return isinstance(key, str) and key.startswith("_")


def visible_items(mapping: dict) -> Iterator[tuple[str, Any]]:
    """Iterate (key, value) pairs, skipping reserved keys, in insertion order."""
    for key, value in mapping.items():
        if not is_reserved(key):
            yield key, value


def visible_keys(mapping: dict) -> list[str]:
    return [key for key, _ in visible_items(mapping)]


def as_mapping(value: Any) -> dict:
    """Treat absent or malformed context as an empty mapping."""
    return value if kind_of(value) is ValueKind.MAPPING else {}


def is_table_shaped(value: Any) -> bool:
    """A non-empty sequence whose first element is a mapping."""
    return (
        kind_of(value) is ValueKind.SEQUENCE
        and len(value) > 0
        and kind_of(value[0]) is ValueKind.MAPPING
    )


def is_number(value: Any) -> bool:
    """Numeric scalar. bool is excluded even though it subclasses int."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def runtime_kind_name(value: Any) -> str:
    """Short runtime type name used in report summaries ('dict', 'list', 'int', ...)."""
    if isinstance(value, tuple):
        return "list"
    return type(value).__name__


def title_case(key: str) -> str:
    """'user_list' -> 'User List'. Empty segments are dropped."""
    return " ".join(word[:1].upper() + word[1:].lower() for word in str(key).split("_") if word)


def display(value: Any) -> str:
    """Scalar display string: None -> 'N/A', bools lower-case, everything else str()."""
    if value is None:
        return "N/A"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}([T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?)?$")


def is_date_like(value: Any) -> bool:
    if isinstance(value, (datetime, date)):
        return True
    return isinstance(value, str) and bool(_ISO_DATE.match(value))


def epoch_millis(now: float | None = None) -> int:
    """Wall-clock timestamp in milliseconds; pass `now` (seconds) to pin the clock."""
    return int((time.time() if now is None else now) * 1000)
