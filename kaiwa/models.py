"""Labels and records shared by the classification-and-rendering pipeline.

Labels are closed string enums so every dispatch table keyed on them can be
checked for totality. Records are frozen pydantic models built fresh for one
request; field aliases carry the camelCase wire names the UI depends on.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class IntentLabel(str, Enum):
    SYSTEM_INFO = "system_info"
    DATA_QUERY = "data_query"
    HELP_REQUEST = "help_request"
    GENERAL_QUERY = "general_query"


class DataTypeLabel(str, Enum):
    STRUCTURED = "structured_data"
    VISUAL = "visual_data"
    SUMMARY = "summary_data"
    TEXT = "text_data"


class FormatLabel(str, Enum):
    TEXT = "text"
    CARD = "card"
    LIST = "list"
    TABLE = "table"
    CHART = "chart"

    @property
    def wire(self) -> str:
        """Upper-case name used in ChatResponse.responseFormat."""
        return self.value.upper()

    @classmethod
    def parse(cls, value: Any, default: FormatLabel | None = None) -> FormatLabel | None:
        """Case-insensitive lookup; returns default for None or unknown labels."""
        if isinstance(value, FormatLabel):
            return value
        if not isinstance(value, str):
            return default
        try:
            return cls(value.strip().lower())
        except ValueError:
            return default


class ReductionIntent(str, Enum):
    """Keys of the data reducer's strategy table."""
    SYSTEM_DATA_QUERY = "system_data_query"
    USER_MANAGEMENT = "user_management"
    SYSTEM_STATUS = "system_status"
    LIST_QUERY = "list_query"
    TABLE_QUERY = "table_query"
    REPORT_GENERATION = "report_generation"
    GENERAL_QUERY = "general_query"

    @classmethod
    def parse(cls, value: Any) -> ReductionIntent:
        if isinstance(value, ReductionIntent):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.GENERAL_QUERY


class ActionType(str, Enum):
    NAVIGATION = "navigation"
    FUNCTION = "function"
    LINK = "link"


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ---------------------------------------------------------------------------
# Pipeline records
# ---------------------------------------------------------------------------

class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Analysis(_Record):
    """Output of the intent classifier for one message."""
    intent: IntentLabel
    data_type: DataTypeLabel = Field(alias="dataType")
    entities: dict[str, str] = Field(default_factory=dict)
    suggested_format: FormatLabel = Field(alias="suggestedFormat")
    confidence: float = Field(ge=0.0, le=1.0)
    requires_system_data: bool = Field(alias="requiresSystemData")


class StructuralFacts(_Record):
    """Output of the context analyzer for one context tree."""
    has_user_data: bool = False
    has_system_metrics: bool = False
    has_list_data: bool = False
    has_table_data: bool = False
    complexity: Complexity = Complexity.LOW
    complexity_score: int = 0
    categories: list[str] = Field(default_factory=list)
    visualization: str = "text_display"
    suggested_format: FormatLabel = FormatLabel.TEXT
    key_entities: list[str] = Field(default_factory=list)
    metrics_summary: dict[str, Any] = Field(default_factory=dict)


class ActionButton(_Record):
    label: str
    action: str
    type: ActionType
    parameters: dict[str, Any] = Field(default_factory=dict)


class FormattedResponse(_Record):
    """Renderer output: one content variant plus metadata and follow-up actions."""
    message: str
    format: FormatLabel
    content: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    suggested_actions: list[ActionButton] = Field(default_factory=list, alias="suggestedActions")
    success: bool = True
    error: str | None = None


# ---------------------------------------------------------------------------
# Wire contract
# ---------------------------------------------------------------------------

MAX_MESSAGE_LENGTH = 2000


class ChatRequest(BaseModel):
    """Validated schema for incoming chat messages."""
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    session_id: str | None = Field(default=None, alias="sessionId", max_length=256)
    user_id: str | None = Field(default=None, alias="userId", max_length=256)
    current_page: str | None = Field(default=None, alias="currentPage", max_length=512)
    # Malformed context or preferences are accepted and read as empty mappings
    system_context: Any = Field(default=None, alias="systemContext")
    user_preferences: Any = Field(default=None, alias="userPreferences")

    @field_validator("message")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message cannot be blank")
        return v


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(default=None, alias="sessionId")
    message: str
    response_format: str = Field(default="TEXT", alias="responseFormat")
    content: Any = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    success: bool = True
    error: str | None = None
    metadata: dict[str, Any] | None = None
    suggested_actions: list[ActionButton] | None = Field(default=None, alias="suggestedActions")

    def to_wire(self) -> dict:
        """JSON-ready dict with camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)
