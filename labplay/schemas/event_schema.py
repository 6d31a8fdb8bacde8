"""
Agent stream event schema.

The agent service emits one JSON object per frame, discriminated by "type".
Every known kind has its own model; anything else (or a frame that fails
validation) becomes UnknownEvent so callers can ignore it without crashing.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from labplay.logger import get_logger
from labplay.schemas.chat_schema import AgentPayload, AnalysisReport, EdaSummary, ModelSuggestion

logger = get_logger(__name__)


class StatusEvent(AgentPayload):
    type: Literal["status"] = "status"
    text: str = ""


class _ExecutedCode(AgentPayload):
    """Code the agent already ran server-side, with its captured result."""
    code: str = ""
    output: Optional[str] = None
    error: Optional[str] = None
    charts: Optional[List[str]] = None

    @field_validator("code", "output", "error", mode="before")
    @classmethod
    def _as_text(cls, v):
        return v if v is None or isinstance(v, str) else str(v)

    @field_validator("charts", mode="before")
    @classmethod
    def _only_strings(cls, v):
        return [c for c in v if isinstance(c, str)] if isinstance(v, list) else v


class CodeCellEvent(_ExecutedCode):
    type: Literal["code_cell"] = "code_cell"


class EdaCellEvent(_ExecutedCode):
    type: Literal["eda_cell"] = "eda_cell"


class FeatureEngineeringEvent(_ExecutedCode):
    type: Literal["fe_cell"] = "fe_cell"


class AnalysisEvent(AgentPayload):
    type: Literal["analysis"] = "analysis"
    data: AnalysisReport = Field(default_factory=AnalysisReport)


class EdaSummaryEvent(AgentPayload):
    type: Literal["eda_summary"] = "eda_summary"
    data: EdaSummary = Field(default_factory=EdaSummary)


class ModelsEvent(AgentPayload):
    type: Literal["models"] = "models"
    models: List[ModelSuggestion] = Field(default_factory=list)

    @field_validator("models", mode="before")
    @classmethod
    def _named_only(cls, v):
        # a suggestion without a name cannot be selected
        if isinstance(v, list):
            return [m for m in v if not isinstance(m, dict) or m.get("name")]
        return v


class ReasoningEvent(AgentPayload):
    type: Literal["reasoning"] = "reasoning"
    text: str = ""


class InsightEvent(AgentPayload):
    type: Literal["insight"] = "insight"
    text: str = ""


class ErrorEvent(AgentPayload):
    type: Literal["error"] = "error"
    text: str = ""


class DoneEvent(AgentPayload):
    type: Literal["done"] = "done"
    feature_columns: Optional[List[str]] = None


# Guard sub-protocol: automated diagnosis and repair of failed server-side code.

class GuardAnalyzingEvent(AgentPayload):
    type: Literal["guard_analyzing"] = "guard_analyzing"
    title: str = ""
    error_preview: Optional[Any] = None


class WebSearchingEvent(AgentPayload):
    type: Literal["web_searching"] = "web_searching"
    query: str = ""


class FixAttemptEvent(AgentPayload):
    type: Literal["fix_attempt"] = "fix_attempt"
    explanation: str = ""
    code: Optional[str] = None


class FixSuccessEvent(AgentPayload):
    type: Literal["fix_success"] = "fix_success"
    explanation: str = ""


class GuardGiveUpEvent(AgentPayload):
    type: Literal["guard_give_up"] = "guard_give_up"
    title: str = ""


class UnknownEvent(BaseModel):
    type: str = ""
    raw: Dict[str, Any] = Field(default_factory=dict)


GuardEvent = Union[
    GuardAnalyzingEvent,
    WebSearchingEvent,
    FixAttemptEvent,
    FixSuccessEvent,
    GuardGiveUpEvent,
]

StreamEvent = Union[
    StatusEvent,
    CodeCellEvent,
    EdaCellEvent,
    FeatureEngineeringEvent,
    AnalysisEvent,
    EdaSummaryEvent,
    ModelsEvent,
    ReasoningEvent,
    InsightEvent,
    ErrorEvent,
    DoneEvent,
    GuardAnalyzingEvent,
    WebSearchingEvent,
    FixAttemptEvent,
    FixSuccessEvent,
    GuardGiveUpEvent,
    UnknownEvent,
]

EVENT_TYPES: Dict[str, type] = {
    "status": StatusEvent,
    "code_cell": CodeCellEvent,
    "eda_cell": EdaCellEvent,
    "fe_cell": FeatureEngineeringEvent,
    "analysis": AnalysisEvent,
    "eda_summary": EdaSummaryEvent,
    "models": ModelsEvent,
    "reasoning": ReasoningEvent,
    "insight": InsightEvent,
    "error": ErrorEvent,
    "done": DoneEvent,
    "guard_analyzing": GuardAnalyzingEvent,
    "web_searching": WebSearchingEvent,
    "fix_attempt": FixAttemptEvent,
    "fix_success": FixSuccessEvent,
    "guard_give_up": GuardGiveUpEvent,
}


def parse_event(raw: Dict[str, Any]) -> StreamEvent:
    """Turn one decoded frame into its typed event."""
    kind = raw.get("type")
    model = EVENT_TYPES.get(kind) if isinstance(kind, str) else None
    if model is None:
        return UnknownEvent(type=str(kind or ""), raw=raw)
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        logger.warning("Dropping invalid %r event: %s", kind, e)
        return UnknownEvent(type=kind, raw=raw)
