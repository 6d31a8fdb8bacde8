"""
Chat transcript schema.

A ChatMessage is a tagged union over MessageKind: only the fields relevant to
its kind are populated. Messages are frozen once created.
"""

import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class MessageKind(str, Enum):
    WELCOME = "welcome"
    INFO = "info"
    ANALYSIS = "analysis"
    EDA_SUMMARY = "eda_summary"
    FE = "fe"
    MODELS = "models"
    PIPELINE = "pipeline"  # reasoning narrative
    INSIGHT = "insight"
    GUARD = "guard"
    PREDICT_FORM = "predict_form"
    USER = "user"
    AI = "ai"
    ERROR = "error"


class GuardStep(str, Enum):
    ANALYZING = "analyzing"
    SEARCHING = "searching"
    FIXING = "fixing"
    SUCCESS = "success"
    FAILED = "failed"


class AgentPayload(BaseModel):
    """
    Base for models filled from agent JSON: numbers are accepted as text and
    null falls back to the field default.
    """
    model_config = ConfigDict(coerce_numbers_to_str=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data):
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class ModelSuggestion(AgentPayload):
    """Ranked candidate model returned by the analysis stage."""
    rank: int = 0
    name: str  # internal name sent back on selection
    display_name: str = ""
    reasoning: str = ""
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)
    expected_performance: str = ""

    @field_validator("rank", mode="before")
    @classmethod
    def _rank(cls, v):
        try:
            return int(v)
        except (TypeError, ValueError):
            return 0

    @field_validator("pros", "cons", mode="before")
    @classmethod
    def _as_list(cls, v):
        return [v] if isinstance(v, str) else v


class AnalysisReport(AgentPayload):
    problem_type: str = ""
    target_column: str = ""
    dataset_summary: str = ""
    feature_analysis: str = ""
    missing_values_note: str = ""
    feature_engineering_reasoning: str = ""


class EdaSummary(AgentPayload):
    summary: str = ""
    feature_importance: str = ""
    preprocessing: str = ""


class FeatureEngineeringResult(BaseModel):
    code: str = ""
    output: str = ""
    error: Optional[str] = None


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    kind: MessageKind
    text: Optional[str] = None
    analysis: Optional[AnalysisReport] = None
    eda_summary: Optional[EdaSummary] = None
    fe: Optional[FeatureEngineeringResult] = None
    models: Optional[List[ModelSuggestion]] = None
    reasoning: Optional[str] = None
    guard_step: Optional[GuardStep] = None
    guard_code: Optional[str] = None  # replacement code from a fix attempt, collapsed by default
