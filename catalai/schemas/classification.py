"""
Data models for model-produced classifications and routing decisions.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TransformationCategory(str, Enum):
    """The six transformation categories, in evaluation order."""
    ELIMINATE = "Eliminate"
    SIMPLIFY = "Simplify"
    DIGITISE = "Digitise"
    RPA = "RPA"
    AI_AGENT = "AI Agent"
    AGENTIC_AI = "Agentic AI"


class DecisionAction(str, Enum):
    AUTO_CLASSIFY = "auto_classify"
    CLARIFY = "clarify"
    MANUAL_REVIEW = "manual_review"


class TextQuality(str, Enum):
    POOR = "poor"
    MARGINAL = "marginal"
    GOOD = "good"


class RawClassification(BaseModel):
    """One model-produced guess. Never mutated once created."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    category: TransformationCategory
    confidence: float = Field(ge=0.0, le=1.0)
    rationale: str = ""
    category_progression: str = Field(default="", alias="categoryProgression")
    future_opportunities: str = Field(default="", alias="futureOpportunities")
