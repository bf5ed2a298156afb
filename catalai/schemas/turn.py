"""
Data models for one orchestrated conversational turn.
"""

from typing import Optional

from pydantic import BaseModel, Field

from catalai.schemas.classification import DecisionAction, RawClassification
from catalai.schemas.conversation import ClarificationQuestion, StopReason
from catalai.schemas.extraction import ExtractedAttributes
from catalai.schemas.rules import EvaluationResult


class TurnResult(BaseModel):
    """
    Response for a single turn.

    Exactly one of these holds: ``questions`` is non-empty (interview
    continues), ``evaluation`` is set (terminal, rules applied), or
    ``requires_manual_review`` is set with no evaluation (terminal, low
    confidence).
    """

    conversation_id: str
    action: DecisionAction
    classification: RawClassification
    questions: list[ClarificationQuestion] = Field(default_factory=list)
    stop_code: Optional[StopReason] = None
    stop_reason: Optional[str] = None
    advisory: Optional[str] = None
    attributes: Optional[ExtractedAttributes] = None
    evaluation: Optional[EvaluationResult] = None
    requires_manual_review: bool = False
    warnings: list[str] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return not self.questions
