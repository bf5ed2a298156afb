"""
Data models for the clarifying interview.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ClarificationQuestion(BaseModel):
    """A question proposed by the model, before it has been answered."""

    model_config = ConfigDict(frozen=True)

    question: str = Field(min_length=1)
    purpose: str = "General clarification"

    @field_validator("question")
    @classmethod
    def _strip_question(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("question must not be blank")
        return value


class ConversationTurn(ClarificationQuestion):
    """One question/answer exchange. Transcripts are append-only sequences of these."""

    answer: str = ""


class StopReason(str, Enum):
    LIMIT_REACHED = "limit_reached"
    REPETITIVE_QUESTIONS = "repetitive_questions"
    DUPLICATE_QUESTIONS = "duplicate_questions"
    USER_EXHAUSTED = "user_exhausted"
    SUFFICIENT_INFORMATION = "sufficient_information"
    NO_FURTHER_QUESTIONS = "no_further_questions"


class InterviewDecision(BaseModel):
    """Outcome of the per-turn interview check."""

    model_config = ConfigDict(frozen=True)

    stop: bool
    code: Optional[StopReason] = None
    reason: str = ""
    advisory: Optional[str] = None
    question_budget: int = 0
