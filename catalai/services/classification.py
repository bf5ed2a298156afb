"""
Classification Service.

Asks the language model to place a business process into one of the six
transformation categories and validates what comes back. Any output that
is degenerate, unparseable or out of range raises; a default
classification is never invented here.
"""

from __future__ import annotations

from numbers import Real
from typing import Any, Sequence

from pydantic import ValidationError

from catalai.exceptions import MalformedResponseError, ValidationFailure
from catalai.logging_config import get_logger
from catalai.schemas.classification import RawClassification, TransformationCategory
from catalai.schemas.conversation import ConversationTurn
from catalai.services.interview_controller import InterviewController
from catalai.services.llm_client import (
    ChatMessage,
    DegenerateResponseDetector,
    TextGenerator,
    parse_json_payload,
)

logger = get_logger(__name__)

CATEGORY_LIST = ", ".join(c.value for c in TransformationCategory)

CLASSIFICATION_PROMPT = f"""You are an expert in business transformation and process optimisation. Classify the business process you are given into exactly one of six transformation categories, considered in this order:

1. Eliminate: the process adds no value and can be removed
2. Simplify: the process can be streamlined by removing steps
3. Digitise: manual or offline steps should become digital
4. RPA: repetitive, rule-based work suited to robotic process automation
5. AI Agent: work needing judgement, pattern recognition or language understanding
6. Agentic AI: autonomous systems that decide and act on their own

Explain why the chosen category fits and why the preceding ones do not, and describe how the process could progress to later categories.

CONFIDENCE SCORING:
- 0.95-1.0: only when current state, frequency, volume, number of users, complexity, business value and pain points are all stated explicitly
- 0.5-0.90: any of the above is missing, vague or assumed; clarifying questions will be asked
- 0.0-0.5: the description is too vague or contradictory to classify; a human will review it

Never assume information the user has not stated. Discovery comes first, classification second.

Respond ONLY with a JSON object:
{{
  "category": "<one of: {CATEGORY_LIST}>",
  "confidence": <number between 0 and 1>,
  "rationale": "<why this category>",
  "categoryProgression": "<why this category and not the preceding ones>",
  "futureOpportunities": "<potential to progress to later categories>"
}}"""


class ClassificationService:
    """Produces one validated ``RawClassification`` per call."""

    def __init__(
        self,
        llm: TextGenerator,
        controller: InterviewController | None = None,
        degenerate: DegenerateResponseDetector | None = None,
    ) -> None:
        self.llm = llm
        self.controller = controller or InterviewController()
        self.degenerate = degenerate or DegenerateResponseDetector()

    async def classify(
        self,
        description: str,
        transcript: Sequence[ConversationTurn] = (),
    ) -> RawClassification:
        context = self.controller.build_context(description, transcript)
        messages = [
            ChatMessage("system", CLASSIFICATION_PROMPT),
            ChatMessage("user", f"{context}\nBased on the above information, classify this business process."),
        ]

        logger.info("classification_started", turns=len(transcript), description_length=len(description))
        content = await self.llm.chat(messages)
        result = self.parse_response(content)

        logger.info(
            "classification_complete",
            category=result.category.value,
            confidence=result.confidence,
        )
        return result

    def parse_response(self, content: str) -> RawClassification:
        self.degenerate.check(content)
        parsed = parse_json_payload(content, dict)
        return validate_classification(parsed)


def validate_classification(parsed: dict[str, Any]) -> RawClassification:
    """Reject missing fields, unknown categories and confidences outside [0, 1]."""
    category = parsed.get("category")
    confidence = parsed.get("confidence")

    if not category or confidence is None:
        raise MalformedResponseError("Invalid response format: missing category or confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, Real):
        raise ValidationFailure(f"Invalid confidence score: {confidence!r}")
    if not 0.0 <= float(confidence) <= 1.0:
        raise ValidationFailure(f"Invalid confidence score: {confidence}")

    try:
        category = TransformationCategory(category)
    except ValueError as e:
        raise ValidationFailure(f"Invalid category: {category!r}") from e

    try:
        return RawClassification(
            category=category,
            confidence=float(confidence),
            rationale=str(parsed.get("rationale") or ""),
            category_progression=str(
                parsed.get("categoryProgression") or parsed.get("category_progression") or ""
            ),
            future_opportunities=str(
                parsed.get("futureOpportunities") or parsed.get("future_opportunities") or ""
            ),
        )
    except ValidationError as e:
        raise ValidationFailure(f"Invalid classification: {e.errors()[0]['msg']}") from e
