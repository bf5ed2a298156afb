"""
Clarification Service.

Generates the next round of clarifying questions. The interview
controller decides whether a round happens and how many questions it may
contain; this service only asks the model for them and validates the
answer. An explicit empty list means the model has nothing left to ask;
a failed or malformed call raises instead.
"""

from __future__ import annotations

from typing import Any, Sequence

from pydantic import ValidationError

from catalai.exceptions import MalformedResponseError
from catalai.logging_config import get_logger
from catalai.schemas.classification import RawClassification
from catalai.schemas.conversation import ClarificationQuestion, ConversationTurn
from catalai.services.interview_controller import InterviewController
from catalai.services.llm_client import (
    ChatMessage,
    DegenerateResponseDetector,
    TextGenerator,
    parse_json_payload,
)

logger = get_logger(__name__)

CLARIFICATION_PROMPT = """You are an expert in business transformation and process analysis. Generate clarifying questions that will raise the confidence of a business process classification.

You will receive the process description, the current classification with its confidence, and any earlier questions and answers.

Ask about what is missing or unclear, in particular:
- Frequency: how often the process runs
- Business value: impact on revenue, customers or compliance
- Complexity: steps, systems and decision points involved
- Risk: what happens if the process fails or changes
- User count: how many people run or are affected by it
- Data sensitivity: public, internal, confidential or restricted data
- Current state: manual, paper-based, digital or already automated

QUESTION GUIDELINES:
1. Never repeat or rephrase a question that was already asked
2. Prefer open questions over yes/no questions
3. Keep each question short and concrete
4. Focus on what distinguishes neighbouring categories

Respond ONLY with a JSON object:
{
  "questions": [
    {"question": "<the clarifying question>", "purpose": "<attribute or aspect it clarifies>"}
  ]
}
Return an empty "questions" array if nothing important is missing."""


class ClarificationService:

    def __init__(
        self,
        llm: TextGenerator,
        controller: InterviewController | None = None,
        degenerate: DegenerateResponseDetector | None = None,
    ) -> None:
        self.llm = llm
        self.controller = controller or InterviewController()
        self.degenerate = degenerate or DegenerateResponseDetector()

    async def generate_questions(
        self,
        description: str,
        classification: RawClassification,
        transcript: Sequence[ConversationTurn],
        budget: int,
    ) -> list[ClarificationQuestion]:
        if budget <= 0:
            return []

        context = self.controller.build_context(description, transcript)
        context += (
            "Current Classification:\n"
            f"- Category: {classification.category.value}\n"
            f"- Confidence: {classification.confidence:.2f}\n"
            f"- Rationale: {classification.rationale}\n\n"
            f"Generate at most {budget} clarifying question(s)."
        )
        messages = [
            ChatMessage("system", CLARIFICATION_PROMPT),
            ChatMessage("user", context),
        ]

        content = await self.llm.chat(messages)
        questions = self.parse_response(content, budget)

        logger.info("clarification_generated", requested=budget, generated=len(questions))
        return questions

    def parse_response(self, content: str, budget: int) -> list[ClarificationQuestion]:
        self.degenerate.check(content)

        if content.lstrip().startswith("["):
            raw_items: Any = parse_json_payload(content, list)
        else:
            parsed = parse_json_payload(content, dict)
            raw_items = parsed.get("questions")
            if not isinstance(raw_items, list):
                raise MalformedResponseError("Response has no 'questions' array")

        questions: list[ClarificationQuestion] = []
        for item in raw_items:
            if not isinstance(item, dict):
                continue
            try:
                questions.append(ClarificationQuestion(
                    question=item.get("question", ""),
                    purpose=item.get("purpose") or "General clarification",
                ))
            except ValidationError:
                logger.warning("skipping_malformed_question", item=item)

        if raw_items and not questions:
            raise MalformedResponseError("No usable questions in response")
        return questions[:budget]
