"""
Attribute Extraction Service.

Reduces a process description and its interview transcript to a fixed
set of business attributes (frequency, business value, complexity, ...)
using one LLM call. Each required attribute is resolved on its own: if
the model left it out or malformed it, the attribute gets the "unknown"
sentinel and the rest still flow on to the rule engine. Unparseable
output degrades every attribute this way. A failed call (timeout, HTTP
status, transport) raises ``LLMError`` to the caller.
"""

from __future__ import annotations

from typing import Any, Sequence

from catalai.exceptions import MalformedResponseError
from catalai.logging_config import get_logger
from catalai.schemas.conversation import ConversationTurn
from catalai.schemas.extraction import UNKNOWN, AttributeValue, ExtractedAttributes
from catalai.services.llm_client import (
    ChatMessage,
    DegenerateResponseDetector,
    TextGenerator,
    parse_json_payload,
)

logger = get_logger(__name__)

CORE_ATTRIBUTES: tuple[str, ...] = (
    "frequency",
    "business_value",
    "complexity",
    "risk",
    "user_count",
    "data_sensitivity",
    "data_source",
    "output_type",
    "judgment_required",
    "current_state",
)

STRATEGIC_ATTRIBUTES: tuple[str, ...] = (
    "success_criteria",
    "risks_constraints",
    "value_estimate",
    "sponsorship",
)

REQUIRED_ATTRIBUTES: tuple[str, ...] = CORE_ATTRIBUTES + STRATEGIC_ATTRIBUTES

# Alternative keys the model sometimes uses for a required attribute
ATTRIBUTE_ALIASES: dict[str, tuple[str, ...]] = {
    "judgment_required": ("judgement_required", "judgement", "judgment"),
    "business_value": ("impact", "priority"),
    "success_criteria": ("success",),
    "risks_constraints": ("risks", "constraints", "blockers"),
    "current_state": ("automation_level", "process_state"),
}

MISSING_EXPLANATION = "Insufficient information provided"
FAILED_EXPLANATION = "Attribute could not be determined"

EXTRACTION_PROMPT = """You are an expert in business process analysis. Extract the following attributes from a conversation about a business process.

1. frequency: "hourly", "daily", "weekly", "monthly", "quarterly", "annually", "ad-hoc"
2. business_value: "critical", "high", "medium", "low"
3. complexity: "very_high", "high", "medium", "low", "very_low"
4. risk: "critical", "high", "medium", "low"
5. user_count: "1-5", "6-20", "21-50", "51-100", "100+"
6. data_sensitivity: "public", "internal", "confidential", "restricted"
7. data_source: where the process input comes from (e.g. "email", "paper", "erp", "web_form")
8. output_type: what the process produces (e.g. "report", "decision", "record_update")
9. judgment_required: "yes", "no", "partial"
10. current_state: "manual", "paper_based", "partially_digital", "digital", "automated"
11. success_criteria: what success would look like (free text)
12. risks_constraints: known risks and constraints (free text)
13. value_estimate: time, resource or money it would save (free text)
14. sponsorship: whether the initiative has a sponsor or has been raised before (free text)

Use "unknown" for any attribute the conversation does not support. Make reasonable inferences only when the information is clearly implied.

Respond ONLY with a JSON object mapping every attribute name to {"value": "<value>", "explanation": "<short explanation>"}."""


class AttributeExtractor:
    """
    Resolves every name in ``required`` on each call.

    The attribute map is rebuilt from scratch each time the transcript
    grows, since later answers can change how earlier ones read.
    """

    def __init__(
        self,
        llm: TextGenerator,
        required: Sequence[str] = REQUIRED_ATTRIBUTES,
        aliases: dict[str, tuple[str, ...]] | None = None,
        degenerate: DegenerateResponseDetector | None = None,
    ) -> None:
        self.llm = llm
        self.required = tuple(required)
        self.aliases = ATTRIBUTE_ALIASES if aliases is None else aliases
        self.degenerate = degenerate or DegenerateResponseDetector()

    async def extract(
        self,
        description: str,
        transcript: Sequence[ConversationTurn] = (),
    ) -> ExtractedAttributes:
        logger.info("extraction_started", turns=len(transcript))

        error: str | None = None
        try:
            content = await self.llm.chat(self._build_messages(description, transcript))
            self.degenerate.check(content)
            parsed = parse_json_payload(content, dict)
        except MalformedResponseError as e:
            logger.warning("extraction_output_unusable", error=str(e))
            parsed = {}
            error = str(e)

        explanation = FAILED_EXPLANATION if error else MISSING_EXPLANATION
        attributes = self.resolve(parsed, default_explanation=explanation)
        result = ExtractedAttributes(attributes=attributes, extraction_error=error)

        logger.info(
            "extraction_complete",
            required=len(self.required),
            unresolved=len(result.unresolved),
            degraded=error is not None,
        )
        return result

    def resolve(
        self,
        parsed: dict[str, Any],
        default_explanation: str = MISSING_EXPLANATION,
    ) -> dict[str, AttributeValue]:
        """Build the complete attribute map from whatever the model returned."""
        result: dict[str, AttributeValue] = {}

        for name in self.required:
            key = self._find_key(name, parsed)
            value = _coerce(parsed[key], via_alias=key != name) if key is not None else None
            if value is None:
                logger.warning("attribute_defaulted", attribute=name)
                value = AttributeValue(value=UNKNOWN, explanation=default_explanation)
            result[name] = value

        consumed = {self._find_key(n, parsed) for n in self.required}
        for key, raw in parsed.items():
            if key in result or key in consumed:
                continue
            extra = _coerce(raw, via_alias=False, explanation="Additional extracted field")
            if extra is not None:
                result[key] = extra

        return result

    # Private helpers

    def _find_key(self, name: str, parsed: dict[str, Any]) -> str | None:
        if parsed.get(name) is not None:
            return name
        for alias in self.aliases.get(name, ()):
            if parsed.get(alias) is not None:
                return alias
        return None

    def _build_messages(
        self, description: str, transcript: Sequence[ConversationTurn]
    ) -> list[ChatMessage]:
        context = f"Process Description:\n{description}\n\n"
        if transcript:
            context += "Conversation History:\n"
            context += "".join(f"Q: {t.question}\nA: {t.answer}\n\n" for t in transcript)
        return [
            ChatMessage("system", EXTRACTION_PROMPT),
            ChatMessage("user", context),
        ]


def _coerce(
    raw: Any,
    via_alias: bool,
    explanation: str | None = None,
) -> AttributeValue | None:
    """
    Turn one raw model value into an ``AttributeValue``.

    Accepts the nested ``{"value", "explanation"}`` form and bare scalars.
    Returns None for anything else.
    """
    if isinstance(raw, dict):
        value = raw.get("value")
        if value is None or isinstance(value, (dict, list)):
            return None
        if isinstance(value, str) and not value.strip():
            return None
        note = raw.get("explanation")
        if not isinstance(note, str) or not note.strip():
            note = "Extracted via alias" if via_alias else "Extracted from conversation"
        return AttributeValue(value=value, explanation=note)

    if isinstance(raw, (str, int, float, bool)):
        if isinstance(raw, str) and not raw.strip():
            return None
        if explanation is None:
            explanation = "Extracted via alias" if via_alias else "Extracted from conversation (flat format)"
        return AttributeValue(value=raw, explanation=explanation)

    return None
