"""
Sample descriptions, transcript builders and a scripted language model
shared across tests.
"""

import json

from catalai.config import Settings
from catalai.schemas.conversation import ConversationTurn
from catalai.services.attribute_extraction import EXTRACTION_PROMPT
from catalai.services.clarification import CLARIFICATION_PROMPT
from catalai.services.classification import CLASSIFICATION_PROMPT
from catalai.services.conversation_guard import InMemoryConversationGuard
from catalai.services.pipeline import PipelineOrchestrator, build_orchestrator
from catalai.services.rule_store import DEFAULT_RULES, InMemoryRuleStore

# 61 words, all five quality signals
GOOD_DESCRIPTION = (
    "Every day our finance team manually processes around 200 supplier invoices "
    "that arrive by email. Each invoice is checked against the purchase order, "
    "keyed into the legacy ERP system, and routed for approval by a department "
    "manager. The process involves several steps and frequent errors, and delays "
    "in approval cause late payment penalties and frustrated suppliers each month "
    "across the business."
)

# 80 words, four quality signals (no pain points)
ONBOARDING_DESCRIPTION = (
    "Every week the HR team onboards new hires using a shared spreadsheet. The "
    "process involves collecting signed contracts, creating accounts in three "
    "systems, ordering a laptop, booking induction sessions and sending a welcome "
    "pack. Currently a coordinator copies details from the offer letter into each "
    "tool by hand and ticks off each step in the sheet. About 30 people join each "
    "month across four offices, and the coordinator confirms every account with "
    "the relevant manager before the start date arrives."
)

# Exactly 20 words, frequency and current-state signals only
MARGINAL_DESCRIPTION = (
    "The team handles requests by phone and writes notes in a paper log "
    "before passing them along to colleagues daily."
)

POOR_DESCRIPTION = "We process invoices."


def make_turns(count: int, answer: str = "Around 40 people are involved") -> list[ConversationTurn]:
    """Distinct, non-repetitive questions with ordinary answers."""
    return [
        ConversationTurn(question=f"What about area{i}?", answer=answer)
        for i in range(count)
    ]


def classification_json(
    category: str = "RPA",
    confidence: float = 0.8,
    rationale: str = "Repetitive rule-based work",
) -> str:
    return json.dumps({
        "category": category,
        "confidence": confidence,
        "rationale": rationale,
        "categoryProgression": "Already digital, so not Digitise",
        "futureOpportunities": "Could move to AI Agent for exceptions",
    })


SMALL_DAILY_TEAM = {
    "frequency": {"value": "daily", "explanation": "Runs every morning"},
    "user_count": {"value": "1-5", "explanation": "Three clerks"},
    "risk": {"value": "medium", "explanation": "Late payments"},
    "data_sensitivity": {"value": "internal", "explanation": "Supplier invoices"},
    "current_state": {"value": "digital", "explanation": "ERP based"},
}


class ScriptedLLM:
    """Returns a canned response per system prompt and records which prompts were used."""

    def __init__(self, classification, attributes=None, questions=None):
        self.responses = {
            CLASSIFICATION_PROMPT: classification,
            EXTRACTION_PROMPT: json.dumps(attributes or {}),
            CLARIFICATION_PROMPT: questions if questions is not None else json.dumps({"questions": []}),
        }
        self.prompts: list[str] = []

    async def chat(self, messages, json_mode=True):
        system = messages[0].content
        self.prompts.append(system)
        response = self.responses[system]
        if isinstance(response, Exception):
            raise response
        return response


def scripted_orchestrator(llm, rule_store=None, guard=None) -> PipelineOrchestrator:
    """Real components wired to a scripted model and the default rules."""
    return build_orchestrator(
        settings=Settings(_env_file=None),
        llm=llm,
        rule_store=rule_store or InMemoryRuleStore(DEFAULT_RULES),
        guard=guard or InMemoryConversationGuard(),
    )
