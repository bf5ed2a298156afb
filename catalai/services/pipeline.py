"""
Pipeline Orchestrator.

Runs one conversational turn end to end:

1. Classify the description (plus the transcript so far)
2. Route on confidence: manual review, clarify, or accept
3. While clarifying, refresh attributes and ask the interview controller
   whether to stop; if not, generate the next round of questions
4. Once the interview ends (or is skipped), evaluate the active rule set
   against the latest attributes

Low-confidence results stop at step 2 and are never touched by rules.
The orchestrator keeps nothing between turns; the caller owns the
transcript.
"""

from __future__ import annotations

from typing import Sequence

from catalai.config import Backend, Settings, get_settings
from catalai.exceptions import RuleSetNotFoundError
from catalai.logging_config import bind_conversation, get_logger
from catalai.schemas.classification import DecisionAction, RawClassification
from catalai.schemas.conversation import (
    ClarificationQuestion,
    ConversationTurn,
    InterviewDecision,
    StopReason,
)
from catalai.schemas.extraction import ExtractedAttributes
from catalai.schemas.rules import EvaluationResult
from catalai.schemas.turn import TurnResult
from catalai.services.attribute_extraction import AttributeExtractor
from catalai.services.clarification import ClarificationService
from catalai.services.classification import ClassificationService
from catalai.services.confidence_router import ConfidenceRouter, RoutingThresholds
from catalai.services.conversation_guard import (
    ConversationGuard,
    InMemoryConversationGuard,
    RedisConversationGuard,
)
from catalai.services.interview_controller import InterviewController, InterviewLimits
from catalai.services.llm_client import DegenerateResponseDetector, OpenAIChatClient, TextGenerator
from catalai.services.rule_engine import RuleEngine
from catalai.services.rule_store import DEFAULT_RULES, InMemoryRuleStore, RuleStore, SupabaseRuleStore

logger = get_logger(__name__)


class PipelineOrchestrator:
    """Composes router, interview controller, extractor and rule engine per turn."""

    def __init__(
        self,
        classifier: ClassificationService,
        clarifier: ClarificationService,
        extractor: AttributeExtractor,
        router: ConfidenceRouter,
        controller: InterviewController,
        rule_engine: RuleEngine,
        rule_store: RuleStore,
        guard: ConversationGuard | None = None,
    ) -> None:
        self.classifier = classifier
        self.clarifier = clarifier
        self.extractor = extractor
        self.router = router
        self.controller = controller
        self.rule_engine = rule_engine
        self.rule_store = rule_store
        self.guard = guard or InMemoryConversationGuard()

    # -- Individual operations --

    async def classify(
        self,
        description: str,
        transcript: Sequence[ConversationTurn] = (),
    ) -> RawClassification:
        return await self.classifier.classify(description, transcript)

    def route_next_action(
        self,
        classification: RawClassification,
        description: str,
        transcript: Sequence[ConversationTurn] = (),
    ) -> DecisionAction:
        return self.router.decide(classification.confidence, description, transcript)

    async def continue_interview(
        self,
        description: str,
        transcript: Sequence[ConversationTurn],
        classification: RawClassification,
    ) -> tuple[InterviewDecision, list[ClarificationQuestion]]:
        """
        Decide whether to keep interviewing and, if so, fetch the questions.

        An empty question list from the model ends the interview with
        ``NO_FURTHER_QUESTIONS``.
        """
        decision = self.controller.assess(description, transcript, classification.confidence)
        if decision.stop:
            return decision, []

        questions = await self.clarifier.generate_questions(
            description, classification, transcript, decision.question_budget
        )
        if not questions:
            logger.info("interview_stopped", code=StopReason.NO_FURTHER_QUESTIONS.value)
            decision = InterviewDecision(
                stop=True,
                code=StopReason.NO_FURTHER_QUESTIONS,
                reason="No further questions needed",
                advisory=decision.advisory,
            )
        return decision, questions

    async def extract_attributes(
        self,
        description: str,
        transcript: Sequence[ConversationTurn] = (),
    ) -> ExtractedAttributes:
        return await self.extractor.extract(description, transcript)

    async def evaluate_rules(
        self,
        attributes: ExtractedAttributes,
        classification: RawClassification,
        rule_set_version: str | None = None,
    ) -> EvaluationResult:
        """Bind one rule set snapshot and evaluate against it."""
        if rule_set_version is not None:
            rule_set = await self.rule_store.get_rule_set(rule_set_version)
        else:
            try:
                rule_set = await self.rule_store.get_active_rule_set()
            except RuleSetNotFoundError:
                logger.warning("no_active_rule_set")
                rule_set = None
        return self.rule_engine.evaluate(attributes, classification, rule_set)

    # -- Full turn --

    async def process_turn(
        self,
        conversation_id: str,
        description: str,
        transcript: Sequence[ConversationTurn] = (),
    ) -> TurnResult:
        """Run one turn; concurrent turns for the same conversation are rejected."""
        with bind_conversation(conversation_id):
            async with self.guard.hold(conversation_id):
                return await self._run_turn(conversation_id, description, tuple(transcript))

    async def _run_turn(
        self,
        conversation_id: str,
        description: str,
        transcript: tuple[ConversationTurn, ...],
    ) -> TurnResult:
        logger.info("turn_started", turns=len(transcript))

        classification = await self.classify(description, transcript)
        action = self.route_next_action(classification, description, transcript)

        if action == DecisionAction.MANUAL_REVIEW:
            logger.info("turn_complete", outcome="manual_review")
            return TurnResult(
                conversation_id=conversation_id,
                action=action,
                classification=classification,
                requires_manual_review=True,
            )

        attributes = await self.extract_attributes(description, transcript)
        warnings: list[str] = []
        if attributes.extraction_error:
            warnings.append(f"Attribute extraction degraded: {attributes.extraction_error}")

        decision = None
        if action == DecisionAction.CLARIFY:
            decision, questions = await self.continue_interview(description, transcript, classification)
            if not decision.stop:
                logger.info("turn_complete", outcome="clarify", questions=len(questions))
                return TurnResult(
                    conversation_id=conversation_id,
                    action=action,
                    classification=classification,
                    questions=questions,
                    advisory=decision.advisory,
                    attributes=attributes,
                    warnings=warnings,
                )

        evaluation = await self.evaluate_rules(attributes, classification)
        logger.info(
            "turn_complete",
            outcome="evaluated",
            stop_code=decision.code.value if decision and decision.code else None,
            final_category=evaluation.final.category.value,
        )
        return TurnResult(
            conversation_id=conversation_id,
            action=action,
            classification=classification,
            stop_code=decision.code if decision else None,
            stop_reason=decision.reason if decision else None,
            advisory=decision.advisory if decision else None,
            attributes=attributes,
            evaluation=evaluation,
            requires_manual_review=evaluation.flagged_for_review,
            warnings=warnings,
        )


def build_orchestrator(
    settings: Settings | None = None,
    llm: TextGenerator | None = None,
    rule_store: RuleStore | None = None,
    guard: ConversationGuard | None = None,
) -> PipelineOrchestrator:
    """Wire every component from settings."""
    settings = settings or get_settings()
    llm = llm or OpenAIChatClient(settings)
    degenerate = DegenerateResponseDetector(settings.degenerate_response_patterns)
    controller = InterviewController(InterviewLimits.from_settings(settings))

    if rule_store is None:
        if settings.rule_store_backend == Backend.SUPABASE:
            rule_store = SupabaseRuleStore()
        else:
            rule_store = InMemoryRuleStore(DEFAULT_RULES)

    if guard is None:
        if settings.conversation_guard_backend == Backend.REDIS:
            guard = RedisConversationGuard(settings.redis_url, settings.conversation_lock_ttl_seconds)
        else:
            guard = InMemoryConversationGuard()

    return PipelineOrchestrator(
        classifier=ClassificationService(llm, controller, degenerate),
        clarifier=ClarificationService(llm, controller, degenerate),
        extractor=AttributeExtractor(llm, degenerate=degenerate),
        router=ConfidenceRouter(RoutingThresholds.from_settings(settings)),
        controller=controller,
        rule_engine=RuleEngine(settings.override_policy),
        rule_store=rule_store,
        guard=guard,
    )
