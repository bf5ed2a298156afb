"""
API Router: Classification Pipeline Endpoints.

Exposes each pipeline operation on its own, plus ``/turn`` which runs a
full orchestrated conversational turn.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from catalai.config import get_settings
from catalai.exceptions import ConversationBusyError, LLMError, RuleSetNotFoundError
from catalai.logging_config import get_logger
from catalai.schemas.classification import DecisionAction, RawClassification
from catalai.schemas.conversation import ClarificationQuestion, ConversationTurn, StopReason
from catalai.schemas.extraction import ExtractedAttributes
from catalai.schemas.rules import EvaluationResult
from catalai.schemas.turn import TurnResult
from catalai.services.audit_service import AuditService
from catalai.services.pipeline import PipelineOrchestrator, build_orchestrator

logger = get_logger(__name__)
router = APIRouter(prefix="/process", tags=["Process"])

UNABLE_TO_CLASSIFY = "Unable to classify, try again or escalate to manual review"

# Shared instances (built on first use)
_orchestrator: PipelineOrchestrator | None = None
_audit: AuditService | None = None


def get_orchestrator() -> PipelineOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = build_orchestrator()
    return _orchestrator


def get_audit_service() -> AuditService | None:
    global _audit
    if not get_settings().feature_audit_log:
        return None
    if _audit is None:
        _audit = AuditService()
    return _audit


class DescriptionRequest(BaseModel):
    description: str = Field(min_length=1)
    transcript: list[ConversationTurn] = Field(default_factory=list)


class RouteRequest(DescriptionRequest):
    classification: RawClassification


class RouteResponse(BaseModel):
    action: DecisionAction


class InterviewRequest(RouteRequest):
    pass


class InterviewResponse(BaseModel):
    stop: bool
    code: Optional[StopReason] = None
    reason: str = ""
    advisory: Optional[str] = None
    question_budget: int = 0
    next_questions: list[ClarificationQuestion] = Field(default_factory=list)


class EvaluateRequest(BaseModel):
    attributes: ExtractedAttributes
    classification: RawClassification
    rule_set_version: Optional[str] = None


class TurnRequest(DescriptionRequest):
    conversation_id: str = Field(min_length=1)
    actor: str = "anonymous"


def _llm_failure(e: LLMError) -> HTTPException:
    logger.error("pipeline_llm_failure", error=str(e), status_code=e.status_code)
    return HTTPException(status_code=502, detail={"message": UNABLE_TO_CLASSIFY, "error": str(e)})


@router.post("/classify", response_model=RawClassification)
async def classify(
    body: DescriptionRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> RawClassification:
    try:
        return await orchestrator.classify(body.description, body.transcript)
    except LLMError as e:
        raise _llm_failure(e)


@router.post("/route", response_model=RouteResponse)
async def route(
    body: RouteRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> RouteResponse:
    action = orchestrator.route_next_action(body.classification, body.description, body.transcript)
    return RouteResponse(action=action)


@router.post("/interview", response_model=InterviewResponse)
async def interview(
    body: InterviewRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> InterviewResponse:
    try:
        decision, questions = await orchestrator.continue_interview(
            body.description, body.transcript, body.classification
        )
    except LLMError as e:
        raise _llm_failure(e)
    return InterviewResponse(**decision.model_dump(), next_questions=questions)


@router.post("/attributes", response_model=ExtractedAttributes)
async def attributes(
    body: DescriptionRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> ExtractedAttributes:
    try:
        return await orchestrator.extract_attributes(body.description, body.transcript)
    except LLMError as e:
        raise _llm_failure(e)


@router.post("/rules/evaluate", response_model=EvaluationResult)
async def evaluate_rules(
    body: EvaluateRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> EvaluationResult:
    try:
        return await orchestrator.evaluate_rules(
            body.attributes, body.classification, body.rule_set_version
        )
    except RuleSetNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/turn", response_model=TurnResult)
async def turn(
    body: TurnRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    audit: AuditService | None = Depends(get_audit_service),
) -> TurnResult:
    """Run one full conversational turn."""
    try:
        result = await orchestrator.process_turn(
            body.conversation_id, body.description, body.transcript
        )
    except ConversationBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except LLMError as e:
        raise _llm_failure(e)

    if audit is not None:
        await audit.record_turn(result, actor=body.actor)
    return result


@router.get("/rules/active")
async def active_rules(
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Current rule set snapshot, read-only."""
    try:
        rule_set = await orchestrator.rule_store.get_active_rule_set()
    except RuleSetNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return rule_set.model_dump(mode="json")
