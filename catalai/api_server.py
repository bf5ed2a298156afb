"""
FastAPI application for the classification pipeline.

Start with:
    uvicorn catalai.api_server:app --reload --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from dotenv import load_dotenv
load_dotenv(".env.local")

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from catalai.api.middleware import RateLimitMiddleware, RequestIdMiddleware
from catalai.api.process import get_orchestrator, router as process_router
from catalai.config import get_settings
from catalai.exceptions import RuleSetNotFoundError
from catalai.logging_config import get_logger, setup_logging
from catalai.services.conversation_guard import RedisConversationGuard
from catalai.services.pipeline import PipelineOrchestrator

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    logger.info(
        "api_server_starting",
        environment=settings.environment.value,
        llm_model=settings.llm_model,
        rule_store=settings.rule_store_backend.value,
        conversation_guard=settings.conversation_guard_backend.value,
    )
    if not settings.openai_api_key:
        logger.warning("openai_api_key_missing")

    guard = get_orchestrator().guard
    if isinstance(guard, RedisConversationGuard):
        await guard.initialize()
    try:
        yield
    finally:
        if isinstance(guard, RedisConversationGuard):
            await guard.close()
        logger.info("api_server_stopping")


app = FastAPI(
    title="CatalAI Classification API",
    description="Adaptive classification of business processes into transformation categories",
    version="0.1.0",
    lifespan=lifespan,
)

# Outermost first
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(process_router)


@app.get("/health", tags=["System"])
async def health_check(
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Liveness plus the rule set version new turns would bind to."""
    try:
        rule_set = await orchestrator.rule_store.get_active_rule_set()
        rule_set_version = rule_set.version
    except RuleSetNotFoundError:
        rule_set_version = None
    return {"status": "ok", "service": "catalai", "rule_set_version": rule_set_version}
