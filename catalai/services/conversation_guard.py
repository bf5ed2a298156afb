"""
Conversation Guard.

Keeps turns within one conversation strictly sequential. A second turn
for a conversation that already has one in flight is rejected with
``ConversationBusyError`` rather than queued, which keeps each
transcript append-only.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Protocol

import redis.asyncio as aioredis

from catalai.config import get_settings
from catalai.exceptions import ConversationBusyError
from catalai.logging_config import get_logger

logger = get_logger(__name__)

LOCK_KEY = "conversations:lock:{}"

# Delete the lock only if we still own it
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class ConversationGuard(Protocol):
    def hold(self, conversation_id: str) -> AsyncIterator[None]:
        ...


class InMemoryConversationGuard:
    """Single-process guard; check-and-claim happens without an await in between."""

    def __init__(self) -> None:
        self._active: set[str] = set()

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        if conversation_id in self._active:
            logger.warning("conversation_busy", conversation_id=conversation_id)
            raise ConversationBusyError(conversation_id)
        self._active.add(conversation_id)
        try:
            yield
        finally:
            self._active.discard(conversation_id)

    def is_held(self, conversation_id: str) -> bool:
        return conversation_id in self._active


class RedisConversationGuard:
    """
    Cross-process guard built on ``SET NX EX``.

    The TTL bounds how long a crashed worker can block a conversation.
    """

    def __init__(self, redis_url: str | None = None, ttl_seconds: int | None = None) -> None:
        settings = get_settings()
        self.redis_url = redis_url or settings.redis_url
        self.ttl_seconds = ttl_seconds or settings.conversation_lock_ttl_seconds
        self._redis: Optional[aioredis.Redis] = None

    async def initialize(self) -> None:
        """Connect to Redis."""
        self._redis = aioredis.from_url(self.redis_url, decode_responses=True)
        logger.info("conversation_guard_initialized", backend="redis")

    async def close(self) -> None:
        if self._redis:
            await self._redis.close()

    @property
    def redis(self) -> aioredis.Redis:
        if not self._redis:
            raise RuntimeError("RedisConversationGuard not initialized. Call initialize() first.")
        return self._redis

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        key = LOCK_KEY.format(conversation_id)
        token = uuid.uuid4().hex

        acquired = await self.redis.set(key, token, nx=True, ex=self.ttl_seconds)
        if not acquired:
            logger.warning("conversation_busy", conversation_id=conversation_id, backend="redis")
            raise ConversationBusyError(conversation_id)

        try:
            yield
        finally:
            await self.redis.eval(_RELEASE_SCRIPT, 1, key, token)
