"""
LLM Client.

Thin async wrapper around the OpenAI chat completions endpoint, plus the
shared helpers that turn raw model text into JSON: known-degenerate
response detection and lenient JSON extraction. Retries and backoff are
left to the provider; every failure here surfaces as an ``LLMError``.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import httpx

from catalai.config import Settings, get_settings
from catalai.exceptions import LLMError, MalformedResponseError
from catalai.logging_config import get_logger

logger = get_logger(__name__)

_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class TextGenerator(Protocol):
    """What the pipeline needs from a language model: messages in, text out."""

    async def chat(self, messages: Sequence[ChatMessage], json_mode: bool = True) -> str:
        ...


class OpenAIChatClient:
    """
    Calls ``/chat/completions`` and returns the first choice's content.

    A fresh ``httpx.AsyncClient`` is opened per call; ``transport`` lets
    tests substitute ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport

    async def chat(self, messages: Sequence[ChatMessage], json_mode: bool = True) -> str:
        s = self.settings
        payload: dict[str, Any] = {
            "model": s.llm_model,
            "messages": [m.as_dict() for m in messages],
            "temperature": s.llm_temperature,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            async with httpx.AsyncClient(
                base_url=s.openai_base_url,
                timeout=s.llm_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    "/chat/completions",
                    headers={
                        "Authorization": f"Bearer {s.openai_api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            logger.error("llm_call_failed", reason="timeout", error=str(e))
            raise LLMError("Language model request timed out") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("llm_call_failed", reason="http_status", status=status)
            raise LLMError(f"Language model returned HTTP {status}", status_code=status) from e
        except httpx.HTTPError as e:
            logger.error("llm_call_failed", reason="transport", error=str(e))
            raise LLMError(f"Language model request failed: {e}") from e
        except ValueError as e:
            raise MalformedResponseError("Language model response was not JSON") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError("No content in language model response") from e
        if not isinstance(content, str):
            raise MalformedResponseError("No content in language model response")

        logger.debug("llm_call_complete", model=s.llm_model, response_length=len(content))
        return content


class DegenerateResponseDetector:
    """Matches known-bad model outputs before any schema parsing happens."""

    def __init__(self, patterns: Sequence[str] | None = None) -> None:
        if patterns is None:
            patterns = get_settings().degenerate_response_patterns
        self._patterns = [re.compile(p, re.IGNORECASE) for p in patterns]

    def match(self, content: str) -> str | None:
        for pattern in self._patterns:
            if pattern.search(content):
                return pattern.pattern
        return None

    def check(self, content: str) -> None:
        matched = self.match(content)
        if matched is not None:
            logger.error("degenerate_response", pattern=matched, preview=content[:80])
            raise MalformedResponseError(
                f"Language model returned a degenerate response: {content.strip()[:80]!r}"
            )


def parse_json_payload(content: str, expect: type = dict) -> Any:
    """
    Pull the first JSON object (or array) out of model text.

    Models sometimes wrap JSON in prose or code fences, so the outermost
    braces are located before decoding.
    """
    pattern = _ARRAY_RE if expect is list else _OBJECT_RE
    match = pattern.search(content)
    if not match:
        kind = "array" if expect is list else "object"
        raise MalformedResponseError(f"No JSON {kind} found in response")

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Invalid JSON in response: {e.msg}") from e

    if not isinstance(parsed, expect):
        raise MalformedResponseError(f"Expected JSON {expect.__name__}, got {type(parsed).__name__}")
    return parsed
