"""
Error taxonomy for the classification pipeline.

Failures of the text-generation collaborator propagate as ``LLMError``
subclasses and are never coerced into a default classification.
Interview termination and low-confidence routing are ordinary return
values and have no exception here.
"""

from __future__ import annotations


class CatalaiError(Exception):
    """Base class for every error raised by this package."""


class LLMError(CatalaiError):
    """The text-generation call failed (transport, HTTP status or timeout)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(LLMError):
    """Model output did not parse to the expected schema, or was degenerate."""


class ValidationFailure(MalformedResponseError):
    """Model output parsed but carried out-of-range values."""


class ConversationBusyError(CatalaiError):
    """Another turn for the same conversation is already in flight."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation {conversation_id} already has a turn in progress")
        self.conversation_id = conversation_id


class RuleSetNotFoundError(CatalaiError):
    """No rule set is active, or the requested version does not exist."""
