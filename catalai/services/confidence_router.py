"""
Confidence Router.

Decides what happens after a classification: accept it, ask the user
more questions, or hand it to a human reviewer. A pure function of the
confidence score, the quality of the raw description and whether an
interview has already started.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from catalai.config import Settings, get_settings
from catalai.logging_config import get_logger
from catalai.schemas.classification import DecisionAction, TextQuality
from catalai.schemas.conversation import ConversationTurn
from catalai.services.text_signals import assess_text_quality

logger = get_logger(__name__)


@dataclass(frozen=True)
class RoutingThresholds:
    manual_review_below: float = 0.50
    clarify_up_to: float = 0.90
    marginal_clarify_up_to: float = 0.92

    @classmethod
    def from_settings(cls, settings: Settings) -> RoutingThresholds:
        return cls(
            manual_review_below=settings.manual_review_threshold,
            clarify_up_to=settings.clarify_upper_threshold,
            marginal_clarify_up_to=settings.marginal_auto_threshold,
        )


class ConfidenceRouter:
    """
    First matching policy wins:

    1. confidence below ``manual_review_below`` -> manual_review
    2. confidence up to ``clarify_up_to`` -> clarify
    3. otherwise, with an empty transcript, a poor description (or a
       marginal one at or below ``marginal_clarify_up_to``) -> clarify
    4. auto_classify
    """

    def __init__(self, thresholds: RoutingThresholds | None = None) -> None:
        self.thresholds = thresholds or RoutingThresholds.from_settings(get_settings())

    def quality_for_routing(
        self, description: str, transcript: Sequence[ConversationTurn]
    ) -> TextQuality:
        # An interview is assumed to have made up for a thin description.
        if transcript:
            return TextQuality.GOOD
        return assess_text_quality(description)

    def decide(
        self,
        confidence: float,
        description: str,
        transcript: Sequence[ConversationTurn] = (),
    ) -> DecisionAction:
        t = self.thresholds

        if confidence < t.manual_review_below:
            action = DecisionAction.MANUAL_REVIEW
            quality = None
        elif confidence <= t.clarify_up_to:
            action = DecisionAction.CLARIFY
            quality = None
        else:
            quality = self.quality_for_routing(description, transcript)
            if quality == TextQuality.POOR:
                action = DecisionAction.CLARIFY
            elif quality == TextQuality.MARGINAL and confidence <= t.marginal_clarify_up_to:
                action = DecisionAction.CLARIFY
            else:
                action = DecisionAction.AUTO_CLASSIFY

        logger.info(
            "route_decided",
            action=action.value,
            confidence=confidence,
            quality=quality.value if quality else None,
            turns=len(transcript),
        )
        return action
