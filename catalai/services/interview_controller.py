"""
Interview Controller.

Decides, once per turn, whether the clarifying interview should go on,
how many questions the next round may ask, and what context is handed
to the model. Stops on the hard turn limit, on repetitive or duplicated
questions, and when the user keeps answering "I don't know".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from itertools import combinations
from typing import Sequence

from catalai.config import Settings, get_settings
from catalai.logging_config import get_logger
from catalai.schemas.conversation import ConversationTurn, InterviewDecision, StopReason
from catalai.services.text_signals import (
    COMPLETENESS_DETECTORS,
    detected_signals,
    extract_key_facts,
)

logger = get_logger(__name__)

LOOP_MIN_TURNS = 3
LOOP_SHARED_KEYWORDS = 2
LOOP_MIN_PAIRS = 2
DUPLICATE_MIN_TURNS = 5
DUPLICATE_MIN_DISTINCT = 3
EXHAUSTION_MIN_TURNS = 5
EXHAUSTION_MIN_REFUSALS = 2

STOPWORDS = frozenset({
    "what", "which", "when", "where", "whom", "whose", "does", "there", "their",
    "they", "them", "that", "this", "these", "those", "your", "yours", "have",
    "about", "from", "into", "would", "could", "should", "will", "with", "many",
    "much", "more", "some", "often", "please", "describe", "tell", "explain",
    "were", "been", "being", "also", "other", "than", "then", "such",
})

_WORD_RE = re.compile(r"[a-z0-9][a-z0-9'-]*")

REFUSAL_PATTERN = re.compile(
    r"\b(?:i\s+(?:do\s*n[o']?t|dont)\s+know|idk|dunno|not\s+sure|no\s+idea|unsure|"
    r"i\s+can'?t\s+say|no\s+comment|don'?t\s+care|n/a|i'?ll\s+(?:skip|pass))\b"
    r"|^\s*(?:skip|pass)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class InterviewLimits:
    hard_limit: int = 15
    soft_limit: int = 8
    min_questions: int = 1
    max_questions: int = 3
    taper_questions: int = 2
    taper_after_turns: int = 5
    compression_threshold: int = 5
    recent_turns: int = 3
    completeness_min_categories: int = 4
    completeness_min_confidence: float = 0.90
    loop_window: int = 5
    exhaustion_window: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> InterviewLimits:
        return cls(
            hard_limit=settings.interview_hard_limit,
            soft_limit=settings.interview_soft_limit,
            min_questions=settings.interview_min_questions,
            max_questions=settings.interview_max_questions,
            taper_questions=settings.interview_taper_questions,
            taper_after_turns=settings.interview_taper_after_turns,
            compression_threshold=settings.compression_threshold,
            recent_turns=settings.compression_recent_turns,
            completeness_min_categories=settings.completeness_min_categories,
            completeness_min_confidence=settings.completeness_min_confidence,
            loop_window=settings.interview_loop_window,
            exhaustion_window=settings.interview_exhaustion_window,
        )


def question_keywords(question: str) -> set[str]:
    """Non-trivial words of a question: longer than three letters and not a stopword."""
    words = _WORD_RE.findall(question.lower().replace("’", "'"))
    return {w for w in words if len(w) > 3 and w not in STOPWORDS}


def is_refusal(answer: str) -> bool:
    return bool(REFUSAL_PATTERN.search(answer.replace("’", "'")))


class InterviewController:
    """
    Stateless per-turn interview policy.

    All limits come from ``InterviewLimits``; the controller keeps no
    state between calls, so the transcript passed in is the only record
    of the conversation.
    """

    def __init__(self, limits: InterviewLimits | None = None) -> None:
        self.limits = limits or InterviewLimits.from_settings(get_settings())

    # -- Stop conditions --

    def should_stop(self, transcript: Sequence[ConversationTurn]) -> InterviewDecision:
        """Check the stop conditions in order; the first one that holds wins."""
        turns = len(transcript)
        questions = [t.question for t in transcript]
        lim = self.limits

        if turns >= lim.hard_limit:
            return self._stop(
                StopReason.LIMIT_REACHED,
                f"Question limit reached ({turns}/{lim.hard_limit})",
                turns,
            )

        if turns >= LOOP_MIN_TURNS and self._is_repetitive(questions[-lim.loop_window:]):
            return self._stop(
                StopReason.REPETITIVE_QUESTIONS,
                "Repetitive questions detected",
                turns,
            )

        if turns >= DUPLICATE_MIN_TURNS:
            recent = questions[-lim.loop_window:]
            distinct = {q.strip().casefold() for q in recent}
            if len(distinct) < DUPLICATE_MIN_DISTINCT:
                return self._stop(
                    StopReason.DUPLICATE_QUESTIONS,
                    f"Duplicate questions detected ({len(distinct)} distinct in last {len(recent)})",
                    turns,
                )

        if turns >= EXHAUSTION_MIN_TURNS:
            refusals = sum(1 for t in transcript[-lim.exhaustion_window:] if is_refusal(t.answer))
            if refusals >= EXHAUSTION_MIN_REFUSALS:
                return self._stop(
                    StopReason.USER_EXHAUSTED,
                    "User appears unable to provide more information",
                    turns,
                )

        advisory = None
        if turns >= lim.soft_limit:
            advisory = f"Approaching question limit ({turns}/{lim.hard_limit})"
            logger.warning("interview_soft_limit", turns=turns, hard_limit=lim.hard_limit)

        return InterviewDecision(
            stop=False,
            advisory=advisory,
            question_budget=self.next_question_budget(transcript),
        )

    def next_question_budget(self, transcript: Sequence[ConversationTurn]) -> int:
        """
        ``max_questions`` on the first round, ``taper_questions`` until
        ``taper_after_turns`` turns, then ``min_questions``.
        """
        turns = len(transcript)
        lim = self.limits

        if turns == 0:
            budget = lim.max_questions
        elif turns < lim.taper_after_turns:
            budget = lim.taper_questions
        else:
            budget = lim.min_questions

        budget = max(lim.min_questions, min(lim.max_questions, budget))
        # Never plan past the hard limit
        return max(0, min(budget, lim.hard_limit - turns))

    # -- Completeness gate --

    def covered_categories(
        self, description: str, transcript: Sequence[ConversationTurn]
    ) -> list[str]:
        combined = " ".join([description, *(t.answer for t in transcript)])
        return detected_signals(combined, COMPLETENESS_DETECTORS)

    def is_complete(
        self,
        description: str,
        transcript: Sequence[ConversationTurn],
        confidence: float,
    ) -> bool:
        covered = self.covered_categories(description, transcript)
        return (
            len(covered) >= self.limits.completeness_min_categories
            and confidence > self.limits.completeness_min_confidence
        )

    def assess(
        self,
        description: str,
        transcript: Sequence[ConversationTurn],
        confidence: float,
    ) -> InterviewDecision:
        """Completeness gate first, then the ordered stop conditions."""
        if self.is_complete(description, transcript, confidence):
            return self._stop(
                StopReason.SUFFICIENT_INFORMATION,
                "Sufficient information gathered",
                len(transcript),
            )
        return self.should_stop(transcript)

    # -- Context for the model --

    def key_facts(self, transcript: Sequence[ConversationTurn]) -> list[str]:
        return extract_key_facts(t.answer for t in transcript)

    def build_context(self, description: str, transcript: Sequence[ConversationTurn]) -> str:
        """
        Render description and transcript for a prompt.

        Long transcripts are replaced by a list of key facts plus only
        the most recent turns.
        """
        context = f"Process Description:\n{description}\n\n"
        if not transcript:
            return context

        if len(transcript) < self.limits.compression_threshold:
            context += "Clarification Questions and Answers:\n"
            context += _render_turns(transcript)
            return context

        facts = self.key_facts(transcript)
        if facts:
            context += "Key Information Gathered:\n"
            context += "".join(f"- {fact}\n" for fact in facts)
            context += "\n"

        recent = transcript[-self.limits.recent_turns:]
        context += f"Recent Clarifications (last {len(recent)} of {len(transcript)}):\n"
        context += _render_turns(recent)
        return context

    # Private helpers

    def _is_repetitive(self, questions: Sequence[str]) -> bool:
        keyword_sets = [question_keywords(q) for q in questions]
        similar_pairs = sum(
            1
            for a, b in combinations(keyword_sets, 2)
            if len(a & b) >= LOOP_SHARED_KEYWORDS
        )
        return similar_pairs >= LOOP_MIN_PAIRS

    def _stop(self, code: StopReason, reason: str, turns: int) -> InterviewDecision:
        logger.info("interview_stopped", code=code.value, reason=reason, turns=turns)
        return InterviewDecision(stop=True, code=code, reason=reason)


def _render_turns(turns: Sequence[ConversationTurn]) -> str:
    return "".join(f"Q: {t.question}\nA: {t.answer}\n\n" for t in turns)
