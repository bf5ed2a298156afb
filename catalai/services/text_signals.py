"""
Textual Signal Detectors.

Keyword heuristics used by the confidence router (description quality),
the interview controller (completeness gate) and context compression
(key-fact extraction). Each detector is a small named predicate over
lower-cased text so it can be tested and extended on its own.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from catalai.schemas.classification import TextQuality


@dataclass(frozen=True)
class SignalDetector:
    """A named regex test for one category of information."""
    name: str
    pattern: re.Pattern[str]

    def __call__(self, text: str) -> bool:
        return bool(self.pattern.search(text))


def _detector(name: str, words: str) -> SignalDetector:
    return SignalDetector(name=name, pattern=re.compile(rf"\b(?:{words})\b", re.IGNORECASE))


FREQUENCY = _detector(
    "frequency",
    r"daily|weekly|monthly|hourly|quarterly|annually|yearly|every|once|twice|times?\s+(?:a|per)",
)
VOLUME = _detector(
    "volume",
    r"\d+|many|few|several|multiple|hundreds?|thousands?|transactions|users|people|volume",
)
CURRENT_STATE = _detector(
    "current_state",
    r"currently|now|today|manual(?:ly)?|paper|digital|automated|system|tool|software|spreadsheets?|excel|legacy",
)
COMPLEXITY = _detector(
    "complexity",
    r"steps?|process|workflow|involves?|requires?|needs?|systems?|departments?|approvals?",
)
PAIN_POINTS = _detector(
    "pain_points",
    r"problems?|issues?|slow|errors?|mistakes?|difficult|time-consuming|inefficient|frustrating|pain|bottlenecks?|delays?",
)
DATA_SOURCE = _detector(
    "data_source",
    r"emails?|forms?|databases?|erp|crm|api|inbox|upload|invoices?|documents?|pdfs?|automate|automation|bots?",
)

# Scored for the 0-5 information score of a raw description.
QUALITY_DETECTORS: tuple[SignalDetector, ...] = (
    FREQUENCY,
    VOLUME,
    CURRENT_STATE,
    COMPLEXITY,
    PAIN_POINTS,
)

# Six fact categories checked by the interview completeness gate.
COMPLETENESS_DETECTORS: tuple[SignalDetector, ...] = QUALITY_DETECTORS + (DATA_SOURCE,)


def detected_signals(
    text: str,
    detectors: Sequence[SignalDetector] = QUALITY_DETECTORS,
) -> list[str]:
    """Names of the detectors that fire on ``text``."""
    lowered = text.lower()
    return [d.name for d in detectors if d(lowered)]


def information_score(text: str) -> int:
    return len(detected_signals(text, QUALITY_DETECTORS))


def word_count(text: str) -> int:
    return len(text.split())


def assess_text_quality(description: str) -> TextQuality:
    """
    Classify a raw description as poor, marginal or good.

    poor: fewer than 20 words or fewer than 2 signal categories.
    good: more than 50 words and at least 3 signal categories.
    """
    words = word_count(description)
    score = information_score(description)

    if words < 20 or score < 2:
        return TextQuality.POOR
    if words > 50 and score >= 3:
        return TextQuality.GOOD
    return TextQuality.MARGINAL


# ── Key facts for context compression ────────────────────────────

FactExtractor = Callable[[str], Optional[str]]


def _match_fact(label: str, pattern: str) -> FactExtractor:
    compiled = re.compile(pattern, re.IGNORECASE)

    def extract(text: str) -> Optional[str]:
        match = compiled.search(text)
        return f"{label}: {match.group(0)}" if match else None

    return extract


def _flag_fact(fact: str, pattern: str) -> FactExtractor:
    compiled = re.compile(pattern, re.IGNORECASE)

    def extract(text: str) -> Optional[str]:
        return fact if compiled.search(text) else None

    return extract


def _current_state_fact(text: str) -> Optional[str]:
    if re.search(r"\b(?:manual(?:ly)?|paper(?:-based)?|spreadsheets?|excel)\b", text):
        return "Current state: Manual/paper-based process"
    if re.search(r"\b(?:digital|system|automated|software|tool)\b", text):
        return "Current state: Digital/system-based"
    return None


KEY_FACT_EXTRACTORS: tuple[FactExtractor, ...] = (
    _match_fact(
        "Process frequency",
        r"\b(?:daily|weekly|monthly|hourly|quarterly|annually|every\s+\w+|once|twice|\d+\s+times?\s+(?:a|per)\s+\w+)\b",
    ),
    _match_fact(
        "Scale",
        r"\b\d+\s+(?:users?|people|employees?|transactions?|requests?|cases?|invoices?)\b",
    ),
    _current_state_fact,
    _match_fact("Process complexity", r"\b\d+\s+(?:steps?|stages?|phases?)\b"),
    _match_fact("Systems involved", r"\b\d+\s+(?:systems?|applications?|tools?)\b"),
    _flag_fact(
        "Pain point: Time-consuming process",
        r"\b(?:slow|time-consuming|takes\s+\d+\s+(?:hours?|minutes?|days?))\b",
    ),
    _flag_fact("Pain point: Error-prone", r"\b(?:error-prone|mistakes?|errors?)\b"),
    _flag_fact("Business value: High/Critical", r"\b(?:critical|essential|vital|important|high\s+priority)\b"),
    _flag_fact("Data sensitivity: High", r"\b(?:sensitive|confidential|restricted|pii|personal\s+data)\b"),
)


def extract_key_facts(
    answers: Iterable[str],
    extractors: Sequence[FactExtractor] = KEY_FACT_EXTRACTORS,
) -> list[str]:
    """Run every fact extractor over the joined, lower-cased answers."""
    text = " ".join(answers).lower()
    facts: list[str] = []
    for extractor in extractors:
        fact = extractor(text)
        if fact:
            facts.append(fact)
    return facts
