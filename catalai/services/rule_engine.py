"""
Rule Engine.

Applies a prioritised, human-authored rule set to the extracted
attributes and adjusts the model's classification deterministically:
rules can override the category, nudge the confidence, or flag the
result for review. Every triggered rule is recorded in evaluation order
so reviewers can see exactly which rules changed the outcome.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from catalai.config import OverridePolicy, get_settings
from catalai.logging_config import get_logger
from catalai.schemas.classification import RawClassification, TransformationCategory
from catalai.schemas.extraction import ExtractedAttributes
from catalai.schemas.rules import (
    ActionType,
    Condition,
    EvaluationResult,
    Operator,
    Rule,
    RuleSet,
    TriggeredRule,
)

logger = get_logger(__name__)


@dataclass
class _WorkingClassification:
    """Mutable state updated as triggered rules are applied."""
    category: TransformationCategory
    confidence: float
    rationale: str
    overridden: bool = False
    flagged: bool = False

    def freeze(self, original: RawClassification) -> RawClassification:
        return original.model_copy(update={
            "category": self.category,
            "confidence": self.confidence,
            "rationale": self.rationale,
        })


class RuleEngine:
    """
    Evaluates active rules by descending priority (ties keep input order).

    With ``OverridePolicy.LAST_WINS`` every triggered override replaces
    the working category in turn, so the lowest-priority override has the
    final word. With ``FIRST_WINS`` later overrides are recorded but not
    applied.
    """

    def __init__(self, override_policy: OverridePolicy | None = None) -> None:
        self.override_policy = override_policy or get_settings().override_policy

    def evaluate(
        self,
        attributes: ExtractedAttributes | Mapping[str, Any],
        classification: RawClassification,
        rule_set: RuleSet | None,
    ) -> EvaluationResult:
        values = attributes.values() if isinstance(attributes, ExtractedAttributes) else dict(attributes)

        if rule_set is None:
            logger.info("evaluation_skipped", reason="no_rule_set")
            return EvaluationResult(original=classification, final=classification, attributes=values)

        ordered = sorted(
            (r for r in rule_set.rules if r.active),
            key=lambda r: r.priority,
            reverse=True,
        )

        working = _WorkingClassification(
            category=classification.category,
            confidence=classification.confidence,
            rationale=classification.rationale,
        )
        triggered: list[TriggeredRule] = []

        for rule in ordered:
            if not rule_matches(rule, values):
                continue
            applied = self._apply(rule, working)
            triggered.append(TriggeredRule(
                rule_id=rule.rule_id,
                rule_name=rule.name,
                priority=rule.priority,
                action=rule.action,
                applied=applied,
            ))
            logger.info(
                "rule_triggered",
                rule_id=rule.rule_id,
                action=rule.action.type.value,
                applied=applied,
            )

        result = EvaluationResult(
            original=classification,
            final=working.freeze(classification),
            triggered_rules=tuple(triggered),
            overridden=working.overridden,
            flagged_for_review=working.flagged,
            rule_set_version=rule_set.version,
            attributes=values,
        )

        logger.info(
            "evaluation_complete",
            rule_set_version=rule_set.version,
            rules_evaluated=len(ordered),
            triggered=result.triggered_rule_ids,
            original_category=classification.category.value,
            final_category=result.final.category.value,
            overridden=result.overridden,
            flagged=result.flagged_for_review,
        )
        return result

    def _apply(self, rule: Rule, working: _WorkingClassification) -> bool:
        action = rule.action
        note = action.rationale or rule.name

        if action.type == ActionType.OVERRIDE:
            if working.overridden and self.override_policy == OverridePolicy.FIRST_WINS:
                return False
            working.category = action.target_category
            working.overridden = True
            working.rationale += f"\n\nOverridden by rule {rule.name}: {note}"

        elif action.type == ActionType.ADJUST_CONFIDENCE:
            working.confidence = min(1.0, max(0.0, working.confidence + action.confidence_adjustment))
            working.rationale += f"\n\nConfidence adjusted by rule {rule.name}: {note}"

        elif action.type == ActionType.FLAG_REVIEW:
            working.flagged = True
            working.rationale += f"\n\nFlagged for review by rule {rule.name}: {note}"

        return True


def rule_matches(rule: Rule, values: Mapping[str, Any]) -> bool:
    """A rule triggers only when every one of its conditions holds."""
    return all(condition_matches(c, values) for c in rule.conditions)


def condition_matches(condition: Condition, values: Mapping[str, Any]) -> bool:
    actual = values.get(condition.attribute)
    if actual is None:
        return False

    op = condition.operator
    expected = condition.value

    if op == Operator.EQ:
        return _equals(actual, expected)
    if op == Operator.NE:
        return not _equals(actual, expected)
    if op == Operator.IN:
        return any(_equals(actual, item) for item in expected)
    if op == Operator.NOT_IN:
        return not any(_equals(actual, item) for item in expected)

    left, right = _as_number(actual), _as_number(expected)
    if left is None or right is None:
        return False
    if op == Operator.GT:
        return left > right
    if op == Operator.LT:
        return left < right
    if op == Operator.GE:
        return left >= right
    if op == Operator.LE:
        return left <= right
    return False


def _equals(actual: Any, expected: Any) -> bool:
    # Model output casing varies ("Daily" vs "daily")
    if isinstance(actual, str) and isinstance(expected, str):
        return actual.strip().casefold() == expected.strip().casefold()
    left, right = _as_number(actual), _as_number(expected)
    if left is not None and right is not None:
        return left == right
    return actual == expected


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None
