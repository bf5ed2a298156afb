"""
Data models for the human-authored rule set and its evaluation results.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from catalai.schemas.classification import RawClassification, TransformationCategory

MIN_PRIORITY = 0
MAX_PRIORITY = 100


class Operator(str, Enum):
    EQ = "=="
    NE = "!="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    IN = "in"
    NOT_IN = "not_in"


class ActionType(str, Enum):
    OVERRIDE = "override"
    ADJUST_CONFIDENCE = "adjust_confidence"
    FLAG_REVIEW = "flag_review"


class Condition(BaseModel):
    """One attribute predicate."""

    model_config = ConfigDict(frozen=True)

    attribute: str = Field(min_length=1)
    operator: Operator
    value: Any

    @model_validator(mode="after")
    def _membership_needs_list(self) -> "Condition":
        if self.operator in (Operator.IN, Operator.NOT_IN) and not isinstance(self.value, (list, tuple)):
            raise ValueError(f"operator {self.operator.value!r} requires a list value")
        return self


class RuleAction(BaseModel):
    """
    Effect of a triggered rule.

    ``target_category`` belongs to override only and ``confidence_adjustment``
    to adjust_confidence only; an action never carries both.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: ActionType
    target_category: Optional[TransformationCategory] = Field(default=None, alias="targetCategory")
    confidence_adjustment: Optional[float] = Field(
        default=None, ge=-1.0, le=1.0, alias="confidenceAdjustment"
    )
    rationale: str = ""

    @model_validator(mode="after")
    def _check_payload(self) -> "RuleAction":
        if self.target_category is not None and self.confidence_adjustment is not None:
            raise ValueError("an action cannot both override and adjust confidence")
        if self.type == ActionType.OVERRIDE and self.target_category is None:
            raise ValueError("override action requires target_category")
        if self.type == ActionType.ADJUST_CONFIDENCE and self.confidence_adjustment is None:
            raise ValueError("adjust_confidence action requires confidence_adjustment")
        if self.type == ActionType.FLAG_REVIEW and (
            self.target_category is not None or self.confidence_adjustment is not None
        ):
            raise ValueError("flag_review action takes no target or adjustment")
        return self


class Rule(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    rule_id: str = Field(min_length=1, alias="ruleId")
    name: str
    description: str = ""
    priority: int = Field(ge=MIN_PRIORITY, le=MAX_PRIORITY)
    active: bool = True
    conditions: tuple[Condition, ...] = ()
    action: RuleAction


class RuleSet(BaseModel):
    """An immutable, versioned snapshot of the rule collection."""

    model_config = ConfigDict(frozen=True)

    version: str
    rules: tuple[Rule, ...] = ()
    description: str = ""
    created_by: str = "admin"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _unique_rule_ids(self) -> "RuleSet":
        seen: set[str] = set()
        for rule in self.rules:
            if rule.rule_id in seen:
                raise ValueError(f"duplicate rule id {rule.rule_id!r}")
            seen.add(rule.rule_id)
        return self


class TriggeredRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule_id: str
    rule_name: str
    priority: int
    action: RuleAction
    applied: bool = True


class EvaluationResult(BaseModel):
    """Final auditable outcome of rule evaluation."""

    model_config = ConfigDict(frozen=True)

    original: RawClassification
    final: RawClassification
    triggered_rules: tuple[TriggeredRule, ...] = ()
    overridden: bool = False
    flagged_for_review: bool = False
    rule_set_version: Optional[str] = None
    attributes: dict[str, Any] = Field(default_factory=dict)

    @property
    def triggered_rule_ids(self) -> list[str]:
        return [t.rule_id for t in self.triggered_rules]
