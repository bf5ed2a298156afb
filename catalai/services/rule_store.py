"""
Rule Storage.

Hands out immutable, versioned rule set snapshots. Publishing a new
version never changes a snapshot that an evaluation already holds, so
edits made while a turn is in flight cannot affect it.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol, Sequence

from pydantic import ValidationError

from catalai.exceptions import RuleSetNotFoundError
from catalai.logging_config import get_logger
from catalai.schemas.classification import TransformationCategory
from catalai.schemas.rules import (
    ActionType,
    Condition,
    Operator,
    Rule,
    RuleAction,
    RuleSet,
)

logger = get_logger(__name__)


class RuleStore(Protocol):
    async def get_active_rule_set(self) -> RuleSet:
        ...

    async def get_rule_set(self, version: str) -> RuleSet:
        ...


# Baseline rules shipped with a fresh deployment
DEFAULT_RULES: tuple[Rule, ...] = (
    Rule(
        rule_id="restricted-data-review",
        name="Restricted data needs review",
        description="Processes touching restricted data are always checked by a person.",
        priority=90,
        conditions=(Condition(attribute="data_sensitivity", operator=Operator.EQ, value="restricted"),),
        action=RuleAction(type=ActionType.FLAG_REVIEW, rationale="Restricted data handling"),
    ),
    Rule(
        rule_id="critical-risk-no-autonomy",
        name="Critical risk lowers confidence",
        priority=80,
        conditions=(Condition(attribute="risk", operator=Operator.EQ, value="critical"),),
        action=RuleAction(
            type=ActionType.ADJUST_CONFIDENCE,
            confidence_adjustment=-0.2,
            rationale="Critical-risk processes need stronger evidence before automation",
        ),
    ),
    Rule(
        rule_id="low-value-eliminate",
        name="Low value, low frequency",
        priority=60,
        conditions=(
            Condition(attribute="business_value", operator=Operator.EQ, value="low"),
            Condition(attribute="frequency", operator=Operator.IN, value=["annually", "ad-hoc"]),
        ),
        action=RuleAction(
            type=ActionType.OVERRIDE,
            target_category=TransformationCategory.ELIMINATE,
            rationale="Rarely run and of little value",
        ),
    ),
    Rule(
        rule_id="daily-small-team-simplify",
        name="Daily task for a small team",
        priority=50,
        conditions=(
            Condition(attribute="frequency", operator=Operator.EQ, value="daily"),
            Condition(attribute="user_count", operator=Operator.EQ, value="1-5"),
        ),
        action=RuleAction(
            type=ActionType.OVERRIDE,
            target_category=TransformationCategory.SIMPLIFY,
            rationale="Small teams gain most from simplifying before automating",
        ),
    ),
    Rule(
        rule_id="paper-based-digitise",
        name="Paper-based rule-following work",
        priority=40,
        conditions=(
            Condition(attribute="current_state", operator=Operator.IN, value=["manual", "paper_based"]),
            Condition(attribute="judgment_required", operator=Operator.EQ, value="no"),
        ),
        action=RuleAction(
            type=ActionType.OVERRIDE,
            target_category=TransformationCategory.DIGITISE,
            rationale="Work must be digital before it can be automated",
        ),
    ),
)


class InMemoryRuleStore:
    """
    Process-local versioned store.

    Versions are sequential integers rendered as strings ("1", "2", ...).
    """

    def __init__(self, initial_rules: Sequence[Rule] | None = None) -> None:
        self._versions: dict[str, RuleSet] = {}
        self._active: str | None = None
        self._lock = asyncio.Lock()
        if initial_rules is not None:
            self._install(initial_rules, description="Initial rule set", created_by="system")

    async def publish(
        self,
        rules: Sequence[Rule],
        description: str = "",
        created_by: str = "admin",
    ) -> RuleSet:
        async with self._lock:
            return self._install(rules, description, created_by)

    async def get_active_rule_set(self) -> RuleSet:
        if self._active is None:
            raise RuleSetNotFoundError("No active rule set")
        return self._versions[self._active]

    async def get_rule_set(self, version: str) -> RuleSet:
        try:
            return self._versions[version]
        except KeyError:
            raise RuleSetNotFoundError(f"Rule set version {version!r} not found") from None

    def _install(self, rules: Sequence[Rule], description: str, created_by: str) -> RuleSet:
        version = str(len(self._versions) + 1)
        rule_set = RuleSet(
            version=version,
            rules=tuple(rules),
            description=description,
            created_by=created_by,
        )
        self._versions[version] = rule_set
        self._active = version
        logger.info("rule_set_published", version=version, rules=len(rule_set.rules), created_by=created_by)
        return rule_set


class SupabaseRuleStore:
    """Reads rule set snapshots from the ``rule_sets`` table."""

    def __init__(self, db: Any = None) -> None:
        if db is None:
            from catalai.db import get_db
            db = get_db()
        self.db = db

    async def get_active_rule_set(self) -> RuleSet:
        row = self.db.fetch_active_rule_set()
        if not row:
            raise RuleSetNotFoundError("No active rule set")
        return self._to_rule_set(row)

    async def get_rule_set(self, version: str) -> RuleSet:
        row = self.db.fetch_rule_set(version)
        if not row:
            raise RuleSetNotFoundError(f"Rule set version {version!r} not found")
        return self._to_rule_set(row)

    async def publish(
        self,
        rules: Sequence[Rule],
        description: str = "",
        created_by: str = "admin",
        version: str | None = None,
    ) -> RuleSet:
        current = self.db.fetch_active_rule_set()
        if version is None:
            version = str(int(current["version"]) + 1) if current and str(current["version"]).isdigit() else "1"
        rule_set = RuleSet(version=version, rules=tuple(rules), description=description, created_by=created_by)
        self.db.insert_rule_set(rule_set_to_row(rule_set))
        logger.info("rule_set_published", version=version, rules=len(rule_set.rules), backend="supabase")
        return rule_set

    def _to_rule_set(self, row: dict[str, Any]) -> RuleSet:
        try:
            return RuleSet(
                version=str(row["version"]),
                rules=tuple(Rule.model_validate(r) for r in row.get("rules") or []),
                description=row.get("description") or "",
                created_by=row.get("created_by") or "admin",
            )
        except (KeyError, ValidationError) as e:
            logger.error("rule_set_invalid", version=row.get("version"), error=str(e))
            raise RuleSetNotFoundError(f"Rule set {row.get('version')!r} is invalid: {e}") from e


def rule_set_to_row(rule_set: RuleSet) -> dict[str, Any]:
    return {
        "version": rule_set.version,
        "description": rule_set.description,
        "created_by": rule_set.created_by,
        "rules": [r.model_dump(mode="json") for r in rule_set.rules],
    }
