"""
Unit tests for the rule set stores.
"""

from unittest.mock import Mock

import pytest

from catalai.exceptions import RuleSetNotFoundError
from catalai.schemas.rules import ActionType, Rule, RuleAction
from catalai.services.rule_store import (
    DEFAULT_RULES,
    InMemoryRuleStore,
    SupabaseRuleStore,
    rule_set_to_row,
)


def _rule(rule_id: str) -> Rule:
    return Rule(
        rule_id=rule_id,
        name=rule_id,
        priority=10,
        action=RuleAction(type=ActionType.FLAG_REVIEW),
    )


class TestInMemoryRuleStore:

    @pytest.mark.asyncio
    async def test_empty_store_has_no_active_set(self):
        with pytest.raises(RuleSetNotFoundError):
            await InMemoryRuleStore().get_active_rule_set()

    @pytest.mark.asyncio
    async def test_initial_rules_become_version_one(self):
        store = InMemoryRuleStore(DEFAULT_RULES)
        active = await store.get_active_rule_set()
        assert active.version == "1"
        assert len(active.rules) == len(DEFAULT_RULES)

    @pytest.mark.asyncio
    async def test_publish_creates_new_version_and_keeps_old_snapshot(self):
        store = InMemoryRuleStore([_rule("a")])
        held = await store.get_active_rule_set()

        published = await store.publish([_rule("b")], description="Swap", created_by="analyst")

        assert published.version == "2"
        assert (await store.get_active_rule_set()).version == "2"
        assert [r.rule_id for r in held.rules] == ["a"]
        assert [r.rule_id for r in (await store.get_rule_set("1")).rules] == ["a"]

    @pytest.mark.asyncio
    async def test_unknown_version(self):
        with pytest.raises(RuleSetNotFoundError):
            await InMemoryRuleStore([_rule("a")]).get_rule_set("9")


class TestSupabaseRuleStore:

    @pytest.fixture
    def db(self):
        return Mock()

    @pytest.mark.asyncio
    async def test_active_rule_set_from_row(self, db):
        row = rule_set_to_row(await InMemoryRuleStore(DEFAULT_RULES).get_active_rule_set())
        db.fetch_active_rule_set.return_value = {**row, "version": 4, "active": True}

        rule_set = await SupabaseRuleStore(db).get_active_rule_set()

        assert rule_set.version == "4"
        assert [r.rule_id for r in rule_set.rules] == [r.rule_id for r in DEFAULT_RULES]

    @pytest.mark.asyncio
    async def test_no_active_row(self, db):
        db.fetch_active_rule_set.return_value = None
        with pytest.raises(RuleSetNotFoundError):
            await SupabaseRuleStore(db).get_active_rule_set()

    @pytest.mark.asyncio
    async def test_invalid_row(self, db):
        db.fetch_rule_set.return_value = {"version": "2", "rules": [{"ruleId": "x", "priority": 500}]}
        with pytest.raises(RuleSetNotFoundError, match="invalid"):
            await SupabaseRuleStore(db).get_rule_set("2")

    @pytest.mark.asyncio
    async def test_publish_increments_version(self, db):
        db.fetch_active_rule_set.return_value = {"version": "3"}

        rule_set = await SupabaseRuleStore(db).publish([_rule("a")], created_by="analyst")

        assert rule_set.version == "4"
        inserted = db.insert_rule_set.call_args.args[0]
        assert inserted["version"] == "4"
        assert inserted["rules"][0]["rule_id"] == "a"

    @pytest.mark.asyncio
    async def test_first_publish_is_version_one(self, db):
        db.fetch_active_rule_set.return_value = None
        rule_set = await SupabaseRuleStore(db).publish([_rule("a")])
        assert rule_set.version == "1"
