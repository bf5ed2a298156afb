"""
Audit Service.

Writes an immutable record of every terminal turn outcome (rule
evaluation, manual-review hand-off, interview stop) to the Supabase
``audit_log`` table. A failed write is logged and never breaks the turn.
"""

from __future__ import annotations

from typing import Any

from catalai.logging_config import get_logger
from catalai.schemas.turn import TurnResult

logger = get_logger(__name__)


class AuditService:

    def __init__(self, db: Any = None) -> None:
        self._db = db

    @property
    def db(self) -> Any:
        if self._db is None:
            from catalai.db import get_db
            self._db = get_db()
        return self._db

    async def record_turn(self, result: TurnResult, actor: str = "system") -> dict[str, Any] | None:
        """Record a terminal turn. Non-terminal turns (questions pending) are skipped."""
        if not result.is_terminal:
            return None

        if result.evaluation is not None:
            action = "rule_evaluation"
        elif result.requires_manual_review:
            action = "manual_review"
        else:
            action = "turn_complete"

        return await self._log_audit(
            entity_type="conversation",
            entity_id=result.conversation_id,
            action=action,
            actor=actor,
            changes=build_audit_changes(result),
        )

    async def _log_audit(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        actor: str = "system",
        changes: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        try:
            row = self.db.insert_audit_entry({
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
                "actor": actor,
                "changes": changes or {},
            })
            logger.info("audit_recorded", entity_id=entity_id, action=action)
            return row
        except Exception as e:
            logger.error("audit_log_error", entity_id=entity_id, action=action, error=str(e))
            return None


def build_audit_changes(result: TurnResult) -> dict[str, Any]:
    """JSON-safe summary of what the turn decided and why."""
    changes: dict[str, Any] = {
        "route_action": result.action.value,
        "classification": result.classification.model_dump(mode="json"),
        "requires_manual_review": result.requires_manual_review,
    }
    if result.stop_code is not None:
        changes["stop_code"] = result.stop_code.value
        changes["stop_reason"] = result.stop_reason
    if result.evaluation is not None:
        ev = result.evaluation
        changes.update({
            "rule_set_version": ev.rule_set_version,
            "triggered_rule_ids": ev.triggered_rule_ids,
            "final_classification": ev.final.model_dump(mode="json"),
            "overridden": ev.overridden,
            "flagged_for_review": ev.flagged_for_review,
            "attributes": ev.attributes,
        })
    if result.warnings:
        changes["warnings"] = result.warnings
    return changes
