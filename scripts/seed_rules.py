"""
Rule Set Seeding Script.

Publishes the default rule set to the Supabase `rule_sets` table,
unless an active rule set is already there.

Usage:
    python scripts/seed_rules.py [--force]
"""

import argparse
import asyncio
import os
import sys

# Add project root to path so we can import catalai
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from dotenv import load_dotenv
load_dotenv(".env.local")

from catalai.db import get_db
from catalai.logging_config import setup_logging, get_logger
from catalai.services.rule_store import DEFAULT_RULES, SupabaseRuleStore

setup_logging()
logger = get_logger(__name__)


async def seed(force: bool = False) -> None:
    db = get_db()
    store = SupabaseRuleStore(db)

    logger.info("seeding_rule_sets")

    existing = db.fetch_active_rule_set()
    if existing and not force:
        logger.info("seed_skipped", active_version=existing["version"])
        return

    rule_set = await store.publish(
        DEFAULT_RULES,
        description="Default rule set",
        created_by="seed_script",
    )
    logger.info("seed_complete", version=rule_set.version, rules=len(rule_set.rules))


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the default classification rule set")
    parser.add_argument("--force", action="store_true", help="Publish even if a rule set is already active")
    args = parser.parse_args()
    asyncio.run(seed(force=args.force))


if __name__ == "__main__":
    main()
