"""
Supabase Database Client.

Provides a singleton instance of the Supabase client and typed helper
methods for the tables this service touches: versioned rule sets
(``rule_sets``) and the audit trail (``audit_log``).
"""

from __future__ import annotations

from typing import Any, Optional

from supabase import Client, create_client

from catalai.config import get_settings
from catalai.logging_config import get_logger

logger = get_logger(__name__)

RULE_SETS_TABLE = "rule_sets"
AUDIT_LOG_TABLE = "audit_log"


class DatabaseClient:
    """Wrapper around the official Supabase Python client."""

    _instance: Optional[DatabaseClient] = None
    _client: Client

    def __new__(cls) -> DatabaseClient:
        """Singleton pattern to ensure only one client instance."""
        if cls._instance is None:
            instance = super().__new__(cls)
            settings = get_settings()

            if not settings.supabase_url or not settings.supabase_service_key:
                logger.warning(
                    "supabase_credentials_missing",
                    url=bool(settings.supabase_url),
                    key=bool(settings.supabase_service_key),
                )

            try:
                instance._client = create_client(
                    settings.supabase_url,
                    settings.supabase_service_key,
                )
                logger.info("supabase_client_initialized", url=settings.supabase_url)
            except Exception as e:
                logger.error("supabase_client_init_failed", error=str(e))
                raise
            cls._instance = instance

        return cls._instance

    @property
    def client(self) -> Client:
        """Access the raw Supabase client."""
        return self._client

    def fetch_active_rule_set(self) -> dict[str, Any] | None:
        """Newest rule set row flagged active."""
        response = (
            self.client.table(RULE_SETS_TABLE)
            .select("*")
            .eq("active", True)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    def fetch_rule_set(self, version: str) -> dict[str, Any] | None:
        response = (
            self.client.table(RULE_SETS_TABLE)
            .select("*")
            .eq("version", version)
            .limit(1)
            .execute()
        )
        return response.data[0] if response.data else None

    def insert_rule_set(self, row: dict[str, Any]) -> dict[str, Any] | None:
        """Insert a new rule set version and deactivate the previous ones."""
        self.client.table(RULE_SETS_TABLE).update({"active": False}).eq("active", True).execute()
        response = self.client.table(RULE_SETS_TABLE).insert({**row, "active": True}).execute()
        return response.data[0] if response.data else None

    def insert_audit_entry(self, entry: dict[str, Any]) -> dict[str, Any] | None:
        response = self.client.table(AUDIT_LOG_TABLE).insert(entry).execute()
        return response.data[0] if response.data else None


# Global accessor
def get_db() -> DatabaseClient:
    return DatabaseClient()
