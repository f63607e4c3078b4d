"""Supabase-backed draft store."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from listing_wizard.services.persistence import KeyValueStore


@dataclass
class SupabaseDraftStore(KeyValueStore):
    """Supabase implementation of the draft key-value store."""

    client: Client
    table: str = "form_drafts"

    def get(self, key: str) -> str | None:
        response = (
            self.client.table(self.table)
            .select("key, value")
            .eq("key", key)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return response.data[0]["value"]

    def set(self, key: str, value: str) -> None:
        self.client.table(self.table).upsert(
            {
                "key": key,
                "value": value,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            },
            on_conflict="key",
        ).execute()

    def delete(self, key: str) -> None:
        self.client.table(self.table).delete().eq("key", key).execute()

    def keys(self, prefix: str) -> list[str]:
        response = (
            self.client.table(self.table)
            .select("key")
            .like("key", f"{prefix}%")
            .execute()
        )
        return sorted(row["key"] for row in response.data or [])
