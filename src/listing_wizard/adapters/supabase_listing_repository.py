"""Supabase-backed listing repository."""

from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from listing_wizard.services.wizard import ListingRepository


@dataclass
class SupabaseListingRepository(ListingRepository):
    """Supabase implementation of the remote listing service."""

    client: Client

    def create_listing(
        self,
        payload: dict[str, object],
        media: list[dict[str, object]],
        documents: list[dict[str, object]],
    ) -> str:
        """Insert a listing row and return its id."""
        response = (
            self.client.table("listings")
            .insert(
                {
                    "type": payload.get("type"),
                    "name": payload.get("name"),
                    "status": payload.get("status"),
                    "payload": payload,
                    "media": media,
                    "documents": documents,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create listing")
        return str(response.data[0]["id"])

    def update_listing(  # noqa: PLR0913
        self,
        listing_id: str,
        payload: dict[str, object],
        new_media: list[dict[str, object]],
        new_documents: list[dict[str, object]],
        deleted_media_refs: list[str],
        deleted_document_refs: list[str],
    ) -> None:
        """Merge new and deleted attachments into the stored listing."""
        current = self._get_row(listing_id)
        if current is None:
            raise RuntimeError(f"Listing {listing_id} not found")
        media = _merge(current.get("media"), new_media, deleted_media_refs)
        documents = _merge(
            current.get("documents"), new_documents, deleted_document_refs
        )
        self.client.table("listings").update(
            {
                "type": payload.get("type"),
                "name": payload.get("name"),
                "status": payload.get("status"),
                "payload": payload,
                "media": media,
                "documents": documents,
                "updated_at": datetime.now(tz=UTC).isoformat(),
            }
        ).eq("id", listing_id).execute()

    def get_listing(self, listing_id: str) -> dict[str, object] | None:
        """Return the stored payload with its attachments."""
        row = self._get_row(listing_id)
        if row is None:
            return None
        listing = dict(row.get("payload") or {})
        listing["id"] = str(row["id"])
        listing["media"] = row.get("media") or []
        listing["documents"] = row.get("documents") or []
        return listing

    def _get_row(self, listing_id: str) -> dict[str, object] | None:
        response = (
            self.client.table("listings")
            .select("id, payload, media, documents")
            .eq("id", listing_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return response.data[0]


def _merge(
    current: object,
    added: list[dict[str, object]],
    deleted_refs: list[str],
) -> list[dict[str, object]]:
    deleted = set(deleted_refs)
    kept = [
        item
        for item in current or []
        if isinstance(item, dict) and item.get("path") not in deleted
    ]
    return kept + [{**item, "existing": False} for item in added]
