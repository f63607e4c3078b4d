"""Supabase Storage adapter for uploaded files."""

import asyncio
from dataclasses import dataclass

from supabase import Client

from listing_wizard.domain.assets import StoredObject
from listing_wizard.services.uploads import ObjectStorage, ProgressCallback


@dataclass
class SupabaseObjectStorage(ObjectStorage):
    """Stores listing files in a Supabase Storage bucket."""

    client: Client
    bucket: str = "listings"

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: str,
        on_progress: ProgressCallback,
    ) -> StoredObject:
        """Upload bytes and return the stored path with its public URL."""
        on_progress(0)
        bucket = self.client.storage.from_(self.bucket)
        await asyncio.to_thread(
            bucket.upload,
            path,
            data,
            {"content-type": content_type, "upsert": "false"},
        )
        on_progress(100)
        return StoredObject(durable_ref=path, url=bucket.get_public_url(path))

    async def delete(self, durable_ref: str) -> None:
        bucket = self.client.storage.from_(self.bucket)
        await asyncio.to_thread(bucket.remove, [durable_ref])

    def resolve_url(self, durable_ref: str) -> str | None:
        if not durable_ref:
            return None
        return self.client.storage.from_(self.bucket).get_public_url(durable_ref)
