"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

from supabase import create_client

from listing_wizard.adapters.file_draft_store import JsonFileKeyValueStore
from listing_wizard.adapters.supabase_draft_store import SupabaseDraftStore
from listing_wizard.adapters.supabase_listing_repository import (
    SupabaseListingRepository,
)
from listing_wizard.adapters.supabase_object_storage import SupabaseObjectStorage
from listing_wizard.adapters.taxonomy_client import HttpxTaxonomyClient
from listing_wizard.config import Settings, resolve_taxonomy_base_url
from listing_wizard.services.cache import InMemoryCache
from listing_wizard.services.persistence import KeyValueStore
from listing_wizard.services.taxonomy import TaxonomyService
from listing_wizard.services.wizard import WizardRegistry, WizardService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    taxonomy_service: TaxonomyService
    wizard_service: WizardService
    wizards: WizardRegistry
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    drafts: KeyValueStore
    if resolved_settings.draft_backend == "supabase":
        drafts = SupabaseDraftStore(supabase_client)
    else:
        drafts = JsonFileKeyValueStore(Path(resolved_settings.draft_directory))
    taxonomy_client = HttpxTaxonomyClient.create(
        api_key=resolved_settings.supabase_service_key,
        base_url=resolve_taxonomy_base_url(resolved_settings),
    )
    taxonomy_service = TaxonomyService(
        client=taxonomy_client,
        cache=InMemoryCache(),
        ttl_seconds=resolved_settings.taxonomy_cache_ttl_seconds,
    )
    wizard_service = WizardService(
        drafts=drafts,
        storage=SupabaseObjectStorage(
            supabase_client, bucket=resolved_settings.storage_bucket
        ),
        listings=SupabaseListingRepository(supabase_client),
        taxonomy=taxonomy_service,
        persist_debounce_seconds=resolved_settings.persist_debounce_seconds,
        upload_stall_timeout_seconds=resolved_settings.upload_stall_timeout_seconds,
        uploading_flag_debounce_seconds=(
            resolved_settings.uploading_flag_debounce_seconds
        ),
        min_media_count=resolved_settings.min_media_count,
        max_media_count=resolved_settings.max_media_count,
        max_image_bytes=resolved_settings.max_image_bytes,
        max_document_bytes=resolved_settings.max_document_bytes,
    )
    wizards = WizardRegistry()

    async def close_resources() -> None:
        await wizards.close_all()
        await taxonomy_client.close()

    return AppContainer(
        settings=resolved_settings,
        taxonomy_service=taxonomy_service,
        wizard_service=wizard_service,
        wizards=wizards,
        close_resources=close_resources,
    )
