"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field

import pytest

from listing_wizard.config import Settings
from listing_wizard.containers import AppContainer
from listing_wizard.domain.assets import AssetKind, AssetState, StoredObject
from listing_wizard.services.cache import InMemoryCache
from listing_wizard.services.persistence import KeyValueStore
from listing_wizard.services.taxonomy import TaxonomyClient, TaxonomyService
from listing_wizard.services.uploads import LocalFile, ObjectStorage, ProgressCallback
from listing_wizard.services.wizard import (
    ListingRepository,
    ListingWizard,
    WizardRegistry,
    WizardService,
)

DESCRIPTION = (
    "A well established neighbourhood grocery store with loyal customers, "
    "steady margins and a long lease on a busy high street corner."
)
OPERATIONS = (
    "Open seven days a week with two shifts. Stock is replenished twice a week "
    "from three regional wholesalers under standing orders."
)
REASON = "The owner is relocating abroad and wants a quick, clean handover."


@dataclass
class InMemoryKeyValueStore(KeyValueStore):
    """In-memory draft store that can simulate write failures."""

    data: dict[str, str] = field(default_factory=dict)
    failing_writes: int = 0
    writes: list[str] = field(default_factory=list)

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.failing_writes > 0:
            self.failing_writes -= 1
            raise OSError("disk full")
        self.writes.append(key)
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def keys(self, prefix: str) -> list[str]:
        return sorted(key for key in self.data if key.startswith(prefix))


@dataclass
class FakeObjectStorage(ObjectStorage):
    """Fake storage; files can be told to hang or fail by name."""

    hang: set[str] = field(default_factory=set)
    fail: set[str] = field(default_factory=set)
    fail_deletes: bool = False
    uploaded: dict[str, bytes] = field(default_factory=dict)
    deleted: list[str] = field(default_factory=list)
    resolvable: set[str] = field(default_factory=set)
    attempts: list[str] = field(default_factory=list)

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: str,
        on_progress: ProgressCallback,
    ) -> StoredObject:
        name = path.rsplit("/", 1)[-1].split("_", 1)[-1]
        self.attempts.append(name)
        if name in self.hang:
            await asyncio.Event().wait()
        await asyncio.sleep(0)
        on_progress(50)
        if name in self.fail:
            raise RuntimeError("storage unavailable")
        self.uploaded[path] = data
        on_progress(100)
        return StoredObject(durable_ref=path, url=f"https://cdn.example.com/{path}")

    async def delete(self, durable_ref: str) -> None:
        if self.fail_deletes:
            raise RuntimeError("delete failed")
        self.deleted.append(durable_ref)

    def resolve_url(self, durable_ref: str) -> str | None:
        if durable_ref in self.uploaded or durable_ref in self.resolvable:
            return f"https://cdn.example.com/{durable_ref}"
        return None


@dataclass
class FakeTaxonomyClient(TaxonomyClient):
    """Fake taxonomy client with a small fixed hierarchy."""

    industries: list[dict[str, object]] = field(
        default_factory=lambda: [
            {"id": "ind-retail", "name": "Retail"},
            {"id": "ind-tech", "name": "Technology"},
        ]
    )
    categories: dict[str, list[dict[str, object]]] = field(
        default_factory=lambda: {
            "ind-retail": [{"id": "cat-grocery", "name": "Grocery"}],
            "ind-tech": [{"id": "cat-software", "name": "Software"}],
        }
    )
    subcategories: dict[str, list[dict[str, object]]] = field(
        default_factory=lambda: {
            "cat-grocery": [
                {"id": "sub-organic", "name": "Organic"},
                {"id": "sub-bakery", "name": "Bakery"},
                {"id": "sub-dairy", "name": "Dairy"},
                {"id": "sub-frozen", "name": "Frozen"},
            ],
            "cat-software": [{"id": "sub-saas", "name": "SaaS"}],
        }
    )
    delay: float = 0
    calls: list[tuple[str, str | None]] = field(default_factory=list)

    async def list_industries(self) -> list[dict[str, object]]:
        self.calls.append(("industries", None))
        await asyncio.sleep(self.delay)
        return self.industries

    async def list_categories(self, industry_id: str) -> list[dict[str, object]]:
        self.calls.append(("categories", industry_id))
        await asyncio.sleep(self.delay)
        return self.categories.get(industry_id, [])

    async def list_subcategories(self, category_id: str) -> list[dict[str, object]]:
        self.calls.append(("subcategories", category_id))
        await asyncio.sleep(self.delay)
        return self.subcategories.get(category_id, [])


@dataclass
class InMemoryListingRepository(ListingRepository):
    """In-memory listing service for tests."""

    listings: dict[str, dict[str, object]] = field(default_factory=dict)
    created: list[tuple[dict, list, list]] = field(default_factory=list)
    updated: list[dict[str, object]] = field(default_factory=list)
    fail: bool = False

    def create_listing(
        self,
        payload: dict[str, object],
        media: list[dict[str, object]],
        documents: list[dict[str, object]],
    ) -> str:
        if self.fail:
            raise RuntimeError("listing service down")
        listing_id = f"listing-{len(self.created) + 1}"
        self.created.append((payload, media, documents))
        self.listings[listing_id] = {**payload, "media": media, "documents": documents}
        return listing_id

    def update_listing(  # noqa: PLR0913
        self,
        listing_id: str,
        payload: dict[str, object],
        new_media: list[dict[str, object]],
        new_documents: list[dict[str, object]],
        deleted_media_refs: list[str],
        deleted_document_refs: list[str],
    ) -> None:
        if self.fail:
            raise RuntimeError("listing service down")
        self.updated.append(
            {
                "listing_id": listing_id,
                "payload": payload,
                "new_media": new_media,
                "new_documents": new_documents,
                "deleted_media_refs": deleted_media_refs,
                "deleted_document_refs": deleted_document_refs,
            }
        )

    def get_listing(self, listing_id: str) -> dict[str, object] | None:
        return self.listings.get(listing_id)


def image(name: str, size: int = 1024) -> LocalFile:
    return LocalFile(name=name, content_type="image/jpeg", data=b"x" * size)


def document(name: str, size: int = 2048) -> LocalFile:
    return LocalFile(name=name, content_type="application/pdf", data=b"d" * size)


def fill_basic_info(wizard: ListingWizard, listing_type: str = "business") -> None:
    """Fill every basic-info field with valid values."""
    wizard.set_field("type", listing_type)
    wizard.set_field("name", "Corner Grocery")
    wizard.add_classification()
    wizard.select_industry(0, "ind-retail", "Retail")
    wizard.select_category(0, "cat-grocery", "Grocery")
    wizard.toggle_subcategory(0, "sub-organic", "Organic")
    wizard.set_field("description", DESCRIPTION)
    wizard.set_field("location.state", "Karnataka")
    wizard.set_field("location.city", "Bengaluru")
    wizard.set_field("contactInfo.email", "owner@example.com")


def fill_business_details(wizard: ListingWizard) -> None:
    values = {
        "businessDetails.businessType": "retail",
        "businessDetails.entityType": "llc",
        "businessDetails.establishedYear": 2010,
        "businessDetails.operations.employees.count": 10,
        "businessDetails.operations.employees.fullTime": 8,
        "businessDetails.operations.locationType": "owned_property",
        "businessDetails.operations.operationDescription": OPERATIONS,
        "businessDetails.financials.annualRevenue.value": 5_000_000,
        "businessDetails.financials.profitMargin.percentage": 12,
        "businessDetails.sale.askingPrice.value": 9_000_000,
        "businessDetails.sale.reasonForSelling": REASON,
        "businessDetails.sale.transitionPeriod": 3,
    }
    for path, value in values.items():
        wizard.set_field(path, value)


async def commit_images(wizard: ListingWizard, count: int = 3) -> None:
    """Upload ``count`` images and wait for them to commit."""
    for position in range(count):
        wizard.upload(AssetKind.MEDIA, image(f"photo-{position}.jpg"))
    await wizard.uploads.settle()
    assert all(
        asset.state is AssetState.COMMITTED for asset in wizard.session.media_assets
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        draft_directory=str(tmp_path / "drafts"),
    )


@pytest.fixture
def drafts() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def storage() -> FakeObjectStorage:
    return FakeObjectStorage()


@pytest.fixture
def listing_repository() -> InMemoryListingRepository:
    return InMemoryListingRepository()


@pytest.fixture
def taxonomy_client() -> FakeTaxonomyClient:
    return FakeTaxonomyClient()


@pytest.fixture
def taxonomy_service(taxonomy_client: FakeTaxonomyClient) -> TaxonomyService:
    return TaxonomyService(client=taxonomy_client, cache=InMemoryCache())


@pytest.fixture
def wizard_service(
    drafts: InMemoryKeyValueStore,
    storage: FakeObjectStorage,
    listing_repository: InMemoryListingRepository,
    taxonomy_service: TaxonomyService,
) -> WizardService:
    return WizardService(
        drafts=drafts,
        storage=storage,
        listings=listing_repository,
        taxonomy=taxonomy_service,
        persist_debounce_seconds=0.01,
        upload_stall_timeout_seconds=0.05,
        uploading_flag_debounce_seconds=0.01,
    )


@pytest.fixture
def container(
    settings: Settings,
    taxonomy_service: TaxonomyService,
    wizard_service: WizardService,
) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        taxonomy_service=taxonomy_service,
        wizard_service=wizard_service,
        wizards=WizardRegistry(),
        close_resources=close_resources,
    )
