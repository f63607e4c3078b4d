"""Domain models for wizard form sessions."""

from dataclasses import dataclass, field

from listing_wizard.domain.assets import Asset, AssetKind
from listing_wizard.domain.listings import ListingType

SESSION_ACTIVE = "ACTIVE"
SESSION_SUBMITTED = "SUBMITTED"
SESSION_ABANDONED = "ABANDONED"


@dataclass
class FormSession:
    """Root aggregate for one in-progress listing."""

    form_id: str
    record: dict[str, object] = field(default_factory=dict)
    active_step_index: int = 0
    visited_steps: set[int] = field(default_factory=lambda: {0})
    media_assets: list[Asset] = field(default_factory=list)
    document_assets: list[Asset] = field(default_factory=list)
    featured_media_index: int = 0
    errors: dict[str, str] = field(default_factory=dict)
    listing_id: str | None = None
    deleted_media_refs: list[str] = field(default_factory=list)
    deleted_document_refs: list[str] = field(default_factory=list)
    status: str = SESSION_ACTIVE

    @property
    def discriminant(self) -> ListingType | None:
        """Currently selected listing type, if valid."""
        return ListingType.parse(self.record.get("type"))

    @property
    def is_edit(self) -> bool:
        return self.listing_id is not None

    def assets(self, kind: AssetKind) -> list[Asset]:
        """Return the live asset list for a kind."""
        if kind is AssetKind.MEDIA:
            return self.media_assets
        return self.document_assets


@dataclass(frozen=True)
class SessionSnapshot:
    """Serializable view of a session as written to the draft store."""

    form_id: str
    record: dict[str, object]
    active_step_index: int
    visited_steps: tuple[int, ...]
    featured_media_index: int
    media: tuple[dict[str, object], ...]
    documents: tuple[dict[str, object], ...]
    listing_id: str | None = None
    deleted_media_refs: tuple[str, ...] = ()
    deleted_document_refs: tuple[str, ...] = ()
