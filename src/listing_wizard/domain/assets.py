"""Domain models for uploaded media and documents."""

from dataclasses import dataclass, replace
from enum import Enum


class AssetKind(str, Enum):
    """Which attachment list an asset belongs to."""

    MEDIA = "media"
    DOCUMENT = "document"


class AssetState(str, Enum):
    """Lifecycle state of an attachment."""

    PENDING = "placeholder-pending"
    UPLOADING = "uploading"
    COMMITTED = "committed"
    ERROR = "error"
    ORPHANED = "placeholder-orphaned"


class AssetEvent(str, Enum):
    """Events driving the asset state machine."""

    START = "start"
    PROGRESS = "progress"
    COMMIT = "commit"
    FAIL = "fail"
    ORPHAN = "orphan"


ASSET_TRANSITIONS: dict[tuple[AssetState, AssetEvent], AssetState] = {
    (AssetState.PENDING, AssetEvent.START): AssetState.UPLOADING,
    (AssetState.PENDING, AssetEvent.FAIL): AssetState.ERROR,
    (AssetState.UPLOADING, AssetEvent.PROGRESS): AssetState.UPLOADING,
    (AssetState.UPLOADING, AssetEvent.COMMIT): AssetState.COMMITTED,
    (AssetState.UPLOADING, AssetEvent.FAIL): AssetState.ERROR,
    (AssetState.ERROR, AssetEvent.START): AssetState.UPLOADING,
    (AssetState.ORPHANED, AssetEvent.START): AssetState.UPLOADING,
    (AssetState.COMMITTED, AssetEvent.ORPHAN): AssetState.ORPHANED,
}

IN_FLIGHT_STATES = frozenset({AssetState.PENDING, AssetState.UPLOADING})
RETRYABLE_STATES = frozenset({AssetState.ERROR, AssetState.ORPHANED})
EPHEMERAL_URL_PREFIXES = ("blob:", "data:", "local:")


class InvalidAssetTransitionError(ValueError):
    """Raised when an event is not allowed from the asset's current state."""

    def __init__(self, asset_id: str, state: AssetState, event: AssetEvent) -> None:
        super().__init__(
            f"Asset {asset_id}: cannot apply {event.value} in {state.value}"
        )
        self.asset_id = asset_id
        self.state = state
        self.event = event


@dataclass(frozen=True)
class Asset:
    """An image or document attached to the listing."""

    id: str
    kind: AssetKind
    name: str
    content_type: str
    size: int
    state: AssetState
    progress: int = 0
    durable_ref: str | None = None
    url: str | None = None
    preview_ref: str | None = None
    error: str | None = None
    category: str | None = None
    document_type: str | None = None
    existing: bool = False


@dataclass(frozen=True)
class StoredObject:
    """Durable storage location returned after an upload."""

    durable_ref: str
    url: str


def transition(asset: Asset, event: AssetEvent, **changes: object) -> Asset:
    """Apply an event to an asset, returning the updated copy."""
    target = ASSET_TRANSITIONS.get((asset.state, event))
    if target is None:
        raise InvalidAssetTransitionError(asset.id, asset.state, event)
    return replace(asset, state=target, **changes)


def is_durable_url(url: str | None) -> bool:
    """Return true for URLs that survive a reload."""
    return bool(url) and not url.startswith(EPHEMERAL_URL_PREFIXES)


DOCUMENT_CATEGORIES: tuple[str, ...] = (
    "essential",
    "financial",
    "operational",
    "legal",
    "identity",
    "sale",
    "franchise",
    "training",
    "pitch",
    "product",
    "market",
    "investment",
    "portfolio",
    "process",
    "technical",
    "verification",
    "other",
)

_CATEGORY_ALIASES: dict[str, str] = {
    "required": "essential",
    "required documents": "essential",
    "finance": "financial",
    "finances": "financial",
    "financial statements": "financial",
    "financial reports": "financial",
    "profit and loss": "financial",
    "income statement": "financial",
    "balance sheet": "financial",
    "cash flow": "financial",
    "tax returns": "financial",
    "accounting": "financial",
    "operations": "operational",
    "business operations": "operational",
    "law": "legal",
    "agreements": "legal",
    "identification": "identity",
    "id": "identity",
    "selling": "sale",
    "sell": "sale",
    "training & support": "training",
    "support": "training",
    "market research": "market",
    "tech": "technical",
}


def normalize_document_category(raw: str | None) -> str:
    """Map free-text category names onto the canonical identifiers."""
    if not raw:
        return "other"
    cleaned = raw.strip().lower()
    if cleaned.endswith(" documents"):
        cleaned = cleaned.removesuffix(" documents")
    if cleaned in DOCUMENT_CATEGORIES:
        return cleaned
    return _CATEGORY_ALIASES.get(cleaned, "other")
