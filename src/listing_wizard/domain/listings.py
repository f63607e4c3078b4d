"""Domain models for marketplace listings."""

from dataclasses import dataclass, field
from enum import Enum


class ListingType(str, Enum):
    """Discriminant selecting the listing variant."""

    BUSINESS = "business"
    FRANCHISE = "franchise"
    STARTUP = "startup"
    INVESTOR = "investor"
    DIGITAL_ASSET = "digital_asset"

    @classmethod
    def parse(cls, value: object) -> "ListingType | None":
        """Return the matching listing type, or None for unknown values."""
        if isinstance(value, ListingType):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class ListingStatus(str, Enum):
    """Publication status of a listing."""

    DRAFT = "draft"
    PENDING = "pending"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ListingPlan(str, Enum):
    """Subscription plan attached to a listing."""

    FREE = "free"
    BASIC = "basic"
    ADVANCED = "advanced"
    PREMIUM = "premium"


DETAILS_PREFIX: dict[ListingType, str] = {
    ListingType.BUSINESS: "businessDetails",
    ListingType.FRANCHISE: "franchiseDetails",
    ListingType.STARTUP: "startupDetails",
    ListingType.INVESTOR: "investorDetails",
    ListingType.DIGITAL_ASSET: "digitalAssetDetails",
}

MAX_CLASSIFICATIONS = 3
MAX_SUBCATEGORIES = 3


@dataclass(frozen=True)
class ClassificationEntry:
    """One industry -> category -> subcategories selection."""

    industry: str = ""
    industry_name: str = ""
    category: str = ""
    category_name: str = ""
    sub_categories: tuple[str, ...] = field(default_factory=tuple)
    sub_category_names: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "ClassificationEntry":
        """Build an entry from its record representation."""
        sub_categories = payload.get("subCategories") or []
        sub_category_names = payload.get("subCategoryNames") or []
        return cls(
            industry=str(payload.get("industry") or ""),
            industry_name=str(payload.get("industryName") or ""),
            category=str(payload.get("category") or ""),
            category_name=str(payload.get("categoryName") or ""),
            sub_categories=tuple(str(item) for item in sub_categories),
            sub_category_names=tuple(str(item) for item in sub_category_names),
        )

    def to_dict(self) -> dict[str, object]:
        """Return the record representation of this entry."""
        return {
            "industry": self.industry,
            "industryName": self.industry_name,
            "category": self.category,
            "categoryName": self.category_name,
            "subCategories": list(self.sub_categories),
            "subCategoryNames": list(self.sub_category_names),
        }


@dataclass(frozen=True)
class TaxonomyOption:
    """Selectable industry, category or subcategory."""

    id: str
    name: str
