"""Listing field catalogue and wizard step definitions."""

from collections.abc import Mapping
from datetime import UTC, datetime

from listing_wizard.domain.assets import AssetKind
from listing_wizard.domain.listings import (
    MAX_CLASSIFICATIONS,
    MAX_SUBCATEGORIES,
    ListingPlan,
    ListingStatus,
    ListingType,
)
from listing_wizard.domain.records import get_value
from listing_wizard.domain.schema import (
    FieldKind,
    FieldRule,
    OptionSource,
    RecordCheck,
    RecordPredicate,
    StepDefinition,
)

BASIC_INFO = "basic_info"
MEDIA = "media"
DETAILS = "details"
DOCUMENTS = "documents"
REVIEW = "review"

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
URL_PATTERN = r"^https?://[^\s/$.?#][^\s]*$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
DOMAIN_PATTERN = r"^(?!-)[A-Za-z0-9-]{1,63}(\.[A-Za-z0-9-]{1,63})+$"


def _equals(path: str, expected: object) -> RecordPredicate:
    return lambda record: get_value(record, path) == expected


def _one_of(path: str, expected: tuple[str, ...]) -> RecordPredicate:
    return lambda record: get_value(record, path) in expected


def _is_set(path: str) -> RecordPredicate:
    return lambda record: get_value(record, path) not in (None, "", "none")


def _not_future_year(path: str, label: str) -> RecordCheck:
    def check(record: Mapping[str, object]) -> str | None:
        value = get_value(record, path)
        if isinstance(value, int | float) and value > datetime.now(tz=UTC).year:
            return f"{label} cannot be in the future"
        return None

    return check


def _at_least(path: str, other: str, message: str) -> RecordCheck:
    def check(record: Mapping[str, object]) -> str | None:
        value = get_value(record, path)
        floor = get_value(record, other)
        if isinstance(value, int | float) and isinstance(floor, int | float):
            if value < floor:
                return message
        return None

    return check


_MANAGEMENT_HOURS: dict[str, tuple[float, float | None]] = {
    "passive": (0, 5),
    "semi_passive": (5, 20),
    "active": (20, None),
}


def _hours_match_management(record: Mapping[str, object]) -> str | None:
    ease = get_value(record, "digitalAssetDetails.easeOfManagement")
    hours = get_value(record, "digitalAssetDetails.ownerTimeRequired")
    if not isinstance(ease, str) or not isinstance(hours, int | float):
        return None
    bounds = _MANAGEMENT_HOURS.get(ease)
    if bounds is None:
        return None
    low, high = bounds
    if hours < low or (high is not None and hours > high):
        if high is None:
            return f"Active management should require {low:g}+ hours per week"
        label = ease.replace("_", "-")
        return (
            f"{label.title()} management should require "
            f"{low:g}-{high:g} hours per week"
        )
    return None


COMMON_RULES: tuple[FieldRule, ...] = (
    FieldRule(
        "type",
        BASIC_INFO,
        "Listing type",
        kind=FieldKind.CHOICE,
        required=True,
        choices=tuple(item.value for item in ListingType),
        message="Please select a listing type",
    ),
    FieldRule("name", BASIC_INFO, "Name", required=True, min_length=3, max_length=100),
    FieldRule(
        "classifications",
        BASIC_INFO,
        "Industries",
        kind=FieldKind.ENTRIES,
        required=True,
        min_items=1,
        max_items=MAX_CLASSIFICATIONS,
        message="Select at least one industry",
    ),
    FieldRule(
        "classifications.*.industry",
        BASIC_INFO,
        "Industry",
        required=True,
        options=OptionSource.INDUSTRIES,
        message="Select an industry",
    ),
    FieldRule("classifications.*.industryName", BASIC_INFO, "Industry name"),
    FieldRule(
        "classifications.*.category",
        BASIC_INFO,
        "Category",
        required=True,
        parent="classifications.*.industry",
        options=OptionSource.CATEGORIES,
        message="Select a category",
    ),
    FieldRule(
        "classifications.*.categoryName",
        BASIC_INFO,
        "Category name",
        parent="classifications.*.industry",
    ),
    FieldRule(
        "classifications.*.subCategories",
        BASIC_INFO,
        "Subcategories",
        kind=FieldKind.MULTI_CHOICE,
        required=True,
        min_items=1,
        max_items=MAX_SUBCATEGORIES,
        parent="classifications.*.category",
        options=OptionSource.SUBCATEGORIES,
        message="Select at least one subcategory",
    ),
    FieldRule(
        "classifications.*.subCategoryNames",
        BASIC_INFO,
        "Subcategory names",
        kind=FieldKind.MULTI_CHOICE,
        parent="classifications.*.category",
    ),
    FieldRule(
        "description",
        BASIC_INFO,
        "Description",
        required=True,
        min_length=100,
        max_length=5000,
    ),
    FieldRule("shortDescription", BASIC_INFO, "Short description", max_length=200),
    FieldRule(
        "status",
        BASIC_INFO,
        "Status",
        kind=FieldKind.CHOICE,
        required=True,
        choices=tuple(item.value for item in ListingStatus),
        message="Please select a status",
    ),
    FieldRule(
        "plan",
        BASIC_INFO,
        "Plan",
        kind=FieldKind.CHOICE,
        required=True,
        choices=tuple(item.value for item in ListingPlan),
        message="Please select a plan",
    ),
    FieldRule("location.country", BASIC_INFO, "Country", max_length=100),
    FieldRule(
        "location.state",
        BASIC_INFO,
        "State",
        required=True,
        message="State is required",
    ),
    FieldRule(
        "location.city",
        BASIC_INFO,
        "City",
        required=True,
        message="City is required",
    ),
    FieldRule("location.address", BASIC_INFO, "Address", max_length=300),
    FieldRule(
        "location.pincode",
        BASIC_INFO,
        "Pincode",
        pattern=r"^\d{6}$",
        pattern_message="Pincode must be 6 digits",
    ),
    FieldRule(
        "contactInfo.email",
        BASIC_INFO,
        "Email",
        kind=FieldKind.EMAIL,
        required=True,
        pattern=EMAIL_PATTERN,
        pattern_message="Please enter a valid email",
    ),
    FieldRule(
        "contactInfo.phone",
        BASIC_INFO,
        "Phone",
        pattern=r"^\+?[0-9 ()-]{7,20}$",
        pattern_message="Please enter a valid phone number",
    ),
    FieldRule(
        "contactInfo.website",
        BASIC_INFO,
        "Website",
        kind=FieldKind.URL,
        pattern=URL_PATTERN,
        pattern_message="Please enter a valid URL",
    ),
    FieldRule("contactInfo.contactName", BASIC_INFO, "Contact name", max_length=100),
    FieldRule(
        "media",
        MEDIA,
        "Images",
        kind=FieldKind.ASSETS,
        required=True,
    ),
)

_BUSINESS = "businessDetails."
_LEASED = _equals(f"{_BUSINESS}operations.locationType", "leased_commercial")
_FINANCED = _equals(f"{_BUSINESS}sale.sellerFinancing.isAvailable", True)

BUSINESS_RULES: tuple[FieldRule, ...] = (
    FieldRule(
        f"{_BUSINESS}businessType",
        DETAILS,
        "Business type",
        kind=FieldKind.CHOICE,
        required=True,
        choices=(
            "retail",
            "manufacturing",
            "service",
            "distribution",
            "f_and_b",
            "it",
            "healthcare",
            "other",
        ),
    ),
    FieldRule(
        f"{_BUSINESS}entityType",
        DETAILS,
        "Entity type",
        kind=FieldKind.CHOICE,
        required=True,
        choices=(
            "sole_proprietorship",
            "partnership",
            "llc",
            "private_limited",
            "llp",
            "corporation",
        ),
    ),
    FieldRule(
        f"{_BUSINESS}establishedYear",
        DETAILS,
        "Established year",
        kind=FieldKind.INTEGER,
        required=True,
        min_value=1900,
        check=_not_future_year(f"{_BUSINESS}establishedYear", "Established year"),
    ),
    FieldRule(
        f"{_BUSINESS}operations.employees.count",
        DETAILS,
        "Employee count",
        kind=FieldKind.INTEGER,
        required=True,
        min_value=1,
        max_value=100000,
    ),
    FieldRule(
        f"{_BUSINESS}operations.employees.fullTime",
        DETAILS,
        "Full-time employees",
        kind=FieldKind.INTEGER,
        required=True,
        min_value=0,
        max_value=100000,
        check=lambda record: (
            "Full-time employees cannot exceed the total employee count"
            if _exceeds(
                record,
                f"{_BUSINESS}operations.employees.fullTime",
                f"{_BUSINESS}operations.employees.count",
            )
            else None
        ),
    ),
    FieldRule(
        f"{_BUSINESS}operations.locationType",
        DETAILS,
        "Location type",
        kind=FieldKind.CHOICE,
        required=True,
        choices=(
            "leased_commercial",
            "owned_property",
            "home_based",
            "virtual",
            "mobile",
        ),
    ),
    FieldRule(
        f"{_BUSINESS}operations.leaseInformation.expiryDate",
        DETAILS,
        "Lease expiry date",
        kind=FieldKind.DATE,
        pattern=DATE_PATTERN,
        pattern_message="Lease expiry date must be a date (YYYY-MM-DD)",
        required_when=_LEASED,
        parent=f"{_BUSINESS}operations.locationType",
    ),
    FieldRule(
        f"{_BUSINESS}operations.leaseInformation.monthlyCost.value",
        DETAILS,
        "Monthly lease cost",
        kind=FieldKind.NUMBER,
        min_value=0,
        required_when=_LEASED,
        parent=f"{_BUSINESS}operations.locationType",
    ),
    FieldRule(
        f"{_BUSINESS}operations.operationDescription",
        DETAILS,
        "Operation description",
        required=True,
        min_length=100,
        max_length=1000,
    ),
    FieldRule(
        f"{_BUSINESS}financials.annualRevenue.value",
        DETAILS,
        "Annual revenue",
        kind=FieldKind.NUMBER,
        required=True,
        min_value=0,
    ),
    FieldRule(
        f"{_BUSINESS}financials.profitMargin.percentage",
        DETAILS,
        "Profit margin",
        kind=FieldKind.NUMBER,
        required=True,
        min_value=-100,
        max_value=100,
    ),
    FieldRule(
        f"{_BUSINESS}sale.askingPrice.value",
        DETAILS,
        "Asking price",
        kind=FieldKind.NUMBER,
        required=True,
        min_value=0,
    ),
    FieldRule(
        f"{_BUSINESS}sale.reasonForSelling",
        DETAILS,
        "Reason for selling",
        required=True,
        min_length=50,
        max_length=500,
    ),
    FieldRule(
        f"{_BUSINESS}sale.sellerFinancing.isAvailable",
        DETAILS,
        "Seller financing",
        kind=FieldKind.BOOLEAN,
    ),
    FieldRule(
        f"{_BUSINESS}sale.sellerFinancing.downPaymentPercentage",
        DETAILS,
        "Minimum down payment",
        kind=FieldKind.NUMBER,
        min_value=10,
        max_value=100,
        required_when=_FINANCED,
        parent=f"{_BUSINESS}sale.sellerFinancing.isAvailable",
    ),
    FieldRule(
        f"{_BUSINESS}sale.transitionPeriod",
        DETAILS,
        "Transition period",
        kind=FieldKind.INTEGER,
        required=True,
        min_value=0,
        max_value=12,
    ),
)


def _exceeds(record: Mapping[str, object], path: str, other: str) -> bool:
    value = get_value(record, path)
    ceiling = get_value(record, other)
    return (
        isinstance(value, int | float)
        and isinstance(ceiling, int | float)
        and value > ceiling
    )


_FRANCHISE = "franchiseDetails."

FRANCHISE_RULES: tuple[FieldRule, ...] = (
    FieldRule(
        f"{_FRANCHISE}franchiseBrand",
        DETAILS,
        "Franchise brand",
        required=True,
        min_length=2,
        max_length=100,
    ),
    FieldRule(
        f"{_FRANCHISE}franchiseSince",
        DETAILS,
        "Franchising since",
        kind=FieldKind.INTEGER,
        required=True,
        min_value=1900,
        check=_not_future_year(f"{_FRANCHISE}franchiseSince", "Franchising since"),
    ),
    FieldRule(
        f"{_FRANCHISE}totalUnits",
        DETAILS,
        "Total units",
        kind=FieldKind.INTEGER,
        required=True,
        min_value=1,
    ),
    FieldRule(
        f"{_FRANCHISE}investment.franchiseFee.value",
        DETAILS,
        "Franchise fee",
        kind=FieldKind.NUMBER,
        required=True,
        min_value=0,
    ),
    FieldRule(
        f"{_FRANCHISE}investment.totalInitialInvestment.value",
        DETAILS,
        "Total initial investment",
        kind=FieldKind.NUMBER,
        required=True,
        min_value=0,
    ),
    FieldRule(
        f"{_FRANCHISE}investment.royaltyStructure",
        DETAILS,
        "Royalty structure",
        kind=FieldKind.CHOICE,
        required=True,
        choices=("percentage", "fixed", "none"),
    ),
    FieldRule(
        f"{_FRANCHISE}investment.royaltyFee",
        DETAILS,
        "Royalty fee",
        kind=FieldKind.NUMBER,
        min_value=0,
        required_when=_is_set(f"{_FRANCHISE}investment.royaltyStructure"),
        parent=f"{_FRANCHISE}investment.royaltyStructure",
    ),
    FieldRule(
        f"{_FRANCHISE}support.initialTraining",
        DETAILS,
        "Initial training",
        required=True,
        min_length=20,
        max_length=1000,
    ),
    FieldRule(
        f"{_FRANCHISE}performance.liquidCapitalRequired.value",
        DETAILS,
        "Liquid capital required",
        kind=FieldKind.NUMBER,
        required=True,
        min_value=0,
    ),
)

_STARTUP = "startupDetails."

STARTUP_RULES: tuple[FieldRule, ...] = (
    FieldRule(
        f"{_STARTUP}developmentStage",
        DETAILS,
        "Development stage",
        kind=FieldKind.CHOICE,
        required=True,
        choices=("idea", "mvp", "launched", "scaling"),
    ),
    FieldRule(
        f"{_STARTUP}registeredName",
        DETAILS,
        "Registered name",
        required=True,
        min_length=2,
        max_length=100,
    ),
    FieldRule(
        f"{_STARTUP}problemStatement",
        DETAILS,
        "Problem statement",
        required=True,
        min_length=50,
        max_length=1000,
    ),
    FieldRule(
        f"{_STARTUP}solutionDescription",
        DETAILS,
        "Solution description",
        required=True,
        min_length=50,
        max_length=1000,
    ),
    FieldRule(
        f"{_STARTUP}team.teamSize",
        DETAILS,
        "Team size",
        kind=FieldKind.INTEGER,
        required=True,
        min_value=1,
        max_value=10000,
    ),
    FieldRule(
        f"{_STARTUP}market.targetMarket",
        DETAILS,
        "Target market",
        required=True,
        min_length=20,
        max_length=1000,
    ),
    FieldRule(
        f"{_STARTUP}market.monthlyRevenue.value",
        DETAILS,
        "Monthly revenue",
        kind=FieldKind.NUMBER,
        min_value=0,
        required_when=_one_of(f"{_STARTUP}developmentStage", ("launched", "scaling")),
        parent=f"{_STARTUP}developmentStage",
    ),
    FieldRule(
        f"{_STARTUP}funding.fundingStage",
        DETAILS,
        "Funding stage",
        kind=FieldKind.CHOICE,
        required=True,
        choices=("bootstrapped", "pre_seed", "seed", "series_a", "series_b_plus"),
    ),
    FieldRule(
        f"{_STARTUP}funding.currentRaisingAmount.value",
        DETAILS,
        "Amount being raised",
        kind=FieldKind.NUMBER,
        required=True,
        min_value=0,
    ),
    FieldRule(
        f"{_STARTUP}funding.equityOffered",
        DETAILS,
        "Equity offered",
        kind=FieldKind.NUMBER,
        required=True,
        min_value=0,
        max_value=100,
    ),
    FieldRule(
        f"{_STARTUP}links.website",
        DETAILS,
        "Startup website",
        kind=FieldKind.URL,
        pattern=URL_PATTERN,
        pattern_message="Please enter a valid URL",
    ),
)

_INVESTOR = "investorDetails."

INVESTOR_RULES: tuple[FieldRule, ...] = (
    FieldRule(
        f"{_INVESTOR}investorType",
        DETAILS,
        "Investor type",
        kind=FieldKind.CHOICE,
        required=True,
        choices=("angel", "vc", "pe", "family_office", "corporate", "individual"),
    ),
    FieldRule(
        f"{_INVESTOR}yearsOfExperience",
        DETAILS,
        "Years of experience",
        kind=FieldKind.INTEGER,
        required=True,
        min_value=0,
        max_value=70,
    ),
    FieldRule(
        f"{_INVESTOR}investment.minInvestment.value",
        DETAILS,
        "Minimum investment",
        kind=FieldKind.NUMBER,
        required=True,
        min_value=0,
    ),
    FieldRule(
        f"{_INVESTOR}investment.maxInvestment.value",
        DETAILS,
        "Maximum investment",
        kind=FieldKind.NUMBER,
        required=True,
        min_value=0,
        check=_at_least(
            f"{_INVESTOR}investment.maxInvestment.value",
            f"{_INVESTOR}investment.minInvestment.value",
            "Maximum investment must be at least the minimum investment",
        ),
    ),
    FieldRule(
        f"{_INVESTOR}investment.isLeadInvestor",
        DETAILS,
        "Lead investor",
        kind=FieldKind.BOOLEAN,
    ),
    FieldRule(
        f"{_INVESTOR}investment.preferredEquityStake",
        DETAILS,
        "Preferred equity stake",
        kind=FieldKind.NUMBER,
        min_value=0,
        max_value=100,
        required_when=_equals(f"{_INVESTOR}investment.isLeadInvestor", True),
        parent=f"{_INVESTOR}investment.isLeadInvestor",
    ),
    FieldRule(
        f"{_INVESTOR}focus.investmentStages",
        DETAILS,
        "Investment stages",
        kind=FieldKind.MULTI_CHOICE,
        required=True,
        min_items=1,
        max_items=5,
        choices=("pre_seed", "seed", "series_a", "series_b_plus", "growth"),
    ),
    FieldRule(
        f"{_INVESTOR}investmentPhilosophy",
        DETAILS,
        "Investment philosophy",
        required=True,
        min_length=100,
        max_length=2000,
    ),
)

_DIGITAL = "digitalAssetDetails."

DIGITAL_ASSET_RULES: tuple[FieldRule, ...] = (
    FieldRule(
        f"{_DIGITAL}assetType",
        DETAILS,
        "Asset type",
        kind=FieldKind.CHOICE,
        required=True,
        choices=(
            "website",
            "app",
            "ecommerce",
            "saas",
            "content",
            "social_media",
            "other",
        ),
    ),
    FieldRule(
        f"{_DIGITAL}platformFramework",
        DETAILS,
        "Platform / framework",
        required=True,
        min_length=2,
        max_length=100,
    ),
    FieldRule(
        f"{_DIGITAL}technical.domainName",
        DETAILS,
        "Domain name",
        pattern=DOMAIN_PATTERN,
        pattern_message="Please enter a valid domain name",
        required_when=_one_of(
            f"{_DIGITAL}assetType", ("website", "ecommerce", "saas", "content")
        ),
        parent=f"{_DIGITAL}assetType",
    ),
    FieldRule(
        f"{_DIGITAL}traffic.monthlyVisitors",
        DETAILS,
        "Monthly visitors",
        kind=FieldKind.INTEGER,
        required=True,
        min_value=0,
    ),
    FieldRule(
        f"{_DIGITAL}financials.monthlyRevenue.value",
        DETAILS,
        "Monthly revenue",
        kind=FieldKind.NUMBER,
        required=True,
        min_value=0,
    ),
    FieldRule(
        f"{_DIGITAL}easeOfManagement",
        DETAILS,
        "Ease of management",
        kind=FieldKind.CHOICE,
        required=True,
        choices=tuple(_MANAGEMENT_HOURS),
    ),
    FieldRule(
        f"{_DIGITAL}ownerTimeRequired",
        DETAILS,
        "Owner time required",
        kind=FieldKind.NUMBER,
        required=True,
        min_value=0,
        max_value=168,
        check=_hours_match_management,
    ),
    FieldRule(
        f"{_DIGITAL}sale.askingPrice.value",
        DETAILS,
        "Asking price",
        kind=FieldKind.NUMBER,
        required=True,
        min_value=0,
    ),
    FieldRule(
        f"{_DIGITAL}sale.reasonForSelling",
        DETAILS,
        "Reason for selling",
        required=True,
        min_length=50,
        max_length=500,
    ),
)

VARIANT_RULES: dict[ListingType, tuple[FieldRule, ...]] = {
    ListingType.BUSINESS: BUSINESS_RULES,
    ListingType.FRANCHISE: FRANCHISE_RULES,
    ListingType.STARTUP: STARTUP_RULES,
    ListingType.INVESTOR: INVESTOR_RULES,
    ListingType.DIGITAL_ASSET: DIGITAL_ASSET_RULES,
}

DETAILS_TITLES: dict[ListingType, str] = {
    ListingType.BUSINESS: "Business Details",
    ListingType.FRANCHISE: "Franchise Details",
    ListingType.STARTUP: "Startup Details",
    ListingType.INVESTOR: "Investor Details",
    ListingType.DIGITAL_ASSET: "Digital Asset Details",
}

BASIC_INFO_STEP = StepDefinition(
    BASIC_INFO,
    "Basic Info",
    "Enter the basic information about your listing",
)
MEDIA_STEP = StepDefinition(
    MEDIA,
    "Media",
    "Upload images to showcase your listing",
    asset_kind=AssetKind.MEDIA,
)
DOCUMENTS_STEP = StepDefinition(
    DOCUMENTS,
    "Documents",
    "Upload relevant documents to support your listing",
    asset_kind=AssetKind.DOCUMENT,
)
REVIEW_STEP = StepDefinition(
    REVIEW,
    "Review & Submit",
    "Review your listing before submitting",
)

# Investor profiles carry no supporting documents step.
STEPLESS_DOCUMENTS = frozenset({ListingType.INVESTOR})


def default_record() -> dict[str, object]:
    """Return the field values of a fresh listing."""
    return {
        "type": None,
        "name": "",
        "classifications": [],
        "description": "",
        "status": ListingStatus.DRAFT.value,
        "plan": ListingPlan.FREE.value,
        "location.country": "India",
        "location.state": "",
        "location.city": "",
        "contactInfo.email": "",
        "contactInfo.phone": "",
    }
