import asyncio

import pytest

from listing_wizard.domain.assets import Asset, AssetKind, AssetState
from listing_wizard.domain.listings import ListingType
from listing_wizard.domain.sessions import (
    SESSION_ACTIVE,
    SESSION_SUBMITTED,
    FormSession,
)
from listing_wizard.services.wizard import (
    ListingWizard,
    SubmissionError,
    WizardRegistry,
    WizardService,
    build_listing_payload,
    committed_featured_index,
)
from tests.conftest import (
    DESCRIPTION,
    OPERATIONS,
    REASON,
    FakeObjectStorage,
    FakeTaxonomyClient,
    InMemoryKeyValueStore,
    InMemoryListingRepository,
    commit_images,
    document,
    fill_basic_info,
    fill_business_details,
    image,
)


async def _reach_review(wizard: ListingWizard) -> None:
    fill_basic_info(wizard)
    assert (await wizard.advance()).ok
    await commit_images(wizard)
    assert (await wizard.advance()).ok
    fill_business_details(wizard)
    assert (await wizard.advance()).ok
    assert (await wizard.advance()).ok
    assert wizard.is_last_step


def _remote_listing() -> dict[str, object]:
    return {
        "type": "business",
        "name": "Corner Grocery",
        "description": DESCRIPTION,
        "classifications": [
            {
                "industry": "ind-retail",
                "industryName": "Retail",
                "category": "cat-grocery",
                "categoryName": "Grocery",
                "subCategories": ["sub-organic"],
                "subCategoryNames": ["Organic"],
            }
        ],
        "location": {"country": "India", "state": "Karnataka", "city": "Bengaluru"},
        "contactInfo": {"email": "owner@example.com"},
        "businessDetails": {
            "businessType": "retail",
            "entityType": "llc",
            "establishedYear": 2010,
            "operations": {
                "employees": {"count": 10, "fullTime": 8},
                "locationType": "owned_property",
                "operationDescription": OPERATIONS,
            },
            "financials": {
                "annualRevenue": {"value": 5_000_000},
                "profitMargin": {"percentage": 12},
            },
            "sale": {
                "askingPrice": {"value": 9_000_000},
                "reasonForSelling": REASON,
                "transitionPeriod": 3,
            },
        },
        "featuredMediaIndex": 1,
        "media": [
            {
                "id": f"m{position}",
                "name": f"old-{position}.jpg",
                "url": f"https://cdn.example.com/old-{position}.jpg",
                "path": f"listings/old/images/{position}_old-{position}.jpg",
                "contentType": "image/jpeg",
                "size": 10,
            }
            for position in range(3)
        ],
        "documents": [
            {
                "id": "d0",
                "name": "deed.pdf",
                "url": "https://cdn.example.com/deed.pdf",
                "path": "listings/old/documents/0_deed.pdf",
                "category": "legal",
                "type": "title_deed",
            }
        ],
    }


def test_advance_is_gated_by_the_current_step(wizard_service: WizardService) -> None:
    wizard = wizard_service.start("form-1").wizard

    async def scenario() -> None:
        blocked = await wizard.advance()
        assert not blocked.ok
        assert blocked.step_index == 0
        assert blocked.first_error_path == "type"
        assert wizard.session.errors["name"] == "Name is required"

        fill_basic_info(wizard)
        assert await wizard.can_advance()
        moved = await wizard.advance()
        assert moved.ok
        assert moved.step_index == 1

        gated = await wizard.advance()
        assert not gated.ok
        assert gated.first_error_path == "media"
        assert wizard.session.errors["media"] == (
            "Upload at least 3 images (3 more needed)"
        )

    asyncio.run(scenario())

    assert wizard.session.visited_steps == {0, 1}
    assert wizard.session.errors.get("name") is None


def test_retreat_never_validates(wizard_service: WizardService) -> None:
    wizard = wizard_service.start("form-1").wizard

    async def scenario() -> None:
        fill_basic_info(wizard)
        await wizard.advance()
        wizard.set_field("name", "")
        result = wizard.retreat()
        assert result.ok
        assert result.step_index == 0
        assert not wizard.can_retreat()
        assert not wizard.retreat().ok

    asyncio.run(scenario())


def test_jump_rules(wizard_service: WizardService) -> None:
    wizard = wizard_service.start("form-1").wizard

    async def scenario() -> None:
        fill_basic_info(wizard)
        await wizard.advance()
        await commit_images(wizard)
        await wizard.advance()
        assert wizard.session.active_step_index == 2

        assert not (await wizard.jump_to(4)).ok
        assert (await wizard.jump_to(0)).ok
        assert wizard.session.active_step_index == 0
        assert not (await wizard.jump_to(2)).ok
        assert (await wizard.jump_to(1)).ok
        assert (await wizard.jump_to(2)).ok

        blocked = await wizard.jump_to(3)
        assert not blocked.ok
        assert blocked.first_error_path == "businessDetails.businessType"

    asyncio.run(scenario())


def test_unknown_fields_are_rejected(wizard_service: WizardService) -> None:
    wizard = wizard_service.start("form-1").wizard
    wizard.set_field("type", "business")

    with pytest.raises(KeyError):
        wizard.set_field("franchiseDetails.franchiseBrand", "Acme")
    with pytest.raises(KeyError):
        wizard.set_field("media", [])


def test_field_errors_are_reported_and_cleared(wizard_service: WizardService) -> None:
    wizard = wizard_service.start("form-1").wizard
    wizard.set_field("type", "business")

    error = wizard.set_field("name", "ab")

    assert error is not None
    assert error.message == "Name must be at least 3 characters"
    assert wizard.set_field("name", "abc") is None
    assert "name" not in wizard.session.errors


def test_changing_type_drops_fields_of_the_old_variant(
    wizard_service: WizardService,
) -> None:
    wizard = wizard_service.start("form-1").wizard
    fill_basic_info(wizard)
    fill_business_details(wizard)
    wizard.session.active_step_index = 2
    wizard.session.visited_steps = {0, 1, 2}

    wizard.change_listing_type("franchise")

    record = wizard.session.record
    assert not any(path.startswith("businessDetails.") for path in record)
    assert wizard.session.record["name"] == "Corner Grocery"
    assert wizard.session.active_step_index == 2
    assert wizard.current_step.title == "Franchise Details"


def test_changing_to_shorter_step_list_clamps_index(
    wizard_service: WizardService,
) -> None:
    wizard = wizard_service.start("form-1").wizard
    wizard.set_field("type", "business")
    wizard.session.active_step_index = 3
    wizard.session.visited_steps = {0, 1, 2, 3}

    wizard.set_field("type", "investor")

    assert [step.id for step in wizard.steps] == [
        "basic_info",
        "media",
        "details",
        "review",
    ]
    assert 0 <= wizard.session.active_step_index < len(wizard.steps)
    assert wizard.session.visited_steps <= set(range(len(wizard.steps)))
    assert wizard.store.load().active_step_index == wizard.session.active_step_index


def test_reload_restores_step_record_and_committed_images(
    drafts: InMemoryKeyValueStore, wizard_service: WizardService
) -> None:
    async def first_visit() -> None:
        wizard = wizard_service.start("form-1").wizard
        fill_basic_info(wizard)
        await wizard.advance()
        await commit_images(wizard)
        await wizard.advance()
        wizard.set_field("businessDetails.businessType", "retail")
        await asyncio.sleep(0.05)

    asyncio.run(first_visit())

    opening = wizard_service.start("form-1")
    wizard = opening.wizard

    assert opening.restored
    assert opening.notice is None
    assert wizard.session.active_step_index == 2
    assert wizard.session.visited_steps == {0, 1, 2}
    assert wizard.session.record["businessDetails.businessType"] == "retail"
    assert wizard.session.record["classifications"][0]["subCategories"] == [
        "sub-organic"
    ]
    assert len(wizard.session.media_assets) == 3
    assert all(
        asset.state is AssetState.COMMITTED and asset.url.startswith("https://")
        for asset in wizard.session.media_assets
    )


def test_reload_orphans_uploads_interrupted_mid_flight(
    drafts: InMemoryKeyValueStore,
    storage: FakeObjectStorage,
    wizard_service: WizardService,
) -> None:
    storage.hang.add("slow.jpg")

    async def first_visit() -> None:
        wizard = wizard_service.start("form-1").wizard
        wizard.set_field("type", "business")
        wizard.upload(AssetKind.MEDIA, image("slow.jpg"))
        await asyncio.sleep(0.03)

    asyncio.run(first_visit())

    opening = wizard_service.start("form-1")

    assert opening.orphaned_count == 1
    assert opening.notice == "1 file needs to be uploaded again"
    asset = opening.wizard.session.media_assets[0]
    assert asset.state is AssetState.ORPHANED
    assert not opening.wizard.retry_asset(asset.id)


def test_submit_sends_committed_assets_once(
    drafts: InMemoryKeyValueStore,
    storage: FakeObjectStorage,
    listing_repository: InMemoryListingRepository,
    wizard_service: WizardService,
) -> None:
    storage.fail.add("broken.jpg")
    wizard = wizard_service.start("form-1").wizard

    async def scenario():
        fill_basic_info(wizard)
        await wizard.advance()
        wizard.upload(AssetKind.MEDIA, image("broken.jpg"))
        for position in range(3):
            wizard.upload(AssetKind.MEDIA, image(f"photo-{position}.jpg"))
        wizard.upload(AssetKind.DOCUMENT, document("pnl.pdf"), category="Finance")
        await wizard.uploads.settle()
        await wizard.advance()
        fill_business_details(wizard)
        await wizard.advance()
        await wizard.advance()
        wizard.set_featured(2)
        return await wizard.submit()

    result = asyncio.run(scenario())

    assert result.ok
    assert result.listing_id == "listing-1"
    assert len(listing_repository.created) == 1
    payload, media, documents = listing_repository.created[0]
    assert [item["name"] for item in media] == [
        "photo-0.jpg",
        "photo-1.jpg",
        "photo-2.jpg",
    ]
    assert [item["isFeatured"] for item in media] == [False, True, False]
    assert payload["featuredMediaIndex"] == 1
    assert documents[0]["category"] == "financial"
    assert payload["businessDetails"]["sale"]["askingPrice"]["value"] == 9_000_000
    assert payload["location"] == {
        "country": "India",
        "state": "Karnataka",
        "city": "Bengaluru",
    }
    assert payload["shortDescription"] == DESCRIPTION[:150] + "..."
    assert wizard.session.status == SESSION_SUBMITTED
    assert drafts.keys("listing_form:form-1:") == []


def test_submit_jumps_to_first_invalid_step(wizard_service: WizardService) -> None:
    wizard = wizard_service.start("form-1").wizard

    async def scenario():
        await _reach_review(wizard)
        wizard.session.record["name"] = ""
        return await wizard.submit()

    result = asyncio.run(scenario())

    assert not result.ok
    assert result.first_error_path == "name"
    assert result.step_index == 0
    assert wizard.session.active_step_index == 0
    assert wizard.session.errors["name"] == "Name is required"


def test_submit_off_the_last_step_is_refused(wizard_service: WizardService) -> None:
    wizard = wizard_service.start("form-1").wizard

    with pytest.raises(ValueError):
        asyncio.run(wizard.submit())


def test_failed_submission_keeps_the_draft(
    drafts: InMemoryKeyValueStore,
    listing_repository: InMemoryListingRepository,
    wizard_service: WizardService,
) -> None:
    listing_repository.fail = True
    wizard = wizard_service.start("form-1").wizard

    async def scenario():
        await _reach_review(wizard)
        with pytest.raises(SubmissionError):
            await wizard.submit()
        assert wizard.session.status == SESSION_ACTIVE
        assert wizard.store.load() is not None
        assert len(wizard.uploads.committed_assets(AssetKind.MEDIA)) == 3

        listing_repository.fail = False
        return await wizard.submit()

    result = asyncio.run(scenario())

    assert result.ok
    assert len(listing_repository.created) == 1


def test_edit_submits_only_changes(
    listing_repository: InMemoryListingRepository,
    wizard_service: WizardService,
) -> None:
    listing_repository.listings["listing-9"] = _remote_listing()
    opening = wizard_service.edit("form-2", "listing-9")
    wizard = opening.wizard

    assert wizard.session.is_edit
    assert wizard.session.visited_steps == {0, 1, 2, 3, 4}
    assert wizard.session.featured_media_index == 1
    assert wizard.session.record["businessDetails.sale.transitionPeriod"] == 3
    assert all(asset.existing for asset in wizard.session.media_assets)

    async def scenario():
        for _ in range(4):
            assert (await wizard.advance()).ok
        wizard.remove_asset("m0")
        wizard.upload(AssetKind.MEDIA, image("new.jpg"))
        await wizard.uploads.settle()
        return await wizard.submit()

    result = asyncio.run(scenario())

    assert result.ok
    assert result.listing_id == "listing-9"
    assert listing_repository.created == []
    update = listing_repository.updated[0]
    assert [item["name"] for item in update["new_media"]] == ["new.jpg"]
    assert update["new_documents"] == []
    assert update["deleted_media_refs"] == ["listings/old/images/0_old-0.jpg"]
    assert update["payload"]["name"] == "Corner Grocery"


def test_edit_prefers_a_local_draft_for_the_same_listing(
    listing_repository: InMemoryListingRepository,
    wizard_service: WizardService,
) -> None:
    listing_repository.listings["listing-9"] = _remote_listing()
    first = wizard_service.edit("form-2", "listing-9").wizard
    first.set_field("name", "Renamed Grocery")

    reopened = wizard_service.edit("form-2", "listing-9")

    assert reopened.restored
    assert reopened.wizard.session.record["name"] == "Renamed Grocery"


def test_edit_of_missing_listing_raises(wizard_service: WizardService) -> None:
    with pytest.raises(KeyError):
        wizard_service.edit("form-2", "missing")


def test_start_over_clears_everything(
    drafts: InMemoryKeyValueStore, wizard_service: WizardService
) -> None:
    wizard = wizard_service.start("form-1").wizard

    async def scenario() -> None:
        fill_basic_info(wizard)
        await wizard.advance()
        await commit_images(wizard)
        wizard.start_over()

    asyncio.run(scenario())

    assert wizard.session.active_step_index == 0
    assert wizard.session.visited_steps == {0}
    assert wizard.session.media_assets == []
    assert wizard.session.record["name"] == ""
    assert drafts.keys("listing_form:form-1:") == []


def test_set_featured_validates_index(wizard_service: WizardService) -> None:
    wizard = wizard_service.start("form-1").wizard

    with pytest.raises(IndexError):
        wizard.set_featured(0)


def test_step_view_exposes_only_current_step_errors(
    wizard_service: WizardService,
) -> None:
    wizard = wizard_service.start("form-1").wizard
    wizard.set_field("type", "business")
    wizard.set_field("name", "ab")
    wizard.session.errors["businessDetails.businessType"] = "stale"

    view = wizard.step_view()

    assert view.step.id == "basic_info"
    assert view.errors == {"name": "Name must be at least 3 characters"}
    assert view.assets == ()
    assert view.set_field("name", "abcd") is None


def test_payload_keeps_only_active_variant_and_draft_status() -> None:
    session = FormSession(
        form_id="form-1",
        record={
            "type": "franchise",
            "name": "Burger Spot",
            "description": "Short",
            "status": "published",
            "franchiseDetails.franchiseBrand": "Burger Co",
            "businessDetails.businessType": "retail",
            "classifications": [{"industry": "ind-retail"}],
        },
    )

    payload = build_listing_payload(session, save_as_draft=True)

    assert payload["status"] == "draft"
    assert payload["franchiseDetails"] == {"franchiseBrand": "Burger Co"}
    assert "businessDetails" not in payload
    assert payload["shortDescription"] == "Short..."
    assert payload["classifications"][0]["industry"] == "ind-retail"


def test_registry_closes_open_wizards(wizard_service: WizardService) -> None:
    registry = WizardRegistry()
    wizard = wizard_service.start("form-1").wizard
    registry.put(wizard)

    assert registry.get("form-1") is wizard
    asyncio.run(registry.close_all())

    assert len(registry) == 0
    with pytest.raises(KeyError):
        registry.get("form-1")


PHILOSOPHY = (
    "Back founders early in unglamorous, cash generating businesses and stay "
    "involved through the first two years of growth after the deal closes."
)

# Variant fields, then the fields that only become required once those are set.
VARIANT_DETAILS: dict[ListingType, tuple[dict[str, object], dict[str, object]]] = {
    ListingType.BUSINESS: (
        {
            "businessDetails.businessType": "retail",
            "businessDetails.entityType": "llc",
            "businessDetails.establishedYear": 2010,
            "businessDetails.operations.employees.count": 10,
            "businessDetails.operations.employees.fullTime": 8,
            "businessDetails.operations.locationType": "leased_commercial",
            "businessDetails.operations.operationDescription": OPERATIONS,
            "businessDetails.financials.annualRevenue.value": 5_000_000,
            "businessDetails.financials.profitMargin.percentage": 12,
            "businessDetails.sale.askingPrice.value": 9_000_000,
            "businessDetails.sale.reasonForSelling": REASON,
            "businessDetails.sale.transitionPeriod": 3,
        },
        {
            "businessDetails.operations.leaseInformation.expiryDate": "2030-01-31",
            "businessDetails.operations.leaseInformation.monthlyCost.value": 50_000,
        },
    ),
    ListingType.FRANCHISE: (
        {
            "franchiseDetails.franchiseBrand": "Burger Co",
            "franchiseDetails.franchiseSince": 2005,
            "franchiseDetails.totalUnits": 40,
            "franchiseDetails.investment.franchiseFee.value": 500_000,
            "franchiseDetails.investment.totalInitialInvestment.value": 2_500_000,
            "franchiseDetails.investment.royaltyStructure": "percentage",
            "franchiseDetails.support.initialTraining": (
                "Two weeks of hands-on training at the flagship store."
            ),
            "franchiseDetails.performance.liquidCapitalRequired.value": 1_000_000,
        },
        {"franchiseDetails.investment.royaltyFee": 6},
    ),
    ListingType.STARTUP: (
        {
            "startupDetails.developmentStage": "launched",
            "startupDetails.registeredName": "Acme Labs",
            "startupDetails.problemStatement": (
                "Small grocers lose a tenth of their fresh stock to spoilage weekly."
            ),
            "startupDetails.solutionDescription": (
                "A demand forecast that tells each store how much produce to order."
            ),
            "startupDetails.team.teamSize": 5,
            "startupDetails.market.targetMarket": "Independent grocers in India",
            "startupDetails.funding.fundingStage": "seed",
            "startupDetails.funding.currentRaisingAmount.value": 10_000_000,
            "startupDetails.funding.equityOffered": 10,
        },
        {"startupDetails.market.monthlyRevenue.value": 200_000},
    ),
    ListingType.INVESTOR: (
        {
            "investorDetails.investorType": "angel",
            "investorDetails.yearsOfExperience": 12,
            "investorDetails.investment.minInvestment.value": 1_000_000,
            "investorDetails.investment.maxInvestment.value": 5_000_000,
            "investorDetails.investment.isLeadInvestor": True,
            "investorDetails.focus.investmentStages": ["seed", "series_a"],
            "investorDetails.investmentPhilosophy": PHILOSOPHY,
        },
        {"investorDetails.investment.preferredEquityStake": 15},
    ),
    ListingType.DIGITAL_ASSET: (
        {
            "digitalAssetDetails.assetType": "website",
            "digitalAssetDetails.platformFramework": "WordPress",
            "digitalAssetDetails.traffic.monthlyVisitors": 40_000,
            "digitalAssetDetails.financials.monthlyRevenue.value": 150_000,
            "digitalAssetDetails.easeOfManagement": "semi_passive",
            "digitalAssetDetails.ownerTimeRequired": 10,
            "digitalAssetDetails.sale.askingPrice.value": 3_000_000,
            "digitalAssetDetails.sale.reasonForSelling": REASON,
        },
        {"digitalAssetDetails.technical.domainName": "grocerly.in"},
    ),
}


def _fill(wizard: ListingWizard, values: dict[str, object]) -> None:
    for path, value in values.items():
        assert wizard.set_field(path, value) is None, path


async def _step_gates(wizard: ListingWizard) -> list[bool]:
    """Compare can_advance with owned-field validation for every step."""
    await wizard.validator.settle()
    gates = []
    for index, step in enumerate(wizard.steps):
        owned = wizard.validator.step_owned_paths(step)
        expected = not wizard.validator.validate_fields(owned)
        assert await wizard.can_advance(index) == expected, step.id
        gates.append(expected)
    return gates


@pytest.mark.parametrize("listing_type", list(ListingType))
def test_step_gates_follow_owned_field_validation(
    listing_type: ListingType, wizard_service: WizardService
) -> None:
    wizard = wizard_service.start("form-1").wizard
    values, conditional = VARIANT_DETAILS[listing_type]

    async def scenario() -> tuple[list[bool], list[bool], list[bool]]:
        fill_basic_info(wizard, listing_type.value)
        empty = await _step_gates(wizard)
        await commit_images(wizard)
        _fill(wizard, values)
        owned = wizard.validator.step_owned_paths(wizard.steps[2])
        assert set(conditional) <= set(owned)
        partial = await _step_gates(wizard)
        _fill(wizard, conditional)
        return empty, partial, await _step_gates(wizard)

    empty, partial, complete = asyncio.run(scenario())

    expected_steps = 4 if listing_type is ListingType.INVESTOR else 5
    assert len(wizard.steps) == expected_steps
    assert empty[:3] == [True, False, False]
    assert partial[:3] == [True, True, False]
    assert all(complete)


def test_investor_listing_runs_end_to_end(
    listing_repository: InMemoryListingRepository, wizard_service: WizardService
) -> None:
    wizard = wizard_service.start("form-1").wizard
    values, conditional = VARIANT_DETAILS[ListingType.INVESTOR]

    async def scenario():
        fill_basic_info(wizard, "investor")
        assert (await wizard.advance()).ok
        await commit_images(wizard)
        assert (await wizard.advance()).ok
        _fill(wizard, values)
        blocked = await wizard.advance()
        assert not blocked.ok
        assert blocked.first_error_path == (
            "investorDetails.investment.preferredEquityStake"
        )
        _fill(wizard, conditional)
        assert (await wizard.advance()).ok
        assert wizard.is_last_step
        assert not (await wizard.advance()).ok
        return await wizard.submit()

    result = asyncio.run(scenario())

    assert [step.id for step in wizard.steps] == [
        "basic_info",
        "media",
        "details",
        "review",
    ]
    assert result.ok
    payload, media, documents = listing_repository.created[0]
    assert payload["type"] == "investor"
    assert payload["investorDetails"]["investment"]["preferredEquityStake"] == 15
    assert len(media) == 3
    assert documents == []


def _media(asset_id: str, state: AssetState) -> Asset:
    return Asset(
        id=asset_id,
        kind=AssetKind.MEDIA,
        name=f"{asset_id}.jpg",
        content_type="image/jpeg",
        size=1,
        state=state,
    )


def test_featured_index_counts_only_committed_images() -> None:
    session = FormSession(
        form_id="form-1",
        media_assets=[
            _media("a", AssetState.ERROR),
            _media("b", AssetState.COMMITTED),
            _media("c", AssetState.ORPHANED),
            _media("d", AssetState.COMMITTED),
        ],
    )

    session.featured_media_index = 3
    assert committed_featured_index(session) == 1
    assert build_listing_payload(session)["featuredMediaIndex"] == 1

    session.featured_media_index = 2
    assert committed_featured_index(session) == 0


def test_edited_images_without_storage_path_survive_reload(
    listing_repository: InMemoryListingRepository, wizard_service: WizardService
) -> None:
    listing = _remote_listing()
    listing["media"] = [
        {"id": "m0", "name": "old.jpg", "url": "https://cdn.example.com/old.jpg"}
    ]
    listing_repository.listings["listing-9"] = listing
    wizard_service.edit("form-9", "listing-9")

    reopened = wizard_service.start("form-9")

    assert reopened.restored
    assert reopened.notice is None
    asset = reopened.wizard.session.media_assets[0]
    assert asset.state is AssetState.COMMITTED
    assert asset.url == "https://cdn.example.com/old.jpg"


def test_start_over_discards_pending_option_checks(
    taxonomy_client: FakeTaxonomyClient, wizard_service: WizardService
) -> None:
    taxonomy_client.delay = 0.05
    wizard = wizard_service.start("form-1").wizard

    async def scenario() -> None:
        wizard.set_field("type", "business")
        wizard.add_classification()
        wizard.select_industry(0, "ind-retail", "Retail")
        wizard.start_over()
        await asyncio.sleep(0.1)
        await wizard.validator.settle()

    asyncio.run(scenario())

    assert wizard.session.record["classifications"] == []
    assert wizard.session.errors == {}
