"""Wizard session endpoints."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from uuid import uuid4

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Request,
    UploadFile,
    status,
)

from listing_wizard.api.models import (
    CategoryRequest,
    FeaturedRequest,
    FieldResultModel,
    FieldUpdateRequest,
    IndustryRequest,
    JumpRequest,
    ListingTypeRequest,
    NavigationModel,
    OptionModel,
    StartSessionRequest,
    StepViewModel,
    SubcategoryRequest,
    SubmitRequest,
    SubmitResponse,
    UploadResultModel,
    errors_by_path,
)
from listing_wizard.domain.assets import RETRYABLE_STATES, AssetKind
from listing_wizard.services.uploads import LocalFile
from listing_wizard.services.wizard import ListingWizard, StepResult, SubmissionError

if TYPE_CHECKING:
    from listing_wizard.containers import AppContainer

router = APIRouter(prefix="/wizard", tags=["wizard"])
_logger = logging.getLogger(__name__)


def _container(request: Request) -> AppContainer:
    return request.app.state.container


def get_wizard(form_id: str, request: Request) -> ListingWizard:
    """Resolve an open wizard or answer 404."""
    try:
        return _container(request).wizards.get(form_id)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Unknown form session"
        ) from None


def _view(wizard: ListingWizard, notice: str | None = None) -> StepViewModel:
    return StepViewModel.from_view(wizard.step_view(), notice=notice)


def _navigation(wizard: ListingWizard, result: StepResult) -> NavigationModel:
    return NavigationModel(
        ok=result.ok,
        step_index=result.step_index,
        errors=errors_by_path(result.errors),
        first_error_path=result.first_error_path,
        view=_view(wizard),
    )


def _unknown_field(path: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=f"Unknown field: {path}",
    )


async def _local_files(files: list[UploadFile]) -> list[LocalFile]:
    return [
        LocalFile(
            name=upload.filename or "file",
            content_type=upload.content_type or "application/octet-stream",
            data=await upload.read(),
        )
        for upload in files
    ]


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def open_session(body: StartSessionRequest, request: Request) -> StepViewModel:
    """Start a new draft, restore a stored one or open a listing for editing."""
    container = _container(request)
    form_id = body.form_id or uuid4().hex
    try:
        return _view(container.wizards.get(form_id))
    except KeyError:
        pass
    service = container.wizard_service
    if body.listing_id:
        try:
            opening = service.edit(form_id, body.listing_id)
        except KeyError:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Unknown listing"
            ) from None
    else:
        opening = service.start(form_id)
    container.wizards.put(opening.wizard)
    return _view(opening.wizard, notice=opening.notice)


@router.get("/sessions/{form_id}")
async def read_session(wizard: ListingWizard = Depends(get_wizard)) -> StepViewModel:
    return _view(wizard)


@router.put("/sessions/{form_id}/fields")
async def update_field(
    body: FieldUpdateRequest, wizard: ListingWizard = Depends(get_wizard)
) -> FieldResultModel:
    """Set one field value and return its validation result."""
    try:
        error = wizard.set_field(body.path, body.value)
    except KeyError:
        raise _unknown_field(body.path) from None
    return FieldResultModel(
        error=error.message if error else None, view=_view(wizard)
    )


@router.put("/sessions/{form_id}/type")
async def change_type(
    body: ListingTypeRequest, wizard: ListingWizard = Depends(get_wizard)
) -> FieldResultModel:
    error = wizard.change_listing_type(body.type)
    return FieldResultModel(
        error=error.message if error else None, view=_view(wizard)
    )


@router.post("/sessions/{form_id}/advance")
async def advance(wizard: ListingWizard = Depends(get_wizard)) -> NavigationModel:
    return _navigation(wizard, await wizard.advance())


@router.post("/sessions/{form_id}/retreat")
async def retreat(wizard: ListingWizard = Depends(get_wizard)) -> NavigationModel:
    return _navigation(wizard, wizard.retreat())


@router.post("/sessions/{form_id}/jump")
async def jump(
    body: JumpRequest, wizard: ListingWizard = Depends(get_wizard)
) -> NavigationModel:
    return _navigation(wizard, await wizard.jump_to(body.index))


@router.post("/sessions/{form_id}/classifications")
async def add_classification(
    wizard: ListingWizard = Depends(get_wizard),
) -> FieldResultModel:
    error = wizard.add_classification()
    return FieldResultModel(
        error=error.message if error else None, view=_view(wizard)
    )


@router.delete("/sessions/{form_id}/classifications/{index}")
async def remove_classification(
    index: int, wizard: ListingWizard = Depends(get_wizard)
) -> StepViewModel:
    try:
        wizard.remove_classification(index)
    except KeyError:
        raise _unknown_field(f"classifications.{index}") from None
    return _view(wizard)


@router.put("/sessions/{form_id}/classifications/{index}/industry")
async def select_industry(
    index: int, body: IndustryRequest, wizard: ListingWizard = Depends(get_wizard)
) -> FieldResultModel:
    try:
        error = wizard.select_industry(index, body.industry_id, body.industry_name)
    except KeyError:
        raise _unknown_field(f"classifications.{index}.industry") from None
    return FieldResultModel(
        error=error.message if error else None, view=_view(wizard)
    )


@router.put("/sessions/{form_id}/classifications/{index}/category")
async def select_category(
    index: int, body: CategoryRequest, wizard: ListingWizard = Depends(get_wizard)
) -> FieldResultModel:
    try:
        error = wizard.select_category(index, body.category_id, body.category_name)
    except KeyError:
        raise _unknown_field(f"classifications.{index}.category") from None
    return FieldResultModel(
        error=error.message if error else None, view=_view(wizard)
    )


@router.post("/sessions/{form_id}/classifications/{index}/subcategories")
async def toggle_subcategory(
    index: int, body: SubcategoryRequest, wizard: ListingWizard = Depends(get_wizard)
) -> FieldResultModel:
    try:
        error = wizard.toggle_subcategory(
            index, body.subcategory_id, body.subcategory_name
        )
    except KeyError:
        raise _unknown_field(f"classifications.{index}.subCategories") from None
    return FieldResultModel(
        error=error.message if error else None, view=_view(wizard)
    )


@router.post("/sessions/{form_id}/media")
async def upload_media(
    files: list[UploadFile] = File(...),
    wizard: ListingWizard = Depends(get_wizard),
) -> UploadResultModel:
    """Queue images for upload; rejected files are reported, not raised."""
    accepted: list[str] = []
    rejected: list[str] = []
    for local in await _local_files(files):
        result = wizard.upload(AssetKind.MEDIA, local)
        if result.asset_id:
            accepted.append(result.asset_id)
        elif result.error:
            rejected.append(result.error)
    return UploadResultModel(accepted=accepted, rejected=rejected, view=_view(wizard))


@router.post("/sessions/{form_id}/documents")
async def upload_documents(
    files: list[UploadFile] = File(...),
    category: str | None = Form(default=None),
    document_type: str | None = Form(default=None),
    wizard: ListingWizard = Depends(get_wizard),
) -> UploadResultModel:
    accepted: list[str] = []
    rejected: list[str] = []
    for local in await _local_files(files):
        result = wizard.upload(
            AssetKind.DOCUMENT, local, category=category, document_type=document_type
        )
        if result.asset_id:
            accepted.append(result.asset_id)
        elif result.error:
            rejected.append(result.error)
    return UploadResultModel(accepted=accepted, rejected=rejected, view=_view(wizard))


@router.delete("/sessions/{form_id}/assets/{asset_id}")
async def remove_asset(
    asset_id: str, wizard: ListingWizard = Depends(get_wizard)
) -> StepViewModel:
    try:
        wizard.remove_asset(asset_id)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Unknown asset"
        ) from None
    return _view(wizard)


@router.post("/sessions/{form_id}/assets/{asset_id}/retry")
async def retry_asset(
    asset_id: str,
    file: UploadFile | None = File(default=None),
    wizard: ListingWizard = Depends(get_wizard),
) -> StepViewModel:
    """Retry a failed or orphaned upload, optionally with fresh bytes."""
    replacement = (await _local_files([file]))[0] if file is not None else None
    try:
        asset = wizard.uploads.get(asset_id)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Unknown asset"
        ) from None
    if asset.state not in RETRYABLE_STATES:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Only failed uploads can be retried (asset is {asset.state.value})",
        )
    if not wizard.retry_asset(asset_id, replacement):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This file must be selected again before retrying",
        )
    return _view(wizard)


@router.put("/sessions/{form_id}/featured")
async def set_featured(
    body: FeaturedRequest, wizard: ListingWizard = Depends(get_wizard)
) -> StepViewModel:
    try:
        wizard.set_featured(body.index)
    except IndexError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No image at that position",
        ) from None
    return _view(wizard)


@router.post("/sessions/{form_id}/submit")
async def submit(
    body: SubmitRequest, wizard: ListingWizard = Depends(get_wizard)
) -> SubmitResponse:
    """Submit the listing from the last step."""
    try:
        result = await wizard.submit(save_as_draft=body.save_as_draft)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail=str(exc)
        ) from None
    except SubmissionError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)
        ) from exc
    return SubmitResponse(
        ok=result.ok,
        listing_id=result.listing_id,
        errors=errors_by_path(result.errors),
        first_error_path=result.first_error_path,
        step_index=result.step_index,
    )


@router.delete("/sessions/{form_id}")
async def start_over(wizard: ListingWizard = Depends(get_wizard)) -> StepViewModel:
    """Discard the draft and restart the wizard."""
    wizard.start_over()
    _logger.info("Form session restarted", extra={"form_id": wizard.session.form_id})
    return _view(wizard)


@router.get("/options/industries")
async def list_industries(request: Request) -> list[OptionModel]:
    options = await _container(request).taxonomy_service.industries()
    return [OptionModel.from_option(option) for option in options]


@router.get("/options/industries/{industry_id}/categories")
async def list_categories(industry_id: str, request: Request) -> list[OptionModel]:
    options = await _container(request).taxonomy_service.categories(industry_id)
    return [OptionModel.from_option(option) for option in options]


@router.get("/options/categories/{category_id}/subcategories")
async def list_subcategories(category_id: str, request: Request) -> list[OptionModel]:
    options = await _container(request).taxonomy_service.subcategories(category_id)
    return [OptionModel.from_option(option) for option in options]
