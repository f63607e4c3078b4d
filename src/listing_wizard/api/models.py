"""Pydantic models for the wizard HTTP API."""

from typing import Any

from pydantic import BaseModel

from listing_wizard.domain.assets import Asset
from listing_wizard.domain.listings import TaxonomyOption
from listing_wizard.domain.schema import StepDefinition, ValidationError
from listing_wizard.services.wizard import StepView


class StartSessionRequest(BaseModel):
    """Open a new, restored or edit session."""

    form_id: str | None = None
    listing_id: str | None = None


class FieldUpdateRequest(BaseModel):
    path: str
    value: Any = None


class ListingTypeRequest(BaseModel):
    type: str | None = None


class JumpRequest(BaseModel):
    index: int


class FeaturedRequest(BaseModel):
    index: int


class IndustryRequest(BaseModel):
    industry_id: str
    industry_name: str | None = None


class CategoryRequest(BaseModel):
    category_id: str
    category_name: str | None = None


class SubcategoryRequest(BaseModel):
    subcategory_id: str
    subcategory_name: str | None = None


class SubmitRequest(BaseModel):
    save_as_draft: bool = False


class StepModel(BaseModel):
    id: str
    title: str
    description: str = ""

    @classmethod
    def from_step(cls, step: StepDefinition) -> "StepModel":
        return cls(id=step.id, title=step.title, description=step.description)


class AssetModel(BaseModel):
    """Attachment as shown to the step UI."""

    id: str
    kind: str
    name: str
    content_type: str
    size: int
    state: str
    progress: int
    url: str | None = None
    error: str | None = None
    category: str | None = None
    document_type: str | None = None
    existing: bool = False

    @classmethod
    def from_asset(cls, asset: Asset) -> "AssetModel":
        return cls(
            id=asset.id,
            kind=asset.kind.value,
            name=asset.name,
            content_type=asset.content_type,
            size=asset.size,
            state=asset.state.value,
            progress=asset.progress,
            url=asset.url,
            error=asset.error,
            category=asset.category,
            document_type=asset.document_type,
            existing=asset.existing,
        )


class StepViewModel(BaseModel):
    """Current step state returned by every session endpoint."""

    form_id: str
    step: StepModel
    step_index: int
    steps: list[StepModel]
    visited_steps: list[int]
    record: dict[str, Any]
    errors: dict[str, str]
    assets: list[AssetModel]
    featured_media_index: int
    is_uploading: bool
    notice: str | None = None

    @classmethod
    def from_view(cls, view: StepView, notice: str | None = None) -> "StepViewModel":
        return cls(
            form_id=view.form_id,
            step=StepModel.from_step(view.step),
            step_index=view.step_index,
            steps=[StepModel.from_step(step) for step in view.steps],
            visited_steps=list(view.visited_steps),
            record=view.record,
            errors=view.errors,
            assets=[AssetModel.from_asset(asset) for asset in view.assets],
            featured_media_index=view.featured_media_index,
            is_uploading=view.is_uploading,
            notice=notice,
        )


class FieldResultModel(BaseModel):
    error: str | None = None
    view: StepViewModel


class NavigationModel(BaseModel):
    """Outcome of advance, retreat or jump."""

    ok: bool
    step_index: int
    errors: dict[str, str] = {}
    first_error_path: str | None = None
    view: StepViewModel


class UploadResultModel(BaseModel):
    accepted: list[str]
    rejected: list[str]
    view: StepViewModel


class SubmitResponse(BaseModel):
    ok: bool
    listing_id: str | None = None
    errors: dict[str, str] = {}
    first_error_path: str | None = None
    step_index: int | None = None


class OptionModel(BaseModel):
    id: str
    name: str

    @classmethod
    def from_option(cls, option: TaxonomyOption) -> "OptionModel":
        return cls(id=option.id, name=option.name)


def errors_by_path(errors: list[ValidationError]) -> dict[str, str]:
    return {error.path: error.message for error in errors}
