"""Step controller tying validation, persistence and uploads together."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

from listing_wizard.catalogue import default_record
from listing_wizard.domain.assets import Asset, AssetKind, AssetState
from listing_wizard.domain.listings import (
    DETAILS_PREFIX,
    MAX_CLASSIFICATIONS,
    MAX_SUBCATEGORIES,
    ClassificationEntry,
    ListingStatus,
    ListingType,
)
from listing_wizard.domain.records import (
    flatten,
    get_value,
    index_of,
    instantiate,
    set_value,
    template_of,
    unflatten,
)
from listing_wizard.domain.schema import (
    FieldKind,
    OptionSource,
    StepDefinition,
    ValidationError,
)
from listing_wizard.domain.sessions import (
    SESSION_ACTIVE,
    SESSION_SUBMITTED,
    FormSession,
    SessionSnapshot,
)
from listing_wizard.services.persistence import (
    KeyValueStore,
    SessionStore,
    asset_from_dict,
    snapshot_session,
)
from listing_wizard.services.schema import (
    exclusive_paths,
    remap_step_index,
    resolve_schema,
    resolve_steps,
)
from listing_wizard.services.taxonomy import TaxonomyService
from listing_wizard.services.uploads import (
    EnqueueResult,
    LocalFile,
    ObjectStorage,
    UploadOrchestrator,
)
from listing_wizard.services.validation import ValidationEngine

_logger = logging.getLogger(__name__)

SHORT_DESCRIPTION_LENGTH = 150


class ListingRepository(Protocol):
    """Interface for the remote listing service."""

    def create_listing(
        self,
        payload: dict[str, object],
        media: list[dict[str, object]],
        documents: list[dict[str, object]],
    ) -> str:
        """Create a listing and return its id."""

    def update_listing(  # noqa: PLR0913
        self,
        listing_id: str,
        payload: dict[str, object],
        new_media: list[dict[str, object]],
        new_documents: list[dict[str, object]],
        deleted_media_refs: list[str],
        deleted_document_refs: list[str],
    ) -> None:
        """Update an existing listing."""

    def get_listing(self, listing_id: str) -> dict[str, object] | None:
        """Return a listing payload by id."""


class SubmissionError(RuntimeError):
    """Raised when the remote listing service rejects a submission."""


@dataclass(frozen=True)
class StepResult:
    """Outcome of a navigation attempt."""

    ok: bool
    step_index: int
    errors: list[ValidationError] = field(default_factory=list)
    first_error_path: str | None = None


@dataclass(frozen=True)
class SubmitResult:
    """Outcome of a submission attempt."""

    ok: bool
    listing_id: str | None = None
    errors: list[ValidationError] = field(default_factory=list)
    first_error_path: str | None = None
    step_index: int | None = None


@dataclass(frozen=True)
class StepView:
    """What a step UI receives: read-only state plus mutation callbacks."""

    form_id: str
    step: StepDefinition
    step_index: int
    steps: tuple[StepDefinition, ...]
    visited_steps: tuple[int, ...]
    record: dict[str, object]
    errors: dict[str, str]
    assets: tuple[Asset, ...]
    featured_media_index: int
    is_uploading: bool
    set_field: Callable[[str, object], ValidationError | None]
    upload: Callable[..., EnqueueResult]
    remove: Callable[[str], Asset]
    retry: Callable[..., bool]


@dataclass
class ListingWizard:
    """One open listing wizard."""

    session: FormSession
    store: SessionStore
    validator: ValidationEngine
    uploads: UploadOrchestrator
    listings: ListingRepository
    taxonomy: TaxonomyService | None = None

    def __post_init__(self) -> None:
        self.uploads.on_change = self.schedule_save

    @property
    def steps(self) -> tuple[StepDefinition, ...]:
        return resolve_steps(self.session.discriminant)

    @property
    def current_step(self) -> StepDefinition:
        return self.steps[self.session.active_step_index]

    @property
    def is_last_step(self) -> bool:
        return self.session.active_step_index == len(self.steps) - 1

    def snapshot(self) -> SessionSnapshot:
        return snapshot_session(self.session)

    def schedule_save(self) -> None:
        self.store.schedule_save(self.snapshot)

    def set_field(self, path: str, value: object) -> ValidationError | None:
        """Write a field, cascading resets to its dependents.

        Raises KeyError for paths the active schema does not know.
        """
        if path == "type":
            return self.change_listing_type(value)
        rule = self.validator.schema.rule_for(path)
        if rule is None or rule.kind is FieldKind.ASSETS:
            raise KeyError(path)
        value = self.validator.coerce(path, value)
        previous = get_value(self.session.record, path)
        set_value(self.session.record, path, value)
        if previous != value:
            self.validator.reset_descendants(path)
        error = self.validator.apply_field(path)
        self.validator.refresh_errors()
        self.validator.schedule_remote_check(path)
        self.schedule_save()
        return error

    def change_listing_type(self, value: object) -> ValidationError | None:
        """Switch the listing variant, clearing fields only the old one owned."""
        previous = self.session.discriminant
        previous_steps = self.steps
        selected = ListingType.parse(value)
        self.session.record["type"] = selected.value if selected else value
        if selected is not previous and previous is not None:
            for path in exclusive_paths(previous, selected):
                self.session.record.pop(path, None)
        current_steps = self.steps
        self.session.active_step_index = remap_step_index(
            previous_steps, current_steps, self.session.active_step_index
        )
        self.session.visited_steps = _remap_visited(
            previous_steps,
            current_steps,
            self.session.visited_steps,
            self.session.active_step_index,
        )
        self.store.save_pointer(
            self.session.active_step_index, self.session.visited_steps
        )
        error = self.validator.apply_field("type")
        self.validator.refresh_errors()
        self.schedule_save()
        return error

    def add_classification(self) -> ValidationError | None:
        entries = self._classifications()
        if len(entries) >= MAX_CLASSIFICATIONS:
            error = ValidationError(
                "classifications",
                f"You can add up to {MAX_CLASSIFICATIONS} industries",
            )
            self.session.errors[error.path] = error.message
            return error
        entries.append(ClassificationEntry().to_dict())
        self.session.record["classifications"] = entries
        self.validator.clear_errors(["classifications"])
        self.schedule_save()
        return None

    def remove_classification(self, index: int) -> None:
        """Remove an entry, re-keying errors of the entries after it."""
        entries = self._classifications()
        if not 0 <= index < len(entries):
            raise KeyError(f"classifications.{index}")
        del entries[index]
        self.session.record["classifications"] = entries
        stale = [
            path for path in self.session.errors if path.startswith("classifications.")
        ]
        shifted = []
        for path in stale:
            self.session.errors.pop(path, None)
            position = index_of(path)
            if position is None or position == index:
                continue
            if position > index:
                position -= 1
            shifted.append(instantiate(template_of(path), position))
        for path in shifted:
            error = self.validator.validate_field(path)
            if error is not None:
                self.session.errors[path] = error.message
        self.validator.refresh_errors()
        self.schedule_save()

    def select_industry(
        self, index: int, industry_id: str, industry_name: str | None = None
    ) -> ValidationError | None:
        error = self.set_field(f"classifications.{index}.industry", industry_id)
        name = industry_name or self._option_name(
            OptionSource.INDUSTRIES, None, industry_id
        )
        set_value(self.session.record, f"classifications.{index}.industryName", name)
        self.schedule_save()
        if self.taxonomy is not None and industry_id:
            self.taxonomy.prefetch(OptionSource.CATEGORIES, industry_id)
        return error

    def select_category(
        self, index: int, category_id: str, category_name: str | None = None
    ) -> ValidationError | None:
        record = self.session.record
        industry_id = get_value(record, f"classifications.{index}.industry")
        error = self.set_field(f"classifications.{index}.category", category_id)
        name = category_name or self._option_name(
            OptionSource.CATEGORIES, str(industry_id or ""), category_id
        )
        set_value(self.session.record, f"classifications.{index}.categoryName", name)
        self.schedule_save()
        if self.taxonomy is not None and category_id:
            self.taxonomy.prefetch(OptionSource.SUBCATEGORIES, category_id)
        return error

    def toggle_subcategory(
        self, index: int, subcategory_id: str, subcategory_name: str | None = None
    ) -> ValidationError | None:
        """Add or remove one subcategory of an entry."""
        path = f"classifications.{index}.subCategories"
        names_path = f"classifications.{index}.subCategoryNames"
        if not 0 <= index < len(self._classifications()):
            raise KeyError(path)
        selected = list(get_value(self.session.record, path) or [])
        names = list(get_value(self.session.record, names_path) or [])
        if subcategory_id in selected:
            position = selected.index(subcategory_id)
            del selected[position]
            if position < len(names):
                del names[position]
        else:
            if len(selected) >= MAX_SUBCATEGORIES:
                error = ValidationError(
                    path, f"You can select up to {MAX_SUBCATEGORIES} subcategories"
                )
                self.session.errors[path] = error.message
                return error
            category_id = get_value(
                self.session.record, f"classifications.{index}.category"
            )
            selected.append(subcategory_id)
            names.append(
                subcategory_name
                or self._option_name(
                    OptionSource.SUBCATEGORIES, str(category_id or ""), subcategory_id
                )
            )
        set_value(self.session.record, path, selected)
        set_value(self.session.record, names_path, names)
        error = self.validator.apply_field(path)
        self.validator.schedule_remote_check(path)
        self.schedule_save()
        return error

    async def can_advance(self, index: int | None = None) -> bool:
        """Return True when the step's owned fields validate cleanly."""
        await self.validator.settle()
        step = self.steps[self.session.active_step_index if index is None else index]
        return not self.validator.validate_fields(self.validator.step_owned_paths(step))

    async def advance(self) -> StepResult:
        """Gate on the current step and move forward when it passes."""
        await self.validator.settle()
        index = self.session.active_step_index
        check = self.validator.check_step(self.current_step)
        if not check.ok:
            return StepResult(
                ok=False,
                step_index=index,
                errors=check.errors,
                first_error_path=check.first_error_path,
            )
        if self.is_last_step:
            return StepResult(ok=False, step_index=index)
        target = index + 1
        self.session.visited_steps.add(target)
        self.store.save_pointer(target, self.session.visited_steps)
        self.session.active_step_index = target
        return StepResult(ok=True, step_index=target)

    def can_retreat(self) -> bool:
        return self.session.active_step_index > 0

    def retreat(self) -> StepResult:
        """Move back one step without validating."""
        index = self.session.active_step_index
        if not self.can_retreat():
            return StepResult(ok=False, step_index=0)
        self.store.save_pointer(index - 1, self.session.visited_steps)
        self.session.active_step_index = index - 1
        return StepResult(ok=True, step_index=index - 1)

    async def jump_to(self, index: int) -> StepResult:
        """Jump back to a visited step, or forward by exactly one valid step."""
        current = self.session.active_step_index
        if index == current + 1:
            return await self.advance()
        if 0 <= index <= current and index in self.session.visited_steps:
            self.store.save_pointer(index, self.session.visited_steps)
            self.session.active_step_index = index
            return StepResult(ok=True, step_index=index)
        return StepResult(ok=False, step_index=current)

    async def submit(self, save_as_draft: bool = False) -> SubmitResult:
        """Validate everything and hand the listing to the remote service.

        Raises SubmissionError when the remote call fails; the session is left
        as it was so the user can retry.
        """
        if not self.is_last_step:
            raise ValueError("Listings can only be submitted from the last step")
        await self.validator.settle()
        errors = self.validator.validate_all()
        if errors:
            self.validator.record_errors([error.path for error in errors], errors)
            target = self._first_step_with_error(errors)
            self.store.save_pointer(target, self.session.visited_steps)
            self.session.active_step_index = target
            return SubmitResult(
                ok=False,
                errors=errors,
                first_error_path=errors[0].path,
                step_index=target,
            )
        payload = build_listing_payload(self.session, save_as_draft=save_as_draft)
        featured = committed_featured_index(self.session)
        media = [
            asset_payload(asset, featured=position == featured)
            for position, asset in enumerate(
                self.uploads.committed_assets(AssetKind.MEDIA)
            )
        ]
        documents = [
            asset_payload(asset)
            for asset in self.uploads.committed_assets(AssetKind.DOCUMENT)
        ]
        try:
            if self.session.listing_id is not None:
                self.listings.update_listing(
                    self.session.listing_id,
                    payload,
                    [item for item in media if not item["existing"]],
                    [item for item in documents if not item["existing"]],
                    list(self.session.deleted_media_refs),
                    list(self.session.deleted_document_refs),
                )
                listing_id = self.session.listing_id
            else:
                listing_id = self.listings.create_listing(payload, media, documents)
        except Exception as exc:
            _logger.exception(
                "Listing submission failed",
                extra={
                    "form_id": self.session.form_id,
                    "listing_id": self.session.listing_id,
                },
            )
            raise SubmissionError("The listing could not be saved") from exc
        self.store.clear()
        self.uploads.release_all()
        self.session.status = SESSION_SUBMITTED
        _logger.info(
            "Listing submitted",
            extra={"form_id": self.session.form_id, "listing_id": listing_id},
        )
        return SubmitResult(ok=True, listing_id=listing_id)

    def start_over(self) -> None:
        """Discard the draft and begin a fresh listing."""
        self.uploads.release_all()
        self.validator.reset()
        self.store.clear()
        session = self.session
        session.record = default_record()
        session.active_step_index = 0
        session.visited_steps = {0}
        session.media_assets.clear()
        session.document_assets.clear()
        session.featured_media_index = 0
        session.errors.clear()
        session.listing_id = None
        session.deleted_media_refs.clear()
        session.deleted_document_refs.clear()
        session.status = SESSION_ACTIVE

    def set_featured(self, index: int) -> None:
        if not 0 <= index < len(self.session.media_assets):
            raise IndexError(index)
        self.session.featured_media_index = index
        self.store.save_featured(index)
        self.schedule_save()

    def upload(
        self,
        kind: AssetKind,
        file: LocalFile,
        category: str | None = None,
        document_type: str | None = None,
    ) -> EnqueueResult:
        return self.uploads.enqueue(
            kind, file, category=category, document_type=document_type
        )

    def remove_asset(self, asset_id: str) -> Asset:
        removed = self.uploads.remove(asset_id)
        if removed.kind is AssetKind.MEDIA:
            self.store.save_featured(self.session.featured_media_index)
        self.validator.refresh_errors()
        return removed

    def retry_asset(self, asset_id: str, file: LocalFile | None = None) -> bool:
        return self.uploads.retry(asset_id, file)

    def step_view(self) -> StepView:
        """Return the current step's inputs for an external UI."""
        step = self.current_step
        owned = set(self.validator.step_owned_paths(step))
        assets = (
            tuple(self.session.assets(step.asset_kind))
            if step.asset_kind is not None
            else ()
        )
        return StepView(
            form_id=self.session.form_id,
            step=step,
            step_index=self.session.active_step_index,
            steps=self.steps,
            visited_steps=tuple(sorted(self.session.visited_steps)),
            record=dict(self.session.record),
            errors={
                path: message
                for path, message in self.session.errors.items()
                if path in owned
            },
            assets=assets,
            featured_media_index=self.session.featured_media_index,
            is_uploading=self.uploads.is_uploading,
            set_field=self.set_field,
            upload=self.upload,
            remove=self.remove_asset,
            retry=self.retry_asset,
        )

    async def close(self) -> None:
        """Flush the pending draft and release local resources."""
        if self.session.status == SESSION_ACTIVE:
            self.store.flush()
        self.uploads.release_all()

    def _classifications(self) -> list[dict[str, object]]:
        entries = self.session.record.get("classifications")
        if not isinstance(entries, list):
            return []
        return [dict(entry) for entry in entries if isinstance(entry, dict)]

    def _option_name(
        self, source: OptionSource, parent_id: str | None, option_id: str
    ) -> str:
        if self.taxonomy is None:
            return ""
        return self.taxonomy.name_for(source, parent_id, option_id) or ""

    def _first_step_with_error(self, errors: list[ValidationError]) -> int:
        failing = {error.path for error in errors}
        for position, step in enumerate(self.steps):
            if failing.intersection(self.validator.step_owned_paths(step)):
                return position
        return self.session.active_step_index


def _remap_visited(
    previous_steps: tuple[StepDefinition, ...],
    current_steps: tuple[StepDefinition, ...],
    visited: set[int],
    active_index: int,
) -> set[int]:
    positions = {step.id: position for position, step in enumerate(current_steps)}
    remapped = {
        positions[previous_steps[index].id]
        for index in visited
        if 0 <= index < len(previous_steps) and previous_steps[index].id in positions
    }
    remapped.add(active_index)
    return remapped


def build_listing_payload(
    session: FormSession, save_as_draft: bool = False
) -> dict[str, object]:
    """Assemble the nested listing payload for the active variant."""
    listing_type = session.discriminant
    foreign = tuple(
        f"{prefix}."
        for variant, prefix in DETAILS_PREFIX.items()
        if variant is not listing_type
    )
    fields = {
        path: value
        for path, value in session.record.items()
        if path != "classifications" and not path.startswith(foreign)
    }
    payload = unflatten(fields)
    payload["type"] = listing_type.value if listing_type else None
    payload["classifications"] = [
        ClassificationEntry.from_dict(entry).to_dict()
        for entry in session.record.get("classifications") or []
        if isinstance(entry, dict)
    ]
    description = str(payload.get("description") or "")
    if not payload.get("shortDescription") and description:
        payload["shortDescription"] = (
            description[:SHORT_DESCRIPTION_LENGTH] + "..."
        )
    if save_as_draft:
        payload["status"] = ListingStatus.DRAFT.value
    payload["featuredMediaIndex"] = committed_featured_index(session)
    return payload


def committed_featured_index(session: FormSession) -> int:
    """Position of the featured image among committed images, 0 when it has none."""
    committed = [
        asset.id
        for asset in session.media_assets
        if asset.state is AssetState.COMMITTED
    ]
    index = session.featured_media_index
    if 0 <= index < len(session.media_assets):
        featured_id = session.media_assets[index].id
        if featured_id in committed:
            return committed.index(featured_id)
    return 0


def asset_payload(asset: Asset, featured: bool = False) -> dict[str, object]:
    """Describe a committed asset for the remote listing service."""
    payload: dict[str, object] = {
        "id": asset.id,
        "name": asset.name,
        "url": asset.url,
        "path": asset.durable_ref,
        "contentType": asset.content_type,
        "size": asset.size,
        "existing": asset.existing,
    }
    if asset.kind is AssetKind.MEDIA:
        payload["isFeatured"] = featured
    else:
        payload["category"] = asset.category
        payload["type"] = asset.document_type
    return payload


def hydrate_session(
    form_id: str, listing_id: str, remote: dict[str, object]
) -> FormSession:
    """Build an edit session from a stored listing."""
    listing_type = ListingType.parse(remote.get("type"))
    schema = resolve_schema(listing_type)
    record = default_record()
    record.update(flatten(remote, schema.data_paths()))
    record["type"] = listing_type.value if listing_type else None
    record["classifications"] = [
        ClassificationEntry.from_dict(entry).to_dict()
        for entry in remote.get("classifications") or []
        if isinstance(entry, dict)
    ]
    media = [
        _existing_asset(AssetKind.MEDIA, entry)
        for entry in remote.get("media") or []
        if isinstance(entry, dict)
    ]
    documents = [
        _existing_asset(AssetKind.DOCUMENT, entry)
        for entry in remote.get("documents") or []
        if isinstance(entry, dict)
    ]
    featured = remote.get("featuredMediaIndex")
    steps = resolve_steps(listing_type)
    return FormSession(
        form_id=form_id,
        record=record,
        visited_steps=set(range(len(steps))),
        media_assets=media,
        document_assets=documents,
        featured_media_index=(
            featured if isinstance(featured, int) and 0 <= featured < len(media) else 0
        ),
        listing_id=listing_id,
    )


def _existing_asset(kind: AssetKind, entry: dict[str, object]) -> Asset:
    return asset_from_dict(
        kind,
        {
            "id": entry.get("id") or entry.get("path") or entry.get("url") or "",
            "name": entry.get("name") or "",
            "state": AssetState.COMMITTED.value,
            "content_type": entry.get("contentType") or "",
            "size": entry.get("size") or 0,
            "durable_ref": entry.get("path"),
            "url": entry.get("url"),
            "category": entry.get("category"),
            "document_type": entry.get("type"),
            "existing": True,
        },
    )


def restore_session(snapshot: SessionSnapshot) -> FormSession:
    """Rebuild a session from a stored draft, clamping its step pointer."""
    record = default_record()
    record.update(snapshot.record)
    steps = resolve_steps(ListingType.parse(record.get("type")))
    active = max(0, min(snapshot.active_step_index, len(steps) - 1))
    visited = {index for index in snapshot.visited_steps if 0 <= index < len(steps)}
    visited.update({0, active})
    media = [asset_from_dict(AssetKind.MEDIA, entry) for entry in snapshot.media]
    documents = [
        asset_from_dict(AssetKind.DOCUMENT, entry) for entry in snapshot.documents
    ]
    featured = snapshot.featured_media_index
    return FormSession(
        form_id=snapshot.form_id,
        record=record,
        active_step_index=active,
        visited_steps=visited,
        media_assets=media,
        document_assets=documents,
        featured_media_index=featured if 0 <= featured < len(media) else 0,
        listing_id=snapshot.listing_id,
        deleted_media_refs=list(snapshot.deleted_media_refs),
        deleted_document_refs=list(snapshot.deleted_document_refs),
    )


@dataclass(frozen=True)
class WizardOpening:
    """An opened wizard and what the user should be told about it."""

    wizard: ListingWizard
    restored: bool
    orphaned_count: int

    @property
    def notice(self) -> str | None:
        if not self.orphaned_count:
            return None
        noun = "file needs" if self.orphaned_count == 1 else "files need"
        return f"{self.orphaned_count} {noun} to be uploaded again"


@dataclass
class WizardService:
    """Opens wizards for new drafts, restored drafts and edits."""

    drafts: KeyValueStore
    storage: ObjectStorage
    listings: ListingRepository
    taxonomy: TaxonomyService | None = None
    persist_debounce_seconds: float = 0.75
    upload_stall_timeout_seconds: float = 20
    uploading_flag_debounce_seconds: float = 0.3
    min_media_count: int = 3
    max_media_count: int = 10
    max_image_bytes: int = 5 * 1024 * 1024
    max_document_bytes: int = 10 * 1024 * 1024

    def start(self, form_id: str) -> WizardOpening:
        """Open a wizard, restoring the stored draft when there is one."""
        store = self._store(form_id)
        snapshot = store.load()
        if snapshot is None:
            session = FormSession(form_id=form_id, record=default_record())
            return WizardOpening(self._assemble(session, store), False, 0)
        return self._restore(snapshot, store)

    def edit(self, form_id: str, listing_id: str) -> WizardOpening:
        """Open a wizard on an existing listing.

        A local draft for the same listing wins over the remote copy.
        Raises KeyError when the listing does not exist.
        """
        store = self._store(form_id)
        snapshot = store.load()
        if snapshot is not None and snapshot.listing_id == listing_id:
            return self._restore(snapshot, store)
        remote = self.listings.get_listing(listing_id)
        if remote is None:
            raise KeyError(listing_id)
        if snapshot is not None:
            store.clear()
        session = hydrate_session(form_id, listing_id, remote)
        wizard = self._assemble(session, store)
        store.save(wizard.snapshot())
        _logger.info(
            "Opened listing for editing",
            extra={"form_id": form_id, "listing_id": listing_id},
        )
        return WizardOpening(wizard, False, 0)

    def _restore(self, snapshot: SessionSnapshot, store: SessionStore) -> WizardOpening:
        session = restore_session(snapshot)
        wizard = self._assemble(session, store)
        orphaned = wizard.uploads.reconcile_restored()
        if orphaned:
            store.save(wizard.snapshot())
        _logger.info(
            "Restored draft",
            extra={
                "form_id": session.form_id,
                "step": session.active_step_index,
                "orphaned": orphaned,
            },
        )
        return WizardOpening(wizard, True, orphaned)

    def _store(self, form_id: str) -> SessionStore:
        return SessionStore(
            store=self.drafts,
            form_id=form_id,
            debounce_seconds=self.persist_debounce_seconds,
        )

    def _assemble(self, session: FormSession, store: SessionStore) -> ListingWizard:
        validator = ValidationEngine(
            session=session,
            taxonomy=self.taxonomy,
            min_media_count=self.min_media_count,
        )
        uploads = UploadOrchestrator(
            session=session,
            storage=self.storage,
            stall_timeout_seconds=self.upload_stall_timeout_seconds,
            uploading_debounce_seconds=self.uploading_flag_debounce_seconds,
            max_media_count=self.max_media_count,
            max_image_bytes=self.max_image_bytes,
            max_document_bytes=self.max_document_bytes,
        )
        return ListingWizard(
            session=session,
            store=store,
            validator=validator,
            uploads=uploads,
            listings=self.listings,
            taxonomy=self.taxonomy,
        )


@dataclass
class WizardRegistry:
    """Open wizards keyed by form id."""

    _wizards: dict[str, ListingWizard] = field(default_factory=dict)

    def get(self, form_id: str) -> ListingWizard:
        """Return an open wizard, raising KeyError when there is none."""
        return self._wizards[form_id]

    def put(self, wizard: ListingWizard) -> None:
        self._wizards[wizard.session.form_id] = wizard

    def discard(self, form_id: str) -> ListingWizard | None:
        return self._wizards.pop(form_id, None)

    def __len__(self) -> int:
        return len(self._wizards)

    async def close_all(self) -> None:
        for wizard in list(self._wizards.values()):
            await wizard.close()
        self._wizards.clear()
