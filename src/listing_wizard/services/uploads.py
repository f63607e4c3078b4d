"""Asynchronous upload pipeline for listing media and documents."""

import asyncio
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Protocol
from uuid import uuid4

from listing_wizard.domain.assets import (
    RETRYABLE_STATES,
    Asset,
    AssetEvent,
    AssetKind,
    AssetState,
    StoredObject,
    is_durable_url,
    normalize_document_category,
    transition,
)
from listing_wizard.domain.sessions import FormSession

_logger = logging.getLogger(__name__)

IMAGE_CONTENT_TYPES = frozenset({"image/jpeg", "image/png"})

ProgressCallback = Callable[[int], None]


class ObjectStorage(Protocol):
    """Interface for durable binary storage."""

    async def upload(
        self,
        path: str,
        data: bytes,
        content_type: str,
        on_progress: ProgressCallback,
    ) -> StoredObject:
        """Store bytes at ``path``, reporting 0-100 progress."""

    async def delete(self, durable_ref: str) -> None:
        """Delete a stored object."""

    def resolve_url(self, durable_ref: str) -> str | None:
        """Return a renderable URL for a stored object, if it can be derived."""


@dataclass(frozen=True)
class LocalFile:
    """File bytes selected by the user, kept until the upload commits."""

    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class EnqueueResult:
    """Outcome of offering one file to the orchestrator."""

    asset_id: str | None = None
    error: str | None = None

    @property
    def accepted(self) -> bool:
        return self.asset_id is not None


@dataclass
class UploadHandle:
    """Tracked transfer task for one asset."""

    asset_id: str
    task: asyncio.Task

    def cancel(self) -> None:
        self.task.cancel()

    @property
    def done(self) -> bool:
        return self.task.done()


def _noop() -> None:
    return None


def _new_asset_id() -> str:
    return uuid4().hex


def storage_path(form_id: str, kind: AssetKind, name: str, timestamp_ms: int) -> str:
    """Return the storage path for an uploaded file."""
    folder = "images" if kind is AssetKind.MEDIA else "documents"
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("_") or "file"
    return f"listings/{form_id}/{folder}/{timestamp_ms}_{cleaned}"


@dataclass
class UploadOrchestrator:
    """Drives assets from placeholder to committed or error."""

    session: FormSession
    storage: ObjectStorage
    on_change: Callable[[], None] = _noop
    stall_timeout_seconds: float = 20
    uploading_debounce_seconds: float = 0.3
    max_media_count: int = 10
    max_image_bytes: int = 5 * 1024 * 1024
    max_document_bytes: int = 10 * 1024 * 1024
    clock: Callable[[], float] = time.monotonic
    new_id: Callable[[], str] = _new_asset_id
    _handles: dict[str, UploadHandle] = field(
        default_factory=dict, init=False, repr=False
    )
    _files: dict[str, LocalFile] = field(default_factory=dict, init=False, repr=False)
    _deletions: set[asyncio.Task] = field(default_factory=set, init=False, repr=False)
    _uploading_until: float = field(default=0.0, init=False, repr=False)

    def check_file(self, kind: AssetKind, file: LocalFile) -> str | None:
        """Return a rejection message for a file, or None when acceptable."""
        if kind is AssetKind.DOCUMENT:
            if file.size > self.max_document_bytes:
                return (
                    f"{file.name}: Document must be smaller than "
                    f"{self.max_document_bytes // (1024 * 1024)}MB"
                )
            return None
        if file.content_type not in IMAGE_CONTENT_TYPES:
            return f"{file.name}: Only JPG and PNG images are allowed"
        if file.size > self.max_image_bytes:
            return (
                f"{file.name}: Image must be smaller than "
                f"{self.max_image_bytes // (1024 * 1024)}MB"
            )
        if len(self.session.media_assets) >= self.max_media_count:
            return f"You can upload at most {self.max_media_count} images"
        if any(asset.name == file.name for asset in self.session.media_assets):
            return f"{file.name}: This image has already been added"
        return None

    def enqueue(
        self,
        kind: AssetKind,
        file: LocalFile,
        category: str | None = None,
        document_type: str | None = None,
    ) -> EnqueueResult:
        """Insert a pending placeholder and start its transfer."""
        rejection = self.check_file(kind, file)
        if rejection is not None:
            return EnqueueResult(error=rejection)
        asset_id = self.new_id()
        asset = Asset(
            id=asset_id,
            kind=kind,
            name=file.name,
            content_type=file.content_type,
            size=file.size,
            state=AssetState.PENDING,
            preview_ref=f"local:{asset_id}",
            category=(
                normalize_document_category(category)
                if kind is AssetKind.DOCUMENT
                else None
            ),
            document_type=document_type if kind is AssetKind.DOCUMENT else None,
        )
        self.session.assets(kind).append(asset)
        self._files[asset_id] = file
        self.on_change()
        self._start(asset_id)
        return EnqueueResult(asset_id=asset_id)

    def enqueue_many(
        self,
        kind: AssetKind,
        files: list[LocalFile],
        category: str | None = None,
    ) -> list[EnqueueResult]:
        return [self.enqueue(kind, file, category=category) for file in files]

    def retry(self, asset_id: str, file: LocalFile | None = None) -> bool:
        """Re-upload a failed or orphaned asset in place.

        Returns False when no bytes are available for the asset.
        """
        asset = self.get(asset_id)
        if asset.state not in RETRYABLE_STATES:
            return False
        if file is not None:
            self._files[asset_id] = file
            self._replace(
                replace(
                    asset,
                    name=file.name,
                    content_type=file.content_type,
                    size=file.size,
                    preview_ref=f"local:{asset_id}",
                )
            )
        if asset_id not in self._files:
            return False
        self._start(asset_id)
        return True

    def remove(self, asset_id: str) -> Asset:
        """Drop an asset from the session, cancelling or deleting as needed."""
        asset = self.get(asset_id)
        assets = self.session.assets(asset.kind)
        position = next(
            index for index, item in enumerate(assets) if item.id == asset_id
        )
        del assets[position]
        handle = self._handles.pop(asset_id, None)
        was_running = handle is not None and not handle.done
        if handle is not None:
            handle.cancel()
        self._files.pop(asset_id, None)
        if asset.durable_ref and asset.existing:
            refs = (
                self.session.deleted_media_refs
                if asset.kind is AssetKind.MEDIA
                else self.session.deleted_document_refs
            )
            refs.append(asset.durable_ref)
        elif asset.durable_ref and asset.state is AssetState.COMMITTED:
            self._delete_durable(asset.durable_ref)
        if asset.kind is AssetKind.MEDIA:
            self._shift_featured(position)
        self.on_change()
        if was_running:
            self._refresh_uploading()
        return asset

    def get(self, asset_id: str) -> Asset:
        """Return an asset by id, raising KeyError when unknown."""
        asset = self._find(asset_id)
        if asset is None:
            raise KeyError(asset_id)
        return asset

    def committed_assets(self, kind: AssetKind) -> list[Asset]:
        return [
            asset
            for asset in self.session.assets(kind)
            if asset.state is AssetState.COMMITTED
        ]

    def has_local_bytes(self, asset_id: str) -> bool:
        return asset_id in self._files

    @property
    def is_uploading(self) -> bool:
        """True while any transfer runs, and briefly after the last one ends."""
        if any(not handle.done for handle in self._handles.values()):
            return True
        return self.clock() < self._uploading_until

    def reconcile_restored(self) -> int:
        """Orphan restored assets that cannot be rendered, returning the count."""
        orphaned = 0
        for kind in (AssetKind.MEDIA, AssetKind.DOCUMENT):
            assets = self.session.assets(kind)
            for index, asset in enumerate(assets):
                restored = self._restore(asset)
                if restored.state is AssetState.ORPHANED:
                    orphaned += 1
                assets[index] = restored
        if orphaned:
            _logger.warning(
                "Restored assets need re-upload",
                extra={"form_id": self.session.form_id, "count": orphaned},
            )
        return orphaned

    def release_all(self) -> None:
        """Cancel transfers and drop local file bytes."""
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        self._files.clear()

    async def settle(self) -> None:
        """Wait for running transfers and storage deletions."""
        while True:
            pending = [handle.task for handle in self._handles.values()]
            pending.extend(self._deletions)
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def _restore(self, asset: Asset) -> Asset:
        if asset.durable_ref is None and not (
            asset.state is AssetState.COMMITTED and is_durable_url(asset.url)
        ):
            return replace(
                asset,
                state=AssetState.ORPHANED,
                progress=0,
                preview_ref=None,
                error="Upload did not finish before the page was closed",
            )
        if asset.state is not AssetState.COMMITTED:
            return asset
        if is_durable_url(asset.url):
            return asset
        url = self.storage.resolve_url(asset.durable_ref)
        if is_durable_url(url):
            return replace(asset, url=url)
        return transition(
            asset,
            AssetEvent.ORPHAN,
            url=None,
            error="Stored file could not be found, please upload it again",
        )

    def _start(self, asset_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        previous = self._handles.pop(asset_id, None)
        if previous is not None:
            previous.cancel()
        task = loop.create_task(self._transfer(asset_id))
        self._handles[asset_id] = UploadHandle(asset_id=asset_id, task=task)

    async def _transfer(self, asset_id: str) -> None:
        file = self._files.get(asset_id)
        asset = self._find(asset_id)
        if file is None or asset is None:
            return
        self._apply(asset_id, AssetEvent.START, progress=0, error=None)
        last_progress = [self.clock()]

        def on_progress(percent: int) -> None:
            last_progress[0] = self.clock()
            self._apply(
                asset_id, AssetEvent.PROGRESS, progress=max(0, min(100, int(percent)))
            )

        path = storage_path(
            self.session.form_id, asset.kind, file.name, int(time.time() * 1000)
        )
        upload = asyncio.ensure_future(
            self.storage.upload(path, file.data, file.content_type, on_progress)
        )
        try:
            stored = await self._watch(upload, last_progress)
        except TimeoutError:
            _logger.warning(
                "Upload stalled",
                extra={"asset_id": asset_id, "path": path},
            )
            self._apply(asset_id, AssetEvent.FAIL, error="Upload timed out")
        except asyncio.CancelledError:
            upload.cancel()
            raise
        except Exception:
            _logger.warning(
                "Upload failed",
                extra={"asset_id": asset_id, "path": path},
                exc_info=True,
            )
            self._apply(asset_id, AssetEvent.FAIL, error="Upload failed")
        else:
            if self._apply(
                asset_id,
                AssetEvent.COMMIT,
                progress=100,
                durable_ref=stored.durable_ref,
                url=stored.url,
                preview_ref=None,
            ):
                self._files.pop(asset_id, None)
            else:
                self._delete_durable(stored.durable_ref)
        finally:
            handle = self._handles.get(asset_id)
            if handle is not None and handle.task is asyncio.current_task():
                self._handles.pop(asset_id, None)
            self._refresh_uploading()
        self.on_change()

    async def _watch(
        self, upload: asyncio.Future, last_progress: list[float]
    ) -> StoredObject:
        while True:
            idle = self.clock() - last_progress[0]
            remaining = self.stall_timeout_seconds - idle
            if remaining <= 0:
                upload.cancel()
                raise TimeoutError
            done, _ = await asyncio.wait({upload}, timeout=remaining)
            if done:
                return upload.result()

    def _apply(self, asset_id: str, event: AssetEvent, **changes: object) -> bool:
        asset = self._find(asset_id)
        if asset is None:
            return False
        self._replace(transition(asset, event, **changes))
        return True

    def _find(self, asset_id: str) -> Asset | None:
        for asset in (*self.session.media_assets, *self.session.document_assets):
            if asset.id == asset_id:
                return asset
        return None

    def _replace(self, updated: Asset) -> None:
        assets = self.session.assets(updated.kind)
        for index, asset in enumerate(assets):
            if asset.id == updated.id:
                assets[index] = updated
                return

    def _shift_featured(self, removed_position: int) -> None:
        featured = self.session.featured_media_index
        if removed_position == featured:
            featured = 0
        elif removed_position < featured:
            featured -= 1
        self.session.featured_media_index = max(
            0, min(featured, len(self.session.media_assets) - 1)
        )

    def _refresh_uploading(self) -> None:
        # Called only when a running transfer ends or is cancelled.
        if not any(not handle.done for handle in self._handles.values()):
            self._uploading_until = self.clock() + self.uploading_debounce_seconds

    def _delete_durable(self, durable_ref: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._delete_quietly(durable_ref))
        self._deletions.add(task)
        task.add_done_callback(self._deletions.discard)

    async def _delete_quietly(self, durable_ref: str) -> None:
        try:
            await self.storage.delete(durable_ref)
        except Exception:
            _logger.warning(
                "Failed to delete stored file",
                extra={"durable_ref": durable_ref},
                exc_info=True,
            )
