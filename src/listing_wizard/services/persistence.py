"""Crash-resilient draft persistence for wizard sessions."""

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as ShapeError

from listing_wizard.domain.assets import (
    EPHEMERAL_URL_PREFIXES,
    Asset,
    AssetKind,
    AssetState,
    is_durable_url,
)
from listing_wizard.domain.sessions import FormSession, SessionSnapshot

_logger = logging.getLogger(__name__)

KEY_NAMESPACE = "listing_form"
RECORD_KEY = "record"
ACTIVE_STEP_KEY = "active_step"
VISITED_STEPS_KEY = "visited_steps"
FEATURED_MEDIA_KEY = "featured_media"
MEDIA_KEY = "media"
DOCUMENTS_KEY = "documents"


class KeyValueStore(Protocol):
    """Durable string key-value storage backing the draft store."""

    def get(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent."""

    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    def delete(self, key: str) -> None:
        """Remove a key if present."""

    def keys(self, prefix: str) -> list[str]:
        """Return every stored key starting with ``prefix``."""


class _RecordEnvelope(BaseModel):
    fields: dict[str, Any]
    listing_id: str | None = None
    deleted_media_refs: list[str] = []
    deleted_document_refs: list[str] = []


class _AssetEntry(BaseModel):
    id: str
    name: str
    state: str
    content_type: str = ""
    size: int = 0
    durable_ref: str | None = None
    url: str | None = None
    error: str | None = None
    category: str | None = None
    document_type: str | None = None
    existing: bool = False


_ASSET_LIST = TypeAdapter(list[_AssetEntry])
_INDEX = TypeAdapter(int)
_INDEX_LIST = TypeAdapter(list[int])


@dataclass
class SessionStore:
    """Namespaced draft keys for one form session.

    Record and asset lists are written through a debounced save that always
    serializes the latest snapshot. Step and featured-media pointers are
    written immediately.
    """

    store: KeyValueStore
    form_id: str
    debounce_seconds: float = 0.75
    max_retries: int = 3
    _source: Callable[[], SessionSnapshot] | None = field(
        default=None, init=False, repr=False
    )
    _timer: asyncio.TimerHandle | None = field(default=None, init=False, repr=False)
    _failures: int = field(default=0, init=False, repr=False)

    def key(self, name: str) -> str:
        return f"{KEY_NAMESPACE}:{self.form_id}:{name}"

    @property
    def has_pending_write(self) -> bool:
        return self._source is not None

    def save(self, snapshot: SessionSnapshot) -> bool:
        """Write every key of a snapshot, returning False if any write failed."""
        values = {
            RECORD_KEY: {
                "fields": snapshot.record,
                "listing_id": snapshot.listing_id,
                "deleted_media_refs": list(snapshot.deleted_media_refs),
                "deleted_document_refs": list(snapshot.deleted_document_refs),
            },
            ACTIVE_STEP_KEY: snapshot.active_step_index,
            VISITED_STEPS_KEY: sorted(snapshot.visited_steps),
            FEATURED_MEDIA_KEY: snapshot.featured_media_index,
            MEDIA_KEY: list(snapshot.media),
            DOCUMENTS_KEY: list(snapshot.documents),
        }
        ok = True
        for name, value in values.items():
            ok = self._write(name, value) and ok
        return ok

    def schedule_save(self, source: Callable[[], SessionSnapshot]) -> None:
        """Coalesce writes into one save shortly after the last mutation."""
        self._source = source
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write_latest()
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.debounce_seconds, self._on_tick)

    def flush(self) -> bool:
        """Write any pending snapshot now."""
        self._cancel_timer()
        return self._write_latest()

    def save_pointer(self, active_step_index: int, visited_steps: set[int]) -> bool:
        """Write the step pointer immediately."""
        ok = self._write(ACTIVE_STEP_KEY, active_step_index)
        return self._write(VISITED_STEPS_KEY, sorted(visited_steps)) and ok

    def save_featured(self, featured_media_index: int) -> bool:
        """Write the featured-media pointer immediately."""
        return self._write(FEATURED_MEDIA_KEY, featured_media_index)

    def load(self) -> SessionSnapshot | None:
        """Read the stored draft, or None when it is absent or unusable.

        A record that fails its shape check discards the whole draft. A
        damaged secondary key is dropped and replaced by its default.
        """
        raw = self._read(RECORD_KEY)
        if raw is None:
            return None
        try:
            envelope = _RecordEnvelope.model_validate_json(raw)
        except ShapeError:
            _logger.warning(
                "Discarding corrupted draft",
                extra={"form_id": self.form_id},
            )
            self.clear()
            return None
        visited = self._read_shaped(VISITED_STEPS_KEY, _INDEX_LIST, [0])
        media = self._read_shaped(MEDIA_KEY, _ASSET_LIST, [])
        documents = self._read_shaped(DOCUMENTS_KEY, _ASSET_LIST, [])
        return SessionSnapshot(
            form_id=self.form_id,
            record=envelope.fields,
            active_step_index=self._read_shaped(ACTIVE_STEP_KEY, _INDEX, 0),
            visited_steps=tuple(sorted(set(visited))),
            featured_media_index=self._read_shaped(FEATURED_MEDIA_KEY, _INDEX, 0),
            media=tuple(entry.model_dump() for entry in media),
            documents=tuple(entry.model_dump() for entry in documents),
            listing_id=envelope.listing_id,
            deleted_media_refs=tuple(envelope.deleted_media_refs),
            deleted_document_refs=tuple(envelope.deleted_document_refs),
        )

    def clear(self) -> None:
        """Cancel pending writes and remove every key of this form."""
        self._cancel_timer()
        self._source = None
        self._failures = 0
        prefix = f"{KEY_NAMESPACE}:{self.form_id}:"
        try:
            keys = set(self.store.keys(prefix))
        except Exception:
            _logger.warning(
                "Failed to list draft keys",
                extra={"form_id": self.form_id},
                exc_info=True,
            )
            keys = set()
        keys.update(
            self.key(name)
            for name in (
                RECORD_KEY,
                ACTIVE_STEP_KEY,
                VISITED_STEPS_KEY,
                FEATURED_MEDIA_KEY,
                MEDIA_KEY,
                DOCUMENTS_KEY,
            )
        )
        for key in sorted(keys):
            try:
                self.store.delete(key)
            except Exception:
                _logger.warning(
                    "Failed to delete draft key",
                    extra={"form_id": self.form_id, "key": key},
                    exc_info=True,
                )

    def _on_tick(self) -> None:
        self._timer = None
        if self._write_latest():
            return
        if self._failures > self.max_retries:
            _logger.warning(
                "Giving up on draft write until the next change",
                extra={"form_id": self.form_id, "failures": self._failures},
            )
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_seconds, self._on_tick)

    def _write_latest(self) -> bool:
        source = self._source
        if source is None:
            return True
        if self.save(source()):
            if self._source is source:
                self._source = None
            self._failures = 0
            return True
        self._failures += 1
        return False

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _write(self, name: str, value: object) -> bool:
        try:
            self.store.set(self.key(name), json.dumps(value))
        except Exception:
            _logger.warning(
                "Failed to write draft key",
                extra={"form_id": self.form_id, "key": name},
                exc_info=True,
            )
            return False
        return True

    def _read(self, name: str) -> str | None:
        try:
            return self.store.get(self.key(name))
        except Exception:
            _logger.warning(
                "Failed to read draft key",
                extra={"form_id": self.form_id, "key": name},
                exc_info=True,
            )
            return None

    def _read_shaped(self, name: str, adapter: TypeAdapter, default: Any) -> Any:
        raw = self._read(name)
        if raw is None:
            return default
        try:
            return adapter.validate_json(raw)
        except ShapeError:
            _logger.warning(
                "Dropping corrupted draft key",
                extra={"form_id": self.form_id, "key": name},
            )
            try:
                self.store.delete(self.key(name))
            except Exception:
                _logger.warning(
                    "Failed to delete draft key",
                    extra={"form_id": self.form_id, "key": name},
                    exc_info=True,
                )
            return default


def snapshot_session(session: FormSession) -> SessionSnapshot:
    """Build a JSON-safe snapshot of a session."""
    return SessionSnapshot(
        form_id=session.form_id,
        record=sanitize_record(session.record),
        active_step_index=session.active_step_index,
        visited_steps=tuple(sorted(session.visited_steps)),
        featured_media_index=session.featured_media_index,
        media=tuple(asset_to_dict(asset) for asset in session.media_assets),
        documents=tuple(asset_to_dict(asset) for asset in session.document_assets),
        listing_id=session.listing_id,
        deleted_media_refs=tuple(session.deleted_media_refs),
        deleted_document_refs=tuple(session.deleted_document_refs),
    )


_DROP = object()


def _sanitize(value: object) -> object:
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, str):
        return _DROP if value.startswith(EPHEMERAL_URL_PREFIXES) else value
    if isinstance(value, dict):
        cleaned = {}
        for key, item in value.items():
            result = _sanitize(item)
            if result is not _DROP:
                cleaned[str(key)] = result
        return cleaned
    if isinstance(value, list | tuple):
        return [item for item in map(_sanitize, value) if item is not _DROP]
    return _DROP


def sanitize_record(record: dict[str, object]) -> dict[str, object]:
    """Strip values that cannot survive a reload."""
    cleaned = _sanitize(record)
    return cleaned if isinstance(cleaned, dict) else {}


def asset_to_dict(asset: Asset) -> dict[str, object]:
    """Serialize an asset, keeping only durable references."""
    return {
        "id": asset.id,
        "name": asset.name,
        "state": asset.state.value,
        "content_type": asset.content_type,
        "size": asset.size,
        "durable_ref": asset.durable_ref,
        "url": asset.url if is_durable_url(asset.url) else None,
        "error": asset.error,
        "category": asset.category,
        "document_type": asset.document_type,
        "existing": asset.existing,
    }


def asset_from_dict(kind: AssetKind, payload: dict[str, object]) -> Asset:
    """Rebuild an asset from its stored form."""
    try:
        state = AssetState(payload.get("state"))
    except ValueError:
        state = AssetState.ORPHANED
    return Asset(
        id=str(payload["id"]),
        kind=kind,
        name=str(payload.get("name") or ""),
        content_type=str(payload.get("content_type") or ""),
        size=int(payload.get("size") or 0),
        state=state,
        progress=100 if state is AssetState.COMMITTED else 0,
        durable_ref=payload.get("durable_ref") or None,
        url=payload.get("url") or None,
        error=payload.get("error") or None,
        category=payload.get("category") or None,
        document_type=payload.get("document_type") or None,
        existing=bool(payload.get("existing")),
    )
