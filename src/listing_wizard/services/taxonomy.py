"""Industry taxonomy lookups with caching and in-flight tracking."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol

from listing_wizard.domain.listings import TaxonomyOption
from listing_wizard.domain.schema import OptionSource
from listing_wizard.services.cache import Cache

_logger = logging.getLogger(__name__)


class TaxonomyClient(Protocol):
    """Interface for fetching the industry hierarchy."""

    async def list_industries(self) -> list[dict[str, object]]:
        """Return raw industry rows."""

    async def list_categories(self, industry_id: str) -> list[dict[str, object]]:
        """Return raw category rows for an industry."""

    async def list_subcategories(self, category_id: str) -> list[dict[str, object]]:
        """Return raw subcategory rows for a category."""


@dataclass
class TaxonomyService:
    """Dependent option lists for the classification fields."""

    client: TaxonomyClient
    cache: Cache
    ttl_seconds: int = 3600
    _inflight: dict[str, asyncio.Task] = field(
        default_factory=dict, init=False, repr=False
    )

    async def industries(self) -> list[TaxonomyOption]:
        """Return every industry."""
        return await self.options(OptionSource.INDUSTRIES, None)

    async def categories(self, industry_id: str) -> list[TaxonomyOption]:
        """Return the categories of an industry."""
        return await self.options(OptionSource.CATEGORIES, industry_id)

    async def subcategories(self, category_id: str) -> list[TaxonomyOption]:
        """Return the subcategories of a category."""
        return await self.options(OptionSource.SUBCATEGORIES, category_id)

    async def options(
        self, source: OptionSource, parent_id: str | None
    ) -> list[TaxonomyOption]:
        """Return an option list, joining any fetch already in flight."""
        key = _cache_key(source, parent_id)
        cached = self.cache.get(key)
        if isinstance(cached, list):
            return cached
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch(source, parent_id))
            self._inflight[key] = task
        return await task

    def cached_ids(
        self, source: OptionSource, parent_id: str | None
    ) -> set[str] | None:
        """Return known option ids, or None when the list is not loaded yet."""
        cached = self.cache.get(_cache_key(source, parent_id))
        if isinstance(cached, list):
            return {option.id for option in cached}
        return None

    def name_for(
        self, source: OptionSource, parent_id: str | None, option_id: str
    ) -> str | None:
        """Return the display name of a loaded option."""
        cached = self.cache.get(_cache_key(source, parent_id))
        if not isinstance(cached, list):
            return None
        for option in cached:
            if option.id == option_id:
                return option.name
        return None

    def prefetch(self, source: OptionSource, parent_id: str | None) -> None:
        """Start loading an option list in the background."""
        key = _cache_key(source, parent_id)
        if key in self._inflight or self.cache.get(key) is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._inflight[key] = loop.create_task(self._fetch(source, parent_id))

    @property
    def is_loading(self) -> bool:
        return bool(self._inflight)

    async def settle(self) -> None:
        """Wait until no option list fetch is in flight."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight.values()), return_exceptions=True)

    async def _fetch(
        self, source: OptionSource, parent_id: str | None
    ) -> list[TaxonomyOption]:
        key = _cache_key(source, parent_id)
        try:
            if source is OptionSource.INDUSTRIES:
                rows = await self.client.list_industries()
            elif source is OptionSource.CATEGORIES:
                rows = await self.client.list_categories(parent_id or "")
            else:
                rows = await self.client.list_subcategories(parent_id or "")
            options = [
                TaxonomyOption(id=str(row["id"]), name=str(row.get("name") or ""))
                for row in rows
                if row.get("id") is not None
            ]
            self.cache.set(key, options, ttl_seconds=self.ttl_seconds)
        except Exception:
            _logger.warning(
                "Failed to load taxonomy options",
                extra={"source": source.value, "parent_id": parent_id},
                exc_info=True,
            )
            return []
        finally:
            self._inflight.pop(key, None)
        return options


def _cache_key(source: OptionSource, parent_id: str | None) -> str:
    return f"taxonomy:{source.value}:{parent_id or '*'}"
