"""PostgREST client for the industry taxonomy tables."""

from dataclasses import dataclass

import httpx

from listing_wizard.services.taxonomy import TaxonomyClient


@dataclass
class HttpxTaxonomyClient(TaxonomyClient):
    """HTTPX-backed taxonomy client."""

    api_key: str
    base_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, api_key: str, base_url: str) -> "HttpxTaxonomyClient":
        """Create a taxonomy client with a managed httpx session."""
        return cls(api_key=api_key, base_url=base_url, http_client=httpx.AsyncClient())

    async def list_industries(self) -> list[dict[str, object]]:
        return await self._select("industries", {})

    async def list_categories(self, industry_id: str) -> list[dict[str, object]]:
        return await self._select("categories", {"industry_id": f"eq.{industry_id}"})

    async def list_subcategories(self, category_id: str) -> list[dict[str, object]]:
        return await self._select(
            "sub_categories", {"category_id": f"eq.{category_id}"}
        )

    async def _select(
        self, table: str, filters: dict[str, str]
    ) -> list[dict[str, object]]:
        response = await self.http_client.get(
            f"{self.base_url}/{table}",
            params={
                "select": "id,name",
                "is_active": "eq.true",
                "order": "name.asc",
                **filters,
            },
            headers={
                "apikey": self.api_key,
                "Authorization": f"Bearer {self.api_key}",
            },
            timeout=15,
        )
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
