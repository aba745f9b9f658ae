"""Notion API client for writing candidate pages."""

import logging
from typing import Any

import httpx

from product_scout.clients.http_client import get_policy, request_with_policy
from product_scout.config import settings

logger = logging.getLogger(__name__)

NOTION_API_BASE = "https://api.notion.com/v1"


class NotionClient:
    """Creates pages in a Notion database."""

    def __init__(
        self,
        api_key: str | None = None,
        database_id: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key if api_key is not None else settings.notion_api_key
        self.database_id = database_id if database_id is not None else settings.notion_database_id
        self._client = client
        self._owns_client = client is None
        self.policy = get_policy("notion")

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.database_id)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Notion-Version": settings.notion_version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def create_page(self, database_id: str, properties: dict[str, Any]) -> dict[str, Any]:
        """
        Create a page in a database.

        Args:
            database_id: Target Notion database
            properties: Page properties keyed by database column name

        Returns:
            The created page object
        """
        client = await self._get_client()
        resp = await request_with_policy(
            client,
            "POST",
            f"{NOTION_API_BASE}/pages",
            self.policy,
            headers=self._headers(),
            json={"parent": {"database_id": database_id}, "properties": properties},
        )
        return resp.json()
