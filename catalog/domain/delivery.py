import logging
from typing import Any

import httpx

from catalog.config import Config
from catalog.domain.errors import ContentStoreError
from catalog.domain.management import decode_json, raise_for_store, sys_id


logger = logging.getLogger(__name__)


def delivery_client_factory(
    config: Config, *, transport: httpx.AsyncBaseTransport | None = None
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=config.delivery_url,
        headers={"Authorization": f"Bearer {config.contentful_delivery_token}"},
        timeout=config.http_timeout,
        transport=transport,
    )


class DeliveredEntry:
    """A published entry with localised fields and its image url resolved."""

    def __init__(
        self,
        *,
        id: str,
        fields: dict[str, Any],
        image_url: str | None = None,
    ) -> None:
        self.id = id
        self.fields = fields
        self.image_url = image_url

    def __repr__(self) -> str:
        return f"<DeliveredEntry(id={self.id}, title={self.fields.get('title')})>"


def asset_urls(includes: dict[str, Any]) -> dict[str, str]:
    urls: dict[str, str] = {}
    for asset in includes.get("Asset", []):
        url = asset.get("fields", {}).get("file", {}).get("url")
        if url:
            urls[sys_id(asset)] = f"https:{url}" if url.startswith("//") else url
    return urls


class ContentStoreClient:
    def __init__(
        self,
        config: Config,
        *,
        client: httpx.AsyncClient | None = None,
        limit: int = 1000,
    ) -> None:
        config.require_delivery()
        self.config = config
        self.limit = limit
        self._client = delivery_client_factory(config) if client is None else client

    async def list_entries(self) -> list[DeliveredEntry]:
        url = f"{self.config.environment_path}/entries"
        params = {
            "content_type": self.config.recipe_content_type,
            "locale": self.config.contentful_locale,
            "include": 1,
            "limit": self.limit,
        }
        try:
            resp = await self._client.get(url, params=params)
        except httpx.HTTPError as e:
            raise ContentStoreError(f"GET {url}: {e!r}") from e
        raise_for_store(resp)
        data = decode_json(resp)

        urls = asset_urls(data.get("includes", {}))
        entries: list[DeliveredEntry] = []
        for item in data.get("items", []):
            fields = item.get("fields", {})
            image = fields.get("image") or {}
            image_id = image.get("sys", {}).get("id")
            entries.append(
                DeliveredEntry(
                    id=sys_id(item),
                    fields=fields,
                    image_url=urls.get(image_id) if image_id else None,
                )
            )
        logger.info("Fetched %d entries", len(entries))
        return entries

    async def close(self) -> None:
        await self._client.aclose()
