"""Read/write access to the content store through the management api.

Entries and assets come back as small wrappers over the JSON the store
returns. Every write sends the version it was read at, so the store rejects
a write based on an out of date copy.
"""
import asyncio
import logging
from typing import Any, Self

import httpx

from catalog.config import Config
from catalog.domain.errors import ContentStoreError, NotFoundError, ProcessingError


logger = logging.getLogger(__name__)


CMA_JSON = "application/vnd.contentful.management.v1+json"


def management_client_factory(
    config: Config, *, transport: httpx.AsyncBaseTransport | None = None
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=config.management_url,
        headers={
            "Authorization": f"Bearer {config.contentful_management_token}",
            "Content-Type": CMA_JSON,
        },
        timeout=config.http_timeout,
        transport=transport,
    )


def upload_client_factory(
    config: Config, *, transport: httpx.AsyncBaseTransport | None = None
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=config.upload_url,
        headers={
            "Authorization": f"Bearer {config.contentful_management_token}",
            "Content-Type": "application/octet-stream",
        },
        timeout=config.http_timeout,
        transport=transport,
    )


def error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return resp.reason_phrase


def raise_for_store(resp: httpx.Response) -> None:
    if resp.is_success:
        return
    message = f"{resp.status_code} {error_message(resp)}"
    if resp.status_code == 404:
        raise NotFoundError(message, status_code=404)
    raise ContentStoreError(message, status_code=resp.status_code)


def decode_json(resp: httpx.Response) -> dict[str, Any]:
    """The JSON object in a successful response."""
    try:
        data = resp.json()
    except ValueError as e:
        raise ContentStoreError(
            f"Malformed response from the content store: {e}",
            status_code=resp.status_code,
        ) from e
    if not isinstance(data, dict):
        raise ContentStoreError(
            "Malformed response from the content store: expected an object",
            status_code=resp.status_code,
        )
    return data


def sys_id(data: dict[str, Any]) -> str:
    try:
        return data["sys"]["id"]
    except (KeyError, TypeError) as e:
        raise ContentStoreError(
            "Malformed response from the content store: missing sys.id"
        ) from e


def asset_link(asset_id: str) -> dict[str, Any]:
    return {"sys": {"type": "Link", "linkType": "Asset", "id": asset_id}}


class _Resource:
    kind = ""

    def __init__(self, data: dict[str, Any], *, client: "ContentManagementClient"):
        sys_id(data)
        self.sys: dict[str, Any] = data.get("sys", {})
        self.fields: dict[str, Any] = data.get("fields", {})
        self._client = client

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(id={self.id}, version={self.version})>"

    @property
    def id(self) -> str:
        return self.sys["id"]

    @property
    def version(self) -> int:
        return self.sys.get("version", 0)

    @property
    def path(self) -> str:
        return f"{self.kind}/{self.id}"

    def is_published(self) -> bool:
        return bool(self.sys.get("publishedVersion"))

    def to_dict(self) -> dict[str, Any]:
        return {"sys": self.sys, "fields": self.fields}

    def _wrap(self, data: dict[str, Any]) -> Self:
        return type(self)(data, client=self._client)

    async def publish(self) -> Self:
        data = await self._client.request(
            "PUT", f"{self.path}/published", version=self.version
        )
        return self._wrap(data)

    async def unpublish(self) -> Self:
        data = await self._client.request(
            "DELETE", f"{self.path}/published", version=self.version
        )
        return self._wrap(data)

    async def delete(self) -> None:
        await self._client.request("DELETE", self.path, version=self.version)


class Entry(_Resource):
    kind = "entries"

    def get_field(self, name: str, locale: str) -> Any:
        return self.fields.get(name, {}).get(locale)

    def set_field(self, name: str, value: Any, locale: str) -> None:
        self.fields.setdefault(name, {})[locale] = value

    def clear_field(self, name: str) -> None:
        self.fields.pop(name, None)

    def image_id(self, locale: str) -> str | None:
        link = self.get_field("image", locale)
        if not link:
            return None
        return link.get("sys", {}).get("id")

    async def update(self) -> Self:
        data = await self._client.request(
            "PUT",
            self.path,
            version=self.version,
            json={"fields": self.fields},
        )
        return self._wrap(data)


class Asset(_Resource):
    kind = "assets"

    def url(self, locale: str) -> str | None:
        return self.fields.get("file", {}).get(locale, {}).get("url")

    @property
    def is_processed(self) -> bool:
        files = self.fields.get("file", {})
        return bool(files) and all(f.get("url") for f in files.values())

    async def process_for_all_locales(
        self,
        *,
        wait: float | None = None,
        retries: int | None = None,
    ) -> Self:
        """Start processing each locale's file and wait until it is done.

        Returns the processed asset, freshly fetched.
        """
        wait = self._client.config.processing_check_wait if wait is None else wait
        retries = (
            self._client.config.processing_check_retries
            if retries is None
            else retries
        )
        for locale in self.fields.get("file", {}):
            await self._client.request(
                "PUT", f"{self.path}/files/{locale}/process", version=self.version
            )

        logger.info("Waiting for asset %s to process", self.id)
        for _ in range(retries):
            await asyncio.sleep(wait)
            asset = await self._client.get_asset(self.id)
            if asset.is_processed:
                return asset

        raise ProcessingError(
            f"Asset {self.id} is taking longer than expected to process."
        )


class ContentManagementClient:
    def __init__(
        self,
        config: Config,
        *,
        client: httpx.AsyncClient | None = None,
        upload_client: httpx.AsyncClient | None = None,
    ) -> None:
        config.require_management()
        self.config = config
        self._client = management_client_factory(config) if client is None else client
        self._upload_client = (
            upload_client_factory(config) if upload_client is None else upload_client
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        version: int | None = None,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> dict[str, Any]:
        """Send a request relative to the configured space environment."""
        headers = {} if headers is None else dict(headers)
        if version is not None:
            headers["X-Contentful-Version"] = str(version)
        url = f"{self.config.environment_path}/{path}"
        try:
            resp = await self._client.request(
                method, url, headers=headers, params=params, json=json
            )
        except httpx.HTTPError as e:
            raise ContentStoreError(f"{method} {url}: {e!r}") from e
        raise_for_store(resp)
        if not resp.content:
            return {}
        return decode_json(resp)

    async def get_entry(self, id: str) -> Entry:
        return Entry(await self.request("GET", f"entries/{id}"), client=self)

    async def create_entry(self, content_type: str, fields: dict[str, Any]) -> Entry:
        data = await self.request(
            "POST",
            "entries",
            headers={"X-Contentful-Content-Type": content_type},
            json={"fields": fields},
        )
        return Entry(data, client=self)

    async def get_asset(self, id: str) -> Asset:
        return Asset(await self.request("GET", f"assets/{id}"), client=self)

    async def get_assets(self, query: dict[str, Any]) -> list[Asset]:
        data = await self.request("GET", "assets", params=query)
        return [Asset(item, client=self) for item in data.get("items", [])]

    async def upload(self, data: bytes) -> str:
        url = f"/spaces/{self.config.contentful_space_id}/uploads"
        try:
            resp = await self._upload_client.post(url, content=data)
        except httpx.HTTPError as e:
            raise ContentStoreError(f"POST {url}: {e!r}") from e
        raise_for_store(resp)
        return sys_id(decode_json(resp))

    async def create_asset_from_files(self, fields: dict[str, Any]) -> Asset:
        """Create an asset whose `file` values carry raw bytes under `file`.

        The bytes of each locale are uploaded first and the asset is created
        pointing at the uploads.
        """
        files: dict[str, Any] = {}
        for locale, file in fields["file"].items():
            upload_id = await self.upload(file["file"])
            files[locale] = {
                "contentType": file["contentType"],
                "fileName": file["fileName"],
                "uploadFrom": {
                    "sys": {"type": "Link", "linkType": "Upload", "id": upload_id}
                },
            }
        data = await self.request(
            "POST", "assets", json={"fields": {**fields, "file": files}}
        )
        return Asset(data, client=self)

    async def delete_asset(self, id: str) -> None:
        asset = await self.get_asset(id)
        if asset.is_published():
            asset = await asset.unpublish()
        await asset.delete()

    async def close(self) -> None:
        await self._client.aclose()
        await self._upload_client.aclose()
